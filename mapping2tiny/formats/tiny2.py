from __future__ import annotations
from typing import Iterable, List, Optional, TextIO

from mapping2tiny.descriptor.types import parse_method_descriptor
from mapping2tiny.errors import MalformedStreamError
from mapping2tiny.visitor.contract import MappingVisitor

HEADER = "tiny"
ESCAPED_NAMES = "escaped-names"

_ESCAPES = {"\\": "\\\\", "\n": "\\n", "\r": "\\r", "\t": "\\t", "\0": "\\0"}
_UNESCAPES = {"\\": "\\", "n": "\n", "r": "\r", "t": "\t", "0": "\0"}


def escape(text: str) -> str:
    return "".join(_ESCAPES.get(ch, ch) for ch in text)


def unescape(text: str) -> str:
    if "\\" not in text:
        return text
    out: List[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text) and text[i + 1] in _UNESCAPES:
            out.append(_UNESCAPES[text[i + 1]])
            i += 2
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def detect(head: str) -> bool:
    return head.startswith("tiny\t2\t")


def read(lines: Iterable[str], visitor: MappingVisitor) -> None:
    """Parse Tiny v2 text and emit visitor events.

    Indentation selects the scope: 0 = class, 1 = field/method or class
    comment, 2 = parameter/local or member comment, 3 = parameter comment.
    """
    it = iter(lines)
    first = next(it, None)
    if first is None:
        raise MalformedStreamError("empty tiny v2 file")
    header = first.rstrip("\r\n").split("\t")
    if len(header) < 4 or header[0] != HEADER or header[1] != "2":
        raise MalformedStreamError(f"not a tiny v2 header: {first.strip()!r}")
    namespaces = header[3:]
    ns_count = len(namespaces)
    visitor.visit_namespaces(namespaces)

    escaped = False
    in_content = False
    kinds: List[str] = []  # open scopes, index = indentation level
    skip_level: Optional[int] = None

    def names_of(cols: List[str], lineno: int) -> List[Optional[str]]:
        if len(cols) > ns_count:
            raise MalformedStreamError(f"line {lineno}: expected {ns_count} names, got {len(cols)}")
        cols = cols + [""] * (ns_count - len(cols))
        return [(unescape(c) if escaped else c) or None for c in cols]

    def emit_names(names: List[Optional[str]]) -> None:
        for i in range(1, len(names)):
            if names[i] is not None:
                visitor.visit_dst_name(i, names[i])

    for lineno, raw in enumerate(it, start=2):
        line = raw.rstrip("\r\n")
        if not line:
            continue
        depth = len(line) - len(line.lstrip("\t"))
        cols = line[depth:].split("\t")
        tag = cols[0]

        if not in_content and depth == 1:
            visitor.visit_metadata(tag, unescape(cols[1]) if len(cols) > 1 else None)
            if tag == ESCAPED_NAMES:
                escaped = True
            continue
        in_content = True

        if skip_level is not None:
            if depth >= skip_level:
                continue
            skip_level = None
        if depth > len(kinds):
            raise MalformedStreamError(f"line {lineno}: unexpected indentation")
        while len(kinds) > depth:
            kinds.pop()
            visitor.visit_end()

        parent = kinds[-1] if kinds else None
        if tag == "c" and depth > 0:
            if len(cols) < 2:
                raise MalformedStreamError(f"line {lineno}: empty comment")
            visitor.visit_comment(unescape(cols[1]))
            continue

        if depth == 0 and tag == "c":
            names = names_of(cols[1:], lineno)
            if names[0] is None:
                raise MalformedStreamError(f"line {lineno}: class without source name")
            kinds.append("c")
            accepted = visitor.visit_class(names[0])
        elif depth == 1 and parent == "c" and tag in ("f", "m"):
            if len(cols) < 3:
                raise MalformedStreamError(f"line {lineno}: truncated member")
            desc = cols[1]
            names = names_of(cols[2:], lineno)
            kinds.append(tag)
            if tag == "f":
                accepted = visitor.visit_field(names[0], desc)
            else:
                accepted = visitor.visit_method(names[0], desc)
        elif depth == 2 and parent == "m" and tag == "p":
            if len(cols) < 2:
                raise MalformedStreamError(f"line {lineno}: truncated parameter")
            lv_index = _int(cols[1], lineno)
            names = names_of(cols[2:], lineno)
            kinds.append(tag)
            accepted = visitor.visit_parameter(-1, names[0], lv_index)
        elif depth == 2 and parent == "m" and tag == "v":
            if len(cols) < 4:
                raise MalformedStreamError(f"line {lineno}: truncated local variable")
            lv_index, start, row = (_int(c, lineno) for c in cols[1:4])
            names = names_of(cols[4:], lineno)
            kinds.append(tag)
            accepted = visitor.visit_local_variable(lv_index, start, row, names[0])
        else:
            raise MalformedStreamError(f"line {lineno}: unexpected {tag!r} entry at depth {depth}")

        if accepted:
            emit_names(names)
        else:
            skip_level = depth + 1

    while kinds:
        kinds.pop()
        visitor.visit_end()
    visitor.visit_end()


def _int(text: str, lineno: int) -> int:
    try:
        return int(text)
    except ValueError:
        raise MalformedStreamError(f"line {lineno}: expected an integer, got {text!r}") from None


class Tiny2Writer(MappingVisitor):
    """Streams visitor events out as Tiny v2 text.

    Element rows are buffered until the next non-name event, since
    destination names arrive after the element itself.
    """

    def __init__(self, out: TextIO):
        self.out = out
        self._ns_count = 0
        self._escape_names = False
        self._depth = 0
        self._pending: Optional[tuple] = None  # (depth, fixed columns, names)
        self._method_desc: Optional[str] = None

    def _name(self, name: Optional[str]) -> str:
        if name is None:
            return ""
        return escape(name) if self._escape_names else name

    def _flush(self) -> None:
        if self._pending is None:
            return
        depth, fixed, names = self._pending
        self._pending = None
        self.out.write("\t" * depth + "\t".join(fixed + [self._name(n) for n in names]) + "\n")

    def _open(self, fixed: List[str], src_name: Optional[str]) -> bool:
        self._flush()
        self._pending = (self._depth, fixed, [src_name] + [None] * (self._ns_count - 1))
        self._depth += 1
        return True

    def visit_namespaces(self, names):
        self._ns_count = len(names)
        self.out.write("\t".join(["tiny", "2", "0"] + list(names)) + "\n")

    def visit_metadata(self, key, value):
        if key == ESCAPED_NAMES:
            self._escape_names = True
        cols = [key] if value is None else [key, escape(value)]
        self.out.write("\t" + "\t".join(cols) + "\n")

    def visit_class(self, src_name):
        return self._open(["c"], src_name)

    def visit_field(self, src_name, src_desc):
        return self._open(["f", src_desc or ""], src_name)

    def visit_method(self, src_name, src_desc):
        self._method_desc = src_desc
        return self._open(["m", src_desc], src_name)

    def visit_parameter(self, index, src_name=None, lv_index=-1):
        if lv_index < 0:
            # derive the slot from the argument position, assuming an instance method
            slots = parse_method_descriptor(self._method_desc).lv_indices()
            if not 0 <= index < len(slots):
                raise MalformedStreamError(f"parameter {index} out of range for {self._method_desc}")
            lv_index = slots[index]
        return self._open(["p", str(lv_index)], src_name)

    def visit_local_variable(self, lv_index, start_offset=-1, lvt_row_index=-1, src_name=None):
        return self._open(["v", str(lv_index), str(start_offset), str(lvt_row_index)], src_name)

    def visit_dst_name(self, namespace, name):
        if self._pending is not None:
            self._pending[2][namespace] = name

    def visit_comment(self, text):
        self._flush()
        self.out.write("\t" * self._depth + "c\t" + escape(text) + "\n")

    def visit_end(self):
        self._flush()
        if self._depth:
            self._depth -= 1
