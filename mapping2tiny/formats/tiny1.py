from __future__ import annotations
from typing import Dict, Iterable, List, Optional, TextIO

from mapping2tiny.errors import MalformedStreamError
from mapping2tiny.visitor.contract import MappingVisitor


def detect(head: str) -> bool:
    return head.startswith("v1\t")


class _ClassRows:
    __slots__ = ("names", "members")

    def __init__(self):
        self.names: Optional[List[Optional[str]]] = None
        self.members: List[tuple] = []  # (kind, name columns, desc)


def read(lines: Iterable[str], visitor: MappingVisitor) -> None:
    """Parse Tiny v1 text and emit visitor events.

    Rows may appear in any order, so they are grouped by owning class first
    (classes keep their first-appearance order).
    """
    it = iter(lines)
    first = next(it, None)
    if first is None:
        raise MalformedStreamError("empty tiny v1 file")
    header = first.rstrip("\r\n").split("\t")
    if len(header) < 2 or header[0] != "v1":
        raise MalformedStreamError(f"not a tiny v1 header: {first.strip()!r}")
    namespaces = header[1:]
    ns_count = len(namespaces)

    classes: Dict[str, _ClassRows] = {}

    def names_of(cols: List[str], lineno: int) -> List[Optional[str]]:
        if len(cols) > ns_count:
            raise MalformedStreamError(f"line {lineno}: expected {ns_count} names, got {len(cols)}")
        return [c or None for c in cols + [""] * (ns_count - len(cols))]

    for lineno, raw in enumerate(it, start=2):
        line = raw.rstrip("\r\n")
        if not line or line.startswith("#"):
            continue
        cols = line.split("\t")
        kind = cols[0]
        if kind == "CLASS":
            names = names_of(cols[1:], lineno)
            if names[0] is None:
                raise MalformedStreamError(f"line {lineno}: class without source name")
            classes.setdefault(names[0], _ClassRows()).names = names
        elif kind in ("FIELD", "METHOD"):
            if len(cols) < 4:
                raise MalformedStreamError(f"line {lineno}: truncated {kind.lower()} row")
            owner, desc = cols[1], cols[2]
            names = names_of(cols[3:], lineno)
            if names[0] is None:
                raise MalformedStreamError(f"line {lineno}: {kind.lower()} without source name")
            classes.setdefault(owner, _ClassRows()).members.append((kind, names, desc))
        else:
            raise MalformedStreamError(f"line {lineno}: unknown tiny v1 row {kind!r}")

    visitor.visit_namespaces(namespaces)
    for owner, rows in classes.items():
        if visitor.visit_class(owner):
            _emit_names(visitor, rows.names)
            for kind, names, desc in rows.members:
                accepted = visitor.visit_field(names[0], desc) if kind == "FIELD" \
                    else visitor.visit_method(names[0], desc)
                if accepted:
                    _emit_names(visitor, names)
                visitor.visit_end()
        visitor.visit_end()
    visitor.visit_end()


def _emit_names(visitor: MappingVisitor, names: Optional[List[Optional[str]]]) -> None:
    if not names:
        return
    for i in range(1, len(names)):
        if names[i] is not None:
            visitor.visit_dst_name(i, names[i])


class Tiny1Writer(MappingVisitor):
    """Writes Tiny v1; parameters, local variables and comments have no v1 form and are dropped."""

    def __init__(self, out: TextIO):
        self.out = out
        self._ns_count = 0
        self._class: Optional[str] = None
        self._depth = 0
        self._pending: Optional[tuple] = None  # (fixed columns, names)

    def _flush(self) -> None:
        if self._pending is None:
            return
        fixed, names = self._pending
        self._pending = None
        self.out.write("\t".join(fixed + [n or "" for n in names]) + "\n")

    def _open(self, fixed: List[str], src_name: str) -> bool:
        self._flush()
        self._pending = (fixed, [src_name] + [None] * (self._ns_count - 1))
        self._depth += 1
        return True

    def visit_namespaces(self, names):
        self._ns_count = len(names)
        self.out.write("\t".join(["v1"] + list(names)) + "\n")

    def visit_class(self, src_name):
        self._class = src_name
        return self._open(["CLASS"], src_name)

    def visit_field(self, src_name, src_desc):
        return self._open(["FIELD", self._class, src_desc or ""], src_name)

    def visit_method(self, src_name, src_desc):
        return self._open(["METHOD", self._class, src_desc], src_name)

    def visit_parameter(self, index, src_name=None, lv_index=-1):
        self._flush()
        self._depth += 1
        return False

    def visit_local_variable(self, lv_index, start_offset=-1, lvt_row_index=-1, src_name=None):
        self._flush()
        self._depth += 1
        return False

    def visit_dst_name(self, namespace, name):
        if self._pending is not None:
            self._pending[1][namespace] = name

    def visit_comment(self, text):
        self._flush()

    def visit_end(self):
        self._flush()
        if self._depth:
            self._depth -= 1
