from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Iterable, List

from mapping2tiny.errors import MalformedStreamError
from mapping2tiny.visitor.contract import MappingVisitor
from .archive import open_zip

SUFFIX = ".mapping"


def detect(head: str) -> bool:
    return head.startswith("CLASS ") or head.startswith("CLASS\t")


def _tokens(text: str) -> List[str]:
    # access modifier tokens (ACC:PUBLIC, ...) carry no names
    return [t for t in text.split() if not t.startswith("ACC:")]


def parse(lines: Iterable[str], origin: str = "<enigma>") -> List[Dict[str, Any]]:
    """Parse one Enigma file into flat class records, outer classes first.

    Nested CLASS rows are resolved to `Outer$Inner` in both namespaces (an
    unmapped outer class contributes its source name to the target name).
    """
    classes: List[Dict[str, Any]] = []
    stack: List[Dict[str, Any]] = []  # open records, index = indentation

    for lineno, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        content = line.lstrip("\t")
        if not content.strip() or content.lstrip().startswith("#"):
            continue
        depth = len(line) - len(content)
        if depth > len(stack):
            raise MalformedStreamError(f"{origin}:{lineno}: unexpected indentation")
        del stack[depth:]
        parent = stack[-1] if stack else None
        if parent is not None and parent["kind"] == "comment":
            raise MalformedStreamError(f"{origin}:{lineno}: rows cannot be nested under a comment")
        keyword, _, rest = content.partition(" ")
        tokens = _tokens(rest)

        if keyword == "COMMENT":
            if parent is None:
                raise MalformedStreamError(f"{origin}:{lineno}: comment outside of an element")
            parent["comment"].append(rest)
            stack.append({"kind": "comment"})
            continue

        if keyword == "CLASS":
            if not tokens or (parent is not None and parent["kind"] != "class"):
                raise MalformedStreamError(f"{origin}:{lineno}: invalid class row")
            src = tokens[0]
            dst = tokens[1] if len(tokens) > 1 else None
            if parent is not None:
                outer_dst = parent["dst"] or parent["src"]
                src = parent["src"] + "$" + src
                dst = outer_dst + "$" + dst if dst else None
            record = {"kind": "class", "src": src, "dst": dst, "comment": [], "members": []}
            classes.append(record)
            stack.append(record)
        elif keyword in ("FIELD", "METHOD"):
            if parent is None or parent["kind"] != "class" or len(tokens) not in (2, 3):
                raise MalformedStreamError(f"{origin}:{lineno}: invalid {keyword.lower()} row")
            src = tokens[0]
            dst = tokens[1] if len(tokens) == 3 else None
            record = {"kind": keyword.lower(), "src": src, "dst": dst, "desc": tokens[-1],
                      "comment": [], "args": []}
            parent["members"].append(record)
            stack.append(record)
        elif keyword == "ARG":
            if parent is None or parent["kind"] != "method" or len(tokens) != 2:
                raise MalformedStreamError(f"{origin}:{lineno}: invalid arg row")
            try:
                lv_index = int(tokens[0])
            except ValueError:
                raise MalformedStreamError(f"{origin}:{lineno}: invalid arg index {tokens[0]!r}") from None
            record = {"kind": "arg", "lv_index": lv_index, "dst": tokens[1], "comment": []}
            parent["args"].append(record)
            stack.append(record)
        else:
            raise MalformedStreamError(f"{origin}:{lineno}: unknown enigma row {keyword!r}")
    return classes


def _emit(visitor: MappingVisitor, record: Dict[str, Any]) -> None:
    if record.get("dst"):
        visitor.visit_dst_name(1, record["dst"])
    if record["comment"]:
        visitor.visit_comment("\n".join(record["comment"]))


def emit(classes: Iterable[Dict[str, Any]], visitor: MappingVisitor,
         source_name: str = "source", target_name: str = "target") -> None:
    visitor.visit_namespaces([source_name, target_name])
    for cls in classes:
        if visitor.visit_class(cls["src"]):
            _emit(visitor, cls)
            for member in cls["members"]:
                if member["kind"] == "field":
                    accepted = visitor.visit_field(member["src"], member["desc"])
                else:
                    accepted = visitor.visit_method(member["src"], member["desc"])
                if accepted:
                    _emit(visitor, member)
                    for arg in member.get("args", ()):
                        if visitor.visit_parameter(-1, None, arg["lv_index"]):
                            _emit(visitor, arg)
                        visitor.visit_end()
                visitor.visit_end()
        visitor.visit_end()
    visitor.visit_end()


def read(path: Path, visitor: MappingVisitor,
         source_name: str = "source", target_name: str = "target") -> None:
    """Read an Enigma mapping file or a directory tree of `*.mapping` files."""
    path = Path(path)
    files = sorted(path.rglob("*" + SUFFIX)) if path.is_dir() else [path]
    classes: List[Dict[str, Any]] = []
    for f in files:
        with f.open("r", encoding="utf-8") as fh:
            classes.extend(parse(fh, origin=str(f)))
    emit(classes, visitor, source_name, target_name)


def read_zip(path: Path, visitor: MappingVisitor,
             source_name: str = "source", target_name: str = "target") -> None:
    """Read every `*.mapping` entry of a zip archive as one Enigma mapping set."""
    classes: List[Dict[str, Any]] = []
    with open_zip(path) as zf:
        for name in sorted(n for n in zf.namelist() if n.endswith(SUFFIX)):
            text = zf.read(name).decode("utf-8")
            classes.extend(parse(text.splitlines(), origin=f"{path}!{name}"))
    emit(classes, visitor, source_name, target_name)

