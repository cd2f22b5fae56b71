from __future__ import annotations
import re
from typing import Iterable, Set, Tuple

from mapping2tiny.descriptor.types import java_method_to_descriptor, java_type_to_descriptor
from mapping2tiny.errors import MalformedStreamError
from mapping2tiny.visitor.contract import MappingVisitor

CLASS_RE = re.compile(r'^(\S+)\s*->\s*(\S+):$')
# [start:end:]type name(params)[:origStart[:origEnd]] -> obf
METHOD_RE = re.compile(r'^(?:\d+:\d+:)?(\S+)\s+([^\s(]+)\(([^)]*)\)(?::\d+(?::\d+)?)?\s*->\s*(\S+)$')
FIELD_RE = re.compile(r'^(\S+)\s+(\S+)\s*->\s*(\S+)$')


def detect(head: str) -> bool:
    for line in head.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        return CLASS_RE.match(stripped) is not None
    return False


def _internal(name: str) -> str:
    return name.replace(".", "/")


def read(lines: Iterable[str], visitor: MappingVisitor,
         source_name: str = "source", target_name: str = "target") -> None:
    """Parse a ProGuard/R8 mapping (original -> obfuscated) and emit visitor events.

    The original (left-hand) names form the source namespace. Inlined frames
    of other classes (qualified method names) and repeated line-range rows of
    the same method are dropped.
    """
    visitor.visit_namespaces([source_name, target_name])
    in_class = False
    skipping = False
    seen: Set[Tuple[str, str, str]] = set()

    for lineno, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        if not line[0].isspace():
            m = CLASS_RE.match(stripped)
            if m is None:
                raise MalformedStreamError(f"line {lineno}: invalid class mapping {stripped!r}")
            if in_class:
                visitor.visit_end()
            in_class = True
            seen.clear()
            skipping = not visitor.visit_class(_internal(m.group(1)))
            if not skipping:
                visitor.visit_dst_name(1, _internal(m.group(2)))
            continue

        if not in_class:
            raise MalformedStreamError(f"line {lineno}: member mapping before any class")
        if skipping:
            continue

        m = METHOD_RE.match(stripped)
        if m is not None:
            ret, name, params, obf = m.groups()
            if "." in name:
                continue
            desc = java_method_to_descriptor(ret, [p for p in params.split(",") if p.strip()])
            if ("m", name, desc) in seen:
                continue
            seen.add(("m", name, desc))
            if visitor.visit_method(name, desc):
                visitor.visit_dst_name(1, obf)
            visitor.visit_end()
            continue

        m = FIELD_RE.match(stripped)
        if m is not None:
            type_name, name, obf = m.groups()
            desc = java_type_to_descriptor(type_name)
            if ("f", name, desc) in seen:
                continue
            seen.add(("f", name, desc))
            if visitor.visit_field(name, desc):
                visitor.visit_dst_name(1, obf)
            visitor.visit_end()
            continue

        raise MalformedStreamError(f"line {lineno}: invalid member mapping {stripped!r}")

    if in_class:
        visitor.visit_end()
    visitor.visit_end()
