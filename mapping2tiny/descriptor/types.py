from __future__ import annotations
from dataclasses import dataclass
from typing import List, Tuple, Union

from mapping2tiny.errors import MalformedDescriptorError

# java name mangling
JAVA_PRIMITIVES = {
    'boolean': 'Z',
    'byte':    'B',
    'char':    'C',
    'double':  'D',
    'float':   'F',
    'int':     'I',
    'long':    'J',
    'short':   'S',
    'void':    'V',
}

PRIMITIVE_CODES = frozenset(JAVA_PRIMITIVES.values())


@dataclass(frozen=True)
class PrimitiveType:
    code: str  # one of ZBCDFIJSV

    @property
    def descriptor(self) -> str:
        return self.code

    @property
    def slot_size(self) -> int:
        return 2 if self.code in ("J", "D") else 1

    def __str__(self) -> str:
        return self.descriptor


@dataclass(frozen=True)
class ObjectType:
    class_name: str  # internal name, e.g. java/lang/String or a$b

    @property
    def descriptor(self) -> str:
        return f"L{self.class_name};"

    slot_size = 1

    def __str__(self) -> str:
        return self.descriptor


@dataclass(frozen=True)
class ArrayType:
    dimensions: int
    component: Union[PrimitiveType, ObjectType]

    @property
    def descriptor(self) -> str:
        return "[" * self.dimensions + self.component.descriptor

    slot_size = 1

    def __str__(self) -> str:
        return self.descriptor


FieldType = Union[PrimitiveType, ObjectType, ArrayType]


@dataclass(frozen=True)
class MethodDescriptor:
    params: Tuple[FieldType, ...]
    return_type: FieldType

    @property
    def descriptor(self) -> str:
        return "(" + "".join(p.descriptor for p in self.params) + ")" + self.return_type.descriptor

    def lv_indices(self, static: bool = False) -> List[int]:
        """Local-variable slot of each parameter (receiver in slot 0 unless static)."""
        out: List[int] = []
        slot = 0 if static else 1
        for p in self.params:
            out.append(slot)
            slot += p.slot_size
        return out

    def __str__(self) -> str:
        return self.descriptor


def _parse_type(desc: str, pos: int, allow_void: bool) -> Tuple[FieldType, int]:
    if pos >= len(desc):
        raise MalformedDescriptorError(f"unexpected end of descriptor {desc!r}", key=desc)
    dims = 0
    while pos < len(desc) and desc[pos] == "[":
        dims += 1
        pos += 1
    if pos >= len(desc):
        raise MalformedDescriptorError(f"array without component type in {desc!r}", key=desc)
    c = desc[pos]
    if c == "L":
        end = desc.find(";", pos)
        if end == -1 or end == pos + 1:
            raise MalformedDescriptorError(f"unterminated class name in {desc!r}", key=desc)
        base: Union[PrimitiveType, ObjectType] = ObjectType(desc[pos + 1:end])
        pos = end + 1
    elif c in PRIMITIVE_CODES:
        if c == "V" and (dims or not allow_void):
            raise MalformedDescriptorError(f"void is only valid as a return type: {desc!r}", key=desc)
        base = PrimitiveType(c)
        pos += 1
    else:
        raise MalformedDescriptorError(f"unknown type code {c!r} in {desc!r}", key=desc)
    if dims:
        return ArrayType(dims, base), pos
    return base, pos


def parse_field_descriptor(desc: str) -> FieldType:
    t, pos = _parse_type(desc, 0, allow_void=False)
    if pos != len(desc):
        raise MalformedDescriptorError(f"trailing characters in field descriptor {desc!r}", key=desc)
    return t


def parse_method_descriptor(desc: str) -> MethodDescriptor:
    if not desc.startswith("("):
        raise MalformedDescriptorError(f"method descriptor must start with '(': {desc!r}", key=desc)
    pos = 1
    params: List[FieldType] = []
    while pos < len(desc) and desc[pos] != ")":
        t, pos = _parse_type(desc, pos, allow_void=False)
        params.append(t)
    if pos >= len(desc):
        raise MalformedDescriptorError(f"missing ')' in method descriptor {desc!r}", key=desc)
    ret, pos = _parse_type(desc, pos + 1, allow_void=True)
    if pos != len(desc):
        raise MalformedDescriptorError(f"trailing characters in method descriptor {desc!r}", key=desc)
    return MethodDescriptor(tuple(params), ret)


def parse_descriptor(desc: str) -> Union[FieldType, MethodDescriptor]:
    if desc.startswith("("):
        return parse_method_descriptor(desc)
    return parse_field_descriptor(desc)


def java_type_to_descriptor(type_name: str) -> str:
    """Convert a Java source type (``int[]``, ``java.lang.String``) to a descriptor."""
    type_name = type_name.strip()
    dims = 0
    while type_name.endswith("[]"):
        dims += 1
        type_name = type_name[:-2]
    if type_name in JAVA_PRIMITIVES:
        base = JAVA_PRIMITIVES[type_name]
    else:
        base = "L" + type_name.replace(".", "/") + ";"
    return "[" * dims + base


def java_method_to_descriptor(return_type: str, param_types: List[str]) -> str:
    return "(" + "".join(java_type_to_descriptor(p) for p in param_types) + ")" + java_type_to_descriptor(return_type)
