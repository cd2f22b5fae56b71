"""Descriptors: structured JVM type descriptors and namespace remapping.

- types.py: descriptor value types, parsing and Java source-type helpers
- remapper.py: class-name substitution inside descriptors (memoised, pure)
"""

from .types import (
    ArrayType,
    MethodDescriptor,
    ObjectType,
    PrimitiveType,
    java_type_to_descriptor,
    parse_descriptor,
    parse_field_descriptor,
    parse_method_descriptor,
)
from .remapper import DescriptorRemapper
