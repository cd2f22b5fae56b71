"""Mapping tree: the canonical multi-namespace model.

- model.py: MappingTree and its element types; frozen after finalize()
- builder.py: TreeBuilder, a visitor that accumulates events into a tree
"""

from .model import (
    ClassMapping,
    ConflictPolicy,
    FieldMapping,
    LocalVariableMapping,
    MappingTree,
    MethodMapping,
    ParameterMapping,
)
from .builder import TreeBuilder, build_tree
