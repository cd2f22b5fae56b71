from __future__ import annotations
from typing import Any, Optional


class MappingError(Exception):
    """Base class for every fatal conversion error.

    `key` is the source key of the offending element (class name, or a tuple
    of owner/name/descriptor for members) and `namespace` the namespace the
    problem was found in, when known.
    """

    def __init__(self, message: str, key: Any = None, namespace: Optional[str] = None):
        super().__init__(message)
        self.key = key
        self.namespace = namespace


class MalformedStreamError(MappingError):
    pass


class DuplicateNamespaceError(MappingError):
    pass


class ConflictingDefinitionError(MappingError):
    pass


class MergeConflictError(MappingError):
    pass


class IncompatibleNamespacesError(MappingError):
    pass


class ImmutableTreeError(MappingError):
    pass


class MalformedDescriptorError(MappingError):
    pass


class UnmappedClassError(MappingError):
    pass


class UnsupportedFormatError(MappingError):
    pass


class ConversionCancelled(MappingError):
    pass


class RepeatedKeyError(ConflictingDefinitionError):
    """An element key was declared twice in a stream that cannot reconcile it."""
