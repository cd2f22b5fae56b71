"""Namespace selection and merging.

- selector.py: project a tree onto an output namespace list with fallback chains
- merger.py: union several trees sharing a source namespace
"""

from .selector import NamespaceSelector
from .merger import merge_trees, read_trees_parallel
