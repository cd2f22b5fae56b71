from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from functools import lru_cache
from typing import Iterable, List, Mapping, Optional

from mapping2tiny.errors import UnmappedClassError
from .types import ArrayType, MethodDescriptor, ObjectType, parse_descriptor

# Below this many descriptors a thread pool costs more than it saves
PARALLEL_THRESHOLD = 256


class DescriptorRemapper:
    """Rewrites descriptors from one namespace to another.

    The class table is copied on construction and never mutated, so `remap`
    is a pure function of its argument and is memoised per descriptor string.
    Classes missing from the table keep their name unless `strict` is set.
    """

    def __init__(self, class_map: Mapping[str, str], strict: bool = False, cache_size: int = 8192):
        self._class_map = dict(class_map)
        self.strict = strict
        self._cached = lru_cache(maxsize=cache_size)(self._remap_uncached)

    def __len__(self) -> int:
        return len(self._class_map)

    def map_class(self, name: str) -> str:
        mapped = self._class_map.get(name)
        if mapped is not None:
            return mapped
        if self.strict:
            raise UnmappedClassError(f"class {name} has no mapping in the target namespace", key=name)
        return name

    def remap_type(self, t):
        if isinstance(t, ObjectType):
            return ObjectType(self.map_class(t.class_name))
        if isinstance(t, ArrayType):
            return ArrayType(t.dimensions, self.remap_type(t.component))
        if isinstance(t, MethodDescriptor):
            return MethodDescriptor(tuple(self.remap_type(p) for p in t.params), self.remap_type(t.return_type))
        return t

    def _remap_uncached(self, desc: str) -> str:
        return self.remap_type(parse_descriptor(desc)).descriptor

    def remap(self, desc: Optional[str]) -> Optional[str]:
        if desc is None:
            return None
        return self._cached(desc)

    def cache_info(self):
        return self._cached.cache_info()

    def remap_all(self, descs: Iterable[Optional[str]], workers: int = 1) -> List[Optional[str]]:
        """Remap many descriptors, preserving input order."""
        descs = list(descs)
        if workers <= 1 or len(descs) < PARALLEL_THRESHOLD:
            return [self.remap(d) for d in descs]
        with ThreadPoolExecutor(max_workers=workers) as executor:
            return list(executor.map(self.remap, descs))
