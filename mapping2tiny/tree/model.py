from __future__ import annotations
import threading
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from mapping2tiny.descriptor.remapper import DescriptorRemapper
from mapping2tiny.errors import DuplicateNamespaceError, ImmutableTreeError, MalformedStreamError

NamespaceRef = Union[int, str]


class ConflictPolicy(str, Enum):
    STRICT = "strict"  # re-declaring a key with different values is an error
    MERGE = "merge"  # fill empty slots, differing non-empty slots are an error
    OVERWRITE = "overwrite"  # later non-empty values win


class _Element:
    """Common part of all mapped elements: one name slot per namespace.

    A slot holds a non-empty string or None (unmapped); empty strings are
    normalised to None on assignment. `names` and `comment` are read-only;
    set_name and set_comment are the only mutators.
    """

    __slots__ = ("_tree", "_names", "_comment")

    def __init__(self, tree: "MappingTree", src_name: Optional[str]):
        self._tree = tree
        self._names: List[Optional[str]] = [src_name or None] + [None] * (len(tree.namespaces) - 1)
        self._comment: Optional[str] = None

    @property
    def tree(self) -> "MappingTree":
        return self._tree

    @property
    def names(self) -> Tuple[Optional[str], ...]:
        return tuple(self._names)

    @property
    def comment(self) -> Optional[str]:
        return self._comment

    @property
    def src_name(self) -> Optional[str]:
        return self._names[0]

    def get_name(self, namespace: NamespaceRef) -> Optional[str]:
        idx = self._tree.namespace_index(namespace)
        return self._names[idx] if idx >= 0 else None

    def set_name(self, namespace: NamespaceRef, name: Optional[str]) -> None:
        self._tree._check_mutable()
        idx = self._tree.namespace_index(namespace)
        if idx < 0:
            raise KeyError(f"unknown namespace {namespace!r}")
        self._names[idx] = name or None

    def set_comment(self, text: Optional[str]) -> None:
        self._tree._check_mutable()
        self._comment = text or None

    def _base_dict(self) -> Dict[str, Any]:
        return {"names": list(self._names), "comment": self._comment}


class ParameterMapping(_Element):
    __slots__ = ("owner", "index", "lv_index")

    def __init__(self, owner: "MethodMapping", index: int, lv_index: int, src_name: Optional[str]):
        super().__init__(owner.tree, src_name)
        self.owner = owner
        self.index = index
        self.lv_index = lv_index

    @staticmethod
    def make_key(index: int, lv_index: int) -> Tuple[str, int]:
        return ("lv", lv_index) if lv_index >= 0 else ("arg", index)

    @property
    def key(self):
        return self.owner.key + (self.make_key(self.index, self.lv_index),)

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "lv_index": self.lv_index, **self._base_dict()}


class LocalVariableMapping(_Element):
    __slots__ = ("owner", "lv_index", "start_offset", "lvt_row_index")

    def __init__(self, owner: "MethodMapping", lv_index: int, start_offset: int, lvt_row_index: int,
                 src_name: Optional[str]):
        super().__init__(owner.tree, src_name)
        self.owner = owner
        self.lv_index = lv_index
        self.start_offset = start_offset
        self.lvt_row_index = lvt_row_index

    @property
    def key(self):
        return self.owner.key + ((self.lv_index, self.start_offset, self.lvt_row_index),)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lv_index": self.lv_index,
            "start_offset": self.start_offset,
            "lvt_row_index": self.lvt_row_index,
            **self._base_dict(),
        }


class _Member(_Element):
    __slots__ = ("owner", "src_desc")

    def __init__(self, owner: "ClassMapping", src_name: str, src_desc: Optional[str]):
        super().__init__(owner.tree, src_name)
        self.owner = owner
        self.src_desc = src_desc or None

    @property
    def key(self) -> Tuple[str, str, Optional[str]]:
        return (self.owner.src_name, self.src_name, self.src_desc)

    def get_desc(self, namespace: NamespaceRef) -> Optional[str]:
        """Descriptor expressed in `namespace`, derived from the source descriptor."""
        idx = self._tree.namespace_index(namespace)
        if idx < 0:
            return None
        return self._tree.remapper(0, idx).remap(self.src_desc)


class FieldMapping(_Member):
    __slots__ = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"desc": self.src_desc, **self._base_dict()}


class MethodMapping(_Member):
    __slots__ = ("_params", "_locals")

    def __init__(self, owner: "ClassMapping", src_name: str, src_desc: str):
        super().__init__(owner, src_name, src_desc)
        self._params: Dict[Tuple[str, int], ParameterMapping] = {}
        self._locals: Dict[Tuple[int, int, int], LocalVariableMapping] = {}

    @property
    def parameters(self) -> List[ParameterMapping]:
        return list(self._params.values())

    @property
    def local_variables(self) -> List[LocalVariableMapping]:
        return list(self._locals.values())

    def get_parameter(self, index: int = -1, lv_index: int = -1) -> Optional[ParameterMapping]:
        return self._params.get(ParameterMapping.make_key(index, lv_index))

    def add_parameter(self, index: int = -1, lv_index: int = -1,
                      src_name: Optional[str] = None) -> ParameterMapping:
        self._tree._check_mutable()
        key = ParameterMapping.make_key(index, lv_index)
        param = self._params.get(key)
        if param is None:
            param = self._params[key] = ParameterMapping(self, index, lv_index, src_name)
        elif param.index < 0 <= index:
            param.index = index
        return param

    def get_local_variable(self, lv_index: int, start_offset: int = -1,
                           lvt_row_index: int = -1) -> Optional[LocalVariableMapping]:
        return self._locals.get((lv_index, start_offset, lvt_row_index))

    def add_local_variable(self, lv_index: int, start_offset: int = -1, lvt_row_index: int = -1,
                           src_name: Optional[str] = None) -> LocalVariableMapping:
        self._tree._check_mutable()
        key = (lv_index, start_offset, lvt_row_index)
        var = self._locals.get(key)
        if var is None:
            var = self._locals[key] = LocalVariableMapping(self, lv_index, start_offset, lvt_row_index, src_name)
        return var
    def to_dict(self) -> Dict[str, Any]:
        return {
            "desc": self.src_desc,
            **self._base_dict(),
            "parameters": [p.to_dict() for p in self._params.values()],
            "locals": [v.to_dict() for v in self._locals.values()],
        }


class ClassMapping(_Element):
    __slots__ = ("_fields", "_methods")

    def __init__(self, tree: "MappingTree", src_name: str):
        super().__init__(tree, src_name)
        self._fields: Dict[Tuple[str, Optional[str]], FieldMapping] = {}
        self._methods: Dict[Tuple[str, str], MethodMapping] = {}

    @property
    def key(self) -> str:
        return self.src_name

    @property
    def fields(self) -> List[FieldMapping]:
        return list(self._fields.values())

    @property
    def methods(self) -> List[MethodMapping]:
        return list(self._methods.values())

    def get_field(self, name: str, desc: Optional[str] = None) -> Optional[FieldMapping]:
        found = self._fields.get((name, desc or None))
        if found is None and desc is None:
            found = next((f for f in self._fields.values() if f.src_name == name), None)
        return found

    def add_field(self, name: str, desc: Optional[str]) -> FieldMapping:
        self._tree._check_mutable()
        key = (name, desc or None)
        field = self._fields.get(key)
        if field is None:
            field = self._fields[key] = FieldMapping(self, name, desc)
        return field

    def get_method(self, name: str, desc: Optional[str] = None) -> Optional[MethodMapping]:
        if desc is not None:
            return self._methods.get((name, desc))
        return next((m for m in self._methods.values() if m.src_name == name), None)

    def add_method(self, name: str, desc: str) -> MethodMapping:
        self._tree._check_mutable()
        key = (name, desc)
        method = self._methods.get(key)
        if method is None:
            method = self._methods[key] = MethodMapping(self, name, desc)
        return method

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self._base_dict(),
            "fields": [f.to_dict() for f in self._fields.values()],
            "methods": [m.to_dict() for m in self._methods.values()],
        }


class MappingTree:
    """Multi-namespace mapping model.

    Classes are keyed by their name in the source namespace (index 0) and
    kept in insertion order. Once `finalize()` has been called every mutating
    call raises ImmutableTreeError and the tree may be shared between threads.
    """

    def __init__(self, namespaces: Sequence[str]):
        names = list(namespaces)
        if not names:
            raise MalformedStreamError("at least one namespace is required")
        seen = set()
        for n in names:
            if n in seen:
                raise DuplicateNamespaceError(f"duplicate namespace {n!r}", namespace=n)
            seen.add(n)
        self.namespaces: Tuple[str, ...] = tuple(names)
        self._metadata: Dict[str, Optional[str]] = {}
        self._classes: Dict[str, ClassMapping] = {}
        self._frozen = False
        self._lock = threading.Lock()
        self._class_index: Dict[int, Dict[str, ClassMapping]] = {}
        self._remappers: Dict[Tuple[int, int], DescriptorRemapper] = {}

    @property
    def src_namespace(self) -> str:
        return self.namespaces[0]

    @property
    def dst_namespaces(self) -> Tuple[str, ...]:
        return self.namespaces[1:]

    @property
    def frozen(self) -> bool:
        return self._frozen

    def namespace_index(self, namespace: NamespaceRef) -> int:
        """Index of `namespace` (name or index); -1 for unknown names."""
        if isinstance(namespace, int):
            if not 0 <= namespace < len(self.namespaces):
                raise IndexError(f"namespace index {namespace} out of range")
            return namespace
        try:
            return self.namespaces.index(namespace)
        except ValueError:
            return -1

    def _check_mutable(self) -> None:
        if self._frozen:
            raise ImmutableTreeError("mapping tree is finalized and can no longer be modified")

    def finalize(self) -> "MappingTree":
        self._frozen = True
        return self

    def set_metadata(self, key: str, value: Optional[str]) -> None:
        self._check_mutable()
        self._metadata[key] = value

    @property
    def metadata(self) -> Mapping[str, Optional[str]]:
        return MappingProxyType(self._metadata)

    @property
    def classes(self) -> List[ClassMapping]:
        return list(self._classes.values())

    def __len__(self) -> int:
        return len(self._classes)

    def add_class(self, name: str) -> ClassMapping:
        self._check_mutable()
        cls = self._classes.get(name)
        if cls is None:
            cls = self._classes[name] = ClassMapping(self, name)
        return cls

    def get_class(self, name: str, namespace: NamespaceRef = 0) -> Optional[ClassMapping]:
        idx = self.namespace_index(namespace)
        if idx == 0:
            return self._classes.get(name)
        if idx < 0:
            return None
        if not self._frozen:
            return next((c for c in self._classes.values() if c._names[idx] == name), None)
        with self._lock:
            index = self._class_index.get(idx)
            if index is None:
                index = {}
                for c in self._classes.values():
                    n = c._names[idx]
                    if n is not None:
                        index.setdefault(n, c)
                self._class_index[idx] = index
        return index.get(name)

    def class_name_table(self, src: NamespaceRef, dst: NamespaceRef) -> Dict[str, str]:
        """Class names in `src` mapped to their names in `dst` (unmapped classes omitted)."""
        si, di = self.namespace_index(src), self.namespace_index(dst)
        table: Dict[str, str] = {}
        if si < 0 or di < 0:
            return table
        for c in self._classes.values():
            a, b = c._names[si], c._names[di]
            if a is not None and b is not None:
                table.setdefault(a, b)
        return table

    def remapper(self, src: NamespaceRef = 0, dst: NamespaceRef = 0, strict: bool = False) -> DescriptorRemapper:
        """Descriptor remapper between two namespaces; cached once the tree is frozen."""
        si, di = self.namespace_index(src), self.namespace_index(dst)
        if not self._frozen or strict:
            return DescriptorRemapper(self.class_name_table(si, di), strict=strict)
        with self._lock:
            remapper = self._remappers.get((si, di))
            if remapper is None:
                remapper = self._remappers[(si, di)] = DescriptorRemapper(self.class_name_table(si, di))
        return remapper

    def accept(self, visitor, sort: bool = False) -> None:
        """Replay the tree as visitor events (insertion order unless `sort`)."""
        visitor.visit_namespaces(list(self.namespaces))
        for key, value in self._metadata.items():
            visitor.visit_metadata(key, value)
        for cls in _ordered(self._classes.values(), sort, lambda c: c.src_name):
            if visitor.visit_class(cls.src_name):
                _visit_names(cls, visitor)
                for field in _ordered(cls.fields, sort, lambda f: (f.src_name, f.src_desc or "")):
                    if visitor.visit_field(field.src_name, field.src_desc):
                        _visit_names(field, visitor)
                    visitor.visit_end()
                for method in _ordered(cls.methods, sort, lambda m: (m.src_name, m.src_desc)):
                    if visitor.visit_method(method.src_name, method.src_desc):
                        _visit_names(method, visitor)
                        for param in _ordered(method.parameters, sort, lambda p: (p.lv_index, p.index)):
                            if visitor.visit_parameter(param.index, param.src_name, param.lv_index):
                                _visit_names(param, visitor)
                            visitor.visit_end()
                        for var in _ordered(method.local_variables, sort,
                                            lambda v: (v.lv_index, v.start_offset, v.lvt_row_index)):
                            if visitor.visit_local_variable(var.lv_index, var.start_offset,
                                                            var.lvt_row_index, var.src_name):
                                _visit_names(var, visitor)
                            visitor.visit_end()
                    visitor.visit_end()
            visitor.visit_end()
        visitor.visit_end()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "namespaces": list(self.namespaces),
            "metadata": dict(self._metadata),
            "classes": [c.to_dict() for c in self._classes.values()],
        }


def _ordered(items: Iterable, sort: bool, key) -> Iterable:
    return sorted(items, key=key) if sort else items


def _visit_names(element: _Element, visitor) -> None:
    names = element.names
    for i in range(1, len(names)):
        name = names[i]
        if name is not None:
            visitor.visit_dst_name(i, name)
    if element.comment is not None:
        visitor.visit_comment(element.comment)
