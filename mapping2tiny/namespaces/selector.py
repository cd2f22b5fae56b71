from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence, Tuple

from mapping2tiny.descriptor.remapper import DescriptorRemapper
from mapping2tiny.errors import ConflictingDefinitionError, DuplicateNamespaceError
from mapping2tiny.logger import get_logger
from mapping2tiny.tree.model import ClassMapping, MappingTree

log = get_logger("namespaces")

Names = Tuple[Optional[str], ...]


class NamespaceSelector:
    """Projects a finalized tree onto an output namespace list.

    - namespaces missing from the input tree give empty slots
    - an empty slot in the primary namespace (default: the first requested
      one) is filled from the first non-empty namespace along `fallback`,
      then from the input's source name
    - the first output namespace becomes the new source namespace, so it gets
      the same source-name fallback; member descriptors are rewritten with
      the projected class names so they agree with the class rows
    """

    def __init__(self, namespaces: Sequence[str], fallback: Sequence[str] = (),
                 primary: Optional[str] = None, workers: int = 1, strict_remap: bool = False):
        namespaces = list(namespaces)
        if not namespaces:
            raise ValueError("at least one output namespace is required")
        if len(set(namespaces)) != len(namespaces):
            dup = next(n for n in namespaces if namespaces.count(n) > 1)
            raise DuplicateNamespaceError(f"duplicate output namespace {dup!r}", namespace=dup)
        if primary is not None and primary not in namespaces:
            raise ValueError(f"primary namespace {primary!r} is not an output namespace")
        self.namespaces = namespaces
        self.fallback = list(fallback)
        self.primary = primary or namespaces[0]
        self.workers = max(1, workers)
        self.strict_remap = strict_remap

    def fallback_name(self, element) -> Optional[str]:
        for ns in self.fallback:
            name = element.get_name(ns)
            if name:
                return name
        return element.src_name

    def select_names(self, element) -> Names:
        names: List[Optional[str]] = []
        for i, ns in enumerate(self.namespaces):
            name = element.get_name(ns)
            if name is None and (ns == self.primary or i == 0):
                name = self.fallback_name(element)
            names.append(name)
        return tuple(names)

    def _project_class(self, cls: ClassMapping, remapper: DescriptorRemapper) -> Dict[str, Any]:
        return {
            "names": self.select_names(cls),
            "comment": cls.comment,
            "fields": [
                (self.select_names(f), remapper.remap(f.src_desc), f.comment) for f in cls.fields
            ],
            "methods": [
                (
                    self.select_names(m), remapper.remap(m.src_desc), m.comment,
                    [(p.index, p.lv_index, self.select_names(p), p.comment) for p in m.parameters],
                    [(v.lv_index, v.start_offset, v.lvt_row_index, self.select_names(v), v.comment)
                     for v in m.local_variables],
                )
                for m in cls.methods
            ],
        }

    def project(self, tree: MappingTree) -> MappingTree:
        out = MappingTree(self.namespaces)
        for key, value in tree.metadata.items():
            out.set_metadata(key, value)

        classes = tree.classes
        class_names = [self.select_names(c) for c in classes]
        table = {c.src_name: names[0] for c, names in zip(classes, class_names)}
        remapper = DescriptorRemapper(table, strict=self.strict_remap)

        if self.workers > 1 and len(classes) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                chunks = list(executor.map(lambda c: self._project_class(c, remapper), classes))
        else:
            chunks = [self._project_class(c, remapper) for c in classes]

        for chunk in chunks:
            _insert_class(out, chunk)
        log.debug(f"projected {len(classes)} classes onto {self.namespaces}")
        return out.finalize()


def _apply(element, names: Names, comment: Optional[str]) -> None:
    for i in range(1, len(names)):
        if names[i] is not None:
            element.set_name(i, names[i])
    if comment is not None:
        element.set_comment(comment)


def _insert_class(out: MappingTree, chunk: Dict[str, Any]) -> None:
    names = chunk["names"]
    if out.get_class(names[0]) is not None:
        raise ConflictingDefinitionError(
            f"two classes project onto {names[0]!r} in namespace {out.src_namespace!r}",
            key=names[0], namespace=out.src_namespace)
    cls = out.add_class(names[0])
    _apply(cls, names, chunk["comment"])
    for f_names, desc, comment in chunk["fields"]:
        existing = cls.get_field(f_names[0], desc)
        if existing is not None and existing.src_desc == (desc or None):
            raise ConflictingDefinitionError(
                f"two fields project onto {names[0]}.{f_names[0]}:{desc}",
                key=(names[0], f_names[0], desc), namespace=out.src_namespace)
        _apply(cls.add_field(f_names[0], desc), f_names, comment)
    for m_names, desc, comment, params, local_vars in chunk["methods"]:
        if cls.get_method(m_names[0], desc) is not None:
            raise ConflictingDefinitionError(
                f"two methods project onto {names[0]}.{m_names[0]}{desc}",
                key=(names[0], m_names[0], desc), namespace=out.src_namespace)
        method = cls.add_method(m_names[0], desc)
        _apply(method, m_names, comment)
        for index, lv_index, p_names, p_comment in params:
            _apply(method.add_parameter(index, lv_index, p_names[0]), p_names, p_comment)
        for lv_index, start, row, v_names, v_comment in local_vars:
            _apply(method.add_local_variable(lv_index, start, row, v_names[0]), v_names, v_comment)
