from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Sequence

from mapping2tiny.errors import IncompatibleNamespacesError, MergeConflictError
from mapping2tiny.logger import get_logger
from mapping2tiny.tree.builder import build_tree
from mapping2tiny.tree.model import ConflictPolicy, MappingTree
from mapping2tiny.visitor.contract import MappingVisitor

log = get_logger("namespaces")


def _merge_element(target, source, index_map: List[int], namespaces) -> None:
    for i, name in enumerate(source.names):
        if name is None:
            continue
        j = index_map[i]
        current = target.names[j]
        if current is None:
            target.set_name(j, name)
        elif current != name:
            raise MergeConflictError(
                f"{target.key!r} is named {current!r} and {name!r} in namespace {namespaces[j]!r}",
                key=target.key, namespace=namespaces[j])
    if source.comment is not None:
        if target.comment is None:
            target.set_comment(source.comment)
        elif target.comment != source.comment:
            raise MergeConflictError(f"{target.key!r} has conflicting comments",
                                     key=target.key, namespace="comment")


def merge_trees(trees: Sequence[MappingTree]) -> MappingTree:
    """Union of several trees keyed by source name/descriptor.

    All trees must share their source namespace. Namespaces keep the first
    tree's order with new ones appended. Two different non-empty names for
    the same element and namespace raise MergeConflictError.
    """
    if not trees:
        raise ValueError("nothing to merge")
    src = trees[0].src_namespace
    namespaces: List[str] = []
    for t in trees:
        if t.src_namespace != src:
            raise IncompatibleNamespacesError(
                f"cannot merge trees with source namespaces {src!r} and {t.src_namespace!r}",
                namespace=t.src_namespace)
        for ns in t.namespaces:
            if ns not in namespaces:
                namespaces.append(ns)

    out = MappingTree(namespaces)
    for t in trees:
        index_map = [namespaces.index(ns) for ns in t.namespaces]
        for key, value in t.metadata.items():
            current = out.metadata.get(key)
            if key in out.metadata and current != value:
                raise MergeConflictError(f"metadata {key!r} differs: {current!r} != {value!r}",
                                         key=key, namespace="metadata")
            out.set_metadata(key, value)
        for cls in t.classes:
            target_cls = out.add_class(cls.src_name)
            _merge_element(target_cls, cls, index_map, namespaces)
            for f in cls.fields:
                _merge_element(target_cls.add_field(f.src_name, f.src_desc), f, index_map, namespaces)
            for m in cls.methods:
                target_method = target_cls.add_method(m.src_name, m.src_desc)
                _merge_element(target_method, m, index_map, namespaces)
                for p in m.parameters:
                    _merge_element(target_method.add_parameter(p.index, p.lv_index), p, index_map, namespaces)
                for v in m.local_variables:
                    _merge_element(target_method.add_local_variable(v.lv_index, v.start_offset, v.lvt_row_index),
                                   v, index_map, namespaces)
    log.debug(f"merged {len(trees)} trees into {len(out)} classes, namespaces {namespaces}")
    return out.finalize()


def read_trees_parallel(sources: Sequence[Callable[[MappingVisitor], None]],
                        policy: ConflictPolicy = ConflictPolicy.STRICT,
                        workers: int = 1) -> List[MappingTree]:
    """Build one private tree per source, reading sources on worker threads."""
    if workers <= 1 or len(sources) <= 1:
        return [build_tree(s, policy) for s in sources]
    with ThreadPoolExecutor(max_workers=min(workers, len(sources))) as executor:
        return list(executor.map(lambda s: build_tree(s, policy), sources))
