from __future__ import annotations
from typing import Any, Callable, List, Optional, Tuple

from mapping2tiny.errors import (
    ConflictingDefinitionError,
    IncompatibleNamespacesError,
    MalformedStreamError,
)
from mapping2tiny.logger import get_logger
from mapping2tiny.visitor.contract import MappingVisitor
from mapping2tiny.visitor.validating import ValidatingVisitor
from .model import ClassMapping, ConflictPolicy, MappingTree, MethodMapping

log = get_logger("tree")


class TreeBuilder(MappingVisitor):
    """Accumulates visitor events into a MappingTree.

    Elements are inserted or fetched by source key. When a key that already
    exists is declared again its values are reconciled according to
    `policy`: STRICT rejects any difference, MERGE only fills empty slots and
    OVERWRITE lets later non-empty values win.
    """

    def __init__(self, policy: ConflictPolicy = ConflictPolicy.STRICT, tree: Optional[MappingTree] = None):
        self.policy = ConflictPolicy(policy)
        self.tree = tree
        # (element, created during this declaration)
        self._stack: List[Tuple[Any, bool]] = []
        self.ended = False

    def _require_tree(self, event: str) -> MappingTree:
        if self.tree is None:
            raise MalformedStreamError(f"{event} before namespaces were declared")
        return self.tree

    def _top(self, kind, event: str):
        if not self._stack or not isinstance(self._stack[-1][0], kind):
            raise MalformedStreamError(f"{event} outside of a {kind.__name__}")
        return self._stack[-1][0]

    def _reconcile(self, element, what: str, current: Optional[str], new: Optional[str],
                   created: bool, assign: Callable[[Optional[str]], None]) -> None:
        new = new or None
        if created or current == new:
            assign(new)
            return
        if new is None:
            return
        if self.policy is ConflictPolicy.OVERWRITE or (self.policy is ConflictPolicy.MERGE and current is None):
            assign(new)
            return
        raise ConflictingDefinitionError(
            f"conflicting {what} for {element.key!r}: {current!r} != {new!r}",
            key=element.key, namespace=what,
        )

    def visit_namespaces(self, names):
        if self.tree is None:
            self.tree = MappingTree(names)
        elif list(names) != list(self.tree.namespaces):
            raise IncompatibleNamespacesError(
                f"stream namespaces {list(names)} do not match tree namespaces {list(self.tree.namespaces)}")

    def visit_metadata(self, key, value):
        tree = self._require_tree("metadata")
        current = tree.metadata.get(key)
        if key not in tree.metadata or current == value or self.policy is ConflictPolicy.OVERWRITE \
                or (self.policy is ConflictPolicy.MERGE and current is None):
            tree.set_metadata(key, value)
        elif value is not None:
            raise ConflictingDefinitionError(
                f"conflicting metadata {key!r}: {current!r} != {value!r}", key=key)

    def visit_class(self, src_name):
        tree = self._require_tree("class")
        if self._stack:
            raise MalformedStreamError(f"class {src_name} opened inside another element")
        cls = tree.get_class(src_name)
        created = cls is None
        if created:
            cls = tree.add_class(src_name)
        self._stack.append((cls, created))
        return True

    def visit_field(self, src_name, src_desc):
        cls: ClassMapping = self._top(ClassMapping, f"field {src_name}")
        existing = cls.get_field(src_name, src_desc)
        created = existing is None or existing.src_desc != (src_desc or None)
        self._stack.append((cls.add_field(src_name, src_desc), created))
        return True

    def visit_method(self, src_name, src_desc):
        cls: ClassMapping = self._top(ClassMapping, f"method {src_name}")
        created = cls.get_method(src_name, src_desc) is None
        self._stack.append((cls.add_method(src_name, src_desc), created))
        return True

    def visit_parameter(self, index, src_name=None, lv_index=-1):
        method: MethodMapping = self._top(MethodMapping, f"parameter {index}")
        created = method.get_parameter(index, lv_index) is None
        param = method.add_parameter(index, lv_index, src_name)
        if not created:
            self._reconcile(param, method.tree.src_namespace, param.names[0], src_name, False,
                            lambda v: param.set_name(0, v))
        self._stack.append((param, created))
        return True

    def visit_local_variable(self, lv_index, start_offset=-1, lvt_row_index=-1, src_name=None):
        method: MethodMapping = self._top(MethodMapping, f"local variable {lv_index}")
        created = method.get_local_variable(lv_index, start_offset, lvt_row_index) is None
        var = method.add_local_variable(lv_index, start_offset, lvt_row_index, src_name)
        if not created:
            self._reconcile(var, method.tree.src_namespace, var.names[0], src_name, False,
                            lambda v: var.set_name(0, v))
        self._stack.append((var, created))
        return True

    def visit_dst_name(self, namespace, name):
        if not self._stack:
            raise MalformedStreamError(f"name {name!r} outside of an element")
        element, created = self._stack[-1]
        if not isinstance(namespace, int) or not 0 < namespace < len(self.tree.namespaces):
            raise MalformedStreamError(f"namespace index {namespace!r} out of range")
        self._reconcile(element, self.tree.namespaces[namespace], element.names[namespace], name, created,
                        lambda v: element.set_name(namespace, v))

    def visit_comment(self, text):
        if not self._stack:
            raise MalformedStreamError("comment outside of an element")
        element, created = self._stack[-1]
        self._reconcile(element, "comment", element.comment, text, created, element.set_comment)

    def visit_end(self):
        if self._stack:
            self._stack.pop()
            return
        self._require_tree("end of stream")
        self.ended = True

    def finish(self) -> MappingTree:
        """Finalize and return the built tree."""
        tree = self._require_tree("finish")
        if self._stack:
            raise MalformedStreamError(f"stream ended with {len(self._stack)} open element(s)")
        log.debug(f"built tree with {len(tree)} classes, namespaces {list(tree.namespaces)}")
        return tree.finalize()


def build_tree(source: Callable[[MappingVisitor], None],
               policy: ConflictPolicy = ConflictPolicy.STRICT) -> MappingTree:
    """Run `source` (a callable driving a visitor) into a new finalized tree."""
    builder = TreeBuilder(policy)
    source(ValidatingVisitor(builder))
    return builder.finish()
