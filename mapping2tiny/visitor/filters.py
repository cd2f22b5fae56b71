from __future__ import annotations
import threading
from typing import Callable, List, Set, Tuple

from mapping2tiny.errors import ConversionCancelled, RepeatedKeyError
from .contract import ForwardingVisitor


class ClassFilterVisitor(ForwardingVisitor):
    """Drops every class whose source name fails `predicate`."""

    def __init__(self, next_visitor, predicate: Callable[[str], bool]):
        super().__init__(next_visitor)
        self.predicate = predicate
        self._depth = 0  # > 0 while inside a dropped class

    def _swallow(self) -> bool:
        if self._depth:
            self._depth += 1
            return False
        return True

    def visit_class(self, src_name):
        if not self.predicate(src_name):
            self._depth = 1
            return False
        return self.next.visit_class(src_name)

    def visit_field(self, src_name, src_desc):
        return self._swallow() and self.next.visit_field(src_name, src_desc)

    def visit_method(self, src_name, src_desc):
        return self._swallow() and self.next.visit_method(src_name, src_desc)

    def visit_parameter(self, index, src_name=None, lv_index=-1):
        return self._swallow() and self.next.visit_parameter(index, src_name, lv_index)

    def visit_local_variable(self, lv_index, start_offset=-1, lvt_row_index=-1, src_name=None):
        return self._swallow() and self.next.visit_local_variable(lv_index, start_offset, lvt_row_index, src_name)

    def visit_dst_name(self, namespace, name):
        if not self._depth:
            self.next.visit_dst_name(namespace, name)

    def visit_comment(self, text):
        if not self._depth:
            self.next.visit_comment(text)

    def visit_end(self):
        if self._depth:
            self._depth -= 1
            return
        self.next.visit_end()


class CancellationVisitor(ForwardingVisitor):
    """Raises ConversionCancelled at the next class boundary once `event` is set."""

    def __init__(self, next_visitor, event: threading.Event):
        super().__init__(next_visitor)
        self.event = event

    def visit_class(self, src_name):
        if self.event.is_set():
            raise ConversionCancelled(f"conversion cancelled before class {src_name}", key=src_name)
        return self.next.visit_class(src_name)


class UniqueKeyVisitor(ForwardingVisitor):
    """Raises RepeatedKeyError when a class, member, parameter or local key repeats.

    Guards direct reader -> writer streams, which cannot reconcile repeated
    declarations the way a TreeBuilder does.
    """

    def __init__(self, next_visitor):
        super().__init__(next_visitor)
        self._seen: Set[Tuple] = set()
        self._scope: List[Tuple] = []

    def _enter(self, key: Tuple) -> None:
        key = (self._scope[-1] if self._scope else ()) + key
        if key in self._seen:
            raise RepeatedKeyError(f"{key!r} is declared more than once", key=key)
        self._seen.add(key)
        self._scope.append(key)

    def visit_class(self, src_name):
        self._enter(("class", src_name))
        return self.next.visit_class(src_name)

    def visit_field(self, src_name, src_desc):
        self._enter(("field", src_name, src_desc or None))
        return self.next.visit_field(src_name, src_desc)

    def visit_method(self, src_name, src_desc):
        self._enter(("method", src_name, src_desc))
        return self.next.visit_method(src_name, src_desc)

    def visit_parameter(self, index, src_name=None, lv_index=-1):
        self._enter(("lv", lv_index) if lv_index >= 0 else ("arg", index))
        return self.next.visit_parameter(index, src_name, lv_index)

    def visit_local_variable(self, lv_index, start_offset=-1, lvt_row_index=-1, src_name=None):
        self._enter(("var", lv_index, start_offset, lvt_row_index))
        return self.next.visit_local_variable(lv_index, start_offset, lvt_row_index, src_name)

    def visit_end(self):
        if self._scope:
            self._scope.pop()
        self.next.visit_end()
