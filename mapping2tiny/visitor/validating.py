from __future__ import annotations
from typing import List, Optional

from mapping2tiny.errors import DuplicateNamespaceError, MalformedStreamError
from .contract import ForwardingVisitor

CLASS, FIELD, METHOD, PARAMETER, LOCAL = "class", "field", "method", "parameter", "local variable"


class ValidatingVisitor(ForwardingVisitor):
    """Checks the event protocol and forwards well-formed events.

    Any ordering violation raises MalformedStreamError. Events inside an
    element the downstream visitor asked to skip are dropped here, so the
    downstream never observes them even if the producer ignores the request.
    """

    def __init__(self, next_visitor):
        super().__init__(next_visitor)
        self.namespaces: Optional[List[str]] = None
        self._stack: List[str] = []
        self._skip_depth = 0  # stack depth of the skipped element, 0 when not skipping
        self.ended = False

    def _fail(self, message: str):
        raise MalformedStreamError(message)

    def _check_open(self, event: str):
        if self.ended:
            self._fail(f"{event} after end of stream")
        if self.namespaces is None:
            self._fail(f"{event} before namespaces were declared")

    def _enter(self, kind: str, forward) -> bool:
        self._stack.append(kind)
        if self._skip_depth:
            return False
        if forward():
            return True
        self._skip_depth = len(self._stack)
        return False

    def visit_namespaces(self, names):
        if self.ended:
            self._fail("namespaces declared after end of stream")
        if self.namespaces is not None:
            self._fail("namespaces declared twice")
        names = list(names)
        if not names:
            self._fail("at least one namespace is required")
        seen = set()
        for n in names:
            if n in seen:
                raise DuplicateNamespaceError(f"duplicate namespace {n!r}", namespace=n)
            seen.add(n)
        self.namespaces = names
        self.next.visit_namespaces(names)

    def visit_metadata(self, key, value):
        self._check_open("metadata")
        if self._stack:
            self._fail(f"metadata {key!r} inside a {self._stack[-1]}")
        self.next.visit_metadata(key, value)

    def visit_class(self, src_name):
        self._check_open("class")
        if self._stack:
            self._fail(f"class {src_name} opened inside a {self._stack[-1]}")
        if not src_name:
            self._fail("class without a source name")
        return self._enter(CLASS, lambda: self.next.visit_class(src_name))

    def visit_field(self, src_name, src_desc):
        self._check_open("field")
        if not self._stack or self._stack[-1] != CLASS:
            self._fail(f"field {src_name} outside of a class")
        return self._enter(FIELD, lambda: self.next.visit_field(src_name, src_desc))

    def visit_method(self, src_name, src_desc):
        self._check_open("method")
        if not self._stack or self._stack[-1] != CLASS:
            self._fail(f"method {src_name}{src_desc or ''} outside of a class")
        if not src_desc:
            self._fail(f"method {src_name} without a descriptor")
        return self._enter(METHOD, lambda: self.next.visit_method(src_name, src_desc))

    def visit_parameter(self, index, src_name=None, lv_index=-1):
        self._check_open("parameter")
        if not self._stack or self._stack[-1] != METHOD:
            self._fail(f"parameter {index}/{lv_index} outside of a method")
        if index < 0 and lv_index < 0:
            self._fail("parameter without an index")
        return self._enter(PARAMETER, lambda: self.next.visit_parameter(index, src_name, lv_index))

    def visit_local_variable(self, lv_index, start_offset=-1, lvt_row_index=-1, src_name=None):
        self._check_open("local variable")
        if not self._stack or self._stack[-1] != METHOD:
            self._fail(f"local variable {lv_index} outside of a method")
        return self._enter(LOCAL, lambda: self.next.visit_local_variable(
            lv_index, start_offset, lvt_row_index, src_name))

    def visit_dst_name(self, namespace, name):
        self._check_open("name")
        if not self._stack:
            self._fail(f"name {name!r} outside of an element")
        if not isinstance(namespace, int) or not 0 < namespace < len(self.namespaces):
            self._fail(f"namespace index {namespace!r} out of range for {self.namespaces}")
        if not self._skip_depth:
            self.next.visit_dst_name(namespace, name)

    def visit_comment(self, text):
        self._check_open("comment")
        if not self._stack:
            self._fail("comment outside of an element")
        if not self._skip_depth:
            self.next.visit_comment(text)

    def visit_end(self):
        self._check_open("end")
        if not self._stack:
            self.ended = True
            self.next.visit_end()
            return
        depth = len(self._stack)
        self._stack.pop()
        if not self._skip_depth or depth == self._skip_depth:
            self._skip_depth = 0
            self.next.visit_end()
