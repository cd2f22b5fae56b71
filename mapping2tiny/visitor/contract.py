from __future__ import annotations
from typing import Optional, Sequence


class MappingVisitor:
    """Receiver of an ordered stream of mapping events.

    Producers (format readers, `MappingTree.accept`) call, in order:

    - `visit_namespaces` exactly once, then any number of `visit_metadata`
    - per class: `visit_class`, its names/comment, its fields and methods
      (each closed by `visit_end`), then `visit_end` for the class
    - per method: `visit_parameter` / `visit_local_variable` scopes
    - a final `visit_end` at depth zero to close the stream

    Element methods return False to ask the producer to skip the element's
    names, comment and children; the matching `visit_end` is still sent.
    `visit_dst_name` takes an index into the declared namespaces, 1 or more;
    the source name (index 0) travels with the element call itself.
    """

    def visit_namespaces(self, names: Sequence[str]) -> None:
        pass

    def visit_metadata(self, key: str, value: Optional[str]) -> None:
        pass

    def visit_class(self, src_name: str) -> bool:
        return True

    def visit_field(self, src_name: str, src_desc: Optional[str]) -> bool:
        return True

    def visit_method(self, src_name: str, src_desc: str) -> bool:
        return True

    def visit_parameter(self, index: int, src_name: Optional[str] = None, lv_index: int = -1) -> bool:
        return True

    def visit_local_variable(self, lv_index: int, start_offset: int = -1, lvt_row_index: int = -1,
                             src_name: Optional[str] = None) -> bool:
        return True

    def visit_dst_name(self, namespace: int, name: Optional[str]) -> None:
        pass

    def visit_comment(self, text: str) -> None:
        pass

    def visit_end(self) -> None:
        pass


class ForwardingVisitor(MappingVisitor):
    def __init__(self, next_visitor: MappingVisitor):
        self.next = next_visitor

    def visit_namespaces(self, names):
        self.next.visit_namespaces(names)

    def visit_metadata(self, key, value):
        self.next.visit_metadata(key, value)

    def visit_class(self, src_name):
        return self.next.visit_class(src_name)

    def visit_field(self, src_name, src_desc):
        return self.next.visit_field(src_name, src_desc)

    def visit_method(self, src_name, src_desc):
        return self.next.visit_method(src_name, src_desc)

    def visit_parameter(self, index, src_name=None, lv_index=-1):
        return self.next.visit_parameter(index, src_name, lv_index)

    def visit_local_variable(self, lv_index, start_offset=-1, lvt_row_index=-1, src_name=None):
        return self.next.visit_local_variable(lv_index, start_offset, lvt_row_index, src_name)

    def visit_dst_name(self, namespace, name):
        self.next.visit_dst_name(namespace, name)

    def visit_comment(self, text):
        self.next.visit_comment(text)

    def visit_end(self):
        self.next.visit_end()
