"""Mapping visitor contract.

- contract.py: MappingVisitor (event protocol) and ForwardingVisitor
- validating.py: protocol checks (stack discipline, namespace indices)
- filters.py: class filtering, cooperative cancellation, repeated-key guard
"""

from .contract import MappingVisitor, ForwardingVisitor
from .validating import ValidatingVisitor
from .filters import ClassFilterVisitor, CancellationVisitor, UniqueKeyVisitor
