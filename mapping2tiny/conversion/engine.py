from __future__ import annotations
import threading
import time
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import List, Optional, Sequence, Union

from mapping2tiny.errors import RepeatedKeyError
from mapping2tiny.formats.registry import create_writer, read_mapping
from mapping2tiny.logger import get_logger
from mapping2tiny.namespaces.merger import merge_trees, read_trees_parallel
from mapping2tiny.namespaces.selector import NamespaceSelector
from mapping2tiny.tree.model import MappingTree
from mapping2tiny.visitor.contract import ForwardingVisitor, MappingVisitor
from mapping2tiny.visitor.filters import CancellationVisitor, UniqueKeyVisitor
from mapping2tiny.visitor.validating import ValidatingVisitor
from .options import ConversionOptions, validate_options
from .output import atomic_output

log = get_logger("conversion")

PathLike = Union[str, Path]


@dataclass
class ConversionResult:
    output: Path
    output_format: str
    namespaces: List[str] = field(default_factory=list)
    classes: int = 0
    streamed: bool = False
    elapsed: float = 0.0


class _Stats(ForwardingVisitor):
    def __init__(self, next_visitor: MappingVisitor):
        super().__init__(next_visitor)
        self.namespaces: List[str] = []
        self.classes = 0

    def visit_namespaces(self, names):
        self.namespaces = list(names)
        super().visit_namespaces(names)

    def visit_class(self, src_name):
        self.classes += 1
        return super().visit_class(src_name)


def _read_source(path: Path, options: ConversionOptions, cancel: threading.Event,
                 visitor: MappingVisitor) -> None:
    read_mapping(path, CancellationVisitor(visitor, cancel), options.input_format,
                 options.source_name, options.target_name)


def load_tree(inputs: Sequence[PathLike], options: Optional[ConversionOptions] = None,
              cancel: Optional[threading.Event] = None) -> MappingTree:
    """Read every input into its own tree (in parallel) and merge them."""
    options = options or ConversionOptions()
    cancel = cancel or threading.Event()
    sources = [partial(_read_source, Path(p), options, cancel) for p in inputs]
    if not sources:
        raise ValueError("at least one input is required")
    trees = read_trees_parallel(sources, options.policy, options.workers)
    if len(trees) == 1:
        return trees[0]
    return merge_trees(trees)


def write_tree(tree: MappingTree, output: PathLike, output_format: str = "tiny2", sort: bool = False,
               cancel: Optional[threading.Event] = None) -> int:
    """Serialize a finalized tree atomically; returns the number of classes written."""
    cancel = cancel or threading.Event()
    with atomic_output(Path(output)) as fh:
        stats = _Stats(create_writer(output_format, fh))
        tree.accept(ValidatingVisitor(CancellationVisitor(stats, cancel)), sort=sort)
    return stats.classes


def _stream(path: Path, output: Path, options: ConversionOptions,
            cancel: threading.Event) -> Optional[ConversionResult]:
    """Copy one input straight to the writer; None when it repeats a key and needs a tree."""
    try:
        with atomic_output(output) as fh:
            stats = _Stats(create_writer(options.output_format, fh))
            _read_source(path, options, cancel, ValidatingVisitor(UniqueKeyVisitor(stats)))
    except RepeatedKeyError as e:
        log.info(f"{path} repeats {e.key!r}, reconciling through a tree ({options.policy.value})")
        return None
    return ConversionResult(output, options.output_format, stats.namespaces, stats.classes, True)


def convert(inputs: Sequence[PathLike], output: PathLike, options: Optional[ConversionOptions] = None,
            cancel: Optional[threading.Event] = None) -> ConversionResult:
    """Convert one or more mapping inputs into a single output file.

    A single input without projection or sorting is streamed straight from
    the reader to the writer; if it declares some key twice it is read again
    through a tree so `options.policy` applies. Otherwise inputs are built
    into trees, merged, projected onto the requested namespaces and written
    from the tree. The output path only changes when the whole job succeeds.
    """
    options = options or ConversionOptions()
    validate_options(options)
    cancel = cancel or threading.Event()
    inputs = [Path(p) for p in inputs]
    if not inputs:
        raise ValueError("at least one input is required")
    output = Path(output)
    started = time.time()
    log.info(f"converting {', '.join(map(str, inputs))} -> {output} ({options.output_format})")

    try:
        result = None
        if len(inputs) == 1 and not options.needs_tree:
            result = _stream(inputs[0], output, options, cancel)
        if result is None:
            tree = load_tree(inputs, options, cancel)
            if options.namespaces is not None:
                selector = NamespaceSelector(options.namespaces, options.fallback, options.primary,
                                             options.workers, options.strict_remap)
                tree = selector.project(tree)
            classes = write_tree(tree, output, options.output_format, options.sort, cancel)
            result = ConversionResult(output, options.output_format, list(tree.namespaces), classes, False)
    except Exception as e:
        log.error(f"conversion to {output} failed: {e}")
        raise

    result.elapsed = time.time() - started
    log.info(f"wrote {result.classes} classes to {output} in {result.elapsed:.2f}s")
    return result
