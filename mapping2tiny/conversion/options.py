from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

from mapping2tiny.config.env import NS_SOURCE_FALLBACK, NS_TARGET_FALLBACK, ConverterConfig
from mapping2tiny.tree.model import ConflictPolicy


@dataclass(frozen=True)
class ConversionOptions:
    input_format: Optional[str] = None  # None = autodetect
    output_format: str = "tiny2"
    namespaces: Optional[Tuple[str, ...]] = None  # None = keep the input namespaces
    fallback: Tuple[str, ...] = field(default_factory=tuple)
    primary: Optional[str] = None
    policy: ConflictPolicy = ConflictPolicy.STRICT
    strict_remap: bool = False
    sort: bool = False
    source_name: str = NS_SOURCE_FALLBACK  # namespace names for single-pair formats
    target_name: str = NS_TARGET_FALLBACK
    workers: int = 1

    @property
    def needs_tree(self) -> bool:
        return self.namespaces is not None or self.sort

    @staticmethod
    def from_config(cfg: ConverterConfig, **overrides) -> "ConversionOptions":
        base = ConversionOptions(
            output_format=cfg.output_format,
            source_name=cfg.source_namespace,
            target_name=cfg.target_namespace,
            workers=cfg.workers,
        )
        return replace(base, **{k: v for k, v in overrides.items() if v is not None})


def validate_options(o: ConversionOptions) -> None:
    if o.namespaces is not None and not o.namespaces:
        raise ValueError("namespaces must not be empty when given")
    if o.workers < 1:
        raise ValueError("workers must be at least 1")
    if o.source_name == o.target_name:
        raise ValueError("source and target namespace names must differ")
