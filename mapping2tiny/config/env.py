from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path

# Fallback namespace names for single-pair formats (proguard, enigma)
NS_SOURCE_FALLBACK = "source"
NS_TARGET_FALLBACK = "target"


@dataclass(frozen=True)
class ConverterConfig:
    source_namespace: str = NS_SOURCE_FALLBACK
    target_namespace: str = NS_TARGET_FALLBACK
    output_format: str = "tiny2"
    workers: int = 1
    log_level: str = "INFO"


def get_converter_config() -> ConverterConfig:
    return ConverterConfig(
        source_namespace=os.getenv("M2T_SOURCE_NAMESPACE", NS_SOURCE_FALLBACK),
        target_namespace=os.getenv("M2T_TARGET_NAMESPACE", NS_TARGET_FALLBACK),
        output_format=os.getenv("M2T_OUTPUT_FORMAT", "tiny2"),
        workers=max(1, int(os.getenv("M2T_WORKERS", "1"))),
        log_level=os.getenv("M2T_LOG_LEVEL", "INFO"),
    )


@dataclass(frozen=True)
class ServiceConfig:
    jobs_root: Path
    job_workers: int = 2
    api_key: str | None = None


def get_service_config() -> ServiceConfig:
    return ServiceConfig(
        jobs_root=Path(os.getenv("M2T_JOBS_ROOT", "./conversion_jobs")).resolve(),
        job_workers=max(1, int(os.getenv("M2T_JOB_WORKERS", "2"))),
        api_key=os.getenv("M2T_API_KEY") or None,
    )
