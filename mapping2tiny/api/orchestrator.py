from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import base64
import json
import queue
import threading
import time
import uuid

from mapping2tiny.config.env import get_converter_config, get_service_config
from mapping2tiny.conversion import ConversionOptions, convert
from mapping2tiny.conversion.output import atomic_output
from mapping2tiny.errors import ConversionCancelled, MappingError
from mapping2tiny.formats.registry import get_format
from mapping2tiny.logger import get_logger
from mapping2tiny.tree.model import ConflictPolicy

log = get_logger("api")

JOBS_ROOT = get_service_config().jobs_root
JOBS_ROOT.mkdir(parents=True, exist_ok=True)
OUTPUT_NAME = "mappings.tiny"


@dataclass
class Job:
    id: str
    options: ConversionOptions
    input_name: str
    status: str = "queued"  # queued|running|completed|failed|cancelled
    events: List[Dict[str, Any]] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    cancel: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def dir(self) -> Path:
        return JOBS_ROOT / self.id

    @property
    def output_path(self) -> Path:
        return self.dir / OUTPUT_NAME

    def to_json(self) -> Dict[str, Any]:
        o = self.options
        return {
            "job_id": self.id,
            "status": self.status,
            "summary": self.summary,
            "events": self.events,
            "error": self.error,
            "options": {
                "format": o.input_format,
                "output_format": o.output_format,
                "namespaces": list(o.namespaces) if o.namespaces is not None else None,
                "fallback": list(o.fallback),
                "policy": o.policy.value,
                "strict_remap": o.strict_remap,
                "sort": o.sort,
            },
        }


class JobRegistry:
    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def create(self, options: ConversionOptions, input_name: str) -> Job:
        jid = f"j_{uuid.uuid4().hex[:8]}"
        job = Job(id=jid, options=options, input_name=input_name)
        with self._lock:
            self._jobs[jid] = job
        return job

    def get(self, jid: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(jid)


REGISTRY = JobRegistry()

_JOB_Q: "queue.Queue[str]" = queue.Queue(maxsize=100)
_workers: List[threading.Thread] = []
_workers_lock = threading.Lock()


def _event(job: Job, stage: str, message: str):
    job.events.append({"stage": stage, "message": message, "ts": time.time()})


def _persist_job(job: Job) -> None:
    with atomic_output(job.dir / "job.json") as fh:
        fh.write(json.dumps({**job.to_json(), "finished_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())},
                            indent=2))


def orchestrate(job: Job):
    if job.cancel.is_set():
        job.status = "cancelled"
        _event(job, "Cancelled", "Job cancelled before start")
        return
    try:
        job.status = "running"
        _event(job, "Convert", f"Converting {job.input_name}")
        result = convert([job.dir / job.input_name], job.output_path, job.options, job.cancel)
        job.summary = {
            "classes": result.classes,
            "namespaces": result.namespaces,
            "streamed": result.streamed,
            "elapsed": round(result.elapsed, 3),
        }
        job.status = "completed"
        _event(job, "Done", f"Wrote {result.classes} classes")
    except ConversionCancelled as e:
        job.status = "cancelled"
        _event(job, "Cancelled", str(e))
    except (MappingError, OSError, ValueError) as e:
        job.status = "failed"
        job.error = str(e)
        _event(job, "Error", str(e))
    except Exception as e:
        log.exception(f"job {job.id} failed unexpectedly")
        job.status = "failed"
        job.error = f"{type(e).__name__}: {e}"
        _event(job, "Error", job.error)


def _worker_loop(worker_id: int = 0):  # pragma: no cover (verified via API tests)
    while True:
        jid = _JOB_Q.get()
        try:
            job = REGISTRY.get(jid)
            if job is None:
                continue
            try:
                orchestrate(job)
            except Exception:
                log.exception(f"worker {worker_id}: job {jid} crashed")
                job.status = "failed"
            try:
                _persist_job(job)
            except Exception as e:
                log.error(f"worker {worker_id}: could not persist job {jid}: {e}")
        finally:
            _JOB_Q.task_done()


def _ensure_workers() -> None:
    with _workers_lock:
        if _workers:
            return
        for i in range(get_service_config().job_workers):
            t = threading.Thread(target=_worker_loop, kwargs={'worker_id': i}, daemon=True)
            t.start()
            _workers.append(t)


def options_from_payload(payload: Dict[str, Any]) -> ConversionOptions:
    """Build ConversionOptions from a JSON job request; raises ValueError on bad values."""
    namespaces = payload.get("namespaces")
    if namespaces is not None and not isinstance(namespaces, list):
        raise ValueError("namespaces must be a list")
    overrides = {
        "input_format": payload.get("format"),
        "output_format": payload.get("output_format"),
        "namespaces": tuple(namespaces) if namespaces else None,
        "fallback": tuple(payload.get("fallback") or ()),
        "primary": payload.get("primary"),
        "policy": ConflictPolicy(payload["policy"]) if payload.get("policy") else None,
        "strict_remap": bool(payload.get("strict_remap")) or None,
        "sort": bool(payload.get("sort")) or None,
        "source_name": payload.get("source_name"),
        "target_name": payload.get("target_name"),
    }
    return ConversionOptions.from_config(get_converter_config(), **overrides)


def start_job(payload: Dict[str, Any]) -> str:
    """Store the request's mapping content and enqueue a conversion job."""
    options = options_from_payload(payload)
    if payload.get("content_base64"):
        data = base64.b64decode(payload["content_base64"])
    else:
        data = str(payload.get("content") or "").encode("utf-8")
    spec = get_format(options.input_format)
    input_name = "input" + (spec.extension if spec is not None else ".mapping")
    job = REGISTRY.create(options, input_name)
    job.dir.mkdir(parents=True, exist_ok=True)
    (job.dir / input_name).write_bytes(data)
    _event(job, "Queued", f"Queued {len(data)} bytes of mappings")
    _ensure_workers()
    _JOB_Q.put(job.id)
    return job.id


def cancel_job(jid: str) -> bool:
    job = REGISTRY.get(jid)
    if job is None:
        return False
    job.cancel.set()
    return True
