"""In-process background job submission with pollable status."""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

QUEUED = "queued"
RUNNING = "running"
SUCCEEDED = "succeeded"
FAILED = "failed"


@dataclass
class JobRecord:
    job_id: str
    kind: str
    status: str = QUEUED
    submitted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    result: Any = None
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        def iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "job_id": self.job_id,
            "kind": self.kind,
            "status": self.status,
            "submitted_at": iso(self.submitted_at),
            "started_at": iso(self.started_at),
            "finished_at": iso(self.finished_at),
            "result": self.result,
            "error": self.error,
        }


class JobRegistry:
    def __init__(self, executor: Optional[Any] = None, max_workers: int = 4) -> None:
        self._executor = executor or ThreadPoolExecutor(max_workers=max_workers)
        self._jobs: Dict[str, JobRecord] = {}
        self._lock = threading.Lock()

    def _update(self, job_id: str, **changes: Any) -> None:
        with self._lock:
            record = self._jobs[job_id]
            for key, value in changes.items():
                setattr(record, key, value)

    def _run(self, job_id: str, fn: Callable[..., Any], kwargs: Dict[str, Any]) -> None:
        self._update(job_id, status=RUNNING, started_at=datetime.now(timezone.utc))
        try:
            result = fn(**kwargs)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Job %s failed: %s", job_id, exc)
            self._update(job_id, status=FAILED, error=str(exc), finished_at=datetime.now(timezone.utc))
            return
        self._update(job_id, status=SUCCEEDED, result=result, finished_at=datetime.now(timezone.utc))
        logger.info("Job %s finished", job_id)

    def submit(self, kind: str, fn: Callable[..., Any], **kwargs: Any) -> str:
        job_id = str(uuid.uuid4())
        with self._lock:
            self._jobs[job_id] = JobRecord(job_id=job_id, kind=kind, submitted_at=datetime.now(timezone.utc))
        logger.info("Queueing %s job %s: %s", kind, job_id, kwargs)
        self._executor.submit(self._run, job_id, fn, kwargs)
        return job_id

    def get(self, job_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._jobs.get(job_id)
            return record.as_dict() if record else None
