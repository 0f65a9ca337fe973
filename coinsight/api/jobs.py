"""In-memory background job queue for API-triggered backtests."""

from __future__ import annotations

import traceback
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from threading import Lock
from typing import Any, Literal

from coinsight.core.utils.errors import CoinsightError
from coinsight.core.utils.logging import get_logger

JobType = Literal["backtest"]
JobStatus = Literal["queued", "running", "succeeded", "failed"]
JobTask = Callable[[], dict[str, Any]]

logger = get_logger(__name__)


@dataclass(frozen=True)
class JobRecord:
    """Snapshot of one background job."""

    job_id: str
    job_type: JobType
    status: JobStatus
    submitted_at: datetime
    request: dict[str, Any]
    started_at: datetime | None = None
    finished_at: datetime | None = None
    result: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None
    error_traceback: str | None = None


class InMemoryJobQueue:
    """
    Thread-pool job runner with a lock-guarded job table.

    Records are immutable snapshots; every transition swaps in a new record
    under the lock.
    """

    def __init__(self, max_workers: int = 2) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, int(max_workers)), thread_name_prefix="coinsight-job"
        )
        self._lock = Lock()
        self._jobs: dict[str, JobRecord] = {}
        self._counter = 0

    def submit(self, job_type: JobType, request: dict[str, Any], task: JobTask) -> JobRecord:
        """
        Queue a task and return its initial snapshot.

        Args:
            job_type: Semantic job type label.
            request: Request payload snapshot stored with the job.
            task: Work function returning a JSON-serializable result.
        """
        with self._lock:
            self._counter += 1
            record = JobRecord(
                job_id=f"job_{self._counter:06d}",
                job_type=job_type,
                status="queued",
                submitted_at=datetime.now(tz=UTC),
                request=dict(request),
            )
            self._jobs[record.job_id] = record

        logger.info("Queued %s job %s", job_type, record.job_id)
        self._executor.submit(self._run_job, record.job_id, task)
        return record

    def get(self, job_id: str) -> JobRecord | None:
        with self._lock:
            return self._jobs.get(job_id)

    def list(self, limit: int = 100) -> list[JobRecord]:
        """List jobs, newest first."""
        with self._lock:
            ordered = sorted(
                self._jobs.values(),
                key=lambda job: (job.submitted_at, job.job_id),
                reverse=True,
            )
        return ordered[: max(1, int(limit))]

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _update(self, job_id: str, **changes: Any) -> None:
        with self._lock:
            current = self._jobs.get(job_id)
            if current is not None:
                self._jobs[job_id] = replace(current, **changes)

    def _run_job(self, job_id: str, task: JobTask) -> None:
        self._update(job_id, status="running", started_at=datetime.now(tz=UTC))
        try:
            result = task()
        except Exception as exc:
            error_code = exc.error_code if isinstance(exc, CoinsightError) else "internal_error"
            logger.error("Job %s failed: %s", job_id, exc)
            self._update(
                job_id,
                status="failed",
                finished_at=datetime.now(tz=UTC),
                error_code=error_code,
                error_message=str(exc),
                error_traceback="".join(
                    traceback.format_exception(type(exc), exc, exc.__traceback__)
                ),
            )
            return
        self._update(
            job_id, status="succeeded", finished_at=datetime.now(tz=UTC), result=dict(result)
        )
        logger.info("Job %s succeeded", job_id)
