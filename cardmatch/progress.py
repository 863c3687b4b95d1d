"""Job-id keyed progress store for long-running resolution batches."""

import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Optional

log = logging.getLogger(__name__)

STATUS_INITIALIZING = 'initializing'
STATUS_EXTRACTING = 'extracting_names'
STATUS_LOOKUP = 'batch_lookup'
STATUS_MATCHING = 'matching'
STATUS_COMPLETED = 'completed'
STATUS_ERROR = 'error'
STATUS_NOT_FOUND = 'not_found'

FINISHED_STATUSES = frozenset({STATUS_COMPLETED, STATUS_ERROR})

# Finished jobs are kept for one hour before cleanup
DEFAULT_MAX_AGE = 3600.0


@dataclass
class JobProgress:
    """Snapshot of a job's progress."""

    job_id: str
    total: int = 0
    processed: int = 0
    status: str = STATUS_INITIALIZING
    current_card: str = ''
    error: Optional[str] = None
    result: Any = field(default=None, repr=False)
    started_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    @property
    def percent_complete(self) -> int:
        if self.total <= 0:
            return 0
        return round(self.processed / self.total * 100)

    @property
    def finished(self) -> bool:
        return self.status in FINISHED_STATUSES


class JobStore(ABC):
    """Shared store of job progress, one writer per job id.

    Readers (polling clients) only ever receive copies, so a snapshot never
    changes after it has been handed out.
    """

    @abstractmethod
    def create_job(self, total: int = 0, prefix: str = 'job') -> str:
        """Register a new job and return its id."""
        ...

    @abstractmethod
    def update(self, job_id: str, **changes) -> None:
        """Update fields of a running job (processed, status, current_card, total)."""
        ...

    @abstractmethod
    def complete(self, job_id: str, result: Any = None) -> None:
        ...

    @abstractmethod
    def fail(self, job_id: str, error: str) -> None:
        """Mark a job as failed; the processed counter keeps its last value."""
        ...

    @abstractmethod
    def get_progress(self, job_id: str) -> JobProgress:
        """Snapshot of a job, with status 'not_found' for unknown ids."""
        ...

    @abstractmethod
    def delete_job(self, job_id: str) -> None:
        ...

    @abstractmethod
    def cleanup(self, max_age: float = DEFAULT_MAX_AGE) -> int:
        """Remove finished jobs older than max_age seconds; returns the number removed."""
        ...


class InMemoryJobStore(JobStore):
    """Thread-safe in-process job store."""

    def __init__(self, clock=time.time):
        self._jobs: dict[str, JobProgress] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def create_job(self, total: int = 0, prefix: str = 'job') -> str:
        job_id = f'{prefix}_{uuid.uuid4().hex[:12]}'
        now = self._clock()
        with self._lock:
            self._jobs[job_id] = JobProgress(
                job_id=job_id, total=total, started_at=now, updated_at=now,
            )
        log.debug("Job %s angelegt (%d Karten)", job_id, total)
        return job_id

    def _apply(self, job_id: str, **changes) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                log.warning("Unbekannter Job %s", job_id)
                return
            self._jobs[job_id] = replace(job, updated_at=self._clock(), **changes)

    def update(self, job_id: str, **changes) -> None:
        unknown = set(changes) - {'total', 'processed', 'status', 'current_card'}
        if unknown:
            raise ValueError(f"Unbekannte Felder: {', '.join(sorted(unknown))}")
        self._apply(job_id, **changes)

    def complete(self, job_id: str, result: Any = None) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
        processed = job.total if job is not None else 0
        self._apply(job_id, status=STATUS_COMPLETED, processed=processed, result=result)

    def fail(self, job_id: str, error: str) -> None:
        self._apply(job_id, status=STATUS_ERROR, error=error)

    def get_progress(self, job_id: str) -> JobProgress:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return JobProgress(job_id=job_id, status=STATUS_NOT_FOUND)
            return replace(job)

    def delete_job(self, job_id: str) -> None:
        with self._lock:
            self._jobs.pop(job_id, None)

    def cleanup(self, max_age: float = DEFAULT_MAX_AGE) -> int:
        cutoff = self._clock() - max_age
        with self._lock:
            stale = [
                job_id for job_id, job in self._jobs.items()
                if job.finished and job.updated_at < cutoff
            ]
            for job_id in stale:
                del self._jobs[job_id]
        if stale:
            log.info("%d abgeschlossene Jobs entfernt", len(stale))
        return len(stale)
