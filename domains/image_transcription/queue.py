"""
Processing queue.

Admits image files as jobs, keeps at most one active job per path, and runs
up to ``concurrency_limit`` jobs at once on the event loop. Each finished job
frees its slot and schedules the next pending one, so the queue drives itself.
"""

import asyncio
from collections import deque
from datetime import datetime, timezone
from typing import Awaitable, Callable, Deque, Dict, List, Optional, Protocol, Set

from loguru import logger

from app.utils.config import MAX_CONCURRENT_JOBS

from .errors import InternalFailure, PipelineFailure
from .job import JobStatus, ProcessingJob
from .paths import VaultPath

DEFAULT_CONCURRENCY = 2

AdmissionFilter = Callable[[VaultPath], Awaitable[bool]]


class JobRunner(Protocol):
    async def run(self, job: ProcessingJob) -> None: ...


class ProcessingQueue:
    """FIFO job queue with a concurrency limit and per-path deduplication."""

    def __init__(
        self,
        runner: JobRunner,
        concurrency_limit: int = DEFAULT_CONCURRENCY,
        admission_filter: Optional[AdmissionFilter] = None,
        keep_finished: int = 50,
    ):
        """
        Initialize queue.

        Args:
            runner: Executes one job (the pipeline)
            concurrency_limit: Maximum simultaneously processing jobs
            admission_filter: Optional async check a file must pass to be admitted
            keep_finished: Number of finished jobs kept for status reporting
        """
        self.runner = runner
        self.admission_filter = admission_filter
        self._limit = DEFAULT_CONCURRENCY
        self._jobs: List[ProcessingJob] = []
        self._admitting: Set[str] = set()
        self._active = 0
        self._tasks: Set[asyncio.Task] = set()
        self._finished: Deque[ProcessingJob] = deque(maxlen=keep_finished)
        self._idle = asyncio.Event()
        self._idle.set()
        self.set_concurrency_limit(concurrency_limit)

    @property
    def concurrency_limit(self) -> int:
        return self._limit

    @property
    def active_count(self) -> int:
        return self._active

    @property
    def jobs(self) -> List[ProcessingJob]:
        """Pending and processing jobs in admission order."""
        return list(self._jobs)

    @property
    def pending_count(self) -> int:
        return sum(1 for job in self._jobs if job.status is JobStatus.PENDING)

    def __len__(self) -> int:
        return len(self._jobs)

    def is_active(self, file: VaultPath) -> bool:
        """Whether a pending or processing job exists for ``file``."""
        return any(job.key == file.key and job.is_active for job in self._jobs)

    def is_admitting(self, file: VaultPath) -> bool:
        return file.key in self._admitting

    async def enqueue(self, file: VaultPath) -> Optional[ProcessingJob]:
        """
        Admit ``file`` as a new pending job.

        Args:
            file: Image file as first observed

        Returns:
            The new job, or None if the file was rejected as a duplicate or by
            the admission filter
        """
        key = file.key
        if key in self._admitting:
            logger.debug(f"Path already being admitted, skipping: {file}")
            return None
        if self.is_active(file):
            logger.debug(f"Job for {file} already queued, skipping")
            return None

        self._admitting.add(key)
        try:
            if self.admission_filter is not None:
                try:
                    admitted = await self.admission_filter(file)
                except Exception as e:
                    logger.warning(f"Admission check failed for {file}: {e}")
                    return None
                if not admitted:
                    logger.debug(f"Admission filter rejected {file}")
                    return None
            job = ProcessingJob(initial_file=file)
            self._jobs.append(job)
            self._idle.clear()
            logger.info(f"Queued {file} ({len(self._jobs)} in queue)")
        finally:
            self._admitting.discard(key)

        self._schedule_next()
        return job

    def set_concurrency_limit(self, limit: int) -> int:
        """
        Bound the number of simultaneously processing jobs.

        Returns:
            The effective limit after clamping to 1..MAX_CONCURRENT_JOBS
        """
        self._limit = max(1, min(MAX_CONCURRENT_JOBS, int(limit)))
        logger.info(f"Max concurrent jobs set to {self._limit}")
        if self._jobs:
            self._schedule_next()
        return self._limit

    def mark_done(self, job: ProcessingJob):
        if job.status.is_terminal:
            return
        job.status = JobStatus.DONE
        job.error = None
        job.finished_at = datetime.now(timezone.utc)
        logger.info(f"Job for {job.initial_file} done")

    def mark_error(self, job: ProcessingJob, reason: str):
        if job.status.is_terminal:
            return
        job.status = JobStatus.ERROR
        job.error = reason
        job.finished_at = datetime.now(timezone.utc)
        logger.warning(f"Job for {job.initial_file} failed: {reason}")

    def _next_pending(self) -> Optional[ProcessingJob]:
        return next((job for job in self._jobs if job.status is JobStatus.PENDING), None)

    def _schedule_next(self):
        while self._active < self._limit:
            job = self._next_pending()
            if job is None:
                break
            job.status = JobStatus.PROCESSING
            self._active += 1
            logger.debug(f"Starting {job.initial_file} ({self._active}/{self._limit} active)")
            task = asyncio.create_task(self._execute(job))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        if not self._jobs and self._active == 0:
            self._idle.set()

    async def _execute(self, job: ProcessingJob):
        try:
            await self.runner.run(job)
        except PipelineFailure as failure:
            self.mark_error(job, str(failure))
        except Exception as e:
            logger.exception(f"Runner raised for {job.initial_file}")
            self.mark_error(job, str(InternalFailure(str(e))))
        else:
            self.mark_done(job)
        finally:
            if not job.status.is_terminal:
                # Cancelled mid-run
                self.mark_error(job, str(InternalFailure("processing was interrupted")))
            self._jobs.remove(job)
            self._finished.append(job)
            self._active -= 1
            self._schedule_next()

    async def join(self):
        """Wait until no job is pending or processing."""
        await self._idle.wait()

    def finished(self) -> List[ProcessingJob]:
        """Recently finished jobs, oldest first."""
        return list(self._finished)

    def snapshot(self) -> Dict[str, object]:
        return {
            "concurrency_limit": self._limit,
            "active": self._active,
            "pending": self.pending_count,
            "jobs": [job.as_dict() for job in self._jobs],
            "finished": [job.as_dict() for job in self._finished],
        }
