# mockup_service.py
"""
Caller-facing operations for the mockup pipeline: start a run, read its
status, count pending variants, and cancel the active run.

Only one run may be active per process; a second `start_run` while one is
in flight raises `PipelineBusyError`.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional, Set

from pydantic import BaseModel

import store
from db import async_session_maker
from mockup_generator import MockupPipeline
from progress import ErrorEntry, estimate_progress

log = logging.getLogger(__name__)


class PipelineBusyError(Exception):
    """A mockup generation run is already in progress."""


class JobStatusOut(BaseModel):
    """Generation job as seen by a polling client, with the live estimate."""
    id: str
    job_type: str
    status: str
    total_items: int
    processed_count: int
    failed_count: int
    error_log: List[ErrorEntry]
    started_at: datetime
    last_updated_at: datetime
    completed_at: Optional[datetime] = None
    items_remaining: int
    average_time_per_item: Optional[float] = None
    estimated_remaining_seconds: Optional[float] = None


def build_status(job, now: Optional[datetime] = None) -> JobStatusOut:
    estimate = estimate_progress(
        job.started_at, job.total_items, job.processed_count, job.failed_count, now=now
    )
    return JobStatusOut(
        id=job.id,
        job_type=job.job_type,
        status=job.status,
        total_items=job.total_items,
        processed_count=job.processed_count,
        failed_count=job.failed_count,
        error_log=[ErrorEntry(**entry) for entry in job.error_log or []],
        started_at=job.started_at,
        last_updated_at=job.last_updated_at,
        completed_at=job.completed_at,
        **estimate.model_dump(),
    )


class MockupService:
    def __init__(self, session_maker=None, pipeline_factory: Optional[Callable[[], MockupPipeline]] = None):
        self.session_maker = session_maker or async_session_maker
        self.pipeline_factory = pipeline_factory or (
            lambda: MockupPipeline(session_maker=self.session_maker)
        )
        self._task: Optional[asyncio.Task] = None
        self._pipeline: Optional[MockupPipeline] = None
        # Set between the busy check and task creation, across the job insert.
        self._starting = False
        # Strong references so fire-and-forget tasks are not garbage collected.
        self._background: Set[asyncio.Task] = set()

    def is_running(self) -> bool:
        return self._starting or (self._task is not None and not self._task.done())

    async def start_run(self) -> str:
        """Creates the job record and starts the pipeline in the background."""
        if self.is_running():
            raise PipelineBusyError("A mockup generation run is already in progress.")

        self._starting = True
        try:
            async with self.session_maker() as db:
                job = await store.create_job(db)

            self._pipeline = self.pipeline_factory()
            self._task = asyncio.create_task(self._run(self._pipeline, job.id))
            self._background.add(self._task)
            self._task.add_done_callback(self._background.discard)
        finally:
            self._starting = False
        log.info(f"Mockup generation job {job.id} started.")
        return job.id

    async def _run(self, pipeline: MockupPipeline, job_id: str) -> None:
        try:
            await pipeline.run(job_id)
        except Exception:
            # Already logged and recorded on the job by the pipeline.
            log.error(f"Mockup generation job {job_id} ended with an error.")

    def cancel_run(self) -> bool:
        """Requests cancellation of the active run. Returns False when idle."""
        if self._task is None or self._task.done() or self._pipeline is None:
            return False
        self._pipeline.cancel()
        log.info("Cancellation requested for the active mockup generation run.")
        return True

    async def wait(self) -> None:
        """Waits for the active run, if any, to finish."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def get_status(self, job_id: Optional[str] = None) -> Optional[JobStatusOut]:
        """The named job, or the most recent run when `job_id` is omitted."""
        async with self.session_maker() as db:
            job = await store.get_job(db, job_id) if job_id else await store.get_latest_job(db)
        if job is None:
            return None
        return build_status(job)

    async def count_pending(self) -> int:
        async with self.session_maker() as db:
            return await store.count_pending(db)


# ✅ Process-wide service used by the API
service = MockupService()
