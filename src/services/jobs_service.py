"""
Send-to-parliament job queue and runner
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from config import settings
from database.postgres_store import get_record_store
from models.enums import JobStatus, RunnerState
from models.job import Job, JobContext
from services.record_store import RecordStore
from services.submission_service import get_submission_service

logger = logging.getLogger(__name__)


class JobQueue:
    """Persists submission requests as jobs"""

    def __init__(self, store: RecordStore):
        self.store = store

    async def submit(self, context: JobContext) -> Job:
        now = datetime.now(timezone.utc)
        job = Job(
            job_id=str(uuid.uuid4()),
            status=JobStatus.SCHEDULED,
            created_at=now,
            modified_at=now,
            context=context,
        )
        await self.store.insert_job(job)
        logger.info(f"Scheduled job {job.job_id} for agenda item {context.agendaitem_id}")
        return job

    async def get(self, job_id: str) -> Optional[Job]:
        return await self.store.get_job(job_id)


class JobRunner:
    """
    Executes scheduled jobs one at a time, oldest first.

    run() may be called from any number of triggers (timer, post-submit kick);
    while a drain is in progress further calls return immediately, so at most
    one job is BUSY within the process.
    """

    def __init__(
        self,
        store: RecordStore,
        execute: Callable[[JobContext], Awaitable[None]],
        settle_delay: float = settings.JOB_SETTLE_DELAY,
    ):
        self.store = store
        self._execute = execute
        self._settle_delay = settle_delay
        self._state = RunnerState.IDLE
        self._lock = asyncio.Lock()

    async def recover(self) -> int:
        """Fail jobs left BUSY by a previous process. Must run before the runner starts."""
        count = await self.store.fail_busy_jobs()
        if count:
            logger.warning(f"Marked {count} interrupted job(s) as FAILED")
        return count

    async def run(self):
        async with self._lock:
            if self._state == RunnerState.RUNNING:
                return
            self._state = RunnerState.RUNNING

        try:
            while True:
                job = await self.store.get_next_scheduled_job()
                if job is None:
                    break
                await self._run_job(job)
        finally:
            async with self._lock:
                self._state = RunnerState.IDLE

    async def _run_job(self, job: Job):
        logger.info(f"Executing job {job.job_id}")
        await self.store.update_job_status(job.job_id, JobStatus.BUSY)
        try:
            await self._execute(job.context)
            if self._settle_delay:
                await asyncio.sleep(self._settle_delay)
        except Exception as e:
            logger.error(f"Job {job.job_id} failed: {e}", exc_info=True)
            await self.store.update_job_status(job.job_id, JobStatus.FAILED, str(e))
            return

        await self.store.update_job_status(job.job_id, JobStatus.SUCCESS)
        logger.info(f"✅ Job {job.job_id} finished")


_job_queue: Optional[JobQueue] = None
_job_runner: Optional[JobRunner] = None


def get_job_queue() -> JobQueue:
    """Get the global job queue instance"""
    global _job_queue
    if _job_queue is None:
        _job_queue = JobQueue(get_record_store())
    return _job_queue


def get_job_runner() -> JobRunner:
    """Get the global job runner instance"""
    global _job_runner
    if _job_runner is None:
        _job_runner = JobRunner(get_record_store(), get_submission_service().execute)
    return _job_runner
