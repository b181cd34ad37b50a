"""
Background Sweeper
==================

Runs every ``SWEEP_INTERVAL_SECONDS`` (default 300 s) and can also be
triggered over HTTP (``POST /api/v1/jobs/process-rides``).

Job protocol
------------
1. **Claim the job slot** -- a Redis ``DistributedLock`` keyed by job type.
   If another runner holds it the run is skipped and nothing is logged.
   If Redis itself cannot be reached the run is recorded as ``failed``.
   The slot expires after ``JOB_LOCK_TTL_SECONDS`` and is not extended, so
   that TTL must exceed the longest sweep.  A late overlap cannot corrupt
   data (every UPDATE re-checks the ride status) but may log a second run.
2. **Open a ledger record** (status ``running``) and commit it, so the run
   is observable even if the sweep itself blows up.
3. **Run the sweep** in the same session and commit.
4. **Close the record** as ``completed`` with the affected row count, or
   roll the sweep back and close it as ``failed`` with the error message.
   Failures stop here; they never propagate past the scheduling boundary.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.enums import JobStatus, JobType
from src.domain.errors import JobAlreadyRunning
from src.infrastructure.database import async_session_factory
from src.infrastructure.locks import DistributedLock, job_lock
from src.infrastructure.redis_client import get_redis
from src.infrastructure.repositories import JobRepository
from src.services.ratings import RatingCollaborator, get_rating_collaborator
from src.services.sweeps import auto_complete_rides, expire_stale_rides

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


@dataclass(frozen=True)
class JobResult:
    job_id: int
    job_type: JobType
    status: JobStatus
    affected_rows: int
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == JobStatus.COMPLETED


# ── Public API ────────────────────────────────────────────────────────


async def run_job(
    session: AsyncSession,
    job_type: JobType,
    *,
    redis: aioredis.Redis | None = None,
    ratings: RatingCollaborator | None = None,
) -> JobResult:
    """Execute one sweep with ledger bookkeeping.

    Raises :class:`JobAlreadyRunning` when *redis* is given and the job slot
    is held elsewhere; every other failure, an unreachable Redis included,
    is recorded on the ledger row.
    """
    ledger = JobRepository(session)
    lock = None
    if redis is not None:
        lock = job_lock(redis, job_type.value, settings.job_lock_ttl_seconds)
        try:
            claimed = await lock.acquire()
        except RedisError as exc:
            logger.exception("Could not claim job slot for %s", job_type.value)
            error = str(exc) or exc.__class__.__name__
            return await _record_failure(
                ledger, job_type, f"Job slot unavailable: {error}"
            )
        if not claimed:
            logger.info("Job slot for %s held by another runner - skipping", job_type.value)
            raise JobAlreadyRunning(f"Job {job_type.value} is already running")

    try:
        job = await ledger.start(job_type)
        await session.commit()
        job_id = job.id

        try:
            affected = await _execute(session, job_type, ratings)
            await ledger.complete(job, affected)
            await session.commit()
            logger.info(
                "Background job %s (%d) completed; affected rows: %d",
                job_type.value, job_id, affected,
            )
            return JobResult(job_id, job_type, JobStatus.COMPLETED, affected)
        except Exception as exc:
            await session.rollback()
            logger.exception("Background job %s (%d) failed", job_type.value, job_id)
            error = str(exc) or exc.__class__.__name__
            job = await ledger.get_by_id(job_id)
            await ledger.fail(job, error)
            await session.commit()
            return JobResult(job_id, job_type, JobStatus.FAILED, 0, error)
    finally:
        if lock is not None:
            await _release(lock)


async def run_sweep_cycle() -> list[JobResult]:
    """One scheduled pass: expire, then auto-complete (then ratings, if enabled)."""
    job_types = [JobType.EXPIRE_RIDES, JobType.COMPLETE_RIDES]
    if settings.refresh_ratings_in_loop:
        job_types.append(JobType.REFRESH_RATINGS)

    redis = await get_redis()
    results: list[JobResult] = []
    for job_type in job_types:
        async with async_session_factory() as session:
            try:
                results.append(await run_job(session, job_type, redis=redis))
            except JobAlreadyRunning:
                continue
    return results


async def start_sweeper_loop() -> None:
    global _task, _stop_event
    if not settings.sweeper_enabled:
        logger.info("Sweeper disabled by configuration")
        return
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info("Sweeper started (interval=%ds)", settings.sweep_interval_seconds)


async def stop_sweeper_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Sweeper stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _execute(
    session: AsyncSession,
    job_type: JobType,
    ratings: RatingCollaborator | None,
) -> int:
    if job_type == JobType.EXPIRE_RIDES:
        return await expire_stale_rides(session)
    if job_type == JobType.COMPLETE_RIDES:
        return await auto_complete_rides(session)
    if job_type == JobType.REFRESH_RATINGS:
        collaborator = ratings or get_rating_collaborator()
        return await collaborator.refresh_summaries(session)
    raise ValueError(f"Unknown job type: {job_type}")


async def _record_failure(
    ledger: JobRepository, job_type: JobType, error: str
) -> JobResult:
    """Open and immediately close a ``failed`` ledger row."""
    job = await ledger.start(job_type)
    await ledger.fail(job, error)
    await ledger.session.commit()
    return JobResult(job.id, job_type, JobStatus.FAILED, 0, error)


async def _release(lock: DistributedLock) -> None:
    try:
        await lock.release()
    except RedisError:
        # The slot still lapses after job_lock_ttl_seconds
        logger.warning("Could not release job slot %s", lock.key, exc_info=True)


async def _loop() -> None:
    """Periodic loop: run a sweep cycle then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_sweep_cycle()
        except Exception:
            logger.exception("Unhandled error in sweep cycle")
        # Wait for the interval or until stop is signalled
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.sweep_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass  # next cycle
