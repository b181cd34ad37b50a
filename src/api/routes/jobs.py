"""
Sweep job triggers
==================

POST /api/v1/jobs/process-rides  -- run one job  {job_type, shared_secret}
GET  /api/v1/jobs/process-rides  -- one ledger record (job_id) or recent runs
GET  /api/v1/cron/process-rides  -- scheduler-friendly trigger (?auth=&type=)

Callers authenticate with a pre-shared secret, not an end-user identity.
"""

from __future__ import annotations

import hmac
import logging
from typing import Optional

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db, get_redis_client
from src.api.middleware import limiter
from src.api.schemas import JobResponse, ProcessJobRequest, ProcessJobResponse
from src.config import settings
from src.domain.enums import JobType
from src.domain.errors import NotFound, Unauthorized
from src.infrastructure.repositories import JobRepository
from src.workers.sweeper import JobResult, run_job

logger = logging.getLogger(__name__)

router = APIRouter(tags=["jobs"])


def _check_secret(supplied: Optional[str], expected: str) -> None:
    # Bytes, so non-ASCII input is a mismatch rather than a TypeError
    if not supplied or not hmac.compare_digest(
        supplied.encode("utf-8"), expected.encode("utf-8")
    ):
        raise Unauthorized("Unauthorized")


def _to_response(result: JobResult) -> ProcessJobResponse:
    if result.success:
        message = f"Job {result.job_type.value} completed successfully"
    else:
        message = f"Job failed: {result.error}"
    return ProcessJobResponse(
        success=result.success,
        job_id=result.job_id,
        job_type=result.job_type,
        affected_rows=result.affected_rows,
        message=message,
        error=result.error,
    )


@router.post(
    "/jobs/process-rides",
    response_model=ProcessJobResponse,
    summary="Run a sweep job",
)
@limiter.limit(settings.rate_limit)
async def process_rides(
    request: Request,
    body: ProcessJobRequest,
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis_client),
):
    _check_secret(body.shared_secret, settings.background_job_api_key)
    result = await run_job(db, body.job_type, redis=redis)
    return _to_response(result)


@router.get(
    "/jobs/process-rides",
    response_model=list[JobResponse],
    summary="Inspect the job ledger",
)
@limiter.limit(settings.rate_limit)
async def get_jobs(
    request: Request,
    shared_secret: str = Query(...),
    job_id: Optional[int] = Query(None),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    _check_secret(shared_secret, settings.background_job_api_key)
    ledger = JobRepository(db)
    if job_id is not None:
        job = await ledger.get_by_id(job_id)
        if job is None:
            raise NotFound("Job not found")
        return [job]
    return await ledger.get_recent(limit)


@router.get(
    "/cron/process-rides",
    response_model=ProcessJobResponse,
    summary="Scheduler trigger for a sweep job",
)
@limiter.limit(settings.rate_limit)
async def cron_process_rides(
    request: Request,
    auth: Optional[str] = Query(None),
    job_type: JobType = Query(JobType.COMPLETE_RIDES, alias="type"),
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis_client),
):
    _check_secret(auth, settings.cron_secret)
    logger.info("Cron job triggered: %s", job_type.value)
    result = await run_job(db, job_type, redis=redis)
    return _to_response(result)
