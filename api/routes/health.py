"""
Health check endpoint with database and indexing job status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, select, text
from api.dependencies import get_db
from schemas.api import HealthCheckResponse
from models.base import JobStatus
from models.job import IndexingJob
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Job counts by status
    - Outcome of the most recently started job
    """

    # Check database connectivity
    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {str(e)}")

    jobs_by_status = {}
    last_job = None

    if db_connected:
        try:
            result = await db.execute(
                select(IndexingJob.status, func.count()).group_by(IndexingJob.status)
            )
            jobs_by_status = {status.value: count for status, count in result.all()}

            result = await db.execute(
                select(IndexingJob).order_by(IndexingJob.started_at.desc(), IndexingJob.id.desc()).limit(1)
            )
            last_job = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch indexing jobs: {str(e)}")

    # Overall status is computed by the HealthCheckResponse validator
    return HealthCheckResponse(
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        jobs_by_status=jobs_by_status,
        running_jobs=jobs_by_status.get(JobStatus.RUNNING.value, 0),
        last_job_status=last_job.status if last_job else None,
        last_job_completed_at=last_job.completed_at if last_job else None
    )
