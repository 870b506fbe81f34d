"""
Indexing job endpoints: recent jobs and per-partition progress
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from api.dependencies import get_db
from core.exceptions import JobNotFoundError
from indexing.store import JobStore
from models.job import IndexingJob
from schemas.api import JobDetailResponse, JobListResponse, JobSummary, PartitionInfo
from schemas.plan import PartitionProgress
from uuid import UUID
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/jobs", tags=["Jobs"])


@router.get("", response_model=JobListResponse)
async def list_jobs(
    limit: int = Query(20, ge=1, le=100, description="Number of jobs to return"),
    db: AsyncSession = Depends(get_db)
):
    """Most recently started jobs first"""
    result = await db.execute(
        select(IndexingJob).order_by(IndexingJob.started_at.desc(), IndexingJob.id.desc()).limit(limit)
    )
    jobs = [JobSummary.model_validate(job) for job in result.scalars().all()]
    return JobListResponse(jobs=jobs, count=len(jobs))


@router.get("/{job_id}", response_model=JobDetailResponse)
async def get_job(request: Request, job_id: UUID, db: AsyncSession = Depends(get_db)):
    """
    Job detail.

    Returns:
    - Job parameters, status and totals
    - Each partition's boundary, status and checkpoint
    - Progress percentage per partition
    """
    request_id = getattr(request.state, "request_id", "-")
    store = JobStore(db)
    try:
        job = await store.get_job(job_id)
    except JobNotFoundError as e:
        logger.info(f"[{request_id}] {e.message}")
        raise HTTPException(status_code=404, detail=e.message)

    checkpoints = {c.partition_index: c for c in job.checkpoints}
    partitions = []
    for record in job.partitions:
        checkpoint = checkpoints.get(record.partition_index)
        items_read = checkpoint.items_read if checkpoint else 0
        progress = PartitionProgress(
            entity_name=record.entity_name,
            items_read=items_read,
            total_for_entity=record.rows_planned
        )
        partitions.append(PartitionInfo(
            partition_index=record.partition_index,
            entity_name=record.entity_name,
            lower_bound=record.lower_bound,
            upper_bound=record.upper_bound,
            status=record.status,
            rows_planned=record.rows_planned,
            items_read=items_read,
            last_seen_id=checkpoint.last_seen_id if checkpoint else None,
            percentage=round(progress.percentage, 2),
            error_message=record.error_message
        ))

    summary = JobSummary.model_validate(job)
    return JobDetailResponse(
        **summary.model_dump(),
        filter_predicates=job.filter_predicates,
        item_count=job.item_count,
        partitions=partitions
    )
