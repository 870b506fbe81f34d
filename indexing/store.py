"""
Durable job state: job records, published plans and partition checkpoints
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple
import uuid
from sqlalchemy import and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from core.exceptions import CheckpointError, JobNotFoundError
from indexing.catalog import EntityCatalog
from models.base import JobStatus, PartitionStatus
from models.checkpoint import PartitionCheckpoint
from models.job import IndexingJob
from models.partition import IndexingPartition
from schemas.plan import (
    Checkpoint,
    EntityTypeDescriptor,
    PartitionBoundary,
    PartitionPlan,
    PlannedPartition,
)
import logging

logger = logging.getLogger(__name__)


class JobStore:
    """
    Persistence for the runner.

    Responsibilities:
    - Job records (creation, restart bookkeeping, completion)
    - Plan publication, in a single commit
    - Partition status and checkpoint upserts, one row per partition
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def create_job(
        self,
        entity_names: Sequence[str],
        requested_partitions: int,
        threads: int,
        item_count: int,
        rows_per_partition: Optional[int] = None,
        filter_predicates: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        purge_at_start: bool = False,
        optimize_at_end: bool = True
    ) -> IndexingJob:
        job = IndexingJob(
            job_id=uuid.uuid4(),
            entity_names=list(entity_names),
            filter_predicates=filter_predicates or None,
            requested_partitions=requested_partitions,
            threads=threads,
            rows_per_partition=rows_per_partition,
            item_count=item_count,
            purge_at_start=purge_at_start,
            optimize_at_end=optimize_at_end,
            status=JobStatus.PENDING,
            started_at=datetime.utcnow(),
            rows_read=0
        )
        self.db.add(job)
        await self.db.commit()
        await self.db.refresh(job)
        return job

    async def get_job(self, job_id: uuid.UUID) -> IndexingJob:
        if isinstance(job_id, str):
            job_id = uuid.UUID(job_id)
        result = await self.db.execute(
            select(IndexingJob)
            .options(selectinload(IndexingJob.partitions), selectinload(IndexingJob.checkpoints))
            .where(IndexingJob.job_id == job_id)
        )
        job = result.scalar_one_or_none()
        if job is None:
            raise JobNotFoundError(
                f"Indexing job {job_id} not found",
                context={"job_id": str(job_id)}
            )
        return job

    async def mark_restarted(self, job: IndexingJob):
        job.status = JobStatus.RUNNING
        job.restart_count += 1
        job.completed_at = None
        job.error_message = None
        job.error_details = None
        await self.db.commit()

    async def complete_job(
        self,
        job: IndexingJob,
        status: JobStatus,
        rows_read: Optional[int] = None,
        error_message: Optional[str] = None,
        error_details: Optional[Dict[str, Any]] = None
    ):
        """Complete job with statistics"""
        job.status = status
        job.completed_at = datetime.utcnow()
        job.duration_seconds = (job.completed_at - job.started_at).total_seconds()
        if rows_read is not None:
            job.rows_read = rows_read
        job.error_message = error_message
        job.error_details = error_details
        await self.db.commit()

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    async def publish_plan(self, job: IndexingJob, plan: PartitionPlan):
        """Write every plan record and mark the job RUNNING in one commit"""
        rows = {e.name: e.row_count for e in plan.entity_types}
        for partition in plan.partitions:
            self.db.add(IndexingPartition(
                job_pk=job.id,
                partition_index=partition.partition_index,
                entity_name=partition.entity_name,
                lower_bound=partition.boundary.lower_bound,
                upper_bound=partition.boundary.upper_bound,
                rows_planned=rows[partition.entity_name],
                status=PartitionStatus.PENDING
            ))
        job.partition_total = len(plan)
        job.total_rows = plan.total_rows
        job.status = JobStatus.RUNNING
        await self.db.commit()
        logger.info(f"Published plan of job {job.job_id}: {len(plan)} partitions")

    async def load_plan(self, job: IndexingJob, catalog: EntityCatalog) -> PartitionPlan:
        """Rebuild the published plan of a job from its records"""
        records = await self._partitions(job)
        descriptors = {}
        for record in records:
            descriptors.setdefault(record.entity_name, record.rows_planned)
        return PartitionPlan(
            partitions=[
                PlannedPartition(
                    entity_name=record.entity_name,
                    partition_index=record.partition_index,
                    boundary=PartitionBoundary(
                        lower_bound=record.lower_bound,
                        upper_bound=record.upper_bound
                    )
                )
                for record in records
            ],
            requested_partitions=job.requested_partitions,
            threads=job.threads,
            entity_types=[
                EntityTypeDescriptor(
                    name=name,
                    id_field=catalog.identifier_field(name),
                    row_count=row_count
                )
                for name, row_count in descriptors.items()
            ],
            rows_per_partition=job.rows_per_partition
        )

    async def partition_statuses(self, job: IndexingJob) -> Dict[int, PartitionStatus]:
        return {r.partition_index: r.status for r in await self._partitions(job)}

    async def _partitions(self, job: IndexingJob) -> List[IndexingPartition]:
        result = await self.db.execute(
            select(IndexingPartition)
            .where(IndexingPartition.job_pk == job.id)
            .order_by(IndexingPartition.partition_index)
        )
        return list(result.scalars().all())

    async def mark_partition(
        self,
        job_pk: int,
        partition_index: int,
        status: PartitionStatus,
        error_message: Optional[str] = None
    ):
        result = await self.db.execute(
            select(IndexingPartition).where(
                and_(
                    IndexingPartition.job_pk == job_pk,
                    IndexingPartition.partition_index == partition_index
                )
            )
        )
        record = result.scalar_one()
        record.status = status
        record.error_message = error_message
        record.updated_at = datetime.utcnow()
        if status == PartitionStatus.STARTED and record.started_at is None:
            record.started_at = datetime.utcnow()
        elif status == PartitionStatus.COMPLETED:
            record.completed_at = datetime.utcnow()
        await self.db.commit()

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    async def load_checkpoints(self, job: IndexingJob) -> Tuple[Dict[int, Checkpoint], Dict[int, int]]:
        """
        Returns:
            (checkpoints by partition index, items read by partition index)
        """
        result = await self.db.execute(
            select(PartitionCheckpoint).where(PartitionCheckpoint.job_pk == job.id)
        )
        checkpoints: Dict[int, Checkpoint] = {}
        items_read: Dict[int, int] = {}
        for row in result.scalars().all():
            items_read[row.partition_index] = row.items_read
            if row.last_seen_id is not None:
                checkpoints[row.partition_index] = Checkpoint(
                    partition_index=row.partition_index,
                    last_seen_id=row.last_seen_id
                )
        return checkpoints, items_read

    async def save_checkpoint(
        self,
        job_pk: int,
        checkpoint: Checkpoint,
        items_read: int,
        completed: bool = False
    ) -> PartitionCheckpoint:
        """
        Create or overwrite the checkpoint of a partition and commit.

        With `completed`, the partition record is marked COMPLETED in the
        same transaction so a restart never re-scans it.
        """
        try:
            result = await self.db.execute(
                select(PartitionCheckpoint).where(
                    and_(
                        PartitionCheckpoint.job_pk == job_pk,
                        PartitionCheckpoint.partition_index == checkpoint.partition_index
                    )
                )
            )
            row = result.scalar_one_or_none()

            if row is None:
                row = PartitionCheckpoint(
                    job_pk=job_pk,
                    partition_index=checkpoint.partition_index,
                    last_seen_id=checkpoint.last_seen_id,
                    items_read=items_read,
                    checkpoint_count=1
                )
                self.db.add(row)
            else:
                row.last_seen_id = checkpoint.last_seen_id
                row.items_read = items_read
                row.checkpoint_count += 1
                row.updated_at = datetime.utcnow()

            if completed:
                partition = await self.db.execute(
                    select(IndexingPartition).where(
                        and_(
                            IndexingPartition.job_pk == job_pk,
                            IndexingPartition.partition_index == checkpoint.partition_index
                        )
                    )
                )
                record = partition.scalar_one()
                record.status = PartitionStatus.COMPLETED
                record.error_message = None
                record.completed_at = datetime.utcnow()

            await self.db.commit()
            return row

        except SQLAlchemyError as e:
            await self.db.rollback()
            raise CheckpointError(
                "Failed to persist checkpoint",
                context={
                    "job_pk": job_pk,
                    "partition_index": checkpoint.partition_index,
                    "checkpoint_value": checkpoint.last_seen_id
                },
                original_exception=e
            )
