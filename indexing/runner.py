# ============================================================================
# File: indexing/runner.py
# Description: Mass indexing orchestrator: plan, publish, scan, checkpoint
# ============================================================================
"""
Mass Indexing Runner - drives a partitioned, resumable reindex.

This module provides the host side of the scan engine:
- Plans once and publishes the plan before any partition starts
- Runs partitions on a fixed pool of worker tasks pulling from a queue
- Commits a checkpoint per chunk (backend write, then checkpoint, then progress)
- Isolates partition failures; a restart only resumes unfinished partitions
- Stops cleanly: open cursors are closed, no checkpoint is taken on the way out
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import asyncio
import logging

from core.exceptions import (
    CheckpointError,
    IndexBackendError,
    MassIndexerException,
    PlanningError,
    ScanError,
)
from indexing.backend import IndexBackend
from indexing.catalog import EntityCatalog
from indexing.checkpoint import CheckpointPolicy, MetricType
from indexing.context import JobContext
from indexing.cursor import ScanCursor
from indexing.planner import PartitionPlanner
from indexing.progress import ProgressAggregator
from indexing.store import JobStore
from models.base import JobStatus, PartitionStatus
from models.job import IndexingJob
from schemas.plan import Checkpoint, PartitionPlan, PlannedPartition
from schemas.predicates import dump_predicates, load_predicates

logger = logging.getLogger(__name__)

# Failures that end one partition but not the job
PARTITION_ERRORS = (ScanError, IndexBackendError, CheckpointError)


class MassIndexingRunner:
    """
    Production-grade mass indexing orchestrator

    Responsibilities:
    - Plan → publish → scan, with planning as a barrier
    - Chunk-oriented processing: read, write to backend, checkpoint
    - Progress aggregation across workers
    - Restart from persisted plan and checkpoints
    - Accurate job and partition status bookkeeping
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        catalog: EntityCatalog,
        backend: IndexBackend,
        partitions: int = 1,
        threads: int = 4,
        item_count: int = 200,
        fetch_size: int = 200,
        max_results: Optional[int] = None,
        rows_per_partition: Optional[int] = None,
        purge_at_start: bool = False,
        optimize_at_end: bool = True
    ):
        self.session_factory = session_factory
        self.catalog = catalog
        self.backend = backend
        self.partitions = partitions
        self.threads = threads
        self.fetch_size = fetch_size
        self.max_results = max_results
        self.rows_per_partition = rows_per_partition
        self.purge_at_start = purge_at_start
        self.optimize_at_end = optimize_at_end
        self.policy = CheckpointPolicy(item_count)

        self.context: Optional[JobContext] = None
        self.progress: Optional[ProgressAggregator] = None
        self._stop_event = asyncio.Event()

    def stop(self):
        """Ask every worker to stop after its current item"""
        logger.info("Stop requested")
        self._stop_event.set()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def start(self, entity_names: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        """
        Run a new job over the given entity types (default: the whole catalog).

        Raises:
            PlanningError: Planning failed; the job is recorded FAILED and no
                partition was started
            CheckpointConfigError: Fatal checkpoint misconfiguration
        """
        entity_names = list(entity_names or self.catalog.entity_names)

        async with self.session_factory() as session:
            store = JobStore(session)
            job = await store.create_job(
                entity_names=entity_names,
                requested_partitions=self.partitions,
                threads=self.threads,
                item_count=self.policy.item_count,
                rows_per_partition=self.rows_per_partition,
                filter_predicates=dump_predicates(
                    {n: self.catalog.predicates_for(n) for n in entity_names if self.catalog.predicates_for(n)}
                ),
                purge_at_start=self.purge_at_start,
                optimize_at_end=self.optimize_at_end
            )
            logger.info(f"Starting job {job.job_id} for {entity_names}")

            # --------------------------------------------------
            # PHASE 1: PLANNING (barrier)
            # --------------------------------------------------
            try:
                planner = PartitionPlanner(self.catalog, session, fetch_size=self.fetch_size)
                if self.rows_per_partition:
                    plan = await planner.plan_by_rows_per_partition(
                        entity_names, self.rows_per_partition, self.threads
                    )
                else:
                    plan = await planner.plan(entity_names, self.partitions, self.threads)
            except PlanningError as e:
                logger.error(
                    f"Planning failed for job {job.job_id}: {e.message}",
                    extra={"error_context": e.to_dict()}
                )
                await session.rollback()
                await session.refresh(job)
                await store.complete_job(
                    job, JobStatus.FAILED, error_message=e.message, error_details=e.to_dict()
                )
                raise

            # --------------------------------------------------
            # PHASE 2: PUBLISH
            # --------------------------------------------------
            await store.publish_plan(job, plan)

            if job.purge_at_start:
                logger.info(f"Purging index for {entity_names}")
                await self.backend.purge(entity_names)

            return await self._execute(store, job, plan, self.catalog, list(plan.partitions), {}, {})

    async def restart(self, job_id) -> Dict[str, Any]:
        """
        Resume a job from its persisted plan and checkpoints.

        Partitions completed in a previous execution are not scanned again;
        the others resume from their last checkpoint, or from their lower
        bound if they never checkpointed.

        Raises:
            PlanningError: The job never published a plan (planning failed)
        """
        async with self.session_factory() as session:
            store = JobStore(session)
            job = await store.get_job(job_id)
            if job.partition_total is None:
                raise PlanningError(
                    f"Job {job.job_id} has no published plan to resume",
                    context={"job_id": str(job.job_id), "status": job.status.value, "operation": "restart"}
                )

            # Filters are those the job was planned with
            catalog = EntityCatalog(
                self.catalog.entity_type_map.values(),
                load_predicates(job.filter_predicates)
            )
            plan = await store.load_plan(job, catalog)
            statuses = await store.partition_statuses(job)
            checkpoints, items_read = await store.load_checkpoints(job)

            pending = [
                p for p in plan.partitions
                if statuses.get(p.partition_index) != PartitionStatus.COMPLETED
            ]
            logger.info(
                f"Restarting job {job.job_id}: {len(pending)}/{len(plan)} partitions to resume, "
                f"{len(checkpoints)} checkpoints found"
            )
            await store.mark_restarted(job)

            return await self._execute(store, job, plan, catalog, pending, checkpoints, items_read)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _execute(
        self,
        store: JobStore,
        job: IndexingJob,
        plan: PartitionPlan,
        catalog: EntityCatalog,
        pending: List[PlannedPartition],
        checkpoints: Mapping[int, Checkpoint],
        items_read: Mapping[int, int]
    ) -> Dict[str, Any]:
        self.context = JobContext.build(str(job.job_id), plan, catalog)
        self.progress = ProgressAggregator.for_plan(plan, initial_counts=items_read)
        self._stop_event.clear()

        queue: asyncio.Queue = asyncio.Queue()
        for partition in pending:
            queue.put_nowait(partition)

        outcomes: Dict[int, PartitionStatus] = {}
        worker_count = min(plan.threads, len(pending))
        workers = [
            asyncio.create_task(
                self._worker(n, queue, job.id, catalog, checkpoints, items_read, outcomes),
                name=f"indexing-worker-{n}"
            )
            for n in range(worker_count)
        ]
        logger.info(f"Job {job.job_id}: {len(pending)} partitions on {worker_count} workers")

        try:
            await asyncio.gather(*workers)

        except asyncio.CancelledError:
            logger.warning(f"Job {job.job_id} cancelled")
            await store.complete_job(
                job, JobStatus.STOPPED, rows_read=self.progress.snapshot().job_total_read
            )
            raise

        except Exception as e:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

            if isinstance(e, MassIndexerException):
                logger.error(f"Job {job.job_id} failed: {e.message}", extra={"error_context": e.to_dict()})
                details = e.to_dict()
            else:
                logger.exception(f"Unexpected error in job {job.job_id}")
                details = {"error_type": type(e).__name__, "message": str(e)}

            await store.complete_job(
                job,
                JobStatus.FAILED,
                rows_read=self.progress.snapshot().job_total_read,
                error_message=str(e),
                error_details=details
            )
            raise

        # --------------------------------------------------
        # FINALIZE
        # --------------------------------------------------
        failed = sorted(i for i, s in outcomes.items() if s == PartitionStatus.FAILED)
        completed = sum(1 for s in outcomes.values() if s == PartitionStatus.COMPLETED)
        already_done = len(plan) - len(pending)

        if self._stop_event.is_set():
            status = JobStatus.STOPPED
        elif failed:
            status = JobStatus.PARTIAL
        else:
            status = JobStatus.COMPLETED

        if status == JobStatus.COMPLETED and job.optimize_at_end:
            targets = [e.name for e in plan.entity_types]
            logger.info(f"Optimizing index for {targets}")
            await self.backend.optimize(targets)
            await self.backend.flush(targets)

        snapshot = self.progress.snapshot()
        self.progress.log_progress()
        await store.complete_job(
            job,
            status,
            rows_read=snapshot.job_total_read,
            error_message=f"{len(failed)} partitions failed: {failed}" if failed else None
        )

        result = {
            "job_id": str(job.job_id),
            "status": status.value,
            "partitions": len(plan),
            "partitions_completed": completed + already_done,
            "partitions_failed": failed,
            "rows_read": snapshot.job_total_read,
            "total_rows": snapshot.job_total_rows,
        }
        logger.info(
            f"Job {job.job_id} finished: {status.value} - "
            f"{result['partitions_completed']}/{len(plan)} partitions, "
            f"{snapshot.job_total_read}/{snapshot.job_total_rows} rows"
        )
        return result

    async def _worker(
        self,
        worker_id: int,
        queue: asyncio.Queue,
        job_pk: int,
        catalog: EntityCatalog,
        checkpoints: Mapping[int, Checkpoint],
        items_read: Mapping[int, int],
        outcomes: Dict[int, PartitionStatus]
    ):
        while not self._stop_event.is_set():
            try:
                partition = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            logger.debug(f"Worker {worker_id} takes partition {partition.partition_index}")
            outcomes[partition.partition_index] = await self._run_partition(
                job_pk,
                partition,
                catalog,
                checkpoints.get(partition.partition_index),
                items_read.get(partition.partition_index, 0)
            )

    async def _run_partition(
        self,
        job_pk: int,
        partition: PlannedPartition,
        catalog: EntityCatalog,
        checkpoint: Optional[Checkpoint],
        prior_reads: int
    ) -> PartitionStatus:
        """
        Scan one partition to its end, checkpointing every chunk.

        Returns:
            COMPLETED, FAILED, or STARTED when interrupted by a stop request
        """
        index = partition.partition_index
        boundary = self.context.partition_boundary(index)
        metrics = {m.value: 0 for m in MetricType}
        chunk: List[Any] = []
        # The checkpointed row is read again on resume; it was counted already
        reread = 0

        async with self.session_factory() as session:
            store = JobStore(session)
            cursor = ScanCursor(
                catalog,
                self.session_factory,
                partition,
                fetch_size=self.fetch_size,
                max_results=self.max_results
            )
            try:
                try:
                    await store.mark_partition(job_pk, index, PartitionStatus.STARTED)
                except SQLAlchemyError as e:
                    raise ScanError(
                        f"Failed to start partition {index}",
                        context={"partition_index": index, "operation": "mark_started"},
                        original_exception=e
                    )
                await cursor.open(checkpoint)
                logger.info(f"[partition={index}] scanning {partition.entity_name} {boundary}")

                while True:
                    if self._stop_event.is_set():
                        logger.info(
                            f"[partition={index}] stopped after {metrics[MetricType.READ_COUNT.value]} reads; "
                            f"{len(chunk)} uncommitted items dropped"
                        )
                        return PartitionStatus.STARTED

                    entity = await cursor.read()
                    if entity is None:
                        break
                    chunk.append(entity)
                    metrics[MetricType.READ_COUNT.value] += 1
                    if (
                        checkpoint is not None
                        and metrics[MetricType.READ_COUNT.value] == 1
                        and cursor.checkpoint_value() == checkpoint.last_seen_id
                    ):
                        reread = 1

                    if self.policy.is_ready_to_checkpoint(metrics):
                        await self._commit_chunk(store, job_pk, cursor, chunk, metrics, prior_reads, reread)
                        chunk = []

                await self._commit_chunk(
                    store, job_pk, cursor, chunk, metrics, prior_reads, reread, completed=True
                )
                logger.info(f"[partition={index}] completed: {metrics}")
                return PartitionStatus.COMPLETED

            except PARTITION_ERRORS as e:
                logger.error(
                    f"[partition={index}] failed: {e.message}",
                    extra={"error_context": e.to_dict()}
                )
                try:
                    await session.rollback()
                    await store.mark_partition(job_pk, index, PartitionStatus.FAILED, error_message=str(e))
                except SQLAlchemyError as mark_error:
                    logger.error(f"[partition={index}] could not record failure: {mark_error}")
                return PartitionStatus.FAILED

            finally:
                await cursor.close()

    async def _commit_chunk(
        self,
        store: JobStore,
        job_pk: int,
        cursor: ScanCursor,
        chunk: List[Any],
        metrics: Dict[str, int],
        prior_reads: int,
        reread: int = 0,
        completed: bool = False
    ):
        """
        Write the chunk, persist the checkpoint, then publish progress.

        The backend receives every entity of the chunk; ``reread`` entities
        already counted by the previous execution are left out of the counts.
        """
        if chunk:
            try:
                written = await self.backend.index(cursor.entity_name, chunk)
            except IndexBackendError:
                raise
            except Exception as e:
                raise IndexBackendError(
                    f"Backend failed to index {cursor.entity_name}",
                    context={"entity_name": cursor.entity_name, "chunk_size": len(chunk)},
                    original_exception=e
                )
            metrics[MetricType.WRITE_COUNT.value] += written

        await store.save_checkpoint(
            job_pk,
            Checkpoint(partition_index=cursor.partition_index, last_seen_id=cursor.checkpoint_value()),
            items_read=prior_reads + metrics[MetricType.READ_COUNT.value] - reread,
            completed=completed
        )
        first_commit = metrics[MetricType.CHECKPOINT_COUNT.value] == 0
        metrics[MetricType.CHECKPOINT_COUNT.value] += 1
        self.progress.merge(cursor.partition_index, len(chunk) - (reread if first_commit else 0))
        logger.debug(
            f"[partition={cursor.partition_index}] checkpoint at id={cursor.checkpoint_value()} "
            f"({len(chunk)} items)"
        )
