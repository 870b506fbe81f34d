"""
Partition planner: balanced, gap-free partition cover over entity types.

Planning runs once, before any partition starts:

1. Count the rows of each entity type; one unit per type.
2. Greedily split the largest unit in half (binary max-heap) until the
   unit count reaches partitions * threads.
3. Regroup units by entity name. An entity type owning k units gets k
   partitions of floor(rows / k) rows plus one trailing partition open
   above, which takes the division remainder and any row inserted after
   counting.
4. Cut points ("swift boundaries") are found by streaming the entity
   type's identifiers in order and taking every capacity-th one.

For example, Company (5 rows) and Employee (ids 1..4500) planned with
rows_per_partition=1000 give six partitions:

    0  Company   [null, null[
    1  Employee  [null, 1000[
    2  Employee  [1000, 2000[
    3  Employee  [2000, 3000[
    4  Employee  [3000, 4000[
    5  Employee  [4000, null[
"""

from dataclasses import dataclass
from itertools import count, groupby
from typing import Any, AsyncIterator, List, Optional, Sequence, Tuple
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from core.exceptions import PlanningError
from indexing.catalog import EntityCatalog
from schemas.plan import EntityTypeDescriptor, PartitionBoundary, PartitionPlan, PlannedPartition
import heapq
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PartitionUnit:
    """Planning-time slice of an entity type, identified only by its size"""
    entity_name: str
    row_count: int

    def split(self) -> Tuple["PartitionUnit", "PartitionUnit"]:
        half = self.row_count // 2
        return (
            PartitionUnit(self.entity_name, half),
            PartitionUnit(self.entity_name, self.row_count - half),
        )


def split_units(units: Sequence[PartitionUnit], target: int) -> List[PartitionUnit]:
    """
    Split the largest unit until there are `target` units.

    Ties are broken by entity name, then by insertion order, so the result
    is deterministic. Units with fewer than 2 rows are never split; if the
    largest unit is one of them, splitting stops early.
    """
    sequence = count()
    heap = [(-u.row_count, u.entity_name, next(sequence), u) for u in units]
    heapq.heapify(heap)

    while len(heap) < target:
        largest = heap[0][3]
        if largest.row_count < 2:
            logger.info(f"Stopping split at {len(heap)} units: largest unit has {largest.row_count} rows")
            break
        heapq.heappop(heap)
        for child in largest.split():
            heapq.heappush(heap, (-child.row_count, child.entity_name, next(sequence), child))
        logger.debug(f"Split {largest} -> {len(heap)} units")

    return [entry[3] for entry in sorted(heap)]


def group_units(units: Sequence[PartitionUnit]) -> List[Tuple[str, int]]:
    """(entity_name, unit_count) pairs in entity-name order"""
    ordered = sorted(units, key=lambda u: u.entity_name)
    return [(name, sum(1 for _ in group)) for name, group in groupby(ordered, key=lambda u: u.entity_name)]


async def cut_boundaries(
    identifiers: AsyncIterator[Any],
    cuts: int,
    capacity: int
) -> List[PartitionBoundary]:
    """
    Turn an ascending identifier stream into `cuts + 1` chained boundaries.

    The identifier at every capacity-th position becomes a cut point. If
    the stream ends early, the boundaries found so far are kept and the
    trailing open partition starts at the last cut.
    """
    cut_points: List[Any] = []
    if cuts > 0 and capacity > 0:
        position = 0
        async for identifier in identifiers:
            position += 1
            if position % capacity == 0:
                cut_points.append(identifier)
                if len(cut_points) == cuts:
                    break

    lowers = [None] + cut_points
    uppers = cut_points + [None]
    return [PartitionBoundary(lower_bound=lo, upper_bound=up) for lo, up in zip(lowers, uppers)]


class PartitionPlanner:
    """
    Computes the partition plan of a job.

    The planner reads through a single session and publishes nothing: the
    caller persists the returned plan. Any failure raises PlanningError and
    no partial plan is returned.
    """

    def __init__(self, catalog: EntityCatalog, db_session: AsyncSession, fetch_size: int = 1000):
        self.catalog = catalog
        self.db = db_session
        self.fetch_size = fetch_size

    async def plan(self, entity_names: Sequence[str], partitions: int, threads: int) -> PartitionPlan:
        """
        Plan `partitions * threads` balanced units across the entity types.

        Args:
            entity_names: Entity types to index
            partitions: Requested partitions per thread (P)
            threads: Worker threads (T)

        Returns:
            PartitionPlan with one extra open-ended partition per non-empty
            entity type
        """
        self._check_arguments(entity_names, partitions, threads)
        target = partitions * threads
        descriptors = await self._describe(entity_names)

        units = split_units([PartitionUnit(d.name, d.row_count) for d in descriptors], target)
        rows = {d.name: d.row_count for d in descriptors}

        layout = []
        for name, unit_count in group_units(units):
            total = rows[name]
            capacity = total // unit_count
            layout.append((name, unit_count if total > 0 else 0, capacity))

        return await self._build_plan(descriptors, layout, partitions, threads)

    async def plan_by_rows_per_partition(
        self,
        entity_names: Sequence[str],
        rows_per_partition: int,
        threads: int
    ) -> PartitionPlan:
        """
        Plan fixed-size partitions of `rows_per_partition` rows each.

        An entity type with fewer rows than one partition gets a single
        unbounded partition.
        """
        if rows_per_partition < 1:
            raise PlanningError(
                "rows_per_partition must be >= 1",
                context={"rows_per_partition": rows_per_partition}
            )
        self._check_arguments(entity_names, 1, threads)
        descriptors = await self._describe(entity_names)

        layout = [
            (d.name, d.row_count // rows_per_partition, rows_per_partition)
            for d in sorted(descriptors, key=lambda d: d.name)
        ]
        return await self._build_plan(
            descriptors, layout, 1, threads, rows_per_partition=rows_per_partition
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _check_arguments(entity_names: Sequence[str], partitions: int, threads: int):
        if not entity_names:
            raise PlanningError("No entity type to index")
        if len(set(entity_names)) != len(entity_names):
            raise PlanningError(
                "Entity types listed more than once",
                context={"entity_names": list(entity_names)}
            )
        if partitions < 1 or threads < 1:
            raise PlanningError(
                "partitions and threads must both be >= 1",
                context={"partitions": partitions, "threads": threads}
            )

    async def _describe(self, entity_names: Sequence[str]) -> List[EntityTypeDescriptor]:
        descriptors = []
        for name in entity_names:
            id_field = self.catalog.identifier_field(name)
            row_count = await self.catalog.row_count(self.db, name)
            descriptor = EntityTypeDescriptor(name=name, id_field=id_field, row_count=row_count)
            logger.info(f"Entity {name}: {row_count} rows (identifier: {id_field})")
            descriptors.append(descriptor)
        return descriptors

    async def _build_plan(
        self,
        descriptors: List[EntityTypeDescriptor],
        layout: List[Tuple[str, int, int]],
        partitions: int,
        threads: int,
        rows_per_partition: Optional[int] = None
    ) -> PartitionPlan:
        planned: List[PlannedPartition] = []

        for name, cuts, capacity in layout:
            boundaries = await self._boundaries_for(name, cuts, capacity)
            for boundary in boundaries:
                planned.append(PlannedPartition(
                    entity_name=name,
                    partition_index=len(planned),
                    boundary=boundary
                ))
            logger.info(f"Entity {name}: {len(boundaries)} partitions {[str(b) for b in boundaries]}")

        plan = PartitionPlan(
            partitions=planned,
            requested_partitions=partitions,
            threads=threads,
            entity_types=descriptors,
            rows_per_partition=rows_per_partition
        )
        logger.info(f"Plan ready: {len(plan)} partitions, {threads} threads, {plan.total_rows} rows")
        return plan

    async def _boundaries_for(self, entity_name: str, cuts: int, capacity: int) -> List[PartitionBoundary]:
        if cuts == 0:
            return [PartitionBoundary()]

        query = self.catalog.ordered_scan(entity_name, ids_only=True)
        query = query.execution_options(yield_per=self.fetch_size)
        result = None
        try:
            result = await self.db.stream_scalars(query)
            boundaries = await cut_boundaries(result, cuts, capacity)
        except SQLAlchemyError as e:
            raise PlanningError(
                f"Identifier scan failed for {entity_name}",
                context={"entity_name": entity_name, "operation": "cut"},
                original_exception=e
            )
        finally:
            if result is not None:
                try:
                    await result.close()
                except Exception as e:
                    logger.error(f"Failed to close identifier scan for {entity_name}: {e}")

        if len(boundaries) < cuts + 1:
            logger.warning(
                f"Entity {entity_name}: identifier scan ended after {len(boundaries) - 1} "
                f"of {cuts} cuts; rows were removed after counting"
            )
        return boundaries
