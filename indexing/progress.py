"""
Progress aggregation across partitions
"""

from typing import Dict, List, Mapping, Optional
from schemas.plan import PartitionPlan, PartitionProgress, ProgressSnapshot
import threading
import logging

logger = logging.getLogger(__name__)


class ProgressAggregator:
    """
    Sums per-partition read deltas into job-level totals.

    All merges go through one lock so concurrent workers (threads or tasks)
    never lose or double an update. Readers only take the lock long enough
    to copy the counters.
    """

    def __init__(
        self,
        entity_by_partition: Mapping[int, str],
        rows_by_entity: Mapping[str, int],
        initial_counts: Optional[Mapping[int, int]] = None
    ):
        self._lock = threading.Lock()
        self._entity_by_partition = dict(entity_by_partition)
        self._rows_by_entity = dict(rows_by_entity)
        self._job_total_rows = sum(self._rows_by_entity.values())
        self._counts: Dict[int, int] = {index: 0 for index in self._entity_by_partition}
        for index, value in (initial_counts or {}).items():
            if index not in self._counts:
                raise KeyError(f"Unknown partition index {index}")
            self._counts[index] = value
        self._job_total_read = sum(self._counts.values())

    @classmethod
    def for_plan(
        cls,
        plan: PartitionPlan,
        initial_counts: Optional[Mapping[int, int]] = None
    ) -> "ProgressAggregator":
        return cls(
            entity_by_partition={p.partition_index: p.entity_name for p in plan.partitions},
            rows_by_entity={e.name: e.row_count for e in plan.entity_types},
            initial_counts=initial_counts
        )

    def merge(self, partition_index: int, delta: int):
        """
        Add `delta` items read by a partition to its counter and the job total.
        """
        if delta < 0:
            raise ValueError(f"Progress delta must be >= 0, got {delta}")
        with self._lock:
            if partition_index not in self._counts:
                raise KeyError(f"Unknown partition index {partition_index}")
            self._counts[partition_index] += delta
            self._job_total_read += delta

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            counts = dict(self._counts)
            total_read = self._job_total_read

        return ProgressSnapshot(
            per_partition={
                index: PartitionProgress(
                    entity_name=self._entity_by_partition[index],
                    items_read=items_read,
                    total_for_entity=self._rows_by_entity.get(self._entity_by_partition[index], 0)
                )
                for index, items_read in counts.items()
            },
            job_total_read=total_read,
            job_total_rows=self._job_total_rows
        )

    def progress_lines(self) -> List[str]:
        """Human-readable progress, one line per partition plus the total"""
        snapshot = self.snapshot()
        lines = [
            f"{p.entity_name}#{index}: {p.items_read}/{p.total_for_entity} works processed ({p.percentage:.2f}%)"
            for index, p in sorted(snapshot.per_partition.items())
        ]
        lines.append(
            f"Total: {snapshot.job_total_read}/{snapshot.job_total_rows} works processed "
            f"({snapshot.percentage:.2f}%)"
        )
        return lines

    def log_progress(self):
        logger.info("Progress:\n\t" + "\n\t".join(self.progress_lines()))
