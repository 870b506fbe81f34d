"""
Job-level context shared read-only by every worker
"""

from typing import Any, Dict, Tuple
from pydantic import BaseModel
from indexing.catalog import EntityCatalog
from schemas.plan import PartitionBoundary, PartitionPlan
from schemas.predicates import Predicate


class JobContext(BaseModel):
    """
    Immutable job context, built once after planning.

    Handed to each worker at spawn time instead of being looked up; nothing
    in it changes while partitions run.
    """
    job_id: str
    entity_type_map: Dict[str, Any]
    total_rows_to_index: int
    partition_boundaries: Tuple[PartitionBoundary, ...]
    extra_filter_predicates: Dict[str, Tuple[Predicate, ...]]

    @classmethod
    def build(cls, job_id: str, plan: PartitionPlan, catalog: EntityCatalog) -> "JobContext":
        targeted = {e.name for e in plan.entity_types}
        return cls(
            job_id=job_id,
            entity_type_map={name: catalog.entity_type(name) for name in targeted},
            total_rows_to_index=plan.total_rows,
            partition_boundaries=tuple(plan.boundaries),
            extra_filter_predicates={
                name: catalog.predicates_for(name)
                for name in targeted
                if catalog.predicates_for(name)
            }
        )

    def indexed_type(self, entity_name: str) -> type:
        return self.entity_type_map[entity_name]

    def partition_boundary(self, partition_index: int) -> PartitionBoundary:
        return self.partition_boundaries[partition_index]

    class Config:
        frozen = True
        arbitrary_types_allowed = True
