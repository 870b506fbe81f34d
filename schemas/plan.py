"""
Pydantic schemas for partition plans, checkpoints and progress
"""

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, model_validator


class EntityTypeDescriptor(BaseModel):
    """Entity type as seen by the planner: name, identifier field, row count"""
    name: str = Field(..., min_length=1)
    id_field: str = Field(..., min_length=1)
    row_count: int = Field(..., ge=0)
    
    class Config:
        frozen = True


class PartitionBoundary(BaseModel):
    """
    Half-open identifier range [lower_bound, upper_bound).
    
    None on either side means unbounded on that side.
    """
    lower_bound: Optional[Any] = None
    upper_bound: Optional[Any] = None
    
    @model_validator(mode="after")
    def check_order(self):
        if self.lower_bound is not None and self.upper_bound is not None:
            try:
                ordered = self.lower_bound < self.upper_bound
            except TypeError as e:
                raise ValueError(
                    f"bounds are not comparable: {self.lower_bound!r}, {self.upper_bound!r}"
                ) from e
            if not ordered:
                raise ValueError(
                    f"lower_bound {self.lower_bound!r} must be < upper_bound {self.upper_bound!r}"
                )
        return self
    
    @property
    def is_unbounded(self) -> bool:
        return self.lower_bound is None and self.upper_bound is None
    
    def contains(self, identifier: Any) -> bool:
        if self.lower_bound is not None and identifier < self.lower_bound:
            return False
        if self.upper_bound is not None and identifier >= self.upper_bound:
            return False
        return True
    
    def __str__(self) -> str:
        lower = "null" if self.lower_bound is None else self.lower_bound
        upper = "null" if self.upper_bound is None else self.upper_bound
        return f"[{lower}, {upper}["
    
    class Config:
        frozen = True


class PlannedPartition(BaseModel):
    """One record of a partition plan"""
    entity_name: str
    partition_index: int = Field(..., ge=0)
    boundary: PartitionBoundary
    
    class Config:
        frozen = True


class PartitionPlan(BaseModel):
    """
    Immutable partition plan, computed once before any worker starts.
    
    Partitions are entity-type-major and their indices run 0..n-1. For each
    entity type the boundaries chain without gap or overlap: the first is
    open below, the last is open above, and every lower bound equals the
    previous upper bound.
    """
    partitions: Tuple[PlannedPartition, ...]
    requested_partitions: int = Field(..., ge=1)
    threads: int = Field(..., ge=1)
    entity_types: Tuple[EntityTypeDescriptor, ...]
    rows_per_partition: Optional[int] = None
    
    @model_validator(mode="after")
    def check_cover(self):
        indices = [p.partition_index for p in self.partitions]
        if indices != list(range(len(indices))):
            raise ValueError(f"partition indices must be 0..{len(indices) - 1} in order, got {indices}")
        
        seen = set()
        previous = None
        for partition in self.partitions:
            boundary = partition.boundary
            if previous is None or previous.entity_name != partition.entity_name:
                if partition.entity_name in seen:
                    raise ValueError(f"partitions of {partition.entity_name} are not contiguous")
                if previous is not None and previous.boundary.upper_bound is not None:
                    raise ValueError(f"last partition of {previous.entity_name} is not open above")
                if boundary.lower_bound is not None:
                    raise ValueError(f"first partition of {partition.entity_name} is not open below")
                seen.add(partition.entity_name)
            elif boundary.lower_bound != previous.boundary.upper_bound:
                raise ValueError(
                    f"gap or overlap between partitions {previous.partition_index} "
                    f"and {partition.partition_index}"
                )
            previous = partition
        if previous is not None and previous.boundary.upper_bound is not None:
            raise ValueError(f"last partition of {previous.entity_name} is not open above")
        return self
    
    @property
    def total_rows(self) -> int:
        return sum(e.row_count for e in self.entity_types)
    
    @property
    def boundaries(self) -> List[PartitionBoundary]:
        return [p.boundary for p in self.partitions]
    
    def partition(self, partition_index: int) -> PlannedPartition:
        return self.partitions[partition_index]
    
    def for_entity(self, entity_name: str) -> List[PlannedPartition]:
        return [p for p in self.partitions if p.entity_name == entity_name]
    
    def entity_type(self, entity_name: str) -> EntityTypeDescriptor:
        for descriptor in self.entity_types:
            if descriptor.name == entity_name:
                return descriptor
        raise KeyError(entity_name)
    
    def __len__(self) -> int:
        return len(self.partitions)
    
    class Config:
        frozen = True


class Checkpoint(BaseModel):
    """Last identifier of the last committed chunk of a partition"""
    partition_index: int = Field(..., ge=0)
    last_seen_id: Any
    
    class Config:
        frozen = True


# ============================================================================
# Progress
# ============================================================================

class PartitionProgress(BaseModel):
    """Read progress of one partition"""
    entity_name: str
    items_read: int = 0
    total_for_entity: int = 0
    
    @property
    def percentage(self) -> float:
        if self.total_for_entity <= 0:
            return 100.0
        return self.items_read * 100.0 / self.total_for_entity
    
    class Config:
        frozen = True


class ProgressSnapshot(BaseModel):
    """Point-in-time copy of the job progress"""
    per_partition: Dict[int, PartitionProgress] = Field(default_factory=dict)
    job_total_read: int = 0
    job_total_rows: int = 0
    
    @property
    def percentage(self) -> float:
        if self.job_total_rows <= 0:
            return 100.0
        return self.job_total_read * 100.0 / self.job_total_rows
    
    class Config:
        frozen = True
