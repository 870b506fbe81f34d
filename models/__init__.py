"""
SQLAlchemy ORM models for the indexer's own bookkeeping tables.

Models:
    base: Base declarative class, portable column types and status enums
    job: IndexingJob, one row per job (parameters, totals, errors)
    partition: IndexingPartition, the published partition plan
    checkpoint: PartitionCheckpoint, resume state per partition

The entity types being indexed are NOT declared here; they belong to the
application whose data is reindexed and are handed to EntityCatalog.

Usage:
    from models import IndexingJob, IndexingPartition, PartitionCheckpoint
    from models.base import JobStatus, PartitionStatus

Relationships:
    - IndexingJob → IndexingPartition (one-to-many, plan records)
    - IndexingJob → PartitionCheckpoint (one-to-many, at most one per partition)
"""

from models.base import Base, JobStatus, PartitionStatus
from models.job import IndexingJob
from models.partition import IndexingPartition
from models.checkpoint import PartitionCheckpoint

__all__ = [
    "Base",
    "JobStatus",
    "PartitionStatus",
    "IndexingJob",
    "IndexingPartition",
    "PartitionCheckpoint",
]
