from sqlalchemy import Column, BigInteger, Enum, DateTime, Float, Integer, Text, Index, Boolean, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from models.base import Base, BigIntPK, JSONValue, JobStatus

class IndexingJob(Base):
    """
    One mass-indexing job execution chain.
    
    Purpose:
    - Persist the parameters a restart must reuse (targets, filters, P, T)
    - Audit trail of runs and their totals
    - Error tracking for fatal failures (planning, configuration)
    
    A restart reuses the same row: status returns to RUNNING and
    restart_count is incremented, the plan is never recomputed.
    """
    __tablename__ = "indexing_jobs"
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    job_id = Column(Uuid(as_uuid=True), default=uuid.uuid4, unique=True, nullable=False, index=True)
    
    # Targets
    entity_names = Column(JSONValue, nullable=False)  # Ordered list of entity names
    filter_predicates = Column(JSONValue, nullable=True)  # {entity_name: [predicate dicts]}
    
    # Partitioning parameters
    requested_partitions = Column(Integer, nullable=False, default=1)
    threads = Column(Integer, nullable=False, default=1)
    rows_per_partition = Column(Integer, nullable=True)
    item_count = Column(Integer, nullable=False)
    partition_total = Column(Integer, nullable=True)  # Length of the published plan
    
    # Lifecycle options
    purge_at_start = Column(Boolean, nullable=False, default=False)
    optimize_at_end = Column(Boolean, nullable=False, default=True)
    
    # Run metadata
    status = Column(Enum(JobStatus), default=JobStatus.PENDING, nullable=False, index=True)
    restart_count = Column(Integer, nullable=False, default=0)
    
    # Totals
    total_rows = Column(BigInteger, nullable=True)
    rows_read = Column(BigInteger, nullable=False, default=0)
    
    # Timestamps
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)
    
    # Error tracking
    error_message = Column(Text, nullable=True)
    error_details = Column(JSONValue, nullable=True)
    
    # Relationships
    partitions = relationship(
        "IndexingPartition",
        back_populates="job",
        order_by="IndexingPartition.partition_index",
        cascade="all, delete-orphan"
    )
    checkpoints = relationship(
        "PartitionCheckpoint",
        back_populates="job",
        order_by="PartitionCheckpoint.partition_index",
        cascade="all, delete-orphan"
    )
    
    __table_args__ = (
        Index("idx_indexing_job_status", "status", "started_at"),
    )
