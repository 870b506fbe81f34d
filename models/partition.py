from sqlalchemy import Column, BigInteger, Integer, String, Enum, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, BigIntPK, JSONValue, PartitionStatus

class IndexingPartition(Base):
    """
    Plan record: one row per partition of a published plan.
    
    Design:
    - Written once, in the same transaction that publishes the plan
    - Bounds are JSON identifiers; NULL means unbounded on that side
    - Only status, error and timestamps change afterwards
    """
    __tablename__ = "indexing_partitions"
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    job_pk = Column(BigInteger, ForeignKey("indexing_jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    
    # Plan record
    partition_index = Column(Integer, nullable=False)
    entity_name = Column(String(255), nullable=False)
    lower_bound = Column(JSONValue, nullable=True)
    upper_bound = Column(JSONValue, nullable=True)
    rows_planned = Column(BigInteger, nullable=False, default=0)  # Row count of the entity type at planning
    
    # Execution state
    status = Column(Enum(PartitionStatus), default=PartitionStatus.PENDING, nullable=False)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    job = relationship("IndexingJob", back_populates="partitions")
    
    __table_args__ = (
        Index("idx_partition_job_index", "job_pk", "partition_index", unique=True),
        Index("idx_partition_status", "job_pk", "status"),
    )
