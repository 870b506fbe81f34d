from sqlalchemy import Column, BigInteger, Integer, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, BigIntPK, JSONValue

class PartitionCheckpoint(Base):
    """
    Tracks resume state per partition.
    
    Purpose:
    - Resume a partition from the last committed chunk
    - Carry the read counter across restarts for progress reporting
    
    Design:
    - One row per (job, partition), overwritten in place
    - last_seen_id is the identifier of the last row of the last committed
      chunk; a restart re-reads that row (inclusive lower bound)
    """
    __tablename__ = "partition_checkpoints"
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    job_pk = Column(BigInteger, ForeignKey("indexing_jobs.id", ondelete="CASCADE"), nullable=False)
    partition_index = Column(Integer, nullable=False)
    
    # Checkpoint data
    last_seen_id = Column(JSONValue, nullable=True)
    
    # Statistics
    items_read = Column(BigInteger, nullable=False, default=0)
    checkpoint_count = Column(Integer, nullable=False, default=0)
    
    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow, index=True)
    
    job = relationship("IndexingJob", back_populates="checkpoints")
    
    __table_args__ = (
        Index("idx_checkpoint_job_partition", "job_pk", "partition_index", unique=True),
    )
