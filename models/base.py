from sqlalchemy import BigInteger, Integer, JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()


# ============================================================================
# PORTABLE COLUMN TYPES
# ============================================================================

# SQLite only autoincrements INTEGER PRIMARY KEY
BigIntPK = BigInteger().with_variant(Integer, "sqlite")

# Identifiers and bounds are stored as JSON scalars; None stays SQL NULL
JSONValue = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class JobStatus(str, enum.Enum):
    """Indexing job status"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    STOPPED = "stopped"
    FAILED = "failed"


class PartitionStatus(str, enum.Enum):
    """Partition execution status"""
    PENDING = "pending"
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
