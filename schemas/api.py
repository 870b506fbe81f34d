"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from uuid import UUID
from models.base import JobStatus, PartitionStatus

# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    jobs_by_status: Dict[str, int] = Field(default_factory=dict)
    running_jobs: int = 0
    last_job_status: Optional[JobStatus] = None
    last_job_completed_at: Optional[datetime] = None

    @model_validator(mode="after")
    def determine_status(self):
        """Determine overall health status"""
        if not self.database_connected:
            self.status = "unhealthy"
        elif self.last_job_status in (JobStatus.FAILED, JobStatus.PARTIAL):
            self.status = "degraded"
        else:
            self.status = "healthy"
        return self

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "jobs_by_status": {"completed": 12, "partial": 1},
                "running_jobs": 0,
                "last_job_status": "completed",
                "last_job_completed_at": "2024-01-15T10:00:00Z"
            }
        }

# ============================================================================
# Job Schemas
# ============================================================================

class JobSummary(BaseModel):
    """One indexing job, without its partitions"""
    job_id: UUID
    entity_names: List[str]
    status: JobStatus
    requested_partitions: int
    threads: int
    rows_per_partition: Optional[int] = None
    partition_total: Optional[int] = None
    total_rows: Optional[int] = None
    rows_read: int = 0
    restart_count: int = 0
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    error_message: Optional[str] = None

    class Config:
        from_attributes = True
        use_enum_values = True


class PartitionInfo(BaseModel):
    """Plan record of one partition with its checkpoint"""
    partition_index: int
    entity_name: str
    lower_bound: Optional[Any] = None
    upper_bound: Optional[Any] = None
    status: PartitionStatus
    rows_planned: int
    items_read: int = 0
    last_seen_id: Optional[Any] = None
    percentage: float = Field(0.0, ge=0, description="Progress against the entity type's row count")
    error_message: Optional[str] = None

    class Config:
        use_enum_values = True


class JobDetailResponse(JobSummary):
    """Job with its partitions"""
    filter_predicates: Optional[Dict[str, List[Dict[str, Any]]]] = None
    item_count: int
    partitions: List[PartitionInfo] = Field(default_factory=list)

    class Config:
        from_attributes = True
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "job_id": "550e8400-e29b-41d4-a716-446655440000",
                "entity_names": ["Company", "Employee"],
                "status": "completed",
                "requested_partitions": 1,
                "threads": 4,
                "item_count": 200,
                "partition_total": 6,
                "total_rows": 4505,
                "rows_read": 4505,
                "started_at": "2024-01-15T10:00:00Z",
                "partitions": [
                    {
                        "partition_index": 1,
                        "entity_name": "Employee",
                        "lower_bound": None,
                        "upper_bound": 1000,
                        "status": "completed",
                        "rows_planned": 4500,
                        "items_read": 999,
                        "last_seen_id": 999,
                        "percentage": 22.2
                    }
                ]
            }
        }


class JobListResponse(BaseModel):
    jobs: List[JobSummary]
    count: int

# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Resource not found",
                "detail": "Indexing job 550e8400-e29b-41d4-a716-446655440000 not found",
                "timestamp": "2024-01-15T10:30:00Z"
            }
        }
