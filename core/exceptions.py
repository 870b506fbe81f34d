"""
Custom exceptions for the mass indexer with structured error context.

Each exception carries a context dictionary so a failure can be logged
(or stored on the job record) together with the partition, entity type
and operation that produced it.

Exception Hierarchy:
    MassIndexerException (base)
    ├── PlanningError            fatal, raised before any partition starts
    ├── ScanError                isolated to one partition
    ├── ResourceReleaseError     logged by ScanCursor.close(), never raised
    ├── CheckpointConfigError    fatal host misconfiguration
    ├── CheckpointError          persisting a checkpoint failed
    ├── IndexBackendError        downstream backend refused a chunk
    └── JobNotFoundError         restart of an unknown job
"""

from typing import Optional, Dict, Any
from datetime import datetime


class MassIndexerException(Exception):
    """
    Base exception for all indexing errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (partition, entity, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": {k: str(v) for k, v in self.context.items()},
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Planning
# ============================================================================

class PlanningError(MassIndexerException):
    """
    Raised when a partition plan cannot be computed.

    Context should include:
        - entity_name: Entity type being planned (if applicable)
        - operation: "resolve_entity", "resolve_identifier", "row_count", "cut"
    """
    pass


# ============================================================================
# Scanning
# ============================================================================

class ScanError(MassIndexerException):
    """
    Raised when a partition scan fails (query or connection failure).

    Context should include:
        - partition_index: Index of the failing partition
        - entity_name: Entity type scanned by the partition
        - operation: "open" or "read"
    """
    pass


class ResourceReleaseError(MassIndexerException):
    """
    Failure releasing a cursor resource (stream result or session).

    Never propagated: ScanCursor.close() logs it and moves on to the
    next resource.

    Context should include:
        - partition_index: Index of the partition being closed
        - resource: "result" or "session"
    """
    pass


# ============================================================================
# Checkpoints
# ============================================================================

class CheckpointConfigError(MassIndexerException):
    """
    Raised when the checkpoint policy cannot evaluate.

    Either the read-count metric is missing from the step metrics or the
    configured item count is not positive. Fatal for the whole job.
    """
    pass


class CheckpointError(MassIndexerException):
    """
    Raised when persisting a checkpoint fails.

    Context should include:
        - job_id: Job owning the partition
        - partition_index: Partition being checkpointed
        - checkpoint_value: The identifier that failed to persist
    """
    pass


# ============================================================================
# Backend and jobs
# ============================================================================

class IndexBackendError(MassIndexerException):
    """
    Raised by an IndexBackend when a chunk of entities cannot be indexed.

    Context should include:
        - entity_name: Entity type of the chunk
        - chunk_size: Number of entities in the chunk
    """
    pass


class JobNotFoundError(MassIndexerException):
    """Raised when restarting a job id that has no persisted record."""
    pass
