"""
Pydantic schemas for data validation and serialization.

This package defines Pydantic models shared by the indexer and the API:

Schemas:
    plan: Partition boundaries, plans, checkpoints and progress
    predicates: Restriction predicates applied to scan queries
    api: API endpoint response schemas

Features:
    - Immutable value objects (frozen models)
    - Invariants checked at construction (boundary order, plan cover)
    - JSON serialization for persisted predicates
    - OpenAPI schema generation for FastAPI

Usage:
    from schemas.plan import PartitionBoundary, PartitionPlan
    from schemas.predicates import RangePredicate, load_predicates
    from schemas.api import JobDetailResponse, HealthCheckResponse

Example:
    boundary = PartitionBoundary(lower_bound=1000, upper_bound=2000)
    assert boundary.contains(1500)
    assert not boundary.contains(2000)
"""

__all__ = [
    "PartitionBoundary",
    "PartitionPlan",
    "PlannedPartition",
    "Checkpoint",
    "ProgressSnapshot",
    "RangePredicate",
    "EqualityPredicate",
    "RawPredicate",
    "JobSummary",
    "JobDetailResponse",
    "HealthCheckResponse",
]
