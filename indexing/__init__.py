"""
Partitioned, resumable mass indexing of database entities.

This package contains the scan engine that reads every entity of the
configured types and hands them, in chunks, to an index backend:

Modules:
    catalog: Entity type registry, identifier resolution and scan queries
    planner: Balanced partition planning with swift-boundary cuts
    cursor: Ordered, bounded, restartable read of one partition
    checkpoint: Item-count checkpoint policy
    progress: Thread-safe progress aggregation across partitions
    context: Immutable job context shared by the workers
    store: Durable job, plan and checkpoint records
    backend: Index backend interface
    runner: Orchestrator that plans, publishes and runs partitions

Architecture:
    A job runs in three phases:

    1. Plan - Count rows, split into balanced units, cut id boundaries
    2. Publish - Persist the plan in one commit before any partition starts
    3. Scan - Workers drain partitions chunk by chunk, checkpointing each

    A failed partition does not stop the others. A restart re-runs only
    the partitions not completed, from their last checkpoint.

Usage:
    from indexing.catalog import EntityCatalog
    from indexing.runner import MassIndexingRunner

Example:
    catalog = EntityCatalog([Company, Employee])
    runner = MassIndexingRunner(async_session_maker, catalog, backend, partitions=2, threads=4)
    result = await runner.start()

    print(f"{result['rows_read']}/{result['total_rows']} rows indexed")
"""

__all__ = [
    "EntityCatalog",
    "PartitionPlanner",
    "ScanCursor",
    "CheckpointPolicy",
    "ProgressAggregator",
    "JobContext",
    "JobStore",
    "IndexBackend",
    "MassIndexingRunner",
]
