"""
Core utilities and configuration for the mass indexer.

This package provides foundational components used throughout the indexer:

Modules:
    config: Application configuration and environment variable management
    database: Async engine, session factory and SQLite tuning
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities

Usage:
    from core.config import settings
    from core.database import async_session_maker, get_session
    from core.exceptions import PlanningError, ScanError
    from core.logging import setup_logging

Example:
    # Initialize logging
    setup_logging()
    
    # Get database session
    async with async_session_maker() as session:
        # Perform database operations
        pass
"""

__all__ = [
    "settings",
    "async_session_maker",
    "create_engine_for",
    "create_session_factory",
    "get_session",
    "setup_logging",
    # Exceptions
    "MassIndexerException",
    "PlanningError",
    "ScanError",
    "ResourceReleaseError",
    "CheckpointConfigError",
    "CheckpointError",
    "IndexBackendError",
    "JobNotFoundError",
]
