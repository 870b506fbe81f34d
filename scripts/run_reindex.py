"""
Script to run (or restart) a mass indexing job
"""

import argparse
import asyncio
import importlib
import logging
import os
import signal
import sys

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import create_engine_for, create_session_factory
from core.exceptions import MassIndexerException
from core.logging import setup_logging
from indexing.catalog import EntityCatalog
from indexing.runner import MassIndexingRunner

logger = logging.getLogger(__name__)


def load_object(path: str):
    """Import `module:attribute`"""
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Expected 'module:Class', got {path!r}")
    return getattr(importlib.import_module(module_name), attribute)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Partitioned, resumable mass indexing")
    parser.add_argument("--restart", metavar="JOB_ID", help="Resume an existing job instead of starting one")
    parser.add_argument("--entities", help="Comma-separated module:Class paths (default: INDEX_ENTITIES)")
    parser.add_argument("--backend", help="module:Class of the index backend (default: INDEX_BACKEND)")
    parser.add_argument("--partitions", type=int, default=settings.INDEX_PARTITIONS)
    parser.add_argument("--threads", type=int, default=settings.INDEX_THREADS)
    parser.add_argument("--rows-per-partition", type=int, default=settings.INDEX_ROWS_PER_PARTITION)
    parser.add_argument("--log-level", default=None)
    return parser.parse_args(argv)


async def run_reindex(args: argparse.Namespace) -> dict:
    """Run one job and return its result"""
    entity_paths = [p.strip() for p in args.entities.split(",")] if args.entities else settings.entity_paths
    backend_path = args.backend or settings.INDEX_BACKEND
    if not entity_paths:
        raise ValueError("No entity types configured (INDEX_ENTITIES)")
    if not backend_path:
        raise ValueError("No index backend configured (INDEX_BACKEND)")

    catalog = EntityCatalog([load_object(p) for p in entity_paths])
    backend = load_object(backend_path)()

    engine = create_engine_for(settings.DATABASE_URL)
    runner = MassIndexingRunner(
        create_session_factory(engine),
        catalog,
        backend,
        partitions=args.partitions,
        threads=args.threads,
        item_count=settings.INDEX_ITEM_COUNT,
        fetch_size=settings.INDEX_FETCH_SIZE,
        max_results=settings.INDEX_MAX_RESULTS,
        rows_per_partition=args.rows_per_partition,
        purge_at_start=settings.INDEX_PURGE_AT_START,
        optimize_at_end=settings.INDEX_OPTIMIZE_AT_END
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, runner.stop)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    try:
        if args.restart:
            return await runner.restart(args.restart)
        return await runner.start()
    finally:
        await engine.dispose()


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        result = asyncio.run(run_reindex(args))
    except MassIndexerException as e:
        logger.error(f"Indexing failed: {e}", extra={"error_context": e.to_dict()})
        return 1
    except (ValueError, ImportError, AttributeError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    logger.info(
        f"Job {result['job_id']} {result['status']}: "
        f"{result['rows_read']}/{result['total_rows']} rows, "
        f"{result['partitions_completed']}/{result['partitions']} partitions"
    )
    return 0 if result["status"] == "completed" else 1


if __name__ == "__main__":
    sys.exit(main())
