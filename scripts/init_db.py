import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import create_engine_for
from core.logging import setup_logging
# Import all models to ensure they are registered
from models import Base, IndexingJob, IndexingPartition, PartitionCheckpoint

logger = logging.getLogger(__name__)


async def init_database(url: str = settings.DATABASE_URL):
    logger.info("Connecting to database...")
    engine = create_engine_for(url, echo=settings.ENVIRONMENT == "development")

    async with engine.begin() as conn:
        logger.info("Creating tables...")
        await conn.run_sync(Base.metadata.create_all)
        logger.info(
            f"Tables created successfully: {IndexingJob.__tablename__}, "
            f"{IndexingPartition.__tablename__}, {PartitionCheckpoint.__tablename__}"
        )

    await engine.dispose()

if __name__ == "__main__":
    setup_logging()
    asyncio.run(init_database())
