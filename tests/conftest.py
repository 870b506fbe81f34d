"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
from sqlalchemy import Column, Integer, String, insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import declarative_base
from core.database import create_engine_for, create_session_factory
from core.exceptions import IndexBackendError
from indexing.backend import IndexBackend
from indexing.catalog import EntityCatalog
from models.base import Base
from typing import AsyncGenerator, Callable, Dict, List, Optional, Sequence

# Application data being reindexed lives in its own metadata
AppBase = declarative_base()


class Company(AppBase):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(100), nullable=False)


class Employee(AppBase):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(100), nullable=False)
    department = Column(String(50), nullable=True)


class Message(AppBase):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=False)
    body = Column(String(255), nullable=False)


class CollectingBackend(IndexBackend):
    """In-memory backend recording every call"""

    def __init__(self, fail_on: Optional[Callable[[str, List[int]], bool]] = None):
        self.fail_on = fail_on
        self.indexed: Dict[str, List[int]] = {}
        self.chunks: List[tuple] = []
        self.purged: List[List[str]] = []
        self.optimized: List[List[str]] = []
        self.flushed: List[List[str]] = []

    async def index(self, entity_name: str, entities: Sequence) -> int:
        ids = [e.id for e in entities]
        if self.fail_on and self.fail_on(entity_name, ids):
            raise IndexBackendError(
                f"Rejected chunk of {entity_name}",
                context={"entity_name": entity_name, "first_id": ids[0]}
            )
        self.chunks.append((entity_name, ids))
        self.indexed.setdefault(entity_name, []).extend(ids)
        return len(ids)

    async def purge(self, entity_names):
        self.purged.append(list(entity_names))

    async def optimize(self, entity_names):
        self.optimized.append(list(entity_names))

    async def flush(self, entity_names):
        self.flushed.append(list(entity_names))


@pytest.fixture
def database_url(tmp_path) -> str:
    """File-backed SQLite database (WAL needs a real file)"""
    return f"sqlite+aiosqlite:///{tmp_path / 'indexer.db'}"


@pytest_asyncio.fixture(scope="function")
async def test_engine(database_url):
    """Create test database engine"""
    engine = create_engine_for(database_url)

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.run_sync(AppBase.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return create_session_factory(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def catalog() -> EntityCatalog:
    return EntityCatalog([Company, Employee, Message])


@pytest.fixture
def backend() -> CollectingBackend:
    return CollectingBackend()


async def seed_rows(session_factory, entity_cls, ids, **values):
    """Bulk insert rows with the given identifiers"""
    ids = list(ids)
    if not ids:
        return
    if entity_cls is Company:
        rows = [{"id": i, "name": f"Company {i}", **values} for i in ids]
    elif entity_cls is Employee:
        rows = [{"id": i, "name": f"Employee {i}", **values} for i in ids]
    else:
        rows = [{"id": i, "body": f"Message {i}", **values} for i in ids]

    async with session_factory() as session:
        await session.execute(insert(entity_cls), rows)
        await session.commit()


@pytest_asyncio.fixture
async def seeded(session_factory):
    """Company ids 1..5 and Employee ids 1..4500, Message left empty"""
    await seed_rows(session_factory, Company, range(1, 6))
    await seed_rows(session_factory, Employee, range(1, 4501))
    return session_factory
