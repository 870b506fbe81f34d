"""
API endpoint tests
"""

import asyncio
import uuid
import pytest
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from api.main import app
from api.dependencies import get_db
from core.database import create_engine_for, create_session_factory
from indexing.store import JobStore
from models.base import Base, JobStatus
from schemas.plan import (
    Checkpoint,
    EntityTypeDescriptor,
    PartitionBoundary,
    PartitionPlan,
    PlannedPartition,
)


@pytest.fixture
def api_session_factory(tmp_path):
    """
    Session factory on its own database file.

    TestClient runs the app on a separate event loop, so every request
    opens a fresh session instead of sharing one across loops.
    """
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")

    async def create_tables():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(create_tables())
    yield create_session_factory(engine)
    asyncio.run(engine.dispose())


@pytest.fixture
def client(api_session_factory):
    """Create test client with database override"""

    async def override_get_db():
        async with api_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def create_job(session_factory, status=JobStatus.COMPLETED, items_read=(5, 600, 0)):
    """Persist a published Company/Employee job with checkpoints"""
    plan = PartitionPlan(
        partitions=[
            PlannedPartition(entity_name="Company", partition_index=0, boundary=PartitionBoundary()),
            PlannedPartition(entity_name="Employee", partition_index=1, boundary=PartitionBoundary(upper_bound=1000)),
            PlannedPartition(entity_name="Employee", partition_index=2, boundary=PartitionBoundary(lower_bound=1000)),
        ],
        requested_partitions=1,
        threads=2,
        entity_types=[
            EntityTypeDescriptor(name="Company", id_field="id", row_count=5),
            EntityTypeDescriptor(name="Employee", id_field="id", row_count=1500),
        ],
        rows_per_partition=1000
    )

    async def persist():
        async with session_factory() as session:
            store = JobStore(session)
            job = await store.create_job(["Company", "Employee"], 1, 2, item_count=100, rows_per_partition=1000)
            await store.publish_plan(job, plan)
            for index, count in enumerate(items_read):
                if count:
                    await store.save_checkpoint(
                        job.id,
                        Checkpoint(partition_index=index, last_seen_id=count),
                        items_read=count,
                        completed=index == 0
                    )
            await store.complete_job(job, status, rows_read=sum(items_read))
            return str(job.job_id)

    return asyncio.run(persist())


def test_root_lists_endpoints(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["endpoints"]["jobs"] == "/jobs"


def test_health_without_jobs(client):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database_connected"] is True
    assert data["jobs_by_status"] == {}
    assert data["last_job_status"] is None
    assert "X-Request-ID" in response.headers


def test_health_reuses_request_id(client):
    response = client.get("/health", headers={"X-Request-ID": "req_fixed"})

    assert response.headers["X-Request-ID"] == "req_fixed"


def test_health_degraded_after_partial_job(client, api_session_factory):
    create_job(api_session_factory, status=JobStatus.COMPLETED)
    create_job(api_session_factory, status=JobStatus.PARTIAL)

    data = client.get("/health").json()

    assert data["status"] == "degraded"
    assert data["jobs_by_status"] == {"completed": 1, "partial": 1}
    assert data["last_job_status"] == "partial"


def test_health_database_down():
    broken = MagicMock()
    broken.execute = AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("connection refused")))

    async def override_get_db():
        yield broken

    app.dependency_overrides[get_db] = override_get_db
    try:
        with TestClient(app) as test_client:
            data = test_client.get("/health").json()
    finally:
        app.dependency_overrides.clear()

    assert data["status"] == "unhealthy"
    assert data["database_connected"] is False


def test_list_jobs(client, api_session_factory):
    first = create_job(api_session_factory)
    second = create_job(api_session_factory, status=JobStatus.FAILED)

    data = client.get("/jobs").json()

    assert data["count"] == 2
    assert {job["job_id"] for job in data["jobs"]} == {first, second}

    limited = client.get("/jobs", params={"limit": 1}).json()
    assert limited["count"] == 1


def test_list_jobs_limit_validated(client):
    assert client.get("/jobs", params={"limit": 0}).status_code == 422


def test_job_detail(client, api_session_factory):
    job_id = create_job(api_session_factory, status=JobStatus.RUNNING)

    response = client.get(f"/jobs/{job_id}")

    assert response.status_code == 200
    data = response.json()
    assert data["job_id"] == job_id
    assert data["status"] == "running"
    assert data["partition_total"] == 3
    assert data["total_rows"] == 1505
    assert data["item_count"] == 100

    partitions = data["partitions"]
    assert [p["entity_name"] for p in partitions] == ["Company", "Employee", "Employee"]
    assert partitions[0]["status"] == "completed"
    assert partitions[0]["percentage"] == 100.0
    assert partitions[1]["upper_bound"] == 1000
    assert partitions[1]["lower_bound"] is None
    assert partitions[1]["items_read"] == 600
    assert partitions[1]["last_seen_id"] == 600
    assert partitions[1]["percentage"] == 40.0
    assert partitions[2]["status"] == "pending"
    assert partitions[2]["items_read"] == 0


def test_job_not_found(client):
    response = client.get(f"/jobs/{uuid.uuid4()}")

    assert response.status_code == 404
    assert "not found" in response.json()["detail"]


def test_job_id_must_be_uuid(client):
    assert client.get("/jobs/not-a-job").status_code == 422
