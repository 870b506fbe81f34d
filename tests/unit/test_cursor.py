"""
Unit tests for ScanCursor state handling and resource release
"""

import logging
import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.exc import OperationalError
from core.exceptions import ScanError
from indexing.cursor import CursorState, ScanCursor
from schemas.plan import Checkpoint, PartitionBoundary, PlannedPartition


@pytest.fixture
def partition():
    return PlannedPartition(
        entity_name="Employee",
        partition_index=2,
        boundary=PartitionBoundary(lower_bound=1000, upper_bound=2000)
    )


@pytest.fixture
def mock_session():
    session = MagicMock()
    session.stream_scalars = AsyncMock(return_value=MagicMock(close=AsyncMock()))
    session.close = AsyncMock()
    return session


@pytest.fixture
def cursor(catalog, partition, mock_session):
    return ScanCursor(catalog, MagicMock(return_value=mock_session), partition, fetch_size=50)


@pytest.mark.asyncio
async def test_open_from_lower_bound(cursor, mock_session):
    await cursor.open()

    assert cursor.state is CursorState.OPEN
    assert cursor.restarted is False
    assert cursor.checkpoint_value() is None

    query = mock_session.stream_scalars.await_args.args[0]
    sql = str(query.compile(compile_kwargs={"literal_binds": True}))
    assert "employees.id >= 1000" in sql
    assert "employees.id < 2000" in sql
    assert query.get_execution_options()["yield_per"] == 50


@pytest.mark.asyncio
async def test_open_from_checkpoint_is_inclusive(cursor, mock_session):
    await cursor.open(Checkpoint(partition_index=2, last_seen_id=1400))

    assert cursor.restarted is True
    assert cursor.checkpoint_value() == 1400
    sql = str(mock_session.stream_scalars.await_args.args[0].compile(compile_kwargs={"literal_binds": True}))
    assert "employees.id >= 1400" in sql


@pytest.mark.asyncio
async def test_max_results_limits_query(catalog, partition, mock_session):
    cursor = ScanCursor(catalog, MagicMock(return_value=mock_session), partition, max_results=10)

    await cursor.open()

    sql = str(mock_session.stream_scalars.await_args.args[0].compile(compile_kwargs={"literal_binds": True}))
    assert "LIMIT 10" in sql


@pytest.mark.asyncio
async def test_open_twice_rejected(cursor):
    await cursor.open()

    with pytest.raises(ScanError, match="already open"):
        await cursor.open()


@pytest.mark.asyncio
async def test_foreign_checkpoint_rejected(cursor, mock_session):
    with pytest.raises(ScanError, match="belongs to partition 5"):
        await cursor.open(Checkpoint(partition_index=5, last_seen_id=10))

    mock_session.stream_scalars.assert_not_awaited()


@pytest.mark.asyncio
async def test_read_requires_open_cursor(cursor):
    with pytest.raises(ScanError, match="not open"):
        await cursor.read()


@pytest.mark.asyncio
async def test_open_failure_releases_session(cursor, mock_session):
    mock_session.stream_scalars.side_effect = OperationalError("SELECT", {}, Exception("disk I/O error"))

    with pytest.raises(ScanError) as exc_info:
        await cursor.open()

    assert isinstance(exc_info.value.__cause__, OperationalError)
    mock_session.close.assert_awaited_once()
    assert cursor.state is CursorState.CLOSED


@pytest.mark.asyncio
async def test_close_releases_session_when_result_close_fails(cursor, mock_session, caplog):
    await cursor.open()
    result = mock_session.stream_scalars.return_value
    result.close.side_effect = RuntimeError("connection reset")

    with caplog.at_level(logging.ERROR, logger="indexing.cursor"):
        await cursor.close()

    mock_session.close.assert_awaited_once()
    assert cursor.state is CursorState.CLOSED
    assert "Failed to release result" in caplog.text


@pytest.mark.asyncio
async def test_close_swallows_session_close_failure(cursor, mock_session, caplog):
    await cursor.open()
    mock_session.close.side_effect = RuntimeError("already closed")

    with caplog.at_level(logging.ERROR, logger="indexing.cursor"):
        await cursor.close()

    mock_session.stream_scalars.return_value.close.assert_awaited_once()
    assert "Failed to release session" in caplog.text


@pytest.mark.asyncio
async def test_close_is_idempotent(cursor, mock_session):
    await cursor.open()

    await cursor.close()
    await cursor.close()

    mock_session.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_close_without_open(cursor, mock_session):
    await cursor.close()

    mock_session.close.assert_not_awaited()
    assert cursor.state is CursorState.CLOSED
