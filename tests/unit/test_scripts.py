"""
Unit tests for the command-line scripts
"""

import pytest
from sqlalchemy import inspect
from core.database import create_engine_for
from scripts.init_db import init_database
from scripts.run_reindex import load_object, main, parse_args
from conftest import Company


def test_load_object():
    assert load_object("conftest:Company") is Company


@pytest.mark.parametrize("path", ["conftest", ":Company", "conftest:"])
def test_load_object_requires_module_and_attribute(path):
    with pytest.raises(ValueError):
        load_object(path)


def test_parse_args_restart():
    args = parse_args(["--restart", "7c9e6679-7425-40de-944b-e07fc1f90ae7", "--threads", "8"])

    assert args.restart == "7c9e6679-7425-40de-944b-e07fc1f90ae7"
    assert args.threads == 8
    assert args.entities is None


def test_missing_backend_is_a_configuration_error(monkeypatch):
    monkeypatch.setattr("scripts.run_reindex.settings.INDEX_BACKEND", None)

    assert main(["--entities", "conftest:Company"]) == 2


def test_unknown_entity_class_is_a_configuration_error():
    assert main(["--entities", "conftest:Invoice", "--backend", "conftest:CollectingBackend"]) == 2


@pytest.mark.asyncio
async def test_init_database_creates_job_tables(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path / 'init.db'}"

    await init_database(url)

    engine = create_engine_for(url)
    async with engine.connect() as conn:
        tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
    await engine.dispose()

    assert {"indexing_jobs", "indexing_partitions", "partition_checkpoints"} <= set(tables)
