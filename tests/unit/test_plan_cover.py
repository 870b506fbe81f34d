"""
Plan properties over random row counts, partitions and threads
"""

import random
import pytest
from unittest.mock import AsyncMock, MagicMock
from indexing.planner import PartitionPlanner


class FakeIdentifiers:
    """Stands in for an async scalar stream result"""

    def __init__(self, ids):
        self._ids = iter(ids)
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        try:
            return next(self._ids)
        except StopIteration:
            raise StopAsyncIteration

    async def close(self):
        self.closed = True


class ScanQuery:
    def __init__(self, entity_name):
        self.entity_name = entity_name

    def execution_options(self, **options):
        return self


def make_planner(identifiers):
    catalog = MagicMock()
    catalog.identifier_field.return_value = "id"
    catalog.row_count = AsyncMock(side_effect=lambda db, name: len(identifiers[name]))
    catalog.ordered_scan.side_effect = lambda name, ids_only=False: ScanQuery(name)

    streams = []

    def stream(query):
        streams.append(FakeIdentifiers(identifiers[query.entity_name]))
        return streams[-1]

    db = MagicMock()
    db.stream_scalars = AsyncMock(side_effect=stream)
    return PartitionPlanner(catalog, db), streams


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", range(20))
async def test_random_plans_cover_every_row_once(seed):
    rng = random.Random(seed)
    identifiers = {
        name: sorted(rng.sample(range(1, 100_000), rng.randint(0, 400)))
        for name in ("Company", "Employee", "Message")[:rng.randint(1, 3)]
    }
    partitions, threads = rng.randint(1, 4), rng.randint(1, 6)
    planner, streams = make_planner(identifiers)

    plan = await planner.plan(list(identifiers), partitions, threads)

    for name, ids in identifiers.items():
        owned = plan.for_entity(name)
        assert owned, f"{name} has no partition"
        for identifier in ids:
            assert sum(1 for p in owned if p.boundary.contains(identifier)) == 1
        if not ids:
            assert len(owned) == 1 and owned[0].boundary.is_unbounded

    assert all(s.closed for s in streams)


@pytest.mark.asyncio
@pytest.mark.parametrize("partitions,threads", [(1, 1), (1, 4), (2, 3), (4, 4)])
async def test_plan_length_with_enough_rows(partitions, threads):
    identifiers = {"Company": list(range(1, 301)), "Employee": list(range(1, 1001, 2))}
    planner, _ = make_planner(identifiers)

    plan = await planner.plan(["Company", "Employee"], partitions, threads)

    assert len(plan) == partitions * threads + 2


@pytest.mark.asyncio
async def test_same_input_same_plan():
    identifiers = {"Company": list(range(1, 301)), "Employee": list(range(1, 301))}

    first, _ = make_planner(identifiers)
    second, _ = make_planner(identifiers)

    assert await first.plan(["Company", "Employee"], 3, 3) == await second.plan(["Company", "Employee"], 3, 3)
