"""
Unit tests for unit splitting, grouping and boundary cutting
"""

import pytest
from indexing.planner import PartitionUnit, cut_boundaries, group_units, split_units
from schemas.plan import PartitionBoundary


async def ids(values):
    for value in values:
        yield value


class TestSplitUnits:
    """Greedy largest-first splitting"""

    def test_reaches_target_count(self):
        units = split_units([PartitionUnit("Employee", 4500), PartitionUnit("Company", 5)], 8)

        assert len(units) == 8
        assert sum(u.row_count for u in units) == 4505

    def test_splits_largest_first(self):
        units = split_units([PartitionUnit("Employee", 4500), PartitionUnit("Company", 5)], 4)

        # Employee is split three times before Company is ever touched
        assert [u.entity_name for u in units].count("Employee") == 3
        assert [u.entity_name for u in units].count("Company") == 1

    def test_halves_differ_by_at_most_one(self):
        low, high = PartitionUnit("Employee", 7).split()

        assert (low.row_count, high.row_count) == (3, 4)

    def test_stops_when_units_too_small(self):
        units = split_units([PartitionUnit("Company", 1)], 4)

        assert units == [PartitionUnit("Company", 1)]

    def test_never_splits_below_one_row(self):
        units = split_units([PartitionUnit("Company", 3)], 10)

        assert len(units) == 3
        assert all(u.row_count == 1 for u in units)

    def test_empty_entity_is_kept(self):
        units = split_units([PartitionUnit("Message", 0), PartitionUnit("Employee", 10)], 4)

        assert PartitionUnit("Message", 0) in units
        assert sum(1 for u in units if u.entity_name == "Employee") == 3

    def test_deterministic(self):
        source = [PartitionUnit("B", 100), PartitionUnit("A", 100)]

        assert split_units(source, 5) == split_units(list(reversed(source)), 5)


class TestGroupUnits:
    def test_groups_by_name_in_order(self):
        units = [
            PartitionUnit("Employee", 10),
            PartitionUnit("Company", 5),
            PartitionUnit("Employee", 11),
        ]

        assert group_units(units) == [("Company", 1), ("Employee", 2)]

    def test_empty(self):
        assert group_units([]) == []


class TestCutBoundaries:
    """Swift-boundary cutting over an ordered identifier stream"""

    @pytest.mark.asyncio
    async def test_cuts_every_capacity_th_identifier(self):
        boundaries = await cut_boundaries(ids(range(1, 11)), cuts=2, capacity=3)

        assert boundaries == [
            PartitionBoundary(lower_bound=None, upper_bound=3),
            PartitionBoundary(lower_bound=3, upper_bound=6),
            PartitionBoundary(lower_bound=6, upper_bound=None),
        ]

    @pytest.mark.asyncio
    async def test_stops_reading_after_last_cut(self):
        consumed = []

        async def tracked():
            for value in range(1, 100):
                consumed.append(value)
                yield value

        await cut_boundaries(tracked(), cuts=2, capacity=5)

        assert consumed[-1] == 10

    @pytest.mark.asyncio
    async def test_zero_cuts_is_unbounded(self):
        boundaries = await cut_boundaries(ids(range(1, 11)), cuts=0, capacity=10)

        assert boundaries == [PartitionBoundary()]
        assert boundaries[0].is_unbounded

    @pytest.mark.asyncio
    async def test_early_end_keeps_found_cuts(self):
        boundaries = await cut_boundaries(ids([1, 2, 3, 4]), cuts=3, capacity=2)

        assert [str(b) for b in boundaries] == ["[null, 2[", "[2, 4[", "[4, null["]

    @pytest.mark.asyncio
    async def test_sparse_identifiers(self):
        values = [10, 20, 35, 70, 71, 90, 200]
        boundaries = await cut_boundaries(ids(values), cuts=2, capacity=3)

        assert [b.upper_bound for b in boundaries] == [35, 90, None]

    @pytest.mark.asyncio
    async def test_every_identifier_in_exactly_one_boundary(self):
        values = list(range(3, 3000, 7))
        for cuts, capacity in [(1, 200), (4, 85), (9, 40), (3, 1)]:
            boundaries = await cut_boundaries(ids(values), cuts=cuts, capacity=capacity)

            assert len(boundaries) == cuts + 1
            for value in values:
                assert sum(1 for b in boundaries if b.contains(value)) == 1

    @pytest.mark.asyncio
    async def test_string_identifiers(self):
        values = ["a", "b", "c", "d", "e"]
        boundaries = await cut_boundaries(ids(values), cuts=1, capacity=2)

        assert boundaries[0].upper_bound == "b"
        assert boundaries[1].contains("e")
