"""
Unit tests for the team aggregation pass.
"""
from datetime import date

from pulse.schemas.response_schemas import MetricsRecord
from pulse.services.team_aggregator import aggregate


def record(person_id: str, overall: int) -> MetricsRecord:
    return MetricsRecord(
        person_id=person_id,
        person_name=person_id.capitalize(),
        workspace_id="default",
        period="week",
        start_date=date(2026, 10, 19),
        end_date=date(2026, 10, 25),
        overall_score=overall,
    )


class TestAggregate:

    def test_empty_batch(self):
        assert aggregate([]) == []

    def test_average_and_percentiles(self):
        records = [record("alice", 80), record("bob", 60), record("carol", 90)]

        result = aggregate(records)

        assert [r.person_id for r in result] == ["alice", "bob", "carol"]
        assert {r.team_average_score for r in result} == {77}
        assert [r.percentile_rank for r in result] == [67, 33, 100]

    def test_single_member_is_top(self):
        [only] = aggregate([record("alice", 42)])
        assert only.team_average_score == 42
        assert only.percentile_rank == 100

    def test_ties_keep_input_order(self):
        result = aggregate([record("alice", 70), record("bob", 70)])
        assert [r.percentile_rank for r in result] == [100, 50]

    def test_percentiles_stay_in_bounds(self):
        records = [record(f"p{i}", score) for i, score in enumerate([5, 99, 40, 40, 73, 0, 100])]
        for r in aggregate(records):
            assert 0 < r.percentile_rank <= 100

    def test_inputs_are_not_mutated(self):
        records = [record("alice", 80), record("bob", 60)]
        aggregate(records)
        assert records[0].team_average_score is None
        assert records[0].percentile_rank is None
