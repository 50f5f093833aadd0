"""
Team Aggregator - team-relative fields for one period's batch of records.

Runs over freshly computed, in-memory MetricsRecords before they are
persisted. Never re-runs the metrics calculator and never touches the store.
"""
from typing import List, Sequence

from pulse.schemas.response_schemas import MetricsRecord
from pulse.services.calculations import round_half_up


def aggregate(records: Sequence[MetricsRecord]) -> List[MetricsRecord]:
    """
    Fill team_average_score and percentile_rank on every record.

    Percentile is ((N - rank_index) / N) * 100 with a 0-based rank after a
    stable descending sort on overall score, so the top scorer gets 100 and
    ties keep their input order.

    Returns:
        New records (inputs are not mutated), in input order
    """
    if not records:
        return []

    count = len(records)
    team_average = round_half_up(sum(r.overall_score for r in records) / count)

    ranked = sorted(range(count), key=lambda i: records[i].overall_score, reverse=True)
    percentiles = {}
    for rank_index, record_index in enumerate(ranked):
        percentiles[record_index] = round_half_up((count - rank_index) / count * 100)

    return [
        record.model_copy(update={
            "team_average_score": team_average,
            "percentile_rank": percentiles[i],
        })
        for i, record in enumerate(records)
    ]
