from __future__ import annotations

import heapq
from typing import Sequence

from carbonwatch.engine.merge import MergedRecord
from carbonwatch.severity import severity_rank

PRIMARY_FIELD = "co2_density"


def _rank_key(record: MergedRecord, primary_field: str) -> tuple[int, float]:
    # Missing or unparsable index values compare as zero; aggregation never sees this.
    value = record.number(primary_field)
    return (-severity_rank(record.severity), -(value if value is not None else 0.0))


def rank(
    records: Sequence[MergedRecord],
    primary_field: str = PRIMARY_FIELD,
) -> list[MergedRecord]:
    """Highest severity first, then highest primary value; stable on ties."""
    return sorted(records, key=lambda record: _rank_key(record, primary_field))


def top_n(
    records: Sequence[MergedRecord],
    n: int,
    primary_field: str = PRIMARY_FIELD,
) -> list[MergedRecord]:
    if n <= 0:
        return []
    # nsmallest keeps input order among equal keys, same as sorted()[:n].
    return heapq.nsmallest(n, records, key=lambda record: _rank_key(record, primary_field))
