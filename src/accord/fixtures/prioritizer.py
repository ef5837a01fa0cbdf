"""
Fixture ordering.

The mock engine always consumes fixtures in this order and serves the first
one that applies to an operation.
"""

from __future__ import annotations

from typing import Iterable

from accord.fixtures.models import Fixture, FixtureStatus

STATUS_RANK = {
    FixtureStatus.APPROVED: 0,
    FixtureStatus.PENDING: 1,
    FixtureStatus.REJECTED: 2,
}


def _sort_key(fixture: Fixture) -> tuple[int, int, float]:
    # Negated timestamp puts the most recent first
    return (
        STATUS_RANK[fixture.status],
        fixture.priority,
        -fixture.created_at.timestamp(),
    )


def prioritize(fixtures: Iterable[Fixture]) -> list[Fixture]:
    """
    Order fixtures: approved, pending, rejected; then lower priority value;
    then most recently created. The sort is stable.
    """
    return sorted(fixtures, key=_sort_key)
