"""
Fixtures: recorded or authored example interactions served by the mock.
"""

from accord.fixtures.hashing import fixture_hash, interaction_hash, normalize_for_hashing
from accord.fixtures.local import convert_mock_data_to_fixtures
from accord.fixtures.models import (
    Fixture,
    FixtureCreation,
    FixtureData,
    FixtureProposal,
    FixtureSource,
    FixtureStatus,
)
from accord.fixtures.prioritizer import prioritize

__all__ = [
    "Fixture",
    "FixtureCreation",
    "FixtureData",
    "FixtureProposal",
    "FixtureSource",
    "FixtureStatus",
    "convert_mock_data_to_fixtures",
    "fixture_hash",
    "interaction_hash",
    "normalize_for_hashing",
    "prioritize",
]
