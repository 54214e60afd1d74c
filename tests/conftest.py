"""Shared pytest fixtures."""

from __future__ import annotations

import pytest
import structlog

from core.config import AppSettings
from core.services.aggregator import GridSpec, RetentionPolicy, SpatialAggregator

from .fixtures import FakeClock


@pytest.fixture(autouse=True)
def _reset_structlog():
    """CLI tests configure structlog against a captured stream; undo it after each test."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> AppSettings:
    """Settings isolated from any .env file."""
    return AppSettings(_env_file=None)


@pytest.fixture
def aggregator(clock: FakeClock) -> SpatialAggregator:
    """Aggregator with 0.1 degree cells and no retention limits."""
    return SpatialAggregator(
        GridSpec(cell_size_deg=0.1),
        RetentionPolicy(max_age_seconds=None, max_events=None),
        clock=clock,
    )
