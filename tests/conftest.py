from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import pytest

from layerfix.layers import LayerRegistry, discover_layers
from tests._fixtures.source_tree import SourceTreeBuilder


class FakeClock:
    """Manually advanced monotonic clock for cache expiry tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def source_tree(tmp_path: Path) -> SourceTreeBuilder:
    """Provide a reusable source tree builder rooted at the pytest tmp_path."""
    return SourceTreeBuilder(tmp_path)


@pytest.fixture
def registry() -> LayerRegistry:
    return discover_layers()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def layerfix_logs(caplog: pytest.LogCaptureFixture) -> Iterator[pytest.LogCaptureFixture]:
    """caplog wired to the layerfix logger, which stops propagating once configured."""
    logger = logging.getLogger("layerfix")
    previous = logger.propagate
    logger.propagate = True
    caplog.set_level(logging.DEBUG, logger="layerfix")
    try:
        yield caplog
    finally:
        logger.propagate = previous
