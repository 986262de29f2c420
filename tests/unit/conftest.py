"""Unit test fixtures: auto-clear caches and a seeded service graph."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from sevasetu_service.config import clear_settings_cache
from sevasetu_service.core.state import reset_app_state
from tests.helpers import ServiceGraph, build_graph, seed

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _clear_caches() -> Iterator[None]:
    """Clear settings cache and app state between tests."""
    clear_settings_cache()
    reset_app_state()
    yield
    clear_settings_cache()
    reset_app_state()


@pytest.fixture
async def graph(tmp_path: Path) -> AsyncIterator[ServiceGraph]:
    """A seeded service graph on a temp database."""
    services = build_graph(tmp_path)
    await seed(services)
    yield services
    services.database.close()
