from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from fetch_server.config import Settings
from fetch_server.fetch_tools import Fetcher
from fetch_server.observability import InMemoryMetrics


@pytest.fixture
def make_fetcher() -> Callable[..., Fetcher]:
    """Fetcher gegen einen httpx.MockTransport statt gegen das Netz."""

    def _make(handler: Callable[[httpx.Request], Any], metrics: InMemoryMetrics | None = None, **overrides: Any) -> Fetcher:
        return Fetcher(Settings(**overrides), metrics=metrics, transport=httpx.MockTransport(handler))

    return _make
