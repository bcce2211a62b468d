from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx
from mcp.server.fastmcp import FastMCP

from .config import Settings, load_settings
from .fetch_tools import Fetcher, register_fetch_tools
from .observability import LOGGER_NAME, InMemoryMetrics, setup_logger


logger = logging.getLogger(LOGGER_NAME)


@dataclass
class AppContext:
    settings: Settings
    metrics: InMemoryMetrics


def build_lifespan(settings: Settings, metrics: InMemoryMetrics) -> Callable[[Any], Any]:
    """Lifespan pro Session: Start loggen, beim Ende den Metrics-Snapshot."""

    @asynccontextmanager
    async def lifespan(server: Any) -> AsyncIterator[AppContext]:
        logger.info(f"{settings.name} {settings.version} session started (transport={settings.transport})")
        try:
            yield AppContext(settings=settings, metrics=metrics)
        finally:
            logger.info("tool metrics", extra={"data": metrics.snapshot()})

    return lifespan


def set_server_version(mcp: FastMCP, version: str) -> bool:
    """
    serverInfo.version setzen.

    FastMCP nimmt keine Version entgegen, sie hängt am Low-Level-Server.
    Fehlt das Attribut (andere SDK-Version), bleibt die SDK-Version stehen.
    """
    lowlevel = getattr(mcp, "_mcp_server", None)
    if lowlevel is None or not hasattr(lowlevel, "version"):
        logger.debug("low-level server not reachable, keeping SDK default version")
        return False
    lowlevel.version = version
    return True


def create_server(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastMCP:
    """Build the FastMCP server with the single fetch tool registered."""
    settings = settings or load_settings()
    setup_logger(settings.log_level)
    metrics = InMemoryMetrics()

    mcp = FastMCP(
        settings.name,
        lifespan=build_lifespan(settings, metrics),
        host=settings.host,
        port=settings.port,
    )
    set_server_version(mcp, settings.version)

    register_fetch_tools(mcp, Fetcher(settings, metrics=metrics, transport=transport))
    return mcp
