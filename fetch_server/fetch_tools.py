from __future__ import annotations

import asyncio
import base64
import json
import logging
import re
import time
from typing import Annotated, Any, Dict, List, Optional, Union

import httpx
from mcp.server.fastmcp import FastMCP
from mcp.types import ImageContent, TextContent
from pydantic import Field

from .config import Settings
from .observability import LOGGER_NAME, InMemoryMetrics
from .security import BlockedHostChecker

ContentItem = Union[TextContent, ImageContent]

TOOL_NAME = "fetch"

# RFC 7230 token
_METHOD_RE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")

logger = logging.getLogger(LOGGER_NAME)


class FetchError(Exception):
    """Base exception for all fetch tool errors."""
    pass


class HeaderParseError(FetchError):
    """The headers argument is not a JSON object of strings."""
    pass


class RequestBuildError(FetchError):
    """Method or URL could not be turned into a request."""
    pass


class UpstreamError(FetchError):
    """Transport failure, blocked target or timeout while fetching."""
    pass


class BodyDecodeError(FetchError):
    """Non-image body that is not valid UTF-8."""
    pass


def parse_headers(raw: str) -> Dict[str, str]:
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise HeaderParseError(f"error parsing headers: {exc}") from exc
    # JSON null heißt: keine Header
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise HeaderParseError(f"error parsing headers: expected a JSON object, got {type(data).__name__}")
    for key, value in data.items():
        if not isinstance(value, str):
            raise HeaderParseError(f"error parsing headers: value for {key!r} must be a string")
    return data


def canonical_header_key(name: str) -> str:
    """content-type -> Content-Type"""
    return "-".join(part[:1].upper() + part[1:].lower() for part in name.split("-"))


def response_metadata(response: httpx.Response) -> Dict[str, Any]:
    headers: Dict[str, List[str]] = {}
    for name, value in response.headers.multi_items():
        headers.setdefault(canonical_header_key(name), []).append(value)
    return {
        "code": response.status_code,
        "headers": headers,
        "http_version": response.http_version,
        "status": f"{response.status_code} {response.reason_phrase}".rstrip(),
    }


def shape_response(response: httpx.Response) -> List[ContentItem]:
    """
    Wandelt die Response in genau zwei Content-Items um.

    1. TextContent mit kompaktem JSON der Metadaten (Keys sortiert)
    2. ImageContent (base64) bei Content-Type image/*, sonst der Body als
       striktes UTF-8
    """
    meta = json.dumps(response_metadata(response), sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    items: List[ContentItem] = [TextContent(type="text", text=meta)]

    content_types = response.headers.get_list("content-type")
    content_type = content_types[0] if content_types else ""
    body = response.content
    if content_type.startswith("image/"):
        items.append(ImageContent(
            type="image",
            data=base64.b64encode(body).decode("ascii"),
            mimeType=content_type,
        ))
    else:
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise BodyDecodeError("response body is not valid utf-8") from exc
        items.append(TextContent(type="text", text=text))
    return items


def _describe(exc: Exception) -> str:
    return str(exc) or type(exc).__name__


class Fetcher:
    """Performs one scoped HTTP call per invocation."""

    def __init__(
        self,
        settings: Settings,
        metrics: Optional[InMemoryMetrics] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self.metrics = metrics
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        event_hooks: Dict[str, list] = {}
        if self.settings.block_private_hosts:
            event_hooks["request"] = [BlockedHostChecker()]
        default_headers: Dict[str, str] = {}
        if self.settings.user_agent:
            default_headers["User-Agent"] = self.settings.user_agent
        return httpx.AsyncClient(
            transport=self._transport,
            headers=default_headers,
            follow_redirects=True,
            max_redirects=self.settings.max_redirects,
            timeout=httpx.Timeout(max(timeout, 0.0)),
            event_hooks=event_hooks,
        )

    @staticmethod
    def _build_request(client: httpx.AsyncClient, method: str, url: str, headers: Dict[str, str]) -> httpx.Request:
        if not _METHOD_RE.match(method):
            raise RequestBuildError(f"error creating request: invalid method {method!r}")
        try:
            return client.build_request(method, url, headers=headers)
        except (httpx.InvalidURL, ValueError, TypeError) as exc:
            raise RequestBuildError(f"error creating request: {_describe(exc)}") from exc

    async def fetch(
        self,
        url: str,
        headers: Optional[str] = "{}",
        method: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> List[ContentItem]:
        timeout = self.settings.default_timeout if timeout is None else float(timeout)
        method = method or self.settings.default_method
        start = time.perf_counter()
        status_code: Optional[int] = None
        failed = True
        try:
            request_headers = parse_headers(headers if headers is not None else "{}")
            async with self._client(timeout) as client:
                request = self._build_request(client, method, url, request_headers)
                if timeout <= 0:
                    raise UpstreamError(f"error fetching URL: timed out after {timeout:g}s")
                try:
                    # Deadline gilt für den ganzen Call inkl. Redirects und Body
                    response = await asyncio.wait_for(client.send(request), timeout=timeout)
                except asyncio.TimeoutError as exc:
                    raise UpstreamError(f"error fetching URL: timed out after {timeout:g}s") from exc
                except httpx.HTTPError as exc:
                    raise UpstreamError(f"error fetching URL: {_describe(exc)}") from exc
            status_code = response.status_code
            items = shape_response(response)
            failed = False
            return items
        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            if self.metrics is not None:
                self.metrics.record(TOOL_NAME, duration_ms, failed, status_code)
            extra = {
                "tool": TOOL_NAME,
                "url": url,
                "method": method,
                "status_code": status_code if status_code is not None else "",
                "duration_ms": f"{duration_ms:.1f}",
            }
            if failed:
                logger.warning("fetch failed", extra=extra)
            else:
                logger.info("fetch ok", extra=extra)


def register_fetch_tools(mcp: FastMCP, fetcher: Fetcher) -> None:
    settings = fetcher.settings

    @mcp.tool(name=TOOL_NAME, description="Fetches the content of a URL", structured_output=False)
    async def fetch(
        url: Annotated[str, Field(description="The URL to fetch")],
        headers: Annotated[str, Field(description="JSON encoded object of headers to send")] = "{}",
        method: Annotated[str, Field(description="The HTTP method to use")] = settings.default_method,
        timeout: Annotated[float, Field(description="The timeout in seconds")] = settings.default_timeout,
    ) -> List[ContentItem]:
        return await fetcher.fetch(url, headers=headers, method=method, timeout=timeout)
