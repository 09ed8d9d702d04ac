"""Access logging — one JSON line per resolution request.

Provides ``AccessLogEntry`` with JSON serialization and
``AccessLogMiddleware``, which appends an entry for every non-health
request to a JSONL file and mirrors a one-line summary to the
``content_resolver.access`` logger.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiofiles
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

_access_logger = logging.getLogger("content_resolver.access")

# Paths excluded from access logging
_EXCLUDED_PATHS: set[str] = {"/health", "/health/"}


@dataclass
class AccessLogEntry:
    """Structured record of one request."""

    timestamp: str = ""
    request_id: str = ""
    method: str = ""
    path: str = ""
    source_ip: str = ""
    status_code: int = 0
    latency_ms: float = 0.0
    gateway_used: str = ""
    cache_status: str = ""

    def to_json(self) -> str:
        """Serialize to a single-line JSON string (JSONL-safe)."""
        return json.dumps(asdict(self), separators=(",", ":"), default=str)


def create_access_entry(request: Request, response: Response, latency_ms: float) -> AccessLogEntry:
    """Build an ``AccessLogEntry`` from a finished request/response pair."""
    return AccessLogEntry(
        timestamp=datetime.now(UTC).isoformat(),
        request_id=getattr(request.state, "request_id", "") or response.headers.get("x-request-id", ""),
        method=request.method,
        path=request.url.path,
        source_ip=request.client.host if request.client else "unknown",
        status_code=response.status_code,
        latency_ms=round(latency_ms, 2),
        gateway_used=response.headers.get("x-gateway-used", ""),
        cache_status=response.headers.get("x-cache", ""),
    )


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Appends a JSONL access entry for every non-health request."""

    def __init__(self, app: Any, log_path: str = "logs/access.jsonl") -> None:
        super().__init__(app)
        self.log_path = log_path

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        if request.url.path in _EXCLUDED_PATHS:
            return await call_next(request)

        start = time.monotonic()
        response = await call_next(request)
        latency_ms = (time.monotonic() - start) * 1000

        entry = create_access_entry(request, response, latency_ms)
        _access_logger.info(
            "%s %s %d %.1fms gateway=%s cache=%s",
            entry.method,
            entry.path,
            entry.status_code,
            entry.latency_ms,
            entry.gateway_used or "-",
            entry.cache_status or "-",
        )

        try:
            path = Path(self.log_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "a") as f:
                await f.write(entry.to_json() + "\n")
        except OSError:
            _access_logger.warning("Could not write access log to %s", self.log_path)

        return response
