"""Shared fixtures — a scriptable fake gateway network and test settings.

``GatewayStub`` stands in for every upstream gateway through a single
``httpx.MockTransport``.  Each gateway base URL gets a script of replies
(the last one repeats); unscripted gateways refuse connections.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from content_resolver.core.config import Settings
from content_resolver.gateway_registry import GatewayRegistry
from content_resolver.resolver import ContentResolver

PRIMARY = "https://primary.test/ipfs"
FALLBACK_A = "https://fallback-a.test/ipfs"
FALLBACK_B = "https://fallback-b.test/ipfs"
ALL_GATEWAYS = [PRIMARY, FALLBACK_A, FALLBACK_B]

Reply = Callable[[httpx.Request], httpx.Response] | Exception


# ── Reply helpers ───────────────────────────────────────────────────────


def ok_json(document: Any, content_type: str = "application/json") -> Reply:
    body = json.dumps(document).encode()
    return lambda request: httpx.Response(200, content=body, headers={"Content-Type": content_type})


def ok_bytes(data: bytes, content_type: str) -> Reply:
    return lambda request: httpx.Response(200, content=data, headers={"Content-Type": content_type})


def ok_text(text: str, content_type: str = "text/plain") -> Reply:
    return lambda request: httpx.Response(200, content=text.encode(), headers={"Content-Type": content_type})


def status(code: int) -> Reply:
    return lambda request: httpx.Response(code, text="upstream error")


def refused() -> Reply:
    return httpx.ConnectError("Connection refused")


def timed_out() -> Reply:
    return httpx.ReadTimeout("read timed out")


# ── Fake gateway network ────────────────────────────────────────────────


class GatewayStub:
    """Records every upstream request and answers from per-gateway scripts."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self._scripts: dict[str, list[Reply]] = {}

    def script(self, base_url: str, *replies: Reply) -> "GatewayStub":
        self._scripts[base_url] = list(replies)
        return self

    async def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls.append(url)
        for base_url, replies in self._scripts.items():
            if url.startswith(base_url + "/"):
                reply = replies.pop(0) if len(replies) > 1 else replies[0]
                if isinstance(reply, Exception):
                    raise reply
                return reply(request)
        raise httpx.ConnectError("Connection refused")

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def count(self, base_url: str) -> int:
        return sum(1 for url in self.calls if url.startswith(base_url + "/"))


def gateway_entries(max_retries: int = 3, timeout_ms: int = 1000) -> list[dict[str, Any]]:
    """Raw registry entries: one primary and two ordered fallbacks."""
    return [
        {"base_url": PRIMARY, "primary": True, "timeout_ms": timeout_ms, "max_retries": max_retries},
        {"base_url": FALLBACK_A, "timeout_ms": timeout_ms, "priority": 1},
        {"base_url": FALLBACK_B, "timeout_ms": timeout_ms, "priority": 2},
    ]


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Fast settings: no backoff delay, no access log file."""
    return Settings(
        RETRY_BASE_DELAY=0.0,
        ACCESS_LOG_ENABLED=False,
        ACCESS_LOG_PATH=str(tmp_path / "access.jsonl"),
        GATEWAYS_CONFIG_PATH=str(tmp_path / "missing.yaml"),
    )


@pytest.fixture
def registry() -> GatewayRegistry:
    return GatewayRegistry(gateway_entries(), denylist=["QmKnownBad"])


@pytest.fixture
def stub() -> GatewayStub:
    return GatewayStub()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def resolver(settings, registry, stub):
    """ContentResolver wired to the fake gateway network."""
    resolver = ContentResolver(settings, registry)
    resolver.fetcher._client = stub.client()
    yield resolver
    await resolver.close()
