"""Tests for FallbackOrchestrator — retry bounds, backoff, fallback order."""

from unittest.mock import AsyncMock, call, patch

import httpx
import pytest

from content_resolver.core.errors import GatewayStatusError, GatewayTimeoutError
from content_resolver.gateway_registry import GatewayRegistry
from content_resolver.resilience.fetcher import GatewayFetcher
from content_resolver.resilience.metrics import MetricsTracker
from content_resolver.resilience.orchestrator import (
    FallbackOrchestrator,
    ResolutionFailure,
    ResolutionSuccess,
)
from tests.conftest import (
    ALL_GATEWAYS,
    FALLBACK_A,
    FALLBACK_B,
    PRIMARY,
    gateway_entries,
    ok_json,
    refused,
    status,
    timed_out,
)


def _orchestrator(stub, max_retries=3, retry_base_delay=0.0):
    registry = GatewayRegistry(gateway_entries(max_retries=max_retries))
    metrics = MetricsTracker(registry.base_urls())
    fetcher = GatewayFetcher(metrics)
    fetcher._client = stub.client()
    return FallbackOrchestrator(registry, fetcher, retry_base_delay=retry_base_delay), metrics


class TestPrimary:
    async def test_primary_success_touches_no_fallback(self, stub):
        stub.script(PRIMARY, ok_json({"name": "Kaiju #1"}))
        orchestrator, metrics = _orchestrator(stub)

        result = await orchestrator.resolve("abc123")

        assert isinstance(result, ResolutionSuccess)
        assert result.served_by_primary
        assert result.attempts == 1
        assert result.gateways_tried == [PRIMARY]
        assert stub.count(FALLBACK_A) == 0
        assert stub.count(FALLBACK_B) == 0
        assert metrics.get(PRIMARY).success_count == 1

    async def test_primary_recovers_on_retry(self, stub):
        stub.script(PRIMARY, status(502), ok_json({"ok": True}))
        orchestrator, metrics = _orchestrator(stub)

        result = await orchestrator.resolve("abc123")

        assert isinstance(result, ResolutionSuccess)
        assert result.served_by_primary
        assert result.attempts == 2
        assert metrics.get(PRIMARY).failure_count == 1
        assert metrics.get(PRIMARY).success_count == 1

    @pytest.mark.parametrize("max_retries", [1, 2, 3, 5])
    async def test_primary_attempted_exactly_max_retries_times(self, stub, max_retries):
        stub.script(PRIMARY, status(503))
        stub.script(FALLBACK_A, ok_json({"ok": True}))
        orchestrator, _ = _orchestrator(stub, max_retries=max_retries)

        await orchestrator.resolve("abc123")

        assert stub.count(PRIMARY) == max_retries

    async def test_timeout_abandons_primary_without_retry(self, stub):
        stub.script(PRIMARY, timed_out())
        stub.script(FALLBACK_A, ok_json({"ok": True}))
        orchestrator, _ = _orchestrator(stub, max_retries=3)

        result = await orchestrator.resolve("abc123")

        assert stub.count(PRIMARY) == 1
        assert isinstance(result, ResolutionSuccess)
        assert result.gateway.base_url == FALLBACK_A

    async def test_backoff_is_linear_in_attempt_number(self, stub):
        stub.script(PRIMARY, refused())
        stub.script(FALLBACK_A, ok_json({"ok": True}))
        orchestrator, _ = _orchestrator(stub, max_retries=3, retry_base_delay=1.5)

        with patch(
            "content_resolver.resilience.orchestrator.asyncio.sleep", new_callable=AsyncMock
        ) as sleep:
            await orchestrator.resolve("abc123")

        # No sleep after the final primary attempt, none between fallbacks
        assert sleep.await_args_list == [call(1.5), call(3.0)]


class TestFallbacks:
    async def test_exhausted_primary_moves_to_first_fallback(self, stub):
        stub.script(PRIMARY, status(500))
        stub.script(FALLBACK_A, ok_json({"name": "Kaiju #2"}))
        orchestrator, _ = _orchestrator(stub, max_retries=2)

        result = await orchestrator.resolve("abc123")

        assert isinstance(result, ResolutionSuccess)
        assert not result.served_by_primary
        assert result.gateway.base_url == FALLBACK_A
        assert result.attempts == 3
        assert result.gateways_tried == [PRIMARY, FALLBACK_A]
        assert stub.count(FALLBACK_B) == 0

    async def test_fallbacks_tried_in_priority_order_once_each(self, stub):
        stub.script(PRIMARY, status(500))
        stub.script(FALLBACK_A, status(404))
        stub.script(FALLBACK_B, ok_json({"ok": True}))
        orchestrator, _ = _orchestrator(stub, max_retries=1)

        result = await orchestrator.resolve("abc123")

        assert result.gateway.base_url == FALLBACK_B
        assert stub.count(FALLBACK_A) == 1
        hosts = [httpx.URL(url).host for url in stub.calls]
        assert hosts == ["primary.test", "fallback-a.test", "fallback-b.test"]


class TestTotalFailure:
    async def test_failure_is_returned_not_raised(self, stub):
        orchestrator, _ = _orchestrator(stub, max_retries=2)

        result = await orchestrator.resolve("QmXYZ")

        assert isinstance(result, ResolutionFailure)
        assert result.gateways_tried == ALL_GATEWAYS
        assert result.attempts == 4

    async def test_gateways_tried_has_no_repeats(self, stub):
        stub.script(PRIMARY, status(500))
        orchestrator, _ = _orchestrator(stub, max_retries=3)

        result = await orchestrator.resolve("QmXYZ")

        assert result.gateways_tried == ALL_GATEWAYS
        assert len(set(result.gateways_tried)) == len(result.gateways_tried)

    async def test_last_error_is_final_gateway_error(self, stub):
        stub.script(PRIMARY, status(500))
        stub.script(FALLBACK_A, status(502))
        stub.script(FALLBACK_B, timed_out())
        orchestrator, _ = _orchestrator(stub, max_retries=1)

        result = await orchestrator.resolve("QmXYZ")

        assert isinstance(result.last_error, GatewayTimeoutError)
        assert result.last_error.gateway_url == FALLBACK_B

    async def test_every_attempt_updates_metrics(self, stub):
        stub.script(PRIMARY, status(500))
        stub.script(FALLBACK_A, status(500))
        stub.script(FALLBACK_B, status(500))
        orchestrator, metrics = _orchestrator(stub, max_retries=3)

        result = await orchestrator.resolve("QmXYZ")

        snap = metrics.snapshot()
        assert sum(m["success_count"] + m["failure_count"] for m in snap.values()) == result.attempts == 5
        assert metrics.get(PRIMARY).failure_count == 3
        assert isinstance(result.last_error, GatewayStatusError)
