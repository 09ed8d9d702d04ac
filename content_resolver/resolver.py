"""ContentResolver — the resolution endpoint's service layer.

Per request: denylist check → cache lookup → fallback orchestration →
content classification and caching → response.  Total failure, and any
error while processing a nominally successful upstream response, ends in
the ``FallbackSynthesizer``; no fault reaches the caller.

All shared state (cache, metrics, usage counters) is owned by this object
and injected at construction; the application builds one per process.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import UTC, datetime

from starlette.responses import JSONResponse, Response

from content_resolver.caching.response_cache import CacheEntry, ResponseCache
from content_resolver.core.config import Settings
from content_resolver.core.errors import ContentDecodeError
from content_resolver.fallback import FallbackSynthesizer
from content_resolver.gateway_registry import GatewayRegistry
from content_resolver.models.content import classify, from_payload, to_payload
from content_resolver.models.schemas import StatsResponse
from content_resolver.resilience.fetcher import GatewayFetcher
from content_resolver.resilience.metrics import MetricsTracker, UsageCounters
from content_resolver.resilience.orchestrator import (
    FallbackOrchestrator,
    ResolutionFailure,
    ResolutionSuccess,
)

logger = logging.getLogger(__name__)

CORS_HEADERS: dict[str, str] = {"Access-Control-Allow-Origin": "*"}

PREFLIGHT_HEADERS: dict[str, str] = {
    **CORS_HEADERS,
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "*",
    "Access-Control-Max-Age": "86400",
}

UNKNOWN_GATEWAY = "unknown"


class ContentResolver:
    """Resolves content identifiers to responses.

    Args:
        settings: Application settings.
        registry: Gateway configuration and denylist.
        cache:    Response cache (built from settings if omitted).
        metrics:  Per-gateway metrics (pre-registered for every gateway if omitted).
        usage:    Process-wide usage counters.
        fetcher:  Gateway fetcher (built around ``metrics`` if omitted).
    """

    def __init__(
        self,
        settings: Settings,
        registry: GatewayRegistry,
        *,
        cache: ResponseCache | None = None,
        metrics: MetricsTracker | None = None,
        usage: UsageCounters | None = None,
        fetcher: GatewayFetcher | None = None,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.cache = cache or ResponseCache(
            ttl_seconds=settings.CACHE_TTL_SECONDS,
            shards=settings.CACHE_SHARDS,
        )
        self.metrics = metrics or MetricsTracker(registry.base_urls())
        self.usage = usage or UsageCounters()
        self.fetcher = fetcher or GatewayFetcher(
            self.metrics,
            user_agent=f"{settings.SERVICE_NAME}/{settings.SERVICE_VERSION}",
        )
        self.orchestrator = FallbackOrchestrator(
            registry,
            self.fetcher,
            retry_base_delay=settings.RETRY_BASE_DELAY,
        )
        self.synthesizer = FallbackSynthesizer(
            placeholder_image=settings.PLACEHOLDER_IMAGE_PATH,
            cache_control=settings.fallback_cache_control,
            gateway_urls=registry.base_urls(),
        )
        self._in_flight: dict[str, asyncio.Task] = {}

    # ── Resolution ──────────────────────────────────────────────────

    async def resolve(self, content_id: str, *, base_url: str = "") -> Response:
        """Return the response for an already-normalized *content_id*.

        Args:
            content_id: Normalized identifier (see ``normalize_content_id``).
            base_url:   Request base URL, used for the placeholder redirect.
        """
        start = time.monotonic()

        if self.registry.is_denied(content_id):
            logger.info("Content %s is denylisted; serving fallback", content_id)
            self.usage.record_failed()
            return self.synthesizer.synthesize(
                content_id,
                [],
                "Content identifier is on the denylist",
                base_url=base_url,
                denied=True,
            )

        entry = self.cache.get(content_id)
        if entry is not None:
            logger.debug("Cache hit for %s (served by %s)", content_id, entry.gateway_used)
            return self._render(entry, cache_status="HIT", response_time_ms=entry.resolution_time_ms)

        outcome = await self._resolve_shared(content_id)
        elapsed_ms = (time.monotonic() - start) * 1000

        if isinstance(outcome, ResolutionFailure):
            self.usage.record_failed()
            return self.synthesizer.synthesize(
                content_id,
                outcome.gateways_tried,
                outcome.last_error,
                base_url=base_url,
                elapsed_ms=elapsed_ms,
            )

        if outcome.gateway_used == self.registry.primary.base_url:
            self.usage.record_primary()
        else:
            self.usage.record_fallback()
        return self._render(outcome, cache_status="MISS", response_time_ms=elapsed_ms)

    async def _resolve_shared(self, content_id: str) -> CacheEntry | ResolutionFailure:
        """Resolve on a cache miss, sharing one resolution per id when coalescing."""
        if not self.settings.COALESCE_IN_FLIGHT:
            return await self._resolve_uncached(content_id)

        task = self._in_flight.get(content_id)
        if task is None:
            task = asyncio.ensure_future(self._resolve_uncached(content_id))
            self._in_flight[content_id] = task
            task.add_done_callback(lambda _t, key=content_id: self._in_flight.pop(key, None))
        else:
            logger.debug("Joining in-flight resolution for %s", content_id)
        # A disconnecting caller must not cancel the resolution other callers await
        return await asyncio.shield(task)

    async def _resolve_uncached(self, content_id: str) -> CacheEntry | ResolutionFailure:
        """Run the orchestrator, then classify and cache a successful body."""
        result = await self.orchestrator.resolve(content_id)
        if isinstance(result, ResolutionFailure):
            return result
        try:
            return self._store(content_id, result)
        except Exception as exc:
            logger.exception("Failed to process content %s from %s", content_id, result.gateway.base_url)
            return ResolutionFailure(
                gateways_tried=result.gateways_tried,
                last_error=ContentDecodeError(content_id, repr(exc)),
                attempts=result.attempts,
                elapsed_ms=result.elapsed_ms,
            )

    def _store(self, content_id: str, result: ResolutionSuccess) -> CacheEntry:
        response = result.response
        content, content_type = classify(response.headers.get("content-type"), response.content)
        entry = self.cache.store(
            content_id,
            payload=to_payload(content),
            content_type=content_type,
            gateway_used=result.gateway.base_url,
            resolution_time_ms=result.elapsed_ms,
        )
        logger.info(
            "Resolved %s via %s in %.0fms (%s, %d attempts)",
            content_id,
            result.gateway.base_url,
            result.elapsed_ms,
            type(content).__name__,
            result.attempts,
        )
        return entry

    def _render(self, entry: CacheEntry, *, cache_status: str, response_time_ms: float) -> Response:
        """Render a cache entry; fresh and cached results go through here alike."""
        body = from_payload(entry.payload).render()
        headers = {
            **CORS_HEADERS,
            "Content-Type": entry.content_type,
            "Cache-Control": self.settings.success_cache_control,
            "X-Gateway-Used": entry.gateway_used or UNKNOWN_GATEWAY,
            "X-Response-Time": f"{round(response_time_ms)}ms",
            "X-Cache": cache_status,
        }
        return Response(content=body, status_code=200, headers=headers)

    # ── Diagnostics ─────────────────────────────────────────────────

    def stats(self) -> StatsResponse:
        """Snapshot of gateway metrics, usage counters and cache state."""
        return StatsResponse(
            gateways=self.metrics.snapshot(),
            usage=self.usage.snapshot(),
            cache=self.cache.snapshot(),
            timestamp=datetime.now(UTC).isoformat(),
        )

    def stats_response(self) -> Response:
        return JSONResponse(
            content=self.stats().model_dump(),
            headers={**CORS_HEADERS, "Cache-Control": "no-store"},
        )

    @staticmethod
    def preflight_response() -> Response:
        """Plain cross-origin preflight acknowledgement."""
        return Response(status_code=204, headers=PREFLIGHT_HEADERS)

    async def close(self) -> None:
        """Cancel outstanding shared resolutions and close upstream clients."""
        for task in list(self._in_flight.values()):
            task.cancel()
        self._in_flight.clear()
        await self.fetcher.close()
