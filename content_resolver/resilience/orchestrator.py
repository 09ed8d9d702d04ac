"""FallbackOrchestrator — primary-with-retries, then sequential fallbacks.

Phase A attempts the primary gateway up to ``max_retries`` times with a
linear backoff (``retry_base_delay × attempt``).  A timeout ends Phase A
at once.  Phase B walks the fallback gateways in priority order, one
attempt each.  Gateways are never raced: at most one outbound request is
in flight per resolution.

Total failure is returned as a ``ResolutionFailure`` value, never raised.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

import httpx

from content_resolver.core.errors import GatewayError
from content_resolver.gateway_registry import GatewayConfig, GatewayRegistry
from content_resolver.resilience.fetcher import GatewayFetcher

logger = logging.getLogger(__name__)


# ── Results ────────────────────────────────────────────────────────────


@dataclass
class ResolutionSuccess:
    """A gateway returned the content.

    Attributes:
        response:       Upstream response (2xx, body buffered).
        gateway:        Gateway that served it.
        attempts:       Total attempts made across all gateways.
        elapsed_ms:     Wall time for the whole resolution.
        gateways_tried: Base URLs attempted, in order, ending with ``gateway``.
    """

    response: httpx.Response
    gateway: GatewayConfig
    attempts: int
    elapsed_ms: float
    gateways_tried: list[str] = field(default_factory=list)

    @property
    def served_by_primary(self) -> bool:
        return self.gateway.is_primary


@dataclass
class ResolutionFailure:
    """Every gateway was exhausted.

    Attributes:
        gateways_tried: Base URLs attempted, in order, without repeats.
        last_error:     The final error (a gateway error, or a processing
                        error raised after a nominal success).
        attempts:       Total attempts made across all gateways.
        elapsed_ms:     Wall time for the whole resolution.
    """

    gateways_tried: list[str] = field(default_factory=list)
    last_error: Exception | None = None
    attempts: int = 0
    elapsed_ms: float = 0.0


ResolutionResult = ResolutionSuccess | ResolutionFailure


# ── Orchestrator ───────────────────────────────────────────────────────


class FallbackOrchestrator:
    """Resolves a content identifier against the registry's gateways.

    Args:
        registry:         Ordered gateway configuration.
        fetcher:          Performs single bounded attempts.
        retry_base_delay: Seconds of backoff per primary attempt number.
    """

    def __init__(
        self,
        registry: GatewayRegistry,
        fetcher: GatewayFetcher,
        retry_base_delay: float = 1.0,
    ) -> None:
        self.registry = registry
        self.fetcher = fetcher
        self.retry_base_delay = retry_base_delay

    async def _retry_delay(self, attempt: int, attempts: int, label: str, reason: str) -> None:
        """Log a warning and sleep for the linear backoff."""
        delay = self.retry_base_delay * attempt
        logger.warning(
            "%s for %s (attempt %d/%d), retrying in %.1fs",
            reason,
            label,
            attempt,
            attempts,
            delay,
        )
        await asyncio.sleep(delay)

    async def resolve(self, content_id: str) -> ResolutionResult:
        """Try the primary, then each fallback, until one succeeds."""
        start = time.monotonic()
        tried: list[str] = []
        attempts = 0
        last_error: GatewayError | None = None

        # Phase A: primary with bounded retries
        primary = self.registry.primary
        tried.append(primary.base_url)
        for attempt in range(1, primary.max_retries + 1):
            attempts += 1
            try:
                response = await self.fetcher.fetch(content_id, primary)
            except GatewayError as exc:
                last_error = exc
                if not exc.retryable:
                    logger.warning("%s; abandoning primary for %s", exc, content_id)
                    break
                if attempt < primary.max_retries:
                    await self._retry_delay(attempt, primary.max_retries, primary.base_url, str(exc))
                    continue
                logger.warning("%s; primary exhausted after %d attempts for %s", exc, attempt, content_id)
                break
            return ResolutionSuccess(response, primary, attempts, self._elapsed(start), tried)

        # Phase B: fallbacks, one attempt each
        for gateway in self.registry.fallbacks:
            tried.append(gateway.base_url)
            attempts += 1
            try:
                response = await self.fetcher.fetch(content_id, gateway)
            except GatewayError as exc:
                last_error = exc
                logger.warning("Fallback failed for %s: %s", content_id, exc)
                continue
            logger.info("Resolved %s via fallback %s", content_id, gateway.base_url)
            return ResolutionSuccess(response, gateway, attempts, self._elapsed(start), tried)

        logger.error("All %d gateways failed for %s (last error: %s)", len(tried), content_id, last_error)
        return ResolutionFailure(
            gateways_tried=tried,
            last_error=last_error,
            attempts=attempts,
            elapsed_ms=self._elapsed(start),
        )

    @staticmethod
    def _elapsed(start: float) -> float:
        return round((time.monotonic() - start) * 1000, 2)
