"""GatewayFetcher — one bounded attempt against one gateway.

Issues a single ``GET {base_url}/{content_id}`` bounded by the gateway's
timeout and reports the outcome to the ``MetricsTracker``.  Every call
records exactly one metrics update, success or failure.
"""

from __future__ import annotations

import asyncio
import logging
import time

import httpx

from content_resolver.core.errors import (
    GatewayConnectionError,
    GatewayError,
    GatewayStatusError,
    GatewayTimeoutError,
)
from content_resolver.gateway_registry import GatewayConfig
from content_resolver.resilience.metrics import MetricsTracker

logger = logging.getLogger(__name__)


class GatewayFetcher:
    """Fetches content from individual gateways via HTTP.

    Uses a single ``httpx.AsyncClient`` per gateway base URL for connection
    pooling.

    Args:
        metrics:    Tracker that receives one update per attempt.
        user_agent: ``User-Agent`` header sent upstream.
    """

    def __init__(self, metrics: MetricsTracker, user_agent: str = "content-resolver") -> None:
        self.metrics = metrics
        self._headers = {"Accept": "*/*", "User-Agent": user_agent}
        # Connection pool: one AsyncClient per gateway base_url
        self._clients: dict[str, httpx.AsyncClient] = {}
        # Single-client override; tests inject a mock transport here
        self._client: httpx.AsyncClient | None = None

    def _get_client(self, base_url: str) -> httpx.AsyncClient:
        """Return a pooled ``AsyncClient`` for *base_url*.

        If ``_client`` has been explicitly set (e.g. by tests injecting
        a mock transport), that client is used for all gateways.
        """
        if self._client is not None:
            return self._client
        if base_url not in self._clients:
            self._clients[base_url] = httpx.AsyncClient(follow_redirects=True)
        return self._clients[base_url]

    async def fetch(self, content_id: str, gateway: GatewayConfig) -> httpx.Response:
        """Fetch *content_id* from *gateway* in exactly one request.

        Returns:
            The upstream ``httpx.Response`` (status 2xx, body buffered).

        Raises:
            GatewayTimeoutError: The attempt exceeded ``gateway.timeout_ms``.
            GatewayStatusError: The gateway answered with a non-2xx status.
            GatewayConnectionError: Any other transport failure.
        """
        url = gateway.url_for(content_id)
        client = self._get_client(gateway.base_url)
        start = time.monotonic()
        try:
            async with asyncio.timeout(gateway.timeout_seconds):
                response = await client.get(url, headers=self._headers, timeout=gateway.timeout_seconds)
        except asyncio.CancelledError:
            # Caller went away; the attempt still counts as a failure
            self.metrics.record_failure(gateway.base_url)
            raise
        except (TimeoutError, httpx.TimeoutException) as exc:
            self.metrics.record_failure(gateway.base_url)
            raise GatewayTimeoutError(gateway.base_url, gateway.timeout_ms, exc) from exc
        except httpx.HTTPError as exc:
            self.metrics.record_failure(gateway.base_url)
            raise GatewayConnectionError(gateway.base_url, type(exc).__name__, exc) from exc
        except Exception as exc:
            self.metrics.record_failure(gateway.base_url)
            raise GatewayError(gateway.base_url, repr(exc), exc) from exc

        elapsed_ms = (time.monotonic() - start) * 1000
        if not response.is_success:
            self.metrics.record_failure(gateway.base_url)
            raise GatewayStatusError(gateway.base_url, response.status_code)

        self.metrics.record_success(gateway.base_url, elapsed_ms)
        logger.debug("Fetched %s via %s in %.1fms", content_id, gateway.base_url, elapsed_ms)
        return response

    async def close(self) -> None:
        """Close all pooled httpx clients."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        for client in self._clients.values():
            await client.aclose()
        self._clients.clear()
