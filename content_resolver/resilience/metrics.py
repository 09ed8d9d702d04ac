"""Per-gateway metrics and process-wide usage counters.

``MetricsTracker`` keeps one ``GatewayMetrics`` record per gateway base URL
and is updated exactly once per fetch attempt.  ``UsageCounters`` tallies
how each request was ultimately served.  Both are plain in-memory objects
owned by the application and exposed through the stats endpoint.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

# Weight of the newest sample in the blended response time
_LATENCY_BLEND: float = 0.5


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class GatewayMetrics:
    """Counters for a single gateway.

    ``avg_response_time_ms`` is exponentially blended, not a true mean:
    the first success sets it, each later success moves it halfway towards
    the newest sample.
    """

    success_count: int = 0
    failure_count: int = 0
    avg_response_time_ms: float = 0.0
    last_success_at: str | None = None
    last_failure_at: str | None = None

    def record_success(self, elapsed_ms: float) -> None:
        if self.success_count == 0:
            self.avg_response_time_ms = elapsed_ms
        else:
            self.avg_response_time_ms = (
                self.avg_response_time_ms * (1 - _LATENCY_BLEND) + elapsed_ms * _LATENCY_BLEND
            )
        self.success_count += 1
        self.last_success_at = _now_iso()

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_at = _now_iso()

    def snapshot(self) -> dict:
        data = asdict(self)
        data["avg_response_time_ms"] = round(self.avg_response_time_ms, 2)
        return data


class MetricsTracker:
    """Thread-safe registry of ``GatewayMetrics`` keyed by base URL.

    Each gateway has its own lock; gateways never contend with each other.

    Args:
        base_urls: Gateways to pre-register with zeroed counters.
    """

    def __init__(self, base_urls: Iterable[str] = ()) -> None:
        self._registry_lock = threading.Lock()
        self._metrics: dict[str, GatewayMetrics] = {}
        self._locks: dict[str, threading.Lock] = {}
        for base_url in base_urls:
            self._entry(base_url)

    def _entry(self, base_url: str) -> tuple[GatewayMetrics, threading.Lock]:
        """Return (or create) the metrics record and lock for *base_url*."""
        metrics = self._metrics.get(base_url)
        if metrics is None:
            with self._registry_lock:
                metrics = self._metrics.get(base_url)
                if metrics is None:
                    self._locks[base_url] = threading.Lock()
                    metrics = self._metrics[base_url] = GatewayMetrics()
        return metrics, self._locks[base_url]

    def record_success(self, base_url: str, elapsed_ms: float) -> None:
        metrics, lock = self._entry(base_url)
        with lock:
            metrics.record_success(elapsed_ms)

    def record_failure(self, base_url: str) -> None:
        metrics, lock = self._entry(base_url)
        with lock:
            metrics.record_failure()

    def get(self, base_url: str) -> GatewayMetrics | None:
        """Return the live record for *base_url*, or ``None`` if unknown."""
        return self._metrics.get(base_url)

    def snapshot(self) -> dict[str, dict]:
        """Return a JSON-serializable copy of every gateway's counters."""
        result: dict[str, dict] = {}
        for base_url, metrics in list(self._metrics.items()):
            with self._locks[base_url]:
                result[base_url] = metrics.snapshot()
        return result


@dataclass
class UsageCounters:
    """How requests were served: by the primary, by a fallback, or not at all."""

    primary: int = 0
    fallback: int = 0
    failed: int = 0

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def record_primary(self) -> None:
        with self._lock:
            self.primary += 1

    def record_fallback(self) -> None:
        with self._lock:
            self.fallback += 1

    def record_failed(self) -> None:
        with self._lock:
            self.failed += 1

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return {"primary": self.primary, "fallback": self.fallback, "failed": self.failed}
