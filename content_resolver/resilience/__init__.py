"""Resilience patterns — bounded gateway attempts and sequential fallback.

Provides the per-attempt ``GatewayFetcher``, the two-phase
``FallbackOrchestrator`` and the metrics they report into.
"""

from content_resolver.resilience.fetcher import GatewayFetcher
from content_resolver.resilience.metrics import GatewayMetrics, MetricsTracker, UsageCounters
from content_resolver.resilience.orchestrator import (
    FallbackOrchestrator,
    ResolutionFailure,
    ResolutionResult,
    ResolutionSuccess,
)

__all__ = [
    "FallbackOrchestrator",
    "GatewayFetcher",
    "GatewayMetrics",
    "MetricsTracker",
    "ResolutionFailure",
    "ResolutionResult",
    "ResolutionSuccess",
    "UsageCounters",
]
