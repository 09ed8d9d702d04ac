"""Response models for the resolver endpoints.

The fallback document mirrors the NFT metadata shape under ``fallback`` so
front-end consumers can render a placeholder without special-casing it.
"""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response model for GET /health."""

    service: str
    version: str
    status: str
    uptime_seconds: float
    gateways: int
    cache_entries: int


# ── Synthesized fallback ────────────────────────────────────────────────


class FallbackAttribute(BaseModel):
    trait_type: str
    value: str


class FallbackMetadata(BaseModel):
    """Synthetic stand-in for the metadata document that could not be fetched."""

    name: str
    description: str
    image: str
    attributes: list[FallbackAttribute] = Field(default_factory=list)
    timestamp: str
    ipfsPath: str


class Troubleshooting(BaseModel):
    suggestions: list[str] = Field(default_factory=list)
    alternatives: list[str] = Field(default_factory=list)


class FallbackDocument(BaseModel):
    """Body returned when every gateway failed for a non-image identifier."""

    error: str
    message: str
    ipfsPath: str
    fallback: FallbackMetadata
    gateways_tried: list[str]
    last_error: str | None = None
    timestamp: str
    troubleshooting: Troubleshooting


# ── Diagnostics ─────────────────────────────────────────────────────────


class GatewayStats(BaseModel):
    success_count: int
    failure_count: int
    avg_response_time_ms: float
    last_success_at: str | None = None
    last_failure_at: str | None = None


class UsageStats(BaseModel):
    primary: int
    fallback: int
    failed: int


class CacheStats(BaseModel):
    size: int
    ttl_seconds: float
    hits: int
    misses: int
    evictions: int


class StatsResponse(BaseModel):
    """Response model for ``OPTIONS /resolve/...?stats=true``."""

    gateways: dict[str, GatewayStats]
    usage: UsageStats
    cache: CacheStats
    timestamp: str
