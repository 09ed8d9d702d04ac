"""Settings for the content-resolver service.

Centralized configuration loaded from environment variables with the
``CONTENT_RESOLVER_`` prefix.  Gateway topology itself lives in
``config/gateways.yaml`` and is loaded by ``GatewayRegistry``.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings

# Repository-level config directory (``<root>/config``)
DEFAULT_GATEWAYS_CONFIG = Path(__file__).resolve().parents[2] / "config" / "gateways.yaml"

# Bundled static assets, mounted at ``/images``
STATIC_IMAGES_DIR = Path(__file__).resolve().parents[1] / "static" / "images"


class Settings(BaseSettings):
    """Content resolver configuration.

    All fields can be overridden by environment variables prefixed with
    ``CONTENT_RESOLVER_``.  For example, ``CONTENT_RESOLVER_PORT=9999``
    overrides the default port.
    """

    # ── Service identity ────────────────────────────────────────────
    SERVICE_NAME: str = "content-resolver"
    SERVICE_VERSION: str = "0.1.0"
    HOST: str = "0.0.0.0"
    PORT: int = 8090

    # ── Gateways ────────────────────────────────────────────────────
    GATEWAYS_CONFIG_PATH: str = str(DEFAULT_GATEWAYS_CONFIG)
    RETRY_BASE_DELAY: float = 1.0  # Seconds, multiplied by the attempt number
    DENYLIST: list[str] = []  # Merged with the YAML denylist

    # ── Response cache ──────────────────────────────────────────────
    CACHE_TTL_SECONDS: float = 24 * 60 * 60
    CACHE_SWEEP_INTERVAL_SECONDS: float = 60 * 60
    CACHE_SHARDS: int = 16
    COALESCE_IN_FLIGHT: bool = False  # Share one resolution per in-flight id

    # ── Fallback responses ──────────────────────────────────────────
    FALLBACK_CACHE_SECONDS: int = 5 * 60
    PLACEHOLDER_IMAGE_PATH: str = "/images/placeholder-kaiju.svg"  # Served from STATIC_IMAGES_DIR

    # ── Observability ───────────────────────────────────────────────
    ACCESS_LOG_ENABLED: bool = True
    ACCESS_LOG_PATH: str = "logs/access.jsonl"
    LOG_LEVEL: str = "INFO"

    model_config = {
        "env_prefix": "CONTENT_RESOLVER_",
    }

    @property
    def success_cache_control(self) -> str:
        """``Cache-Control`` value for successfully resolved content."""
        ttl = int(self.CACHE_TTL_SECONDS)
        return f"public, max-age={ttl}, s-maxage={ttl}, immutable"

    @property
    def fallback_cache_control(self) -> str:
        """``Cache-Control`` value for synthesized fallback documents."""
        return f"public, max-age={self.FALLBACK_CACHE_SECONDS}"
