"""Gateway registry — static, ordered upstream gateway configuration.

Loads gateway definitions from a YAML config file (``config/gateways.yaml``)
and exposes them in attempt order: the single primary gateway first, then
the fallbacks sorted by ``priority``.  A process without a config file runs
on the built-in public gateway list.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import quote

import yaml

from content_resolver.core.errors import ContentIdError
from content_resolver.security.content_id import normalize_content_id

logger = logging.getLogger(__name__)

# ── Built-in defaults ──────────────────────────────────────────────────

DEFAULT_GATEWAYS: list[dict[str, Any]] = [
    {
        "base_url": "https://cryptokaiju.mypinata.cloud/ipfs",
        "timeout_ms": 10_000,
        "primary": True,
        "max_retries": 2,
    },
    {"base_url": "https://gateway.pinata.cloud/ipfs", "timeout_ms": 8_000, "priority": 1},
    {"base_url": "https://ipfs.io/ipfs", "timeout_ms": 8_000, "priority": 2},
    {"base_url": "https://cloudflare-ipfs.com/ipfs", "timeout_ms": 8_000, "priority": 3},
    {"base_url": "https://dweb.link/ipfs", "timeout_ms": 8_000, "priority": 4},
]


# ── Data class ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class GatewayConfig:
    """Immutable definition of a single upstream gateway.

    Attributes:
        base_url:    Gateway origin plus path prefix (e.g. ``https://ipfs.io/ipfs``).
        timeout_ms:  Hard bound on one attempt against this gateway.
        priority:    Ordering key among fallbacks (lower goes first).
        is_primary:  Whether this is the preferred gateway.
        max_retries: Total attempts against the primary before falling back.
    """

    base_url: str
    timeout_ms: int
    priority: int = 0
    is_primary: bool = False
    max_retries: int = 1

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    def url_for(self, content_id: str) -> str:
        """Return the full upstream URL for *content_id*.

        Each path segment is percent-encoded so ``?``, ``#`` and ``%`` in an
        identifier stay part of the upstream path.
        """
        return self.base_url + "/" + quote(content_id, safe="/")


# ── Registry ────────────────────────────────────────────────────────────


class GatewayRegistry:
    """Ordered set of gateways plus the known-bad identifier denylist.

    Args:
        gateways: Raw gateway entries (as found under ``gateways:`` in YAML).
        denylist: Content identifiers that are known to be permanently gone.
        source:   Where the entries came from, for error messages.

    Raises:
        ValueError: If entries are missing required keys, contain duplicates,
                    or do not define exactly one primary gateway.
    """

    def __init__(
        self,
        gateways: Iterable[dict[str, Any]],
        denylist: Iterable[str] = (),
        source: str = "<defaults>",
    ) -> None:
        self._source = source
        self._gateways: dict[str, GatewayConfig] = {}
        for position, item in enumerate(gateways):
            self._register(item, position)

        if not self._gateways:
            raise ValueError(f"No gateways defined in {source}")

        primaries = [gw for gw in self._gateways.values() if gw.is_primary]
        if len(primaries) != 1:
            raise ValueError(f"Exactly one primary gateway required in {source}, found {len(primaries)}")
        self._primary = primaries[0]
        # sorted() is stable, so equal priorities keep their file order
        self._fallbacks = tuple(
            sorted((gw for gw in self._gateways.values() if not gw.is_primary), key=lambda gw: gw.priority)
        )
        self._denylist = frozenset(self._normalize_denied(entry) for entry in denylist if entry)

    # ── Loading ─────────────────────────────────────────────────────

    @classmethod
    def from_yaml(cls, config_path: str | Path, extra_denylist: Iterable[str] = ()) -> GatewayRegistry:
        """Load a registry from a YAML file with a top-level ``gateways`` list.

        Raises:
            FileNotFoundError: If the YAML file does not exist.
            ValueError: If the YAML is invalid or fails validation.
        """
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Gateway config not found: {path}")

        raw = path.read_text(encoding="utf-8")
        try:
            data: Any = yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

        if not isinstance(data, dict) or "gateways" not in data:
            raise ValueError(f"YAML must contain a top-level 'gateways' key in {path}")

        gateways = data["gateways"]
        if not gateways:
            raise ValueError(f"No gateways defined in {path}")

        denylist = list(data.get("denylist") or []) + list(extra_denylist)
        return cls(gateways, denylist=denylist, source=str(path))

    @classmethod
    def load(cls, config_path: str | Path | None, extra_denylist: Iterable[str] = ()) -> GatewayRegistry:
        """Load from *config_path*, falling back to ``DEFAULT_GATEWAYS`` if it is absent."""
        if config_path and Path(config_path).exists():
            registry = cls.from_yaml(config_path, extra_denylist)
        else:
            logger.warning("Gateway config %s not found — using built-in gateways", config_path)
            registry = cls(DEFAULT_GATEWAYS, denylist=extra_denylist)
        logger.info(
            "Loaded %d gateways (primary %s) and %d denylisted ids from %s",
            registry.gateway_count,
            registry.primary.base_url,
            len(registry.denylist),
            registry.source,
        )
        return registry

    def _normalize_denied(self, entry: str) -> str:
        """Canonicalize a denylist entry the same way request paths are."""
        try:
            return normalize_content_id(str(entry))
        except ContentIdError as exc:
            raise ValueError(f"Invalid denylist entry {entry!r} in {self._source}: {exc}") from exc

    def _register(self, item: dict[str, Any], position: int) -> None:
        if not isinstance(item, dict):
            raise ValueError(f"Gateway entry #{position} must be a mapping in {self._source}")

        base_url = str(item.get("base_url") or "").rstrip("/")
        if not base_url:
            raise ValueError(f"Gateway entry #{position} missing 'base_url' in {self._source}")

        if base_url in self._gateways:
            raise ValueError(f"Duplicate gateway '{base_url}' in {self._source}")

        timeout_ms = int(item.get("timeout_ms", 10_000))
        if timeout_ms <= 0:
            raise ValueError(f"Gateway '{base_url}' needs a positive 'timeout_ms' in {self._source}")

        is_primary = bool(item.get("primary", False))
        max_retries = int(item.get("max_retries", 1))
        if is_primary and max_retries < 1:
            raise ValueError(f"Primary gateway '{base_url}' needs 'max_retries' >= 1 in {self._source}")

        self._gateways[base_url] = GatewayConfig(
            base_url=base_url,
            timeout_ms=timeout_ms,
            priority=int(item.get("priority", position)),
            is_primary=is_primary,
            max_retries=max_retries if is_primary else 1,
        )

    # ── Access ──────────────────────────────────────────────────────

    @property
    def primary(self) -> GatewayConfig:
        return self._primary

    @property
    def fallbacks(self) -> tuple[GatewayConfig, ...]:
        """Fallback gateways in attempt order."""
        return self._fallbacks

    def ordered(self) -> list[GatewayConfig]:
        """Return every gateway in attempt order, primary first."""
        return [self._primary, *self._fallbacks]

    def base_urls(self) -> list[str]:
        return [gw.base_url for gw in self.ordered()]

    @property
    def denylist(self) -> frozenset[str]:
        return self._denylist

    def is_denied(self, content_id: str) -> bool:
        return content_id in self._denylist

    @property
    def gateway_count(self) -> int:
        return len(self._gateways)

    @property
    def source(self) -> str:
        return self._source
