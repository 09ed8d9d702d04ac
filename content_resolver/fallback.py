"""FallbackSynthesizer — deterministic placeholder responses.

Used when no gateway could deliver the content (or the identifier is known
to be gone).  Image-like identifiers are redirected to a static placeholder
image; everything else gets a structured ``404`` document that mimics the
normal metadata shape.  These responses are never stored in the
``ResponseCache``; a short ``Cache-Control`` lifetime is set instead.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from urllib.parse import urljoin

from starlette.responses import JSONResponse, RedirectResponse, Response

from content_resolver.models.schemas import (
    FallbackAttribute,
    FallbackDocument,
    FallbackMetadata,
    Troubleshooting,
)

FALLBACK_GATEWAY = "fallback-gateway"

IMAGE_EXTENSIONS: tuple[str, ...] = (
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".webp",
    ".svg",
    ".avif",
    ".bmp",
    ".ico",
)

ERROR_FETCH_FAILED = "IPFS_FETCH_FAILED"
ERROR_UNAVAILABLE = "IPFS_CONTENT_UNAVAILABLE"

_SUGGESTIONS: list[str] = [
    "Try refreshing the page in a few minutes",
    "IPFS networks can be slow during high traffic",
    "The content may not be pinned by any public gateway yet",
    "Core token data is still available from the blockchain",
]


def looks_like_image(content_id: str) -> bool:
    """Return ``True`` if *content_id* ends in a known image extension."""
    return content_id.lower().endswith(IMAGE_EXTENSIONS)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class FallbackSynthesizer:
    """Builds placeholder responses for unresolvable identifiers.

    Args:
        placeholder_image: Path (or absolute URL) of the static placeholder.
        cache_control:     ``Cache-Control`` for synthesized documents.
        gateway_urls:      Configured gateway base URLs, used to list direct
                           links under ``troubleshooting.alternatives``.
    """

    def __init__(
        self,
        placeholder_image: str,
        cache_control: str = "public, max-age=300",
        gateway_urls: Sequence[str] = (),
    ) -> None:
        self.placeholder_image = placeholder_image
        self.cache_control = cache_control
        self.gateway_urls = list(gateway_urls)

    def build_document(
        self,
        content_id: str,
        gateways_tried: Sequence[str],
        last_error: BaseException | str | None = None,
        *,
        denied: bool = False,
    ) -> FallbackDocument:
        """Assemble the structured placeholder body for *content_id*."""
        timestamp = _now_iso()
        if denied:
            error, message = ERROR_UNAVAILABLE, "Content is known to be unavailable on IPFS"
        else:
            error, message = ERROR_FETCH_FAILED, "Failed to fetch content from all IPFS gateways"
        return FallbackDocument(
            error=error,
            message=message,
            ipfsPath=content_id,
            fallback=FallbackMetadata(
                name=f"Unavailable Item #{content_id[-4:]}",
                description="This content is temporarily unavailable. Please try again later.",
                image=self.placeholder_image,
                attributes=[FallbackAttribute(trait_type="Status", value="Unavailable")],
                timestamp=timestamp,
                ipfsPath=content_id,
            ),
            gateways_tried=list(gateways_tried),
            last_error=str(last_error) if last_error is not None else None,
            timestamp=timestamp,
            troubleshooting=Troubleshooting(
                suggestions=list(_SUGGESTIONS),
                alternatives=[f"{base_url}/{content_id}" for base_url in self.gateway_urls],
            ),
        )

    def synthesize(
        self,
        content_id: str,
        gateways_tried: Sequence[str],
        last_error: BaseException | str | None = None,
        *,
        base_url: str = "",
        elapsed_ms: float = 0.0,
        denied: bool = False,
    ) -> Response:
        """Return the placeholder response for *content_id*.

        Args:
            base_url:   Request base URL the placeholder image path is resolved against.
            elapsed_ms: Time spent before giving up, for ``X-Response-Time``.
            denied:     The identifier was short-circuited by the denylist.
        """
        headers = {
            "Access-Control-Allow-Origin": "*",
            "X-Gateway-Used": FALLBACK_GATEWAY,
            "X-Response-Time": f"{round(elapsed_ms)}ms",
        }

        if looks_like_image(content_id):
            target = urljoin(base_url, self.placeholder_image) if base_url else self.placeholder_image
            return RedirectResponse(target, status_code=302, headers=headers)

        document = self.build_document(content_id, gateways_tried, last_error, denied=denied)
        headers["Cache-Control"] = self.cache_control
        return JSONResponse(status_code=404, content=document.model_dump(), headers=headers)
