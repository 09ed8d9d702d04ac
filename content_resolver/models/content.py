"""Lenient content classification for upstream bodies.

Turns a gateway's declared content type and raw body into one of three
tagged results.  A JSON decode failure is an expected outcome (the body is
kept as text), not an error.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

DEFAULT_CONTENT_TYPE = "application/octet-stream"
JSON_CONTENT_TYPE = "application/json"


@dataclass(frozen=True)
class StructuredDocument:
    """A decoded JSON document (NFT metadata, typically)."""

    document: Any

    def render(self) -> bytes:
        return json.dumps(self.document, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


@dataclass(frozen=True)
class RawText:
    """Text that did not decode as JSON."""

    text: str

    def render(self) -> bytes:
        return self.text.encode("utf-8")


@dataclass(frozen=True)
class Binary:
    """Opaque bytes, served unchanged (images)."""

    data: bytes

    def render(self) -> bytes:
        return self.data


ResolvedContent = StructuredDocument | RawText | Binary


def _media_type(content_type: str) -> str:
    return content_type.split(";", 1)[0].strip().lower()


def is_json_type(content_type: str) -> bool:
    media = _media_type(content_type)
    return media == JSON_CONTENT_TYPE or media.endswith("+json") or "json" in media


def is_image_type(content_type: str) -> bool:
    return _media_type(content_type).startswith("image/")


def _text_or_binary(body: bytes) -> RawText | Binary:
    try:
        return RawText(body.decode("utf-8"))
    except UnicodeDecodeError:
        # Undecodable bodies (video, archives, mislabelled JSON) must survive byte-for-byte
        return Binary(body)


def _try_json(body: bytes) -> StructuredDocument | None:
    """Decode *body* as a JSON object or array; scalars don't count as documents."""
    try:
        value = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return None
    if isinstance(value, (dict, list)):
        return StructuredDocument(value)
    return None


def classify(content_type: str | None, body: bytes) -> tuple[ResolvedContent, str]:
    """Classify *body* by its declared *content_type*.

    Returns:
        The tagged content and the content type it should be served with.
        A document decoded from an unlabelled or non-JSON body is served as
        ``application/json``; everything else keeps the declared type.
        Bodies that are not valid UTF-8 stay binary, even when labelled JSON.
    """
    declared = content_type or DEFAULT_CONTENT_TYPE

    if is_json_type(declared):
        document = _try_json(body)
        if document is not None:
            return document, declared
        return _text_or_binary(body), declared

    if is_image_type(declared):
        return Binary(body), declared

    document = _try_json(body)
    if document is not None:
        return document, JSON_CONTENT_TYPE
    return _text_or_binary(body), declared


def to_payload(content: ResolvedContent) -> Any:
    """Unwrap tagged content into the value stored in a ``CacheEntry``."""
    if isinstance(content, StructuredDocument):
        return content.document
    if isinstance(content, RawText):
        return content.text
    return content.data


def from_payload(payload: Any) -> ResolvedContent:
    """Re-wrap a cached payload so it renders exactly as it did when stored."""
    if isinstance(payload, (bytes, bytearray)):
        return Binary(bytes(payload))
    if isinstance(payload, str):
        return RawText(payload)
    return StructuredDocument(payload)
