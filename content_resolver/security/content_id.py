"""Content identifier normalization and validation.

Turns the catch-all path segments of ``/resolve/{...}`` into one content
identifier: null bytes stripped, Unicode NFC-normalized, surrounding
slashes removed, and ``ipfs://`` / ``ipfs/`` prefixes dropped so token-URI
style values resolve the same as bare CIDs.  Traversal segments are
rejected after double URL-decoding.
"""

from __future__ import annotations

import logging
import unicodedata
from collections.abc import Iterable
from urllib.parse import unquote

from content_resolver.core.errors import ContentIdError

_security_logger = logging.getLogger("content_resolver.security")

_SCHEME_PREFIX = "ipfs://"
_PATH_PREFIX = "ipfs/"

# Longest identifier accepted (CID plus a nested file path)
MAX_CONTENT_ID_LENGTH: int = 1024


def sanitize_string(value: str) -> str:
    """Strip null bytes and normalize to Unicode NFC."""
    value = value.replace("\x00", "")
    return unicodedata.normalize("NFC", value)


def _double_decode(value: str) -> str:
    """Apply URL decoding twice to catch double-encoded sequences."""
    return unquote(unquote(value))


def _has_traversal_sequences(value: str) -> bool:
    parts = value.replace("\\", "/").split("/")
    return ".." in parts or "." in parts


def normalize_content_id(path: str | Iterable[str]) -> str:
    """Return the canonical content identifier for a request path.

    Args:
        path: The raw path after ``/resolve/``, or its segments.

    Raises:
        ContentIdError: If the identifier is empty, too long, or contains
                        traversal segments.
    """
    raw = path if isinstance(path, str) else "/".join(path)
    # Trailing slashes must survive until the "ipfs://" prefix has been matched
    content_id = sanitize_string(raw).strip().lstrip("/")

    if content_id.lower().startswith(_SCHEME_PREFIX):
        content_id = content_id[len(_SCHEME_PREFIX):]
    if content_id.lower().startswith(_PATH_PREFIX):
        content_id = content_id[len(_PATH_PREFIX):]
    content_id = content_id.strip("/")

    if not content_id:
        raise ContentIdError("empty content identifier")

    if len(content_id) > MAX_CONTENT_ID_LENGTH:
        raise ContentIdError(f"content identifier longer than {MAX_CONTENT_ID_LENGTH} characters")

    if _has_traversal_sequences(content_id) or _has_traversal_sequences(_double_decode(content_id)):
        _security_logger.warning(
            "SECURITY event=path_traversal detail='traversal sequence in content id' path=%r", raw
        )
        raise ContentIdError("path traversal detected in content identifier")

    return content_id
