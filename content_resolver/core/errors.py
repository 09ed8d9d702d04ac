"""Structured errors for the content resolver.

Exception hierarchy for gateway attempts and identifier handling, plus
``StructuredErrorResponse`` for the few errors surfaced to callers as-is.
Total resolution failure is *not* an exception: the orchestrator returns a
``ResolutionFailure`` value instead.
"""

from pydantic import BaseModel


class ContentResolverError(Exception):
    """Base exception for all content-resolver errors."""


class GatewayError(ContentResolverError):
    """A single attempt against one gateway failed.

    Attributes:
        gateway_url: Base URL of the gateway that was attempted.
        cause:       Underlying exception, if any.
        retryable:   Whether the orchestrator may retry the same gateway.
    """

    retryable = True

    def __init__(self, gateway_url: str, detail: str = "", cause: BaseException | None = None) -> None:
        self.gateway_url = gateway_url
        self.detail = detail
        self.cause = cause
        msg = f"Gateway failed: {gateway_url}"
        if detail:
            msg += f" — {detail}"
        super().__init__(msg)


class GatewayTimeoutError(GatewayError):
    """The attempt exceeded its gateway timeout.  Never retried."""

    retryable = False

    def __init__(self, gateway_url: str, timeout_ms: int, cause: BaseException | None = None) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(gateway_url, f"timed out after {timeout_ms}ms", cause)


class GatewayStatusError(GatewayError):
    """The gateway answered with a non-success status code."""

    def __init__(self, gateway_url: str, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(gateway_url, f"HTTP {status_code}")


class GatewayConnectionError(GatewayError):
    """The gateway could not be reached or the transfer broke off."""


class ContentIdError(ContentResolverError):
    """Raised when a requested content identifier is unusable."""


class ContentDecodeError(ContentResolverError):
    """An upstream body could not be interpreted after a successful fetch."""

    def __init__(self, content_id: str, detail: str = "") -> None:
        self.content_id = content_id
        self.detail = detail
        msg = f"Could not process content: {content_id}"
        if detail:
            msg += f" — {detail}"
        super().__init__(msg)


class StructuredErrorResponse(BaseModel):
    """Structured error body: ``{"error", "code", "request_id"}``, no stack traces."""

    error: str
    code: str
    request_id: str

    @classmethod
    def from_exception(cls, exc: Exception, request_id: str) -> "StructuredErrorResponse":
        """Create from an exception, mapping to machine-readable codes.

        Never leaks internal details for unhandled exceptions.
        """
        if isinstance(exc, ContentIdError):
            return cls(error=str(exc), code="INVALID_CONTENT_ID", request_id=request_id)
        # Unhandled — never expose internal details
        return cls(
            error="An internal error occurred",
            code="INTERNAL_ERROR",
            request_id=request_id,
        )
