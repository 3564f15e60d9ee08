"""NDC client exception hierarchy.

Base exceptions for all client layers with correlation ID support.

Usage:
    from ndc_client.exceptions import StreamReadError, TransportError

    try:
        await client.stream_with_callback(message, on_frame)
    except StreamReadError as e:
        logger.warning("Stream cut short", correlation_id=e.correlation_id, cause=e.__cause__)
"""

import uuid


class NDCError(Exception):
    """Base exception for all NDC client errors.

    Carries a correlation_id for tracing errors across layers.
    """

    def __init__(self, message: str, *, correlation_id: str | None = None):
        self.correlation_id = correlation_id or str(uuid.uuid4())
        super().__init__(message)


class ConfigurationError(NDCError):
    """Errors from client configuration (missing file, bad YAML, missing URL key)."""

    pass


class ValidationError(NDCError):
    """Errors from input validation (beyond Pydantic)."""

    pass


class UnsupportedMethodError(ValidationError):
    """Raised when a message's method is not in the client's allowlist."""

    def __init__(self, method: str, **kwargs):
        self.method = method
        super().__init__(f"Unsupported NDC method: {method}", **kwargs)


class TransportError(NDCError):
    """Errors from the underlying HTTP call (network, DNS, TLS).

    Raised when the POST itself fails, with the target URL and the
    protocol method for diagnostics.
    """

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        method: str | None = None,
        correlation_id: str | None = None,
    ):
        self.url = url
        self.method = method
        super().__init__(message, correlation_id=correlation_id)


class StreamReadError(NDCError):
    """A read failure other than a clean end of stream while consuming a body."""

    def __init__(self, message: str, *, frames_delivered: int = 0, **kwargs):
        self.frames_delivered = frames_delivered
        super().__init__(message, **kwargs)


class HeaderCallbackError(NDCError):
    """Failure of the optional response-header hook. Logged, never fatal."""

    pass


class ChannelClosedError(NDCError):
    """Send on, or receive from, a closed and drained frame channel."""

    pass
