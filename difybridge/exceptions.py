"""difybridge exception hierarchy.

Base exceptions for all application layers with correlation ID support.

Usage:
    from difybridge.exceptions import TransportError, UpstreamError

    try:
        resp = await dify.send(req)
    except UpstreamError as e:
        logger.warning("Dify rejected the request: %s", e, extra={"cid": e.correlation_id})
"""

import uuid


class BridgeError(Exception):
    """Base exception for all difybridge application errors.

    Carries a correlation_id for tracing errors across layers.
    """

    def __init__(self, message: str, *, correlation_id: str | None = None):
        self.correlation_id = correlation_id or str(uuid.uuid4())
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self)


class ValidationError(BridgeError):
    """Malformed or empty input, raised before any backend call."""

    pass


class AuthPassthroughAbsent(BridgeError):
    """The request carries no usable bearer token.

    Never surfaces to clients: callers fall back to the configured
    Dify API key.
    """

    pass


class UpstreamError(BridgeError):
    """Dify answered with a structured application error.

    The message is Dify's own, passed through unchanged.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        correlation_id: str | None = None,
    ):
        self.code = code
        self.status_code = status_code
        super().__init__(message, correlation_id=correlation_id)


class TransportError(BridgeError):
    """Network, timeout or decode failure while talking to Dify."""

    pass


class SerializationError(BridgeError):
    """A response or SSE frame could not be serialized."""

    pass


class ConfigurationError(BridgeError):
    """Errors from application configuration."""

    pass
