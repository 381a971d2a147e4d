"""
Gateway Errors

Error variants raised or emitted by the gateway and the REST client.
"""

from typing import Any, Mapping, Optional


class GatewayError(Exception):
    """Base class for all gateway and request errors."""


class TransportError(GatewayError):
    """Socket-level failure (connection refused, network drop, abnormal close)."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class ProtocolError(GatewayError):
    """Malformed frame, or an exception raised while handling a frame."""

    def __init__(self, message: str, raw: Optional[str] = None, op: Optional[int] = None):
        super().__init__(message)
        self.raw = raw
        self.op = op


class SessionInvalidated(GatewayError):
    """Server signalled that the session cannot be resumed (op 9)."""

    def __init__(self, resumable: bool = False):
        super().__init__("Gateway session invalidated")
        self.resumable = resumable


class RequestError(GatewayError):
    """Non-2xx response from the REST API."""

    def __init__(self, status: int, body: Any = None, headers: Optional[Mapping[str, str]] = None):
        super().__init__(f"Discord API responded with status {status}")
        self.status = status
        self.body = body
        self.headers = dict(headers or {})
