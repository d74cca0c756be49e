"""Application-level exception types for Gale."""

from __future__ import annotations


class GaleError(Exception):
    """Base exception for Gale."""


class ConfigurationError(GaleError):
    """Base exception for configuration and startup validation errors."""


class NoCredentialsConfiguredError(ConfigurationError):
    """Raised when the selected provider has no active API key."""


class ModelCallError(GaleError):
    """Raised when a request to the model endpoint fails."""


class ModelHTTPError(ModelCallError):
    """Raised when the model endpoint answers with a non-2xx status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"API call failed: {status_code} - {body}")
        self.status_code = status_code
        self.body = body


class KeysExhaustedError(GaleError):
    """Raised when every active key was rate limited within one retry cycle."""

    def __init__(self, message: str, last_error: BaseException | None = None) -> None:
        super().__init__(message)
        self.last_error = last_error


class ProtocolViolationError(GaleError):
    """Raised when a model response breaks the wire protocol."""


class ResponseDecodeError(ProtocolViolationError):
    """Raised when a response body cannot be parsed at all."""


class InvalidToolParametersError(GaleError):
    """Raised when tool arguments fail validation."""


class HistoryError(GaleError):
    """Raised when an append would break conversation history invariants."""
