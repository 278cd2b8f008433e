"""
Structured error system for Perplexity CLI.

Local failures (config file, credentials, output file) and remote API
failures share one hierarchy so the command handlers can render them
uniformly at the command boundary.
"""

from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)

API_KEY_HINT = "Tip: Make sure your Perplexity API key is valid."
MODEL_HINT = 'Tip: The model "{model}" might not be available. Try using "sonar" instead.'


class PerplexityCliError(Exception):
    """Base exception for all Perplexity CLI errors."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ConfigReadError(PerplexityCliError):
    """The config file exists but could not be read or parsed."""


class ConfigWriteError(PerplexityCliError):
    """The config file could not be written."""


class MissingCredentialError(PerplexityCliError):
    """No API key is stored."""

    def __init__(self, message: str = 'API key not set. Use "perplexity-cli set-key <key>" to set it.'):
        super().__init__(message)


class FileWriteError(PerplexityCliError):
    """The response could not be saved to the requested output file."""

    def __init__(self, path: Any, original_error: Optional[Exception] = None):
        reason = f": {original_error}" if original_error else ""
        super().__init__(f"Failed to save response to {path}{reason}", original_error=original_error)
        self.path = path


class PerplexityError(PerplexityCliError):
    """Base exception for errors reported by, or while reaching, the remote API."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message, original_error=original_error)
        self.status = status
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary representation."""
        return {
            "message": self.message,
            "status": self.status,
            "code": self.code,
            "details": self.details,
            "type": self.__class__.__name__
        }

    def __str__(self) -> str:
        parts = [self.message]
        if self.status:
            parts.append(f"(Status: {self.status})")
        return " ".join(parts)


class AuthenticationError(PerplexityError):
    """The API rejected the key."""

    def __init__(self, message: str = "Invalid API key", **kwargs):
        kwargs.setdefault("status", 401)
        super().__init__(message, code="AUTHENTICATION_ERROR", **kwargs)


class ModelUnavailableError(PerplexityError):
    """The requested model does not exist or is not available to this key."""

    def __init__(self, message: str = "Model unavailable", model: Optional[str] = None, **kwargs):
        kwargs.setdefault("status", 400)
        super().__init__(message, code="MODEL_UNAVAILABLE", **kwargs)
        if model:
            self.details["model"] = model


class InvalidRequestError(PerplexityError):
    """Error for invalid API requests."""

    def __init__(self, message: str = "Invalid request", **kwargs):
        kwargs.setdefault("status", 400)
        super().__init__(message, code="INVALID_REQUEST", **kwargs)


class RateLimitError(PerplexityError):
    """Too many requests."""

    def __init__(self, message: str = "Rate limit exceeded", **kwargs):
        kwargs.setdefault("status", 429)
        super().__init__(message, code="RATE_LIMITED", **kwargs)


class ServerError(PerplexityError):
    """Error for server-side issues."""

    def __init__(self, message: str = "Server error", **kwargs):
        kwargs.setdefault("status", 500)
        super().__init__(message, code="SERVER_ERROR", **kwargs)


class NetworkError(PerplexityError):
    """Error for network-related issues."""

    def __init__(self, message: str = "Network error", **kwargs):
        super().__init__(message, code="NETWORK_ERROR", **kwargs)


class TimeoutError(PerplexityError):
    """Error for request timeouts."""

    def __init__(self, message: str = "Request timeout", timeout_seconds: Optional[float] = None, **kwargs):
        super().__init__(message, code="TIMEOUT_ERROR", **kwargs)
        if timeout_seconds:
            self.details["timeout_seconds"] = timeout_seconds


def error_for_status(status: int, message: str, model: Optional[str] = None) -> PerplexityError:
    """
    Map an HTTP status and the service's error message to an error type.

    Args:
        status: HTTP status code of the failed response
        message: Error message extracted from the response body
        model: Model that was requested, recorded on model errors

    Returns:
        The matching PerplexityError subclass instance
    """
    lower = message.lower()

    if status in (401, 403):
        return AuthenticationError(message, status=status)
    if status == 404 or (status in (400, 422) and "model" in lower):
        return ModelUnavailableError(message, model=model, status=status)
    if status == 429:
        return RateLimitError(message)
    if status in (400, 422):
        return InvalidRequestError(message, status=status)
    if 500 <= status < 600:
        return ServerError(message, status=status)

    return PerplexityError(message, status=status)


def classify_error(error: Exception) -> PerplexityError:
    """
    Classify a generic exception into a structured PerplexityError.

    Args:
        error: The original exception

    Returns:
        Classified PerplexityError instance
    """
    if isinstance(error, PerplexityError):
        return error

    error_message = str(error) or error.__class__.__name__
    error_lower = error_message.lower()

    status = getattr(error, "status", None) or getattr(error, "status_code", None)
    if isinstance(status, int):
        return error_for_status(status, error_message)

    if "timeout" in error_lower or "timed out" in error_lower:
        return TimeoutError(error_message, original_error=error)
    elif "network" in error_lower or "connection" in error_lower:
        return NetworkError(error_message, original_error=error)

    return PerplexityError(error_message, original_error=error)


def hint_for_error(error: Exception, model: str) -> Optional[str]:
    """
    Pick a user-facing hint for a failed query.

    Structured error types are checked first; when the error carries no type
    information the message is searched for "API key" or "model".

    Args:
        error: The error raised while querying
        model: Model the query was sent to

    Returns:
        Hint text, or None when no hint applies
    """
    if isinstance(error, AuthenticationError):
        return API_KEY_HINT
    if isinstance(error, ModelUnavailableError):
        return MODEL_HINT.format(model=model)

    message = getattr(error, "message", None) or str(error)
    if "API key" in message:
        return API_KEY_HINT
    if "model" in message:
        return MODEL_HINT.format(model=model)

    return None
