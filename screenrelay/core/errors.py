"""
Error taxonomy shared by every provider adapter.

Adapters translate their backend's failure shapes (LiteLLM exceptions, HTTP
status codes with vendor bodies, stream errors) into the ``RelayError``
subclasses below before anything reaches the router.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

import httpx
from litellm.exceptions import (
    APIConnectionError,
    APIError,
    AuthenticationError,
    BadRequestError,
    BudgetExceededError,
    ContextWindowExceededError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    ServiceUnavailableError,
    Timeout,
)


class ErrorKind(str, Enum):
    """Classification of a routed failure."""

    AUTH = "auth"
    INVALID_MODEL = "invalid_model"
    NETWORK = "network"
    BACKEND = "backend"
    NOT_ACTIVE = "not_active"
    UNSUPPORTED_CAPABILITY = "unsupported_capability"
    BUSY = "busy"
    INVALID_INPUT = "invalid_input"


class RelayError(Exception):
    """Base class for classified relay errors."""

    kind: ErrorKind = ErrorKind.BACKEND

    def __init__(self, message: str, original: Exception | None = None):
        self.original = original
        super().__init__(message)


class AuthError(RelayError):
    """Bad or missing credentials. Never retried automatically."""

    kind = ErrorKind.AUTH


class InvalidModelError(RelayError):
    """Unknown or missing model id. Never retried."""

    kind = ErrorKind.INVALID_MODEL


class NetworkError(RelayError):
    """Timeout or connection failure. Eligible for reconnection on streaming providers."""

    kind = ErrorKind.NETWORK


class BackendError(RelayError):
    """The vendor returned a structured error; surfaced verbatim."""

    kind = ErrorKind.BACKEND


class NotActiveError(RelayError):
    """No live session for the operation."""

    kind = ErrorKind.NOT_ACTIVE


class UnsupportedCapabilityError(RelayError):
    """The active provider does not accept this input modality."""

    kind = ErrorKind.UNSUPPORTED_CAPABILITY


class BusyError(RelayError):
    """An initialize is already in flight for the provider slot."""

    kind = ErrorKind.BUSY


class InvalidInputError(RelayError):
    """A request payload failed validation before reaching any provider."""

    kind = ErrorKind.INVALID_INPUT


def extract_error_message(error: Exception | str) -> str:
    """Extract the most useful part of a vendor error message."""
    msg = str(error)
    # OpenRouter-style JSON bodies embedded in the exception text
    match = re.search(r'"message"\s*:\s*"([^"]+)"', msg)
    if match:
        return match.group(1)
    if len(msg) > 200:
        return msg[:200] + "..."
    return msg


def vendor_error_message(body: Any) -> str | None:
    """Pull ``error.message`` (or ``message``) out of a decoded vendor error body."""
    if not isinstance(body, dict):
        return None
    err = body.get("error")
    if isinstance(err, dict) and err.get("message"):
        return str(err["message"])
    if isinstance(err, str) and err:
        return err
    if body.get("message"):
        return str(body["message"])
    return None


def from_litellm_error(provider_name: str, model: str, error: Exception) -> RelayError:
    """Convert a LiteLLM exception to a classified relay error."""
    if isinstance(error, RelayError):
        return error

    if isinstance(error, (AuthenticationError, PermissionDeniedError)):
        return AuthError(
            f"Authentication failed for {provider_name}. Check that your API key is correct.",
            original=error,
        )

    if isinstance(error, NotFoundError):
        return InvalidModelError(
            f"Model '{model}' not found on {provider_name}. Check the model name.",
            original=error,
        )

    if isinstance(error, Timeout):
        return NetworkError(
            f"Request to {provider_name} timed out.",
            original=error,
        )

    if isinstance(error, ContextWindowExceededError):
        return BackendError(
            f"Context too large for '{model}'. Try a shorter message or a larger model.",
            original=error,
        )

    if isinstance(error, BadRequestError):
        detail = extract_error_message(error)
        if "not a valid model" in detail.lower() or "invalid model" in detail.lower():
            return InvalidModelError(
                f"Model '{model}' is not valid on {provider_name}: {detail}",
                original=error,
            )
        return BackendError(detail, original=error)

    if isinstance(error, RateLimitError):
        return BackendError(
            f"Rate limit exceeded for '{model}'. Wait a moment and try again.",
            original=error,
        )

    if isinstance(error, BudgetExceededError):
        return BackendError(
            f"API budget/credits exhausted for '{model}'.",
            original=error,
        )

    if isinstance(error, APIConnectionError):
        msg = str(error).lower()
        # Credit errors sometimes surface as connection errors
        if any(kw in msg for kw in ["402", "credits", "insufficient", "budget"]):
            return BackendError(extract_error_message(error), original=error)
        return NetworkError(
            f"Cannot connect to {provider_name}. Check your internet connection.",
            original=error,
        )

    if isinstance(error, ServiceUnavailableError):
        return NetworkError(
            f"{provider_name} is temporarily unavailable. Try again in a moment.",
            original=error,
        )

    if isinstance(error, APIError):
        return BackendError(extract_error_message(error), original=error)

    return BackendError(f"{provider_name} error ({type(error).__name__}): {error}", original=error)


def from_httpx_error(
    provider_name: str, error: Exception, *, during_init: bool = False
) -> RelayError:
    """Convert an httpx exception (or HTTP error status) to a classified relay error."""
    if isinstance(error, RelayError):
        return error

    if isinstance(error, httpx.TimeoutException):
        return NetworkError(f"Request to {provider_name} timed out.", original=error)

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        try:
            body = error.response.json()
        except ValueError:
            body = None
        detail = vendor_error_message(body) or error.response.text or f"HTTP {status}"
        if status in (401, 403):
            return AuthError(
                f"Authentication failed for {provider_name}: {detail}", original=error
            )
        if status == 404 and during_init:
            return InvalidModelError(
                f"{provider_name} rejected the model: {detail}", original=error
            )
        if status in (502, 503, 504):
            return NetworkError(
                f"{provider_name} is temporarily unavailable ({status}).", original=error
            )
        return BackendError(detail, original=error)

    if isinstance(error, httpx.TransportError):
        return NetworkError(
            f"Cannot connect to {provider_name}. Check your internet connection.",
            original=error,
        )

    return BackendError(f"{provider_name} error ({type(error).__name__}): {error}", original=error)
