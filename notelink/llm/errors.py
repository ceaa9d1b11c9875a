"""
Uniform error taxonomy for NoteLink AI providers.

Every adapter maps its vendor's status codes and messages through
``classify_error`` / ``translate_error`` so that equivalent conditions
("model not found" vs "model not supported") surface as the same
exception type with an actionable message.
"""

import re
from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    """Failure categories shared by all vendors."""

    AUTHENTICATION = "authentication"
    RATE_LIMITED = "rate_limited"
    MODEL_UNAVAILABLE = "model_unavailable"
    INVALID_REQUEST = "invalid_request"
    NETWORK = "network"
    UNKNOWN = "unknown"


class ProviderError(Exception):
    """Base class for errors raised by the provider layer."""

    category = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        vendor: Optional[str] = None,
        status_code: Optional[int] = None,
        retryable: bool = False,
        retry_after_seconds: Optional[float] = None,
    ):
        self.message = message
        self.vendor = vendor
        self.status_code = status_code
        self.retryable = retryable
        self.retry_after_seconds = retry_after_seconds
        super().__init__(message)


class AuthenticationError(ProviderError):
    """Invalid or missing API key."""

    category = ErrorCategory.AUTHENTICATION


class RateLimitedError(ProviderError):
    """Vendor throttled the request (HTTP 429/503-class)."""

    category = ErrorCategory.RATE_LIMITED

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)


class ModelUnavailableError(ProviderError):
    """Model not found, not entitled, or deprecated."""

    category = ErrorCategory.MODEL_UNAVAILABLE

    def __init__(
        self,
        message: str,
        *,
        model: Optional[str] = None,
        fallback_model: Optional[str] = None,
        **kwargs,
    ):
        self.model = model
        self.fallback_model = fallback_model
        super().__init__(message, **kwargs)


class InvalidRequestError(ProviderError):
    """Malformed prompt, token limit exceeded, or unsupported input."""

    category = ErrorCategory.INVALID_REQUEST


class ModalityMismatchError(InvalidRequestError):
    """Images were sent to a model that only accepts text."""


class ProviderNetworkError(ProviderError):
    """Transport failure, timeout, unparsable response, or anything uncategorized."""

    category = ErrorCategory.NETWORK


class ProviderConfigurationError(ProviderError, ValueError):
    """Invalid settings, unsupported vendor, or unconfigured rate limit."""

    category = ErrorCategory.UNKNOWN


# ==================== Classification ====================

_STATUS_CATEGORIES = {
    400: ErrorCategory.INVALID_REQUEST,
    401: ErrorCategory.AUTHENTICATION,
    403: ErrorCategory.AUTHENTICATION,
    404: ErrorCategory.MODEL_UNAVAILABLE,
    413: ErrorCategory.INVALID_REQUEST,
    422: ErrorCategory.INVALID_REQUEST,
    429: ErrorCategory.RATE_LIMITED,
    503: ErrorCategory.RATE_LIMITED,
}

# Checked in order; rate limiting first so "quota ... invalid" stays retryable.
_MESSAGE_SIGNATURES = (
    (ErrorCategory.RATE_LIMITED, ("rate limit", "rate_limit", "resource_exhausted",
                                  "resource exhausted", "overloaded", "too many requests")),
    (ErrorCategory.AUTHENTICATION, ("authentication", "api key not valid", "invalid api key",
                                    "incorrect api key", "unauthorized", "permission denied")),
    (ErrorCategory.MODEL_UNAVAILABLE, ("model not found", "model_not_found", "not supported",
                                       "does not exist", "is not found", "no such model")),
    (ErrorCategory.INVALID_REQUEST, ("invalid request", "invalid_request", "invalid argument",
                                     "invalid_argument", "bad request")),
    (ErrorCategory.NETWORK, ("timed out", "timeout", "connection", "network")),
)

# A 400 carrying one of these still means the model is missing.
_MISSING_MODEL_SIGNATURES = ("model not found", "model_not_found", "no such model",
                             "does not exist", "is not found")
_MODALITY_WORDS = ("image", "vision", "multi-modal", "multimodal")


def _names_missing_model(text: str) -> bool:
    if any(word in text for word in _MODALITY_WORDS):
        return False
    if any(sig in text for sig in _MISSING_MODEL_SIGNATURES):
        return True
    return "model" in text and "not supported" in text


def classify_error(status_code: Optional[int], message: str = "") -> ErrorCategory:
    """
    Map an HTTP status and/or error message to an ErrorCategory.

    Status codes win, except that a 400 naming a missing or unsupported
    model is MODEL_UNAVAILABLE. Message signatures are the fallback for
    SDK errors that carry no status (or an unmapped one).
    """
    text = (message or "").lower()
    if status_code == 400 and _names_missing_model(text):
        return ErrorCategory.MODEL_UNAVAILABLE
    if status_code in _STATUS_CATEGORIES:
        return _STATUS_CATEGORIES[status_code]

    for category, signatures in _MESSAGE_SIGNATURES:
        if any(sig in text for sig in signatures):
            return category

    if status_code is not None and 400 <= status_code < 500:
        return ErrorCategory.INVALID_REQUEST
    return ErrorCategory.UNKNOWN


def parse_retry_after(value: Any) -> Optional[float]:
    """
    Parse a retry hint into seconds.

    Accepts numbers and strings such as ``"30"``, ``"1.5s"`` (the
    google.rpc.RetryInfo duration format). Returns None when unparsable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value >= 0 else None

    match = re.fullmatch(r"\s*(\d+(?:\.\d+)?)\s*s?\s*", str(value))
    if match:
        return float(match.group(1))
    return None


def sanitize_error(error: str) -> str:
    """Remove API keys and bearer tokens from error messages."""
    sanitized = re.sub(
        r"(sk-ant-|sk-|AIza|Bearer\s+|api[_-]?key[=:\s]+)[a-zA-Z0-9\-_.]{10,}",
        "[redacted]",
        error,
        flags=re.IGNORECASE,
    )
    return sanitized[:200] if len(sanitized) > 200 else sanitized


# ==================== Translation ====================

def _model_unavailable_message(model: str, vendor: Optional[str]):
    """Build the model-unavailable message using the availability registry."""
    from .availability import ModelAvailabilityStatus, check_availability

    info = check_availability(model, vendor)
    message = f"Model not available: {model}."

    if info.status == ModelAvailabilityStatus.LIMITED_PREVIEW:
        message += f" {info.reason or 'This model has limited availability.'}"
    elif info.status == ModelAvailabilityStatus.EXPERIMENTAL:
        message += f" {info.reason or 'This model is experimental.'}"
    elif info.status == ModelAvailabilityStatus.DEPRECATED:
        message += f" {info.reason or 'This model is deprecated.'}"
    else:
        message += (
            " This model may not exist or may not be available "
            "with your API key."
        )

    if info.fallback_model and info.fallback_model != model:
        message += f" Try using {info.fallback_model} instead."
        return message, info.fallback_model
    return message, None


def translate_error(
    exc: Optional[BaseException],
    *,
    vendor: Optional[str],
    provider_name: str,
    model: str,
    status_code: Optional[int] = None,
    message: Optional[str] = None,
    retry_after_seconds: Optional[float] = None,
) -> ProviderError:
    """
    Convert a vendor failure into the uniform ProviderError hierarchy.

    Args:
        exc: Original exception (used for the message when none is given).
        vendor: Vendor value for context and registry lookups.
        provider_name: Display name used in user-facing messages.
        model: Model identifier the request targeted.
        status_code: HTTP status extracted by the adapter, if any.
        message: Vendor error message, if extracted separately.
        retry_after_seconds: Server retry hint, if any.

    Returns:
        ProviderError subclass ready to raise.
    """
    if isinstance(exc, ProviderError):
        return exc

    raw = sanitize_error(message or (str(exc) if exc else "") or "Unknown error")
    category = classify_error(status_code, raw)
    context = {"vendor": vendor, "status_code": status_code}

    if category == ErrorCategory.AUTHENTICATION:
        return AuthenticationError(
            f"Authentication failed. Please check your {provider_name} "
            f"API key in settings.",
            **context,
        )

    if category == ErrorCategory.RATE_LIMITED:
        text = (
            f"Rate limit exceeded. Please try again later or check your "
            f"{provider_name} account usage limits."
        )
        if retry_after_seconds is not None:
            text += f" Retry after {retry_after_seconds:g}s."
        return RateLimitedError(
            text, retry_after_seconds=retry_after_seconds, **context
        )

    if category == ErrorCategory.MODEL_UNAVAILABLE:
        text, fallback = _model_unavailable_message(model, vendor)
        return ModelUnavailableError(
            text, model=model, fallback_model=fallback, **context
        )

    if category == ErrorCategory.INVALID_REQUEST:
        text = f"Invalid request: {raw.rstrip('.')}."
        lowered = raw.lower()
        if "image" in lowered or "vision" in lowered or "multi-modal" in lowered:
            text += (
                f" Make sure {model} supports image input for "
                f"multi-modal requests."
            )
            return ModalityMismatchError(text, **context)
        if "token" in lowered:
            text += (
                " This may be due to exceeding token limits. Try reducing "
                "your input or output token settings."
            )
        return InvalidRequestError(text, **context)

    if category == ErrorCategory.NETWORK:
        return ProviderNetworkError(
            f"{provider_name} network error: {raw}", **context
        )

    return ProviderNetworkError(
        f"Failed to generate content with {provider_name}: {raw}", **context
    )
