"""Multi-provider AI module for NoteLink."""

from .base import (
    AIErrorInfo,
    AIProvider,
    AIResponse,
    ContentPart,
    ProviderSettings,
    Vendor,
)
from .errors import (
    AuthenticationError,
    ErrorCategory,
    InvalidRequestError,
    ModalityMismatchError,
    ModelUnavailableError,
    ProviderConfigurationError,
    ProviderError,
    ProviderNetworkError,
    RateLimitedError,
)
from .availability import (
    ModelAvailabilityInfo,
    ModelAvailabilityStatus,
    check_availability,
    get_default_model_for_vendor,
    get_models_for_vendor,
    supports_multimodal,
)
from .rate_limiter import RateLimiter, RateLimitSnapshot
from .resilient_provider import (
    ResilientProvider,
    RetryPolicy,
    with_rate_limit_and_retry,
)
from .gemini_provider import GeminiProvider
from .openai_provider import OpenAIProvider
from .claude_provider import ClaudeProvider
from .mcp_provider import GatewayModel, MCPProvider
from .factory import ProviderFactory

__all__ = [
    # Base
    "AIErrorInfo",
    "AIProvider",
    "AIResponse",
    "ContentPart",
    "ProviderSettings",
    "Vendor",
    # Errors
    "AuthenticationError",
    "ErrorCategory",
    "InvalidRequestError",
    "ModalityMismatchError",
    "ModelUnavailableError",
    "ProviderConfigurationError",
    "ProviderError",
    "ProviderNetworkError",
    "RateLimitedError",
    # Availability
    "ModelAvailabilityInfo",
    "ModelAvailabilityStatus",
    "check_availability",
    "get_default_model_for_vendor",
    "get_models_for_vendor",
    "supports_multimodal",
    # Resilience
    "RateLimiter",
    "RateLimitSnapshot",
    "ResilientProvider",
    "RetryPolicy",
    "with_rate_limit_and_retry",
    # Providers
    "GeminiProvider",
    "OpenAIProvider",
    "ClaudeProvider",
    "GatewayModel",
    "MCPProvider",
    # Factory
    "ProviderFactory",
]
