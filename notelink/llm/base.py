"""
Base AI Provider Interface for NoteLink.

Shared data model (vendors, settings, content parts, gateway responses)
and the abstract contract every vendor adapter implements.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .errors import ProviderConfigurationError, parse_retry_after


class Vendor(str, Enum):
    """Supported AI vendors."""

    GOOGLE = "google"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"

    @classmethod
    def parse(cls, value: Union["Vendor", str]) -> "Vendor":
        """Resolve an enum member, vendor string, or common alias."""
        if isinstance(value, cls):
            return value
        key = str(value or "").lower().strip()
        resolved = _VENDOR_ALIASES.get(key)
        if resolved is None:
            raise ProviderConfigurationError(
                f"Unsupported AI vendor '{value}'. "
                f"Supported: {', '.join(v.value for v in cls)}"
            )
        return resolved


_VENDOR_ALIASES = {
    "google": Vendor.GOOGLE,
    "google-ai": Vendor.GOOGLE,
    "gemini": Vendor.GOOGLE,
    "openai": Vendor.OPENAI,
    "gpt": Vendor.OPENAI,
    "anthropic": Vendor.ANTHROPIC,
    "claude": Vendor.ANTHROPIC,
}


@dataclass(frozen=True)
class ProviderSettings:
    """
    Settings for a single provider instance.

    Immutable and hashable so it can take part in the factory cache key.
    The API key is kept out of repr() to stay out of logs.
    """

    api_key: str = field(repr=False)
    model: str
    max_tokens: int = 2048
    temperature: float = 0.7
    vendor: Vendor = Vendor.GOOGLE
    use_gateway: bool = False
    gateway_url: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "vendor", Vendor.parse(self.vendor))

        if not self.model or not self.model.strip():
            raise ProviderConfigurationError("Model identifier is required")
        if isinstance(self.max_tokens, bool) or not isinstance(self.max_tokens, int):
            raise ProviderConfigurationError("max_tokens must be an integer")
        if self.max_tokens <= 0:
            raise ProviderConfigurationError(
                f"max_tokens must be positive, got {self.max_tokens}"
            )
        if not 0.0 <= float(self.temperature) <= 1.0:
            raise ProviderConfigurationError(
                f"temperature must be within [0, 1], got {self.temperature}"
            )

    @property
    def gateway_enabled(self) -> bool:
        """True when calls should be routed through the MCP gateway."""
        return bool(self.use_gateway and self.gateway_url)


@dataclass(frozen=True)
class ContentPart:
    """One element of a multi-modal request: text or a base64 image."""

    type: str
    data: str
    mime_type: Optional[str] = None

    def __post_init__(self):
        if self.type not in ("text", "image"):
            raise ProviderConfigurationError(
                f"Unsupported content part type '{self.type}'"
            )
        if self.type == "image" and self.mime_type is None:
            object.__setattr__(self, "mime_type", "image/jpeg")

    @classmethod
    def text(cls, data: str) -> "ContentPart":
        return cls(type="text", data=data)

    @classmethod
    def image(cls, data: str, mime_type: str = "image/jpeg") -> "ContentPart":
        return cls(type="image", data=data, mime_type=mime_type)

    @property
    def is_image(self) -> bool:
        return self.type == "image"

    def to_dict(self) -> Dict[str, Any]:
        payload = {"type": self.type, "data": self.data}
        if self.mime_type:
            payload["mime_type"] = self.mime_type
        return payload


@dataclass
class AIErrorInfo:
    """Error half of an AIResponse."""

    code: int
    message: str
    retryable: bool = False
    retry_after_seconds: Optional[float] = None


@dataclass
class AIResponse:
    """Outcome of a single gateway call: generated text or an error."""

    text: Optional[str] = None
    error: Optional[AIErrorInfo] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def from_payload(
        cls, data: Dict[str, Any], status_code: int = 200
    ) -> "AIResponse":
        """
        Create a response from a gateway JSON body.

        Accepts ``{"text": ...}`` / ``{"content": ...}`` on success and
        ``{"error": "msg"}`` or ``{"error": {"message": ..., "retryAfter": ...}}``
        on failure.
        """
        error = data.get("error")
        if error or status_code >= 400:
            if isinstance(error, dict):
                message = error.get("message") or f"Server error: {status_code}"
                retry_after = error.get("retryAfter", data.get("retryAfter"))
                code = error.get("code", status_code)
            else:
                message = error or f"Server error: {status_code}"
                retry_after = data.get("retryAfter")
                code = status_code
            if not isinstance(code, int):
                code = status_code
            return cls(
                error=AIErrorInfo(
                    code=code,
                    message=str(message),
                    retryable=code in (429, 503),
                    retry_after_seconds=parse_retry_after(retry_after),
                )
            )

        return cls(text=data.get("text") or data.get("content") or "")


class AIProvider(ABC):
    """
    Contract shared by all vendor adapters and the resilience wrapper.

    Implementations translate a prompt (plus optional content parts) into
    one vendor's API and raise the uniform errors from ``errors``.
    """

    @property
    @abstractmethod
    def vendor(self) -> Vendor:
        """Vendor the provider talks to (or proxies to)."""
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Human-readable provider name (e.g., 'OpenAI')."""
        pass

    @property
    @abstractmethod
    def model(self) -> str:
        """Model identifier used for requests."""
        pass

    @property
    @abstractmethod
    def rate_limit_key(self) -> str:
        """Key under which calls are admitted by the RateLimiter."""
        pass

    @property
    @abstractmethod
    def supports_multimodal(self) -> bool:
        """Whether the configured model accepts image input."""
        pass

    @abstractmethod
    async def generate_content(self, prompt: str) -> str:
        """
        Generate text for a prompt.

        Raises:
            ProviderError subclass describing the failure category.
        """
        pass

    @abstractmethod
    async def generate_multimodal_content(
        self, prompt: str, parts: List[ContentPart]
    ) -> str:
        """
        Generate text for a prompt plus ordered text/image parts.

        Raises:
            ModalityMismatchError: If the model does not accept images.
            ProviderError subclass for any other failure.
        """
        pass

    @abstractmethod
    async def is_api_key_valid(self) -> bool:
        """Make a minimal call; never raises, returns False on failure."""
        pass

    def get_vendor(self) -> Vendor:
        return self.vendor

    def get_provider_name(self) -> str:
        return self.provider_name

    async def close(self) -> None:
        """Release client resources. Called during application shutdown."""
        pass
