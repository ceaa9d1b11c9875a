"""
Model Availability Registry for NoteLink.

Classifies vendor model identifiers without a network call so that
failed requests can be explained and a fallback model suggested.
Everything here is static and side-effect free.
"""

import re
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Union

from .base import Vendor


class ModelAvailabilityStatus(str, Enum):
    """How reliably a model identifier can be expected to work."""

    GENERALLY_AVAILABLE = "generally_available"
    LIMITED_PREVIEW = "limited_preview"
    EXPERIMENTAL = "experimental"
    DEPRECATED = "deprecated"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ModelAvailabilityInfo:
    """Availability status plus optional reason and fallback suggestion."""

    status: ModelAvailabilityStatus
    reason: Optional[str] = None
    fallback_model: Optional[str] = None


_GA = ModelAvailabilityStatus.GENERALLY_AVAILABLE
_PREVIEW = ModelAvailabilityStatus.LIMITED_PREVIEW
_EXPERIMENTAL = ModelAvailabilityStatus.EXPERIMENTAL
_DEPRECATED = ModelAvailabilityStatus.DEPRECATED


def _table(entries: Dict[str, ModelAvailabilityInfo]) -> Mapping[str, ModelAvailabilityInfo]:
    return MappingProxyType(entries)


# ==================== Static Tables ====================

GOOGLE_MODEL_AVAILABILITY = _table({
    # Gemini 2.5
    "gemini-2.5-pro-preview-05-06": ModelAvailabilityInfo(
        _PREVIEW,
        "This is a preview model that may have limited availability.",
        "gemini-1.5-pro",
    ),
    "gemini-2.5-flash-preview-05-20": ModelAvailabilityInfo(
        _PREVIEW,
        "This is a preview model that may have limited availability.",
        "gemini-2.0-flash",
    ),
    "gemini-2.5-flash-preview-tts": ModelAvailabilityInfo(
        _PREVIEW,
        "This preview model is optimized for text-to-speech output.",
        "gemini-2.0-flash",
    ),
    "gemini-2.5-pro-preview-tts": ModelAvailabilityInfo(
        _PREVIEW,
        "This preview model is optimized for text-to-speech output.",
        "gemini-1.5-pro",
    ),
    "gemini-2.5-pro": ModelAvailabilityInfo(_GA),
    "gemini-2.5-flash": ModelAvailabilityInfo(_GA),
    # Gemini 2.0
    "gemini-2.0-flash": ModelAvailabilityInfo(_GA),
    "gemini-2.0-flash-lite": ModelAvailabilityInfo(_GA),
    "gemini-2.0-flash-preview-image-generation": ModelAvailabilityInfo(
        _EXPERIMENTAL,
        "This model is specialized for image generation and may change without notice.",
        "gemini-2.0-flash",
    ),
    "gemini-2.0-flash-live-001": ModelAvailabilityInfo(
        _EXPERIMENTAL,
        "This model targets the Live API and may not accept standard requests.",
        "gemini-2.0-flash",
    ),
    # Gemini 1.5
    "gemini-1.5-pro": ModelAvailabilityInfo(_GA),
    "gemini-1.5-flash": ModelAvailabilityInfo(_GA),
    "gemini-1.5-flash-8b": ModelAvailabilityInfo(_GA),
    # Legacy
    "gemini-pro": ModelAvailabilityInfo(
        _DEPRECATED,
        "This model is deprecated. Consider using Gemini 1.5 models instead.",
        "gemini-1.5-pro",
    ),
    "gemini-1.0-pro": ModelAvailabilityInfo(
        _DEPRECATED,
        "This model is deprecated. Consider using Gemini 1.5 models instead.",
        "gemini-1.5-pro",
    ),
    "gemini-pro-vision": ModelAvailabilityInfo(
        _DEPRECATED,
        "This model is deprecated. Gemini 1.5 models accept images natively.",
        "gemini-1.5-flash",
    ),
})

OPENAI_MODEL_AVAILABILITY = _table({
    # GPT-4 models
    "gpt-4": ModelAvailabilityInfo(_GA),
    "gpt-4-turbo": ModelAvailabilityInfo(_GA),
    "gpt-4-turbo-preview": ModelAvailabilityInfo(_GA),
    "gpt-4-vision-preview": ModelAvailabilityInfo(
        _GA, "This model supports image inputs."
    ),
    "gpt-4-32k": ModelAvailabilityInfo(_GA),
    "gpt-4-32k-0613": ModelAvailabilityInfo(
        _DEPRECATED,
        "This model is deprecated. Consider using gpt-4-turbo instead.",
        "gpt-4-turbo",
    ),
    "gpt-4-0613": ModelAvailabilityInfo(
        _DEPRECATED,
        "This model is deprecated. Consider using gpt-4-turbo instead.",
        "gpt-4-turbo",
    ),
    # GPT-3.5 models
    "gpt-3.5-turbo": ModelAvailabilityInfo(_GA),
    "gpt-3.5-turbo-16k": ModelAvailabilityInfo(
        _DEPRECATED,
        "This model is deprecated. Consider using gpt-3.5-turbo instead, "
        "which has been updated with 16k context.",
        "gpt-3.5-turbo",
    ),
    "gpt-3.5-turbo-instruct": ModelAvailabilityInfo(_GA),
    "gpt-3.5-turbo-0613": ModelAvailabilityInfo(
        _DEPRECATED,
        "This model is deprecated. Consider using gpt-3.5-turbo instead.",
        "gpt-3.5-turbo",
    ),
    # GPT-4o family
    "gpt-4o": ModelAvailabilityInfo(
        _GA, "This is OpenAI's latest model with improved capabilities."
    ),
    "gpt-4o-mini": ModelAvailabilityInfo(
        _GA, "This is a smaller, faster version of GPT-4o."
    ),
})

ANTHROPIC_MODEL_AVAILABILITY = _table({
    # Claude 3 models
    "claude-3-opus-20240229": ModelAvailabilityInfo(_GA),
    "claude-3-sonnet-20240229": ModelAvailabilityInfo(_GA),
    "claude-3-haiku-20240307": ModelAvailabilityInfo(_GA),
    "claude-3-5-sonnet-20240620": ModelAvailabilityInfo(_GA),
    # Claude 2 models
    "claude-2.0": ModelAvailabilityInfo(
        _DEPRECATED,
        "This model is deprecated. Consider using Claude 3 models instead.",
        "claude-3-haiku-20240307",
    ),
    "claude-2.1": ModelAvailabilityInfo(
        _DEPRECATED,
        "This model is deprecated. Consider using Claude 3 models instead.",
        "claude-3-haiku-20240307",
    ),
    # Claude Instant
    "claude-instant-1.2": ModelAvailabilityInfo(
        _DEPRECATED,
        "This model is deprecated. Consider using Claude 3 Haiku instead.",
        "claude-3-haiku-20240307",
    ),
})

_TABLES = {
    Vendor.GOOGLE: GOOGLE_MODEL_AVAILABILITY,
    Vendor.OPENAI: OPENAI_MODEL_AVAILABILITY,
    Vendor.ANTHROPIC: ANTHROPIC_MODEL_AVAILABILITY,
}

# Models offered in settings, per vendor.
MODELS_BY_VENDOR: Mapping[Vendor, tuple] = MappingProxyType({
    Vendor.GOOGLE: (
        "gemini-1.5-pro",
        "gemini-1.5-flash",
        "gemini-1.5-flash-8b",
        "gemini-2.0-flash",
        "gemini-2.0-flash-lite",
        "gemini-2.0-flash-live-001",
        "gemini-2.5-pro-preview-05-06",
        "gemini-2.5-flash-preview-05-20",
        "gemini-pro",
    ),
    Vendor.OPENAI: (
        "gpt-4o",
        "gpt-4o-mini",
        "gpt-4-turbo",
        "gpt-4",
        "gpt-3.5-turbo",
        "gpt-3.5-turbo-instruct",
    ),
    Vendor.ANTHROPIC: (
        "claude-3-5-sonnet-20240620",
        "claude-3-opus-20240229",
        "claude-3-sonnet-20240229",
        "claude-3-haiku-20240307",
    ),
})

DEFAULT_MODELS: Mapping[Vendor, str] = MappingProxyType({
    Vendor.GOOGLE: "gemini-1.5-flash",
    Vendor.OPENAI: "gpt-3.5-turbo",
    Vendor.ANTHROPIC: "claude-3-haiku-20240307",
})

_UNKNOWN_REASON = (
    "This model is not in our database. It may or may not be available "
    "with your API key."
)

_EXPERIMENTAL_TOKEN = re.compile(r"(^|[-_.])(exp|experimental)([-_.]|\d|$)")


# ==================== Lookup ====================

def infer_vendor(model_id: str) -> Optional[Vendor]:
    """Guess the vendor from a model identifier's family prefix."""
    name = (model_id or "").lower()
    if name.startswith(("gemini", "models/gemini", "learnlm")):
        return Vendor.GOOGLE
    if name.startswith("claude"):
        return Vendor.ANTHROPIC
    if name.startswith(("gpt", "chatgpt")) or re.match(r"^o\d", name):
        return Vendor.OPENAI
    return None


def _resolve_vendor(
    model_id: str, vendor: Union[Vendor, str, None]
) -> Optional[Vendor]:
    if vendor is not None:
        try:
            return Vendor.parse(vendor)
        except ValueError:
            return None
    return infer_vendor(model_id)


def _infer_fallback(model_id: str, vendor: Optional[Vendor]) -> Optional[str]:
    """Suggest a same-family model, else the vendor's mid-tier default."""
    name = model_id.lower()

    if vendor == Vendor.ANTHROPIC:
        if "opus" in name:
            return "claude-3-opus-20240229"
        if "sonnet" in name:
            return "claude-3-sonnet-20240229"
        return "claude-3-haiku-20240307"

    if vendor == Vendor.OPENAI:
        if "gpt-4o" in name:
            return "gpt-4o"
        if "gpt-4" in name:
            return "gpt-4-turbo"
        return "gpt-3.5-turbo"

    if vendor == Vendor.GOOGLE:
        if "pro" in name:
            return "gemini-1.5-pro"
        return "gemini-2.0-flash"

    return None


def check_availability(
    model_id: str, vendor: Union[Vendor, str, None] = None
) -> ModelAvailabilityInfo:
    """
    Classify a model identifier.

    Args:
        model_id: Vendor model identifier (e.g., 'claude-2.0').
        vendor: Optional vendor hint; inferred from the id when omitted.

    Returns:
        ModelAvailabilityInfo. Unknown identifiers yield UNKNOWN, never raise.
    """
    model_id = model_id or ""
    resolved = _resolve_vendor(model_id, vendor)

    tables = [_TABLES[resolved]] if resolved in _TABLES else list(_TABLES.values())
    for table in tables:
        if model_id in table:
            return table[model_id]

    name = model_id.lower()
    if "preview" in name:
        return ModelAvailabilityInfo(
            _PREVIEW,
            "This appears to be a preview model that may have limited availability.",
            _infer_fallback(model_id, resolved),
        )

    if _EXPERIMENTAL_TOKEN.search(name):
        return ModelAvailabilityInfo(
            _EXPERIMENTAL,
            "This appears to be an experimental model that may change or "
            "be withdrawn without notice.",
            _infer_fallback(model_id, resolved),
        )

    return ModelAvailabilityInfo(ModelAvailabilityStatus.UNKNOWN, _UNKNOWN_REASON)


def supports_multimodal(
    model_id: str, vendor: Union[Vendor, str, None] = None
) -> bool:
    """Whether a model is known to accept image input."""
    name = (model_id or "").lower()
    resolved = _resolve_vendor(model_id, vendor)

    if resolved == Vendor.ANTHROPIC:
        # Claude 3 and newer (claude-3-*, claude-3-5-*, claude-sonnet-4-*, ...)
        return bool(
            re.search(r"claude-([3-9]|\d{2,})", name)
            or re.search(r"claude-(opus|sonnet|haiku)-\d", name)
        )

    if resolved == Vendor.OPENAI:
        if "instruct" in name or name.startswith("gpt-3.5"):
            return False
        if name.startswith(("gpt-4o", "gpt-4.1", "gpt-4.5", "gpt-5", "chatgpt-4o")):
            return True
        if "vision" in name or name.startswith("gpt-4-turbo"):
            return True
        return bool(re.match(r"^o[1-9](?!-mini)", name))

    if resolved == Vendor.GOOGLE:
        if "tts" in name or "image-generation" in name:
            return False
        if name in ("gemini-pro", "gemini-1.0-pro"):
            return False
        return True

    return False


def get_models_for_vendor(vendor: Union[Vendor, str]) -> List[str]:
    """Model identifiers offered for a vendor (empty for unknown vendors)."""
    try:
        return list(MODELS_BY_VENDOR[Vendor.parse(vendor)])
    except ValueError:
        return []


def get_default_model_for_vendor(vendor: Union[Vendor, str]) -> str:
    """
    Default model for a vendor.

    Raises:
        ProviderConfigurationError: If the vendor is unsupported.
    """
    return DEFAULT_MODELS[Vendor.parse(vendor)]
