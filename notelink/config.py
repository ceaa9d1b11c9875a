"""
Configuration management for NoteLink AI providers.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Provider settings loaded from environment variables."""

    # Selection
    default_vendor: Literal["google", "openai", "anthropic"] = "google"
    model: str = ""  # Empty: vendor default model
    max_tokens: int = 2048
    temperature: float = 0.7

    # Vendor API keys
    google_api_key: str = ""
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # MCP gateway (vendor keys held server-side)
    use_mcp: bool = False
    mcp_server_url: str = ""
    mcp_api_key: str = ""

    # Rate limits (requests per window)
    google_requests_per_minute: int = 60
    openai_requests_per_minute: int = 60
    anthropic_requests_per_minute: int = 60
    mcp_requests_per_minute: int = 60
    rate_limit_window_seconds: float = 60.0

    # Retry / timeout
    max_retries: int = 3
    initial_backoff_seconds: float = 1.0
    max_backoff_seconds: float = 30.0
    request_timeout_seconds: float = 60.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    def api_key_for(self, vendor: str) -> str:
        """API key for a vendor (the gateway key when MCP is enabled)."""
        if self.use_mcp and self.mcp_server_url:
            return self.mcp_api_key
        return getattr(self, f"{vendor.lower()}_api_key", "")

    def requests_per_minute_for(self, key: str) -> int:
        """Rate limit for a rate-limit key ('google', 'openai', 'anthropic', 'mcp')."""
        return getattr(self, f"{key.lower()}_requests_per_minute", 60)

    def retry_policy(self):
        """RetryPolicy built from these settings."""
        from .llm.resilient_provider import RetryPolicy

        return RetryPolicy(
            max_retries=self.max_retries,
            initial_backoff_seconds=self.initial_backoff_seconds,
            max_backoff_seconds=self.max_backoff_seconds,
            request_timeout_seconds=self.request_timeout_seconds,
        )

    def provider_settings(self, vendor: Optional[str] = None):
        """ProviderSettings for ``vendor`` (default: default_vendor)."""
        from .llm.availability import get_default_model_for_vendor
        from .llm.base import ProviderSettings, Vendor

        resolved = Vendor.parse(vendor or self.default_vendor)
        return ProviderSettings(
            api_key=self.api_key_for(resolved.value),
            model=self.model or get_default_model_for_vendor(resolved),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            vendor=resolved,
            use_gateway=self.use_mcp,
            gateway_url=self.mcp_server_url or None,
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
