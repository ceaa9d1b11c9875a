"""
AI Provider Factory for NoteLink.

Turns ProviderSettings into a ready, rate-limited provider. Adapters are
looked up in a registry keyed by vendor (or "mcp" for the gateway), so a
new vendor only needs register_adapter().
"""

import dataclasses
import logging
from typing import Callable, Dict, Optional, Tuple, Union

from ..config import Settings, get_settings
from .availability import get_default_model_for_vendor, get_models_for_vendor
from .base import AIProvider, ProviderSettings, Vendor
from .claude_provider import ClaudeProvider
from .errors import ProviderConfigurationError
from .gemini_provider import GeminiProvider
from .mcp_provider import MCPProvider
from .openai_provider import OpenAIProvider
from .rate_limiter import RateLimiter
from .resilient_provider import ResilientProvider, RetryPolicy

logger = logging.getLogger(__name__)

GATEWAY_KEY = "mcp"

# (settings, rate_limiter, requests_per_minute=, window_seconds=, timeout=) -> adapter
AdapterConstructor = Callable[..., AIProvider]

_DEFAULT_ADAPTERS: Dict[str, AdapterConstructor] = {
    Vendor.GOOGLE.value: GeminiProvider,
    Vendor.OPENAI.value: OpenAIProvider,
    Vendor.ANTHROPIC.value: ClaudeProvider,
    GATEWAY_KEY: MCPProvider,
}


class ProviderFactory:
    """
    Single entry point for obtaining providers.

    Owns the process's RateLimiter unless one is injected, and caches
    providers by (adapter key, model, full settings) so that two callers
    with different keys or sampling settings never share an instance.

    Usage:
        factory = ProviderFactory()
        provider = await factory.create_provider(settings)
        text = await provider.generate_content("Summarize this note ...")
    """

    def __init__(
        self,
        rate_limiter: Optional[RateLimiter] = None,
        retry_policy: Optional[RetryPolicy] = None,
        app_settings: Optional[Settings] = None,
    ):
        self.app_settings = app_settings or get_settings()
        self.rate_limiter = rate_limiter or RateLimiter()
        self.retry_policy = retry_policy or self.app_settings.retry_policy()
        self._adapters: Dict[str, AdapterConstructor] = dict(_DEFAULT_ADAPTERS)
        self._providers: Dict[Tuple[str, str, ProviderSettings], AIProvider] = {}

    @property
    def supported_vendors(self) -> list:
        return [key for key in self._adapters if key != GATEWAY_KEY]

    def register_adapter(
        self, key: Union[Vendor, str], constructor: AdapterConstructor
    ) -> None:
        """Register (or replace) the adapter constructor for a vendor key."""
        name = key.value if isinstance(key, Vendor) else str(key).lower().strip()
        self._adapters[name] = constructor
        logger.debug(f"Registered AI adapter for '{name}'")

    def _build(self, key: str, settings: ProviderSettings) -> AIProvider:
        constructor = self._adapters.get(key)
        if constructor is None:
            raise ProviderConfigurationError(
                f"Unsupported AI vendor '{key}'. "
                f"Supported: {', '.join(self.supported_vendors)}"
            )
        return constructor(
            settings,
            self.rate_limiter,
            requests_per_minute=self.app_settings.requests_per_minute_for(key),
            window_seconds=self.app_settings.rate_limit_window_seconds,
            timeout=self.app_settings.request_timeout_seconds,
        )

    async def _build_gateway(self, settings: ProviderSettings) -> AIProvider:
        """Build the gateway adapter, substituting the model if it is not in the catalog."""
        adapter = self._build(GATEWAY_KEY, settings)

        catalog = await adapter.fetch_available_models() or []
        if await adapter.validate_model(settings.model, catalog):
            return adapter

        best = await adapter.select_best_available_model(settings.vendor, catalog)
        if not best or best == settings.model:
            logger.warning(
                f"Model {settings.model} not found in MCP catalog and no "
                f"substitute available; using it as configured"
            )
            return adapter

        logger.warning(
            f"Model {settings.model} not available via MCP gateway, "
            f"substituting {best}"
        )
        await adapter.close()
        substitute = self._build(GATEWAY_KEY, dataclasses.replace(settings, model=best))
        substitute.catalog = catalog
        return substitute

    async def create_provider(self, settings: ProviderSettings) -> AIProvider:
        """
        Create (or reuse) a provider for the given settings.

        Args:
            settings: Validated provider settings.

        Returns:
            AIProvider with rate limiting and retries applied.

        Raises:
            ProviderConfigurationError: If the vendor has no registered adapter.
        """
        key = GATEWAY_KEY if settings.gateway_enabled else settings.vendor.value
        cache_key = (key, settings.model, settings)

        cached = self._providers.get(cache_key)
        if cached is not None:
            return cached

        if key == GATEWAY_KEY:
            adapter = await self._build_gateway(settings)
        else:
            adapter = self._build(key, settings)

        # A concurrent call for the same settings may have finished first.
        cached = self._providers.get(cache_key)
        if cached is not None:
            await adapter.close()
            return cached

        logger.info(
            f"Creating AI provider: {adapter.provider_name} ({adapter.model})"
        )
        provider = ResilientProvider(adapter, self.rate_limiter, self.retry_policy)
        self._providers[cache_key] = provider
        return provider

    async def create_provider_from_config(
        self, vendor: Optional[str] = None
    ) -> AIProvider:
        """Create a provider from the application Settings."""
        return await self.create_provider(self.app_settings.provider_settings(vendor))

    @staticmethod
    def get_models_for_vendor(vendor: Union[Vendor, str]) -> list:
        return get_models_for_vendor(vendor)

    @staticmethod
    def get_default_model_for_vendor(vendor: Union[Vendor, str]) -> str:
        return get_default_model_for_vendor(vendor)

    def clear(self) -> None:
        """Forget cached providers (for testing)."""
        self._providers.clear()

    async def aclose(self) -> None:
        """Close every cached provider."""
        for provider in self._providers.values():
            await provider.close()
        self._providers.clear()
