"""
Anthropic Claude AI Provider for NoteLink.

Supports Claude 3 Haiku, Claude 3 Sonnet, Claude 3 Opus and Claude 3.5 Sonnet.
"""

import logging
from typing import List

from .availability import supports_multimodal
from .base import AIProvider, ContentPart, ProviderSettings, Vendor
from .errors import (
    ModalityMismatchError,
    ProviderError,
    parse_retry_after,
    sanitize_error,
    translate_error,
)
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class ClaudeProvider(AIProvider):
    """
    Anthropic Claude AI provider.

    Models:
    - claude-3-haiku-20240307: Fast, cost-effective (default)
    - claude-3-5-sonnet-20240620: Balanced performance
    - claude-3-opus-20240229: Most capable
    """

    def __init__(
        self,
        settings: ProviderSettings,
        rate_limiter: RateLimiter,
        *,
        requests_per_minute: int = 60,
        window_seconds: float = 60.0,
        timeout: float = 60.0,
        client=None,
    ):
        self.settings = settings
        self.timeout = timeout
        self._client = client
        self._rate_limiter = rate_limiter
        self._rate_limiter.configure(
            self.rate_limit_key, requests_per_minute, window_seconds
        )
        logger.info(f"Initializing Anthropic model: {settings.model}")

    @property
    def vendor(self) -> Vendor:
        return Vendor.ANTHROPIC

    @property
    def provider_name(self) -> str:
        return "Anthropic"

    @property
    def model(self) -> str:
        return self.settings.model

    @property
    def rate_limit_key(self) -> str:
        return Vendor.ANTHROPIC.value

    @property
    def supports_multimodal(self) -> bool:
        return supports_multimodal(self.model, Vendor.ANTHROPIC)

    @property
    def client(self):
        """Lazy-load the async Anthropic client (retries handled by the wrapper)."""
        if self._client is None:
            try:
                import anthropic

                self._client = anthropic.AsyncAnthropic(
                    api_key=self.settings.api_key,
                    max_retries=0,
                    timeout=self.timeout,
                )
            except ImportError:
                raise ImportError(
                    "anthropic package required: pip install anthropic"
                )
        return self._client

    def _translate(self, exc: Exception) -> ProviderError:
        status = getattr(exc, "status_code", None)
        response = getattr(exc, "response", None)
        retry_after = None
        if response is not None and getattr(response, "headers", None) is not None:
            retry_after = parse_retry_after(response.headers.get("retry-after"))

        message = getattr(exc, "message", None) or str(exc)
        # 529 overloaded is Anthropic's 503 equivalent.
        if status == 529:
            status = 503

        return translate_error(
            exc,
            vendor=self.vendor.value,
            provider_name=self.provider_name,
            model=self.model,
            status_code=status if isinstance(status, int) else None,
            message=message,
            retry_after_seconds=retry_after,
        )

    async def _create(self, content, operation: str) -> str:
        try:
            message = await self.client.messages.create(
                model=self.model,
                max_tokens=self.settings.max_tokens,
                temperature=self.settings.temperature,
                messages=[{"role": "user", "content": content}],
            )
            return "".join(
                block.text
                for block in message.content
                if getattr(block, "type", None) == "text"
            )
        except ProviderError:
            raise
        except Exception as e:
            error = self._translate(e)
            logger.error(
                f"Claude {operation} error ({type(e).__name__}): "
                f"{sanitize_error(str(e))}"
            )
            raise error from e

    async def generate_content(self, prompt: str) -> str:
        """Generate response using Claude API."""
        logger.debug(
            f"Generating content with model: {self.model}, "
            f"temperature: {self.settings.temperature}"
        )
        return await self._create(prompt, "generate_content")

    async def generate_multimodal_content(
        self, prompt: str, parts: List[ContentPart]
    ) -> str:
        """Generate response with base64 image blocks (Claude 3 or newer)."""
        if any(part.is_image for part in parts) and not self.supports_multimodal:
            raise ModalityMismatchError(
                "Multi-modal content generation requires Claude 3 or newer. "
                "Please update your model in settings.",
                vendor=self.vendor.value,
            )

        content = [{"type": "text", "text": prompt}]
        for part in parts:
            if part.is_image:
                content.append({
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": part.mime_type,
                        "data": part.data,
                    },
                })
            else:
                content.append({"type": "text", "text": part.data})

        return await self._create(content, "generate_multimodal_content")

    async def is_api_key_valid(self) -> bool:
        """List one model; any failure means the key is unusable."""
        if not self.settings.api_key:
            return False
        try:
            await self.client.models.list(limit=1)
            return True
        except Exception as e:
            logger.warning(
                f"Anthropic API key validation failed: {sanitize_error(str(e))}"
            )
            return False

    async def close(self) -> None:
        """Release client resources."""
        if self._client is not None:
            try:
                if hasattr(self._client, "close"):
                    await self._client.close()
                logger.debug("Claude client closed")
            except Exception as e:
                logger.debug(f"Error closing Claude client: {e}")
            finally:
                self._client = None
