"""
OpenAI GPT AI Provider for NoteLink.

Supports GPT-4o, GPT-4 Turbo, GPT-4 and GPT-3.5 Turbo.
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


class OpenAIProvider(AIProvider):
    """
    OpenAI GPT AI provider.

    Models:
    - gpt-3.5-turbo: Fast, cost-effective (default)
    - gpt-4o-mini: Smaller, faster version of GPT-4o (vision)
    - gpt-4o: Latest model with improved capabilities (vision)
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
        logger.info(f"Initializing OpenAI model: {settings.model}")

    @property
    def vendor(self) -> Vendor:
        return Vendor.OPENAI

    @property
    def provider_name(self) -> str:
        return "OpenAI"

    @property
    def model(self) -> str:
        return self.settings.model

    @property
    def rate_limit_key(self) -> str:
        return Vendor.OPENAI.value

    @property
    def supports_multimodal(self) -> bool:
        return supports_multimodal(self.model, Vendor.OPENAI)

    @property
    def client(self):
        """Lazy-load the async OpenAI client (retries handled by the wrapper)."""
        if self._client is None:
            try:
                from openai import AsyncOpenAI

                self._client = AsyncOpenAI(
                    api_key=self.settings.api_key,
                    max_retries=0,
                    timeout=self.timeout,
                )
            except ImportError:
                raise ImportError("openai package required: pip install openai")
        return self._client

    def _translate(self, exc: Exception) -> ProviderError:
        status = getattr(exc, "status_code", None)
        response = getattr(exc, "response", None)
        retry_after = None
        if response is not None and getattr(response, "headers", None) is not None:
            retry_after = parse_retry_after(response.headers.get("retry-after"))

        return translate_error(
            exc,
            vendor=self.vendor.value,
            provider_name=self.provider_name,
            model=self.model,
            status_code=status if isinstance(status, int) else None,
            message=getattr(exc, "message", None) or str(exc),
            retry_after_seconds=retry_after,
        )

    async def _complete(self, content, operation: str) -> str:
        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": content}],
                max_tokens=self.settings.max_tokens,
                temperature=self.settings.temperature,
            )
            if not completion.choices:
                return ""
            return completion.choices[0].message.content or ""
        except ProviderError:
            raise
        except Exception as e:
            error = self._translate(e)
            logger.error(
                f"OpenAI {operation} error ({type(e).__name__}): "
                f"{sanitize_error(str(e))}"
            )
            raise error from e

    async def generate_content(self, prompt: str) -> str:
        """Generate response using OpenAI API."""
        logger.debug(
            f"Generating content with model: {self.model}, "
            f"temperature: {self.settings.temperature}"
        )
        return await self._complete(prompt, "generate_content")

    async def generate_multimodal_content(
        self, prompt: str, parts: List[ContentPart]
    ) -> str:
        """Generate response with image inputs sent as data URLs."""
        if any(part.is_image for part in parts) and not self.supports_multimodal:
            raise ModalityMismatchError(
                f"{self.model} does not accept image input. Multi-modal "
                f"content generation requires a vision-capable model such "
                f"as gpt-4o; please update your model in settings.",
                vendor=self.vendor.value,
            )

        content = [{"type": "text", "text": prompt}]
        for part in parts:
            if part.is_image:
                content.append({
                    "type": "image_url",
                    "image_url": {
                        "url": f"data:{part.mime_type};base64,{part.data}",
                    },
                })
            else:
                content.append({"type": "text", "text": part.data})

        return await self._complete(content, "generate_multimodal_content")

    async def is_api_key_valid(self) -> bool:
        """List models; any failure means the key is unusable."""
        if not self.settings.api_key:
            return False
        try:
            await self.client.models.list()
            return True
        except Exception as e:
            logger.warning(
                f"OpenAI API key validation failed: {sanitize_error(str(e))}"
            )
            return False

    async def close(self) -> None:
        """Release client resources."""
        if self._client is not None:
            try:
                if hasattr(self._client, "close"):
                    await self._client.close()
                logger.debug("OpenAI client closed")
            except Exception as e:
                logger.debug(f"Error closing OpenAI client: {e}")
            finally:
                self._client = None
