"""
Google Gemini AI Provider for NoteLink.

Supports Gemini 1.5, 2.0 and 2.5 models.
Uses the google-genai async client.
"""

import base64
import binascii
import logging
from typing import Any, List, Optional

from .availability import supports_multimodal
from .base import AIProvider, ContentPart, ProviderSettings, Vendor
from .errors import (
    InvalidRequestError,
    ModalityMismatchError,
    ProviderError,
    parse_retry_after,
    sanitize_error,
    translate_error,
)
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def _find_retry_delay(details: Any) -> Optional[float]:
    """Pull ``retryDelay`` out of a google.rpc.RetryInfo error detail."""
    if isinstance(details, dict):
        if "retryDelay" in details:
            return parse_retry_after(details["retryDelay"])
        error = details.get("error")
        if isinstance(error, dict):
            return _find_retry_delay(error.get("details"))
        return _find_retry_delay(details.get("details"))
    if isinstance(details, list):
        for item in details:
            delay = _find_retry_delay(item)
            if delay is not None:
                return delay
    return None


class GeminiProvider(AIProvider):
    """
    Google Gemini AI provider.

    Models:
    - gemini-1.5-flash: Fast, cost-effective (default)
    - gemini-1.5-pro: Balanced model for most use cases
    - gemini-2.0-flash: Fast and efficient text generation
    """

    TOP_P = 0.9
    TOP_K = 40

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
        logger.info(f"Initializing Gemini model: {settings.model}")

    @property
    def vendor(self) -> Vendor:
        return Vendor.GOOGLE

    @property
    def provider_name(self) -> str:
        return "Google AI"

    @property
    def model(self) -> str:
        return self.settings.model

    @property
    def rate_limit_key(self) -> str:
        return Vendor.GOOGLE.value

    @property
    def supports_multimodal(self) -> bool:
        return supports_multimodal(self.model, Vendor.GOOGLE)

    @property
    def client(self):
        """Lazy-load the google-genai client."""
        if self._client is None:
            try:
                from google import genai
                from google.genai import types

                self._client = genai.Client(
                    api_key=self.settings.api_key,
                    http_options=types.HttpOptions(
                        timeout=int(self.timeout * 1000)
                    ),
                )
            except ImportError:
                raise ImportError(
                    "google-genai package required: pip install google-genai"
                )
        return self._client

    def _config(self):
        from google.genai import types

        return types.GenerateContentConfig(
            max_output_tokens=self.settings.max_tokens,
            temperature=self.settings.temperature,
            top_p=self.TOP_P,
            top_k=self.TOP_K,
        )

    def _translate(self, exc: Exception) -> ProviderError:
        status = getattr(exc, "code", None)
        if not isinstance(status, int):
            status = None
        message = getattr(exc, "message", None) or str(exc)
        vendor_status = getattr(exc, "status", None)
        if isinstance(vendor_status, str) and vendor_status not in message:
            message = f"{vendor_status}: {message}"
        # Gemini reports a bad key as 400 INVALID_ARGUMENT.
        if status == 400 and "api key" in message.lower():
            status = 401

        return translate_error(
            exc,
            vendor=self.vendor.value,
            provider_name=self.provider_name,
            model=self.model,
            status_code=status,
            message=message,
            retry_after_seconds=_find_retry_delay(getattr(exc, "details", None)),
        )

    async def _generate(self, contents: Any, operation: str) -> str:
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=self._config(),
            )
            return response.text or ""
        except ProviderError:
            raise
        except Exception as e:
            error = self._translate(e)
            logger.error(
                f"Gemini {operation} error ({type(e).__name__}): "
                f"{sanitize_error(str(e))}"
            )
            raise error from e

    async def generate_content(self, prompt: str) -> str:
        """Generate response using Gemini API."""
        logger.debug(
            f"Generating content with model: {self.model}, "
            f"temperature: {self.settings.temperature}"
        )
        return await self._generate(prompt, "generate_content")

    async def generate_multimodal_content(
        self, prompt: str, parts: List[ContentPart]
    ) -> str:
        """Generate response from a prompt plus ordered text/image parts."""
        if any(part.is_image for part in parts) and not self.supports_multimodal:
            raise ModalityMismatchError(
                f"{self.model} does not accept image input. Please choose a "
                f"vision-capable Gemini model in settings.",
                vendor=self.vendor.value,
            )

        from google.genai import types

        contents = [types.Part.from_text(text=prompt)]
        for part in parts:
            if part.is_image:
                try:
                    data = base64.b64decode(part.data, validate=True)
                except (binascii.Error, ValueError) as e:
                    raise InvalidRequestError(
                        "Image data is not valid base64. Please re-attach the image.",
                        vendor=self.vendor.value,
                    ) from e
                contents.append(
                    types.Part.from_bytes(data=data, mime_type=part.mime_type)
                )
            else:
                contents.append(types.Part.from_text(text=part.data))

        return await self._generate(contents, "generate_multimodal_content")

    async def is_api_key_valid(self) -> bool:
        """List a single model; any failure means the key is unusable."""
        if not self.settings.api_key:
            return False
        try:
            await self.client.aio.models.list(config={"page_size": 1})
            return True
        except Exception as e:
            logger.warning(
                f"Google AI API key validation failed: {sanitize_error(str(e))}"
            )
            return False

    async def close(self) -> None:
        """Release client resources."""
        if self._client is not None:
            try:
                aclose = getattr(self._client.aio, "aclose", None)
                if aclose is not None:
                    await aclose()
                logger.debug("Gemini client closed")
            except Exception as e:
                logger.debug(f"Error closing Gemini client: {e}")
            finally:
                self._client = None
