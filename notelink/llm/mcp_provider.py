"""
MCP Gateway AI Provider for NoteLink.

Routes requests through an MCP gateway that keeps vendor API keys
server-side and exposes its own model catalog.

Endpoints (relative to the gateway URL):
- POST /generate       prompt (+ parts) -> {"text": ...}
- POST /validate       key check for a vendor
- GET  /models         {"models": [{id, name, vendor, status, capabilities}]}
- POST /models/status  {status, reason, fallbackModel}
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import httpx

from .availability import (
    ModelAvailabilityInfo,
    ModelAvailabilityStatus,
    supports_multimodal,
)
from .base import AIProvider, AIResponse, ContentPart, ProviderSettings, Vendor
from .errors import (
    ModalityMismatchError,
    ProviderNetworkError,
    parse_retry_after,
    sanitize_error,
    translate_error,
)
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_URL = "https://api.mcp.windsurf.ai/v1"

# Higher number = preferred when substituting a model.
STATUS_PRIORITY = {
    "generally_available": 5,
    "available": 4,
    "limited_preview": 3,
    "preview": 2,
    "experimental": 1,
    "deprecated": 0,
}


@dataclass
class GatewayModel:
    """Model entry from the gateway catalog."""

    id: str
    name: str = ""
    vendor: str = ""
    description: Optional[str] = None
    status: str = "unknown"
    capabilities: List[str] = field(default_factory=list)

    @classmethod
    def from_api_response(cls, data: Dict[str, Any]) -> "GatewayModel":
        """Create a catalog entry from API response."""
        return cls(
            id=data.get("id", ""),
            name=data.get("name") or data.get("id", ""),
            vendor=(data.get("vendor") or "").lower(),
            description=data.get("description"),
            status=(data.get("status") or "unknown").lower(),
            capabilities=[str(c).lower() for c in data.get("capabilities") or []],
        )

    @property
    def priority(self) -> int:
        return STATUS_PRIORITY.get(self.status, 0)


class MCPProvider(AIProvider):
    """
    MCP gateway provider.

    Features:
    - Bearer authentication against the gateway
    - Catalog lookups for model validation and substitution
    - Gateway errors mapped onto the same taxonomy as direct vendors
    """

    RATE_LIMIT_KEY = "mcp"

    def __init__(
        self,
        settings: ProviderSettings,
        rate_limiter: RateLimiter,
        *,
        requests_per_minute: int = 60,
        window_seconds: float = 60.0,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.server_url = (settings.gateway_url or DEFAULT_GATEWAY_URL).rstrip("/")
        self.timeout = timeout
        self._client = client
        self._catalog: Optional[List[GatewayModel]] = None
        self._rate_limiter = rate_limiter
        self._rate_limiter.configure(
            self.rate_limit_key, requests_per_minute, window_seconds
        )

    @property
    def vendor(self) -> Vendor:
        return self.settings.vendor

    @property
    def provider_name(self) -> str:
        return "MCP Gateway"

    @property
    def model(self) -> str:
        return self.settings.model

    @property
    def rate_limit_key(self) -> str:
        return self.RATE_LIMIT_KEY

    @property
    def catalog(self) -> Optional[List[GatewayModel]]:
        """Model list from the last successful fetch, if any."""
        return self._catalog

    @catalog.setter
    def catalog(self, models: Optional[List[GatewayModel]]) -> None:
        self._catalog = models

    @property
    def supports_multimodal(self) -> bool:
        """Prefer the gateway's declared capabilities over local knowledge."""
        if self._catalog:
            for entry in self._catalog:
                if entry.id == self.model and entry.capabilities:
                    return bool(
                        {"vision", "image", "multimodal", "multi-modal"}
                        & set(entry.capabilities)
                    )
        return supports_multimodal(self.model, self.vendor)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.settings.api_key}",
                },
            )
        return self._client

    def _url(self, path: str) -> str:
        return f"{self.server_url}/{path.lstrip('/')}"

    # ==================== Generation ====================

    async def _post_generate(self, payload: Dict[str, Any], operation: str) -> str:
        logger.debug(
            f"MCP {operation} with model {self.model} via {self.server_url}"
        )
        try:
            response = await self.client.post(self._url("/generate"), json=payload)
        except httpx.HTTPError as e:
            logger.error(
                f"MCP {operation} request failed ({type(e).__name__}): "
                f"{sanitize_error(str(e))}"
            )
            raise ProviderNetworkError(
                f"Network error contacting MCP gateway: {sanitize_error(str(e))}",
                vendor=self.vendor.value,
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            if response.is_success:
                raise ProviderNetworkError(
                    "Failed to parse MCP gateway response",
                    vendor=self.vendor.value,
                    status_code=response.status_code,
                ) from e
            data = {"error": response.reason_phrase or "Unknown error"}

        if not isinstance(data, dict):
            raise ProviderNetworkError(
                "Unexpected MCP gateway response shape",
                vendor=self.vendor.value,
                status_code=response.status_code,
            )

        result = AIResponse.from_payload(data, response.status_code)
        if result.ok:
            return result.text or ""

        retry_after = result.error.retry_after_seconds
        if retry_after is None:
            retry_after = parse_retry_after(response.headers.get("retry-after"))

        error = translate_error(
            None,
            vendor=self.vendor.value,
            provider_name=self.provider_name,
            model=self.model,
            status_code=result.error.code,
            message=f"MCP server error: {result.error.message}",
            retry_after_seconds=retry_after,
        )
        logger.error(
            f"MCP {operation} error ({response.status_code}): "
            f"{sanitize_error(result.error.message)}"
        )
        raise error

    def _payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "prompt": prompt,
            "max_tokens": self.settings.max_tokens,
            "temperature": self.settings.temperature,
            "vendor": self.vendor.value,
        }

    async def generate_content(self, prompt: str) -> str:
        """Generate response through the gateway."""
        return await self._post_generate(self._payload(prompt), "generate_content")

    async def generate_multimodal_content(
        self, prompt: str, parts: List[ContentPart]
    ) -> str:
        """Forward ordered content parts to the gateway."""
        if any(part.is_image for part in parts) and not self.supports_multimodal:
            raise ModalityMismatchError(
                f"{self.model} does not accept image input through the MCP "
                f"gateway. Please choose a vision-capable model in settings.",
                vendor=self.vendor.value,
            )

        payload = self._payload(prompt)
        payload["parts"] = [part.to_dict() for part in parts]
        return await self._post_generate(payload, "generate_multimodal_content")

    async def is_api_key_valid(self) -> bool:
        try:
            response = await self.client.post(
                self._url("/validate"), json={"vendor": self.vendor.value}
            )
            return response.is_success
        except Exception as e:
            logger.warning(
                f"MCP API key validation error: {sanitize_error(str(e))}"
            )
            return False

    # ==================== Catalog ====================

    async def fetch_available_models(self) -> Optional[List[GatewayModel]]:
        """
        Fetch the gateway's model catalog.

        Returns:
            List of GatewayModel, or None if the request fails.
        """
        try:
            response = await self.client.get(self._url("/models"))
            if not response.is_success:
                logger.error(
                    f"Failed to fetch models: server error {response.status_code}"
                )
                return None
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                f"Error fetching models from MCP server: {sanitize_error(str(e))}"
            )
            return None

        raw_models = data.get("models") if isinstance(data, dict) else None
        models = [
            GatewayModel.from_api_response(item)
            for item in raw_models or []
            if isinstance(item, dict) and item.get("id")
        ]
        self._catalog = models
        return models

    async def validate_model(
        self, model_id: str, catalog: Optional[List[GatewayModel]] = None
    ) -> bool:
        """True if the gateway catalog lists ``model_id``.

        ``catalog`` reuses an already fetched model list instead of calling
        the gateway again.
        """
        models = catalog if catalog is not None else await self.fetch_available_models()
        if not models:
            return False
        return any(model.id == model_id for model in models)

    async def select_best_available_model(
        self,
        vendor: Union[Vendor, str, None] = None,
        catalog: Optional[List[GatewayModel]] = None,
    ) -> Optional[str]:
        """
        Pick the highest-priority catalog model, optionally for one vendor.

        Ties keep catalog order. Returns None when nothing matches.
        Pass ``catalog`` to skip fetching the model list.
        """
        models = catalog if catalog is not None else await self.fetch_available_models()
        if not models:
            return None

        if vendor is not None:
            wanted = Vendor.parse(vendor).value
            models = [model for model in models if model.vendor == wanted]
        if not models:
            return None

        best = sorted(models, key=lambda model: model.priority, reverse=True)[0]
        return best.id

    async def check_model_availability(self, model_id: str) -> ModelAvailabilityInfo:
        """Ask the gateway how available ``model_id`` is."""
        try:
            response = await self.client.post(
                self._url("/models/status"),
                json={"model": model_id, "vendor": self.vendor.value},
            )
            if not response.is_success:
                return ModelAvailabilityInfo(
                    ModelAvailabilityStatus.UNKNOWN,
                    f"Failed to check model status: {response.reason_phrase}",
                )
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error checking model availability: {e}")
            return ModelAvailabilityInfo(
                ModelAvailabilityStatus.UNKNOWN,
                f"Error checking model: {sanitize_error(str(e))}",
            )

        if not isinstance(data, dict):
            data = {}
        try:
            status = ModelAvailabilityStatus((data.get("status") or "unknown").lower())
        except ValueError:
            status = ModelAvailabilityStatus.UNKNOWN
        return ModelAvailabilityInfo(
            status,
            data.get("reason"),
            data.get("fallbackModel"),
        )

    async def close(self) -> None:
        """Release client resources."""
        if self._client is not None:
            try:
                await self._client.aclose()
                logger.debug("MCP client closed")
            except Exception as e:
                logger.debug(f"Error closing MCP client: {e}")
            finally:
                self._client = None
