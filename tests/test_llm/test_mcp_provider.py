"""
Tests for MCPProvider in llm/mcp_provider.py.

The gateway is simulated with httpx.MockTransport.
Run: pytest tests/test_llm/test_mcp_provider.py -v
"""

import json

import httpx
import pytest

from notelink.llm.availability import ModelAvailabilityStatus
from notelink.llm.base import ContentPart, Vendor
from notelink.llm.errors import (
    AuthenticationError,
    ModalityMismatchError,
    ModelUnavailableError,
    ProviderNetworkError,
    RateLimitedError,
)
from notelink.llm.mcp_provider import GatewayModel, MCPProvider
from notelink.llm.resilient_provider import ResilientProvider, RetryPolicy

GATEWAY_URL = "https://gateway.test/v1"

CATALOG = {
    "models": [
        {"id": "claude-2.1", "vendor": "anthropic", "status": "deprecated"},
        {"id": "claude-3-haiku-20240307", "vendor": "anthropic", "status": "available",
         "capabilities": ["text", "vision"]},
        {"id": "claude-3-5-sonnet-20240620", "vendor": "anthropic",
         "status": "generally_available", "capabilities": ["text", "vision"]},
        {"id": "gpt-4o", "vendor": "openai", "status": "generally_available",
         "capabilities": ["text"]},
        {"id": "gpt-4o-mini", "vendor": "OpenAI", "status": "generally_available"},
    ]
}


class GatewayStub:
    """Records requests and answers them from a {(method, path): response} map."""

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": "no route"})
        if isinstance(route, Exception):
            raise route
        # Fresh response per request; templates may be served repeatedly.
        return httpx.Response(route.status_code, headers=route.headers, content=route.content)

    def bodies(self, path):
        return [
            json.loads(request.content)
            for request in self.requests
            if request.url.path == path
        ]


def _make(make_settings, rate_limiter, stub, model="claude-3-haiku-20240307", vendor="anthropic"):
    settings = make_settings(
        api_key="mcp-key",
        model=model,
        vendor=vendor,
        use_gateway=True,
        gateway_url=GATEWAY_URL,
    )
    client = httpx.AsyncClient(transport=httpx.MockTransport(stub))
    return MCPProvider(settings, rate_limiter, client=client)


# ==================== GatewayModel ====================

class TestGatewayModel:

    def test_from_api_response_normalizes(self):
        model = GatewayModel.from_api_response(
            {"id": "gpt-4o", "vendor": "OpenAI", "status": "GENERALLY_AVAILABLE",
             "capabilities": ["Vision"]}
        )
        assert model.name == "gpt-4o"
        assert model.vendor == "openai"
        assert model.status == "generally_available"
        assert model.capabilities == ["vision"]
        assert model.priority == 5

    def test_unknown_status_lowest_priority(self):
        assert GatewayModel.from_api_response({"id": "x"}).priority == 0


# ==================== Generation ====================

class TestGenerate:

    @pytest.mark.asyncio
    async def test_generate_content(self, make_settings, rate_limiter):
        stub = GatewayStub({("POST", "/v1/generate"): httpx.Response(200, json={"text": "Gateway reply"})})
        provider = _make(make_settings, rate_limiter, stub)

        assert await provider.generate_content("Summarize") == "Gateway reply"

        body = stub.bodies("/v1/generate")[0]
        assert body == {
            "model": "claude-3-haiku-20240307",
            "prompt": "Summarize",
            "max_tokens": 256,
            "temperature": 0.2,
            "vendor": "anthropic",
        }
        assert provider.rate_limit_key == "mcp"
        assert rate_limiter.is_configured("mcp")
        assert provider.vendor == Vendor.ANTHROPIC
        await provider.close()

    @pytest.mark.asyncio
    async def test_multimodal_forwards_parts_in_order(self, make_settings, rate_limiter):
        stub = GatewayStub({("POST", "/v1/generate"): httpx.Response(200, json={"content": "ok"})})
        provider = _make(make_settings, rate_limiter, stub)

        result = await provider.generate_multimodal_content(
            "Describe", [ContentPart.image("aGVsbG8=", "image/png"), ContentPart.text("caption")]
        )

        assert result == "ok"
        parts = stub.bodies("/v1/generate")[0]["parts"]
        assert parts == [
            {"type": "image", "data": "aGVsbG8=", "mime_type": "image/png"},
            {"type": "text", "data": "caption"},
        ]

    @pytest.mark.asyncio
    async def test_multimodal_text_only_model_makes_no_request(self, make_settings, rate_limiter):
        stub = GatewayStub()
        provider = _make(make_settings, rate_limiter, stub, model="gpt-3.5-turbo", vendor="openai")

        with pytest.raises(ModalityMismatchError):
            await provider.generate_multimodal_content("Describe", [ContentPart.image("aGVsbG8=")])
        assert stub.requests == []

    @pytest.mark.asyncio
    async def test_deprecated_model_error(self, make_settings, rate_limiter):
        stub = GatewayStub({("POST", "/v1/generate"): httpx.Response(404, json={"error": "Model not found"})})
        provider = _make(make_settings, rate_limiter, stub, model="claude-2.0")

        with pytest.raises(ModelUnavailableError) as exc_info:
            await provider.generate_content("hi")
        assert "claude-3-haiku-20240307" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_rate_limited_with_header(self, make_settings, rate_limiter):
        stub = GatewayStub({
            ("POST", "/v1/generate"): httpx.Response(
                429, json={"error": "Too many requests"}, headers={"Retry-After": "5"}
            )
        })
        provider = _make(make_settings, rate_limiter, stub)

        with pytest.raises(RateLimitedError) as exc_info:
            await provider.generate_content("hi")
        assert exc_info.value.retry_after_seconds == 5.0

    @pytest.mark.asyncio
    async def test_rate_limited_with_body_hint(self, make_settings, rate_limiter):
        stub = GatewayStub({
            ("POST", "/v1/generate"): httpx.Response(
                429, json={"error": {"message": "Slow down", "retryAfter": 8}}
            )
        })
        provider = _make(make_settings, rate_limiter, stub)

        with pytest.raises(RateLimitedError) as exc_info:
            await provider.generate_content("hi")
        assert exc_info.value.retry_after_seconds == 8.0

    @pytest.mark.asyncio
    async def test_rate_limited_with_duration_string_hint(self, make_settings, rate_limiter):
        stub = GatewayStub({
            ("POST", "/v1/generate"): httpx.Response(
                429, json={"error": {"message": "slow down", "retryAfter": "30s"}}
            )
        })
        provider = _make(make_settings, rate_limiter, stub)

        with pytest.raises(RateLimitedError) as exc_info:
            await provider.generate_content("hi")
        assert exc_info.value.retry_after_seconds == 30.0
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_duration_string_hint_is_retried(self, make_settings, rate_limiter, record_sleep):
        replies = [
            httpx.Response(429, json={"error": {"message": "slow down", "retryAfter": "30s"}}),
            httpx.Response(200, json={"text": "after the wait"}),
        ]
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: replies.pop(0)))
        settings = make_settings(
            api_key="mcp-key",
            model="claude-3-haiku-20240307",
            vendor="anthropic",
            use_gateway=True,
            gateway_url=GATEWAY_URL,
        )
        provider = ResilientProvider(
            MCPProvider(settings, rate_limiter, client=client),
            rate_limiter,
            RetryPolicy(max_retries=2),
            sleep=record_sleep,
        )

        assert await provider.generate_content("hi") == "after the wait"
        assert record_sleep.delays == [30.0]

    @pytest.mark.asyncio
    async def test_authentication_error(self, make_settings, rate_limiter):
        stub = GatewayStub({
            ("POST", "/v1/generate"): httpx.Response(401, json={"error": {"message": "Invalid API key"}})
        })
        provider = _make(make_settings, rate_limiter, stub)

        with pytest.raises(AuthenticationError, match="MCP Gateway API key"):
            await provider.generate_content("hi")

    @pytest.mark.asyncio
    async def test_unparsable_success_body(self, make_settings, rate_limiter):
        stub = GatewayStub({("POST", "/v1/generate"): httpx.Response(200, content=b"<html>oops")})
        provider = _make(make_settings, rate_limiter, stub)

        with pytest.raises(ProviderNetworkError, match="parse"):
            await provider.generate_content("hi")

    @pytest.mark.asyncio
    async def test_transport_failure(self, make_settings, rate_limiter):
        stub = GatewayStub({("POST", "/v1/generate"): httpx.ConnectError("connection refused")})
        provider = _make(make_settings, rate_limiter, stub)

        with pytest.raises(ProviderNetworkError, match="Network error"):
            await provider.generate_content("hi")

    @pytest.mark.asyncio
    async def test_is_api_key_valid(self, make_settings, rate_limiter):
        stub = GatewayStub({("POST", "/v1/validate"): httpx.Response(200, json={"valid": True})})
        provider = _make(make_settings, rate_limiter, stub)
        assert await provider.is_api_key_valid() is True
        assert stub.bodies("/v1/validate") == [{"vendor": "anthropic"}]

        stub.routes[("POST", "/v1/validate")] = httpx.Response(401, json={"error": "bad key"})
        assert await provider.is_api_key_valid() is False

        stub.routes[("POST", "/v1/validate")] = httpx.ConnectError("down")
        assert await provider.is_api_key_valid() is False

    @pytest.mark.asyncio
    async def test_default_client_sends_bearer_token(self, make_settings, rate_limiter):
        settings = make_settings(
            api_key="mcp-key", model="gpt-4o", use_gateway=True, gateway_url=GATEWAY_URL + "/"
        )
        provider = MCPProvider(settings, rate_limiter)

        assert provider.client.headers["Authorization"] == "Bearer mcp-key"
        assert provider._url("/generate") == "https://gateway.test/v1/generate"
        await provider.close()
        assert provider._client is None


# ==================== Catalog ====================

class TestCatalog:

    @pytest.mark.asyncio
    async def test_fetch_available_models(self, make_settings, rate_limiter):
        stub = GatewayStub({("GET", "/v1/models"): httpx.Response(200, json=CATALOG)})
        provider = _make(make_settings, rate_limiter, stub)

        models = await provider.fetch_available_models()

        assert [model.id for model in models] == [entry["id"] for entry in CATALOG["models"]]

    @pytest.mark.asyncio
    async def test_fetch_failure_returns_none(self, make_settings, rate_limiter):
        stub = GatewayStub({("GET", "/v1/models"): httpx.Response(500, json={"error": "boom"})})
        provider = _make(make_settings, rate_limiter, stub)

        assert await provider.fetch_available_models() is None
        assert await provider.validate_model("gpt-4o") is False
        assert await provider.select_best_available_model("anthropic") is None

    @pytest.mark.asyncio
    async def test_validate_model(self, make_settings, rate_limiter):
        stub = GatewayStub({("GET", "/v1/models"): httpx.Response(200, json=CATALOG)})
        provider = _make(make_settings, rate_limiter, stub)

        assert await provider.validate_model("gpt-4o") is True
        assert await provider.validate_model("claude-2.0") is False

    @pytest.mark.asyncio
    async def test_select_best_for_vendor(self, make_settings, rate_limiter):
        stub = GatewayStub({("GET", "/v1/models"): httpx.Response(200, json=CATALOG)})
        provider = _make(make_settings, rate_limiter, stub)

        assert await provider.select_best_available_model(Vendor.ANTHROPIC) == "claude-3-5-sonnet-20240620"

    @pytest.mark.asyncio
    async def test_select_best_ties_keep_catalog_order(self, make_settings, rate_limiter):
        stub = GatewayStub({("GET", "/v1/models"): httpx.Response(200, json=CATALOG)})
        provider = _make(make_settings, rate_limiter, stub)

        assert await provider.select_best_available_model("openai") == "gpt-4o"
        assert await provider.select_best_available_model() == "claude-3-5-sonnet-20240620"

    @pytest.mark.asyncio
    async def test_select_best_no_models_for_vendor(self, make_settings, rate_limiter):
        stub = GatewayStub({("GET", "/v1/models"): httpx.Response(200, json=CATALOG)})
        provider = _make(make_settings, rate_limiter, stub)

        assert await provider.select_best_available_model("google") is None

    @pytest.mark.asyncio
    async def test_prefetched_catalog_reused(self, make_settings, rate_limiter):
        stub = GatewayStub({("GET", "/v1/models"): httpx.Response(200, json=CATALOG)})
        provider = _make(make_settings, rate_limiter, stub)

        catalog = await provider.fetch_available_models()

        assert provider.catalog == catalog
        assert await provider.validate_model("gpt-4o", catalog) is True
        assert await provider.select_best_available_model("anthropic", catalog) == "claude-3-5-sonnet-20240620"
        assert await provider.validate_model("gpt-4o", []) is False
        assert len(stub.requests) == 1

    @pytest.mark.asyncio
    async def test_catalog_capabilities_override_local_knowledge(self, make_settings, rate_limiter):
        """gpt-4o is vision-capable locally, but the gateway declares text only."""
        stub = GatewayStub({("GET", "/v1/models"): httpx.Response(200, json=CATALOG)})
        provider = _make(make_settings, rate_limiter, stub, model="gpt-4o", vendor="openai")

        assert provider.supports_multimodal is True
        await provider.fetch_available_models()
        assert provider.supports_multimodal is False

    @pytest.mark.asyncio
    async def test_check_model_availability(self, make_settings, rate_limiter):
        stub = GatewayStub({
            ("POST", "/v1/models/status"): httpx.Response(200, json={
                "status": "deprecated",
                "reason": "Retired by the vendor",
                "fallbackModel": "claude-3-haiku-20240307",
            })
        })
        provider = _make(make_settings, rate_limiter, stub)

        info = await provider.check_model_availability("claude-2.0")

        assert info.status == ModelAvailabilityStatus.DEPRECATED
        assert info.reason == "Retired by the vendor"
        assert info.fallback_model == "claude-3-haiku-20240307"
        assert stub.bodies("/v1/models/status") == [{"model": "claude-2.0", "vendor": "anthropic"}]

    @pytest.mark.asyncio
    async def test_check_model_availability_failure(self, make_settings, rate_limiter):
        stub = GatewayStub({("POST", "/v1/models/status"): httpx.Response(500)})
        provider = _make(make_settings, rate_limiter, stub)

        info = await provider.check_model_availability("claude-2.0")

        assert info.status == ModelAvailabilityStatus.UNKNOWN
        assert "Failed to check model status" in info.reason

    @pytest.mark.asyncio
    async def test_check_model_availability_unrecognized_status(self, make_settings, rate_limiter):
        stub = GatewayStub({("POST", "/v1/models/status"): httpx.Response(200, json={"status": "beta"})})
        provider = _make(make_settings, rate_limiter, stub)

        info = await provider.check_model_availability("x")
        assert info.status == ModelAvailabilityStatus.UNKNOWN
