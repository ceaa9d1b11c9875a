"""
Pytest configuration and shared fixtures for NoteLink provider tests.

Provides:
- rate_limiter: fresh RateLimiter per test (no shared global state)
- app_settings: Settings isolated from the environment and .env
- make_settings: ProviderSettings factory
- make_fake_provider: in-memory AIProvider with scripted outcomes
- FakeAPIStatusError: SDK-shaped exception (status_code, message, response)
- record_sleep: awaitable sleep that records delays instead of waiting
"""

from types import SimpleNamespace
from typing import List, Optional

import httpx
import pytest

from notelink.config import Settings
from notelink.llm.base import AIProvider, ContentPart, ProviderSettings, Vendor
from notelink.llm.rate_limiter import RateLimiter


# ==================== SDK-shaped Errors ====================

class FakeAPIStatusError(Exception):
    """
    Mimics openai/anthropic APIStatusError.

    Exposes status_code, message and an httpx-like response with headers.
    """

    def __init__(self, status_code: int, message: str, headers: Optional[dict] = None):
        self.status_code = status_code
        self.message = message
        self.response = SimpleNamespace(
            status_code=status_code,
            headers=httpx.Headers(headers or {}),
        )
        super().__init__(f"Error code: {status_code} - {message}")


class FakeGenaiAPIError(Exception):
    """Mimics google.genai.errors.APIError (code, status, message, details)."""

    def __init__(self, code: int, status: str, message: str, details=None):
        self.code = code
        self.status = status
        self.message = message
        self.details = details
        super().__init__(f"{code} {status}. {message}")


@pytest.fixture
def fake_status_error():
    return FakeAPIStatusError


@pytest.fixture
def fake_genai_error():
    return FakeGenaiAPIError


# ==================== Core Fixtures ====================

@pytest.fixture
def rate_limiter() -> RateLimiter:
    """Each test gets its own limiter instance."""
    return RateLimiter()


@pytest.fixture
def app_settings() -> Settings:
    """Settings that ignore the process environment and any .env file."""
    return Settings(
        _env_file=None,
        google_api_key="AIza-test-google-key",
        openai_api_key="sk-test-openai-key",
        anthropic_api_key="sk-ant-test-anthropic-key",
        request_timeout_seconds=5.0,
    )


def _make_settings(**overrides) -> ProviderSettings:
    values = {
        "api_key": "test-key",
        "model": "gpt-4o-mini",
        "max_tokens": 256,
        "temperature": 0.2,
        "vendor": Vendor.OPENAI,
    }
    values.update(overrides)
    return ProviderSettings(**values)


@pytest.fixture
def make_settings():
    """Factory for ProviderSettings with sensible test defaults."""
    return _make_settings


@pytest.fixture
def record_sleep():
    """
    Awaitable replacement for asyncio.sleep.

    Delays are appended to ``record_sleep.delays`` and return immediately.
    """
    delays: List[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays
    return _sleep


# ==================== Fake Provider ====================

class FakeProvider(AIProvider):
    """
    Scripted AIProvider.

    ``outcomes`` is consumed one per call: exceptions are raised, anything
    else is returned. When exhausted the last outcome repeats.
    """

    def __init__(
        self,
        outcomes=None,
        *,
        vendor: Vendor = Vendor.GOOGLE,
        model: str = "gemini-2.0-flash",
        multimodal: bool = True,
        key: Optional[str] = None,
    ):
        self.outcomes = list(outcomes or ["ok"])
        self.calls: List[str] = []
        self._vendor = vendor
        self._model = model
        self._multimodal = multimodal
        self._key = key or vendor.value
        self.closed = False

    @property
    def vendor(self) -> Vendor:
        return self._vendor

    @property
    def provider_name(self) -> str:
        return "Fake"

    @property
    def model(self) -> str:
        return self._model

    @property
    def rate_limit_key(self) -> str:
        return self._key

    @property
    def supports_multimodal(self) -> bool:
        return self._multimodal

    def _next(self):
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def generate_content(self, prompt: str) -> str:
        self.calls.append("generate_content")
        return self._next()

    async def generate_multimodal_content(self, prompt: str, parts: List[ContentPart]) -> str:
        self.calls.append("generate_multimodal_content")
        return self._next()

    async def is_api_key_valid(self) -> bool:
        self.calls.append("is_api_key_valid")
        result = self._next()
        return bool(result)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_fake_provider():
    """Factory for FakeProvider instances."""
    return FakeProvider
