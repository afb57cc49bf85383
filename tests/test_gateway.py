import asyncio

import pytest

from trip_engine.errors import ConfigurationError, ProviderAPIError, ProviderTimeoutError
from trip_engine.gateway import AIGateway, AIGatewayConfig


class FakeProvider:
    name = "fake"

    def __init__(self, content: str = '{"ok": true}', delay: float = 0.0) -> None:
        self.content = content
        self.delay = delay
        self.cancelled = False
        self.seen = {}

    async def complete(self, prompt, *, temperature, timeout):
        self.seen = {"temperature": temperature, "timeout": timeout}
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return self.content


def _config(**overrides) -> AIGatewayConfig:
    values = {"provider": "openai", "model": "gpt-4o-mini", "api_key": "sk-test", "timeout_sec": 5.0}
    values.update(overrides)
    return AIGatewayConfig(**values)


@pytest.mark.asyncio
async def test_generate_returns_provider_text():
    provider = FakeProvider()
    gateway = AIGateway(_config(), provider=provider)
    assert await gateway.generate("hi") == '{"ok": true}'
    assert provider.seen == {"temperature": 0.7, "timeout": 5.0}


@pytest.mark.asyncio
async def test_timeout_is_capped_by_config_and_overridable():
    provider = FakeProvider()
    gateway = AIGateway(_config(timeout_sec=5.0), provider=provider)
    await gateway.generate("hi", timeout=2.0, temperature=0.9)
    assert provider.seen == {"temperature": 0.9, "timeout": 2.0}
    await gateway.generate("hi", timeout=50.0)
    assert provider.seen["timeout"] == 5.0


@pytest.mark.asyncio
async def test_timeout_cancels_the_provider_call():
    provider = FakeProvider(delay=1.0)
    gateway = AIGateway(_config(timeout_sec=0.05), provider=provider)
    with pytest.raises(ProviderTimeoutError) as exc_info:
        await gateway.generate("slow")
    assert exc_info.value.timeout_sec == pytest.approx(0.05)
    assert provider.cancelled


@pytest.mark.asyncio
async def test_empty_content_is_an_api_error():
    gateway = AIGateway(_config(), provider=FakeProvider(content="   "))
    with pytest.raises(ProviderAPIError):
        await gateway.generate("hi")


@pytest.mark.asyncio
async def test_missing_api_key_is_an_api_error():
    gateway = AIGateway(_config(api_key=None))
    with pytest.raises(ProviderAPIError):
        await gateway.generate("hi")


def test_config_rejects_unknown_provider():
    with pytest.raises(ConfigurationError):
        _config(provider="llama")
    with pytest.raises(ConfigurationError):
        _config(timeout_sec=0)
