"""Uniform ``generate(prompt) -> text`` over the supported model providers.

The provider and model are fixed by ``AIGatewayConfig`` when the service
starts; the config object is handed to whoever needs a gateway instead of
living in module globals.  Every call is bounded by ``asyncio.wait_for`` so a
timeout cancels the in-flight SDK request rather than abandoning it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from openai import APIError, APIStatusError, APITimeoutError, AsyncOpenAI

from .errors import ConfigurationError, ProviderAPIError, ProviderTimeoutError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a travel planning assistant. Always respond with valid JSON only, no additional text."
SUPPORTED_PROVIDERS = ("openai", "gemini")


@dataclass(frozen=True)
class AIGatewayConfig:
    provider: str
    model: str
    api_key: Optional[str] = None
    timeout_sec: float = 60.0
    temperature: float = 0.7
    max_output_tokens: int = 4000

    def __post_init__(self) -> None:
        if self.provider not in SUPPORTED_PROVIDERS:
            raise ConfigurationError(
                f"unsupported AI provider {self.provider!r}; expected one of {', '.join(SUPPORTED_PROVIDERS)}"
            )
        if self.timeout_sec <= 0:
            raise ConfigurationError("AI timeout must be positive")


class TextGenerator(Protocol):
    async def generate(self, prompt: str, *, timeout: Optional[float] = None,
                       temperature: Optional[float] = None) -> str: ...


class Provider(Protocol):
    name: str

    async def complete(self, prompt: str, *, temperature: float, timeout: float) -> str: ...


class OpenAIProvider:
    name = "openai"

    def __init__(self, config: AIGatewayConfig) -> None:
        self._config = config
        # Retries are the caller's decision.
        self._client = AsyncOpenAI(api_key=config.api_key, timeout=config.timeout_sec, max_retries=0)

    async def complete(self, prompt: str, *, temperature: float, timeout: float) -> str:
        try:
            completion = await self._client.chat.completions.create(
                model=self._config.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=temperature,
                max_tokens=self._config.max_output_tokens,
                timeout=timeout,
            )
        except APITimeoutError as e:
            raise ProviderTimeoutError(timeout, provider=self.name) from e
        except APIStatusError as e:
            raise ProviderAPIError(f"OpenAI error: {e.status_code}", status_code=e.status_code, provider=self.name) from e
        except APIError as e:
            raise ProviderAPIError(f"OpenAI request failed: {e}", provider=self.name) from e

        choices = getattr(completion, "choices", None) or []
        if not choices or choices[0].message is None:
            raise ProviderAPIError("OpenAI response had no choices", provider=self.name)
        return choices[0].message.content or ""


class GeminiProvider:
    name = "gemini"

    def __init__(self, config: AIGatewayConfig) -> None:
        self._config = config
        genai.configure(api_key=config.api_key)
        self._model = genai.GenerativeModel(
            config.model,
            generation_config={
                "temperature": config.temperature,
                "max_output_tokens": config.max_output_tokens,
            },
        )

    async def complete(self, prompt: str, *, temperature: float, timeout: float) -> str:
        try:
            response = await self._model.generate_content_async(
                f"{SYSTEM_PROMPT}\n\n{prompt}",
                generation_config={
                    "temperature": temperature,
                    "max_output_tokens": self._config.max_output_tokens,
                },
                request_options={"timeout": timeout},
            )
        except google_exceptions.DeadlineExceeded as e:
            raise ProviderTimeoutError(timeout, provider=self.name) from e
        except google_exceptions.GoogleAPICallError as e:
            raise ProviderAPIError(f"Gemini error: {e.code}", status_code=e.code, provider=self.name) from e
        except google_exceptions.GoogleAPIError as e:
            raise ProviderAPIError(f"Gemini request failed: {e}", provider=self.name) from e
        try:
            return getattr(response, "text", "") or ""
        except ValueError as e:
            # .text raises when the candidate was blocked or has no parts
            raise ProviderAPIError(f"Gemini returned no text: {e}", provider=self.name) from e


_PROVIDERS = {"openai": OpenAIProvider, "gemini": GeminiProvider}


class AIGateway:
    def __init__(self, config: AIGatewayConfig, provider: Optional[Provider] = None) -> None:
        self.config = config
        self._provider = provider

    def _get_provider(self) -> Provider:
        if self._provider is None:
            if not self.config.api_key:
                raise ProviderAPIError(f"{self.config.provider} API key not configured", provider=self.config.provider)
            self._provider = _PROVIDERS[self.config.provider](self.config)
        return self._provider

    async def generate(self, prompt: str, *, timeout: Optional[float] = None,
                       temperature: Optional[float] = None) -> str:
        limit = self.config.timeout_sec if timeout is None else min(timeout, self.config.timeout_sec)
        temp = self.config.temperature if temperature is None else temperature
        provider = self._get_provider()

        start_time = time.monotonic()
        ok = False
        content = ""
        try:
            content = await asyncio.wait_for(
                provider.complete(prompt, temperature=temp, timeout=limit),
                timeout=limit,
            )
            if not content.strip():
                raise ProviderAPIError(f"No response from {self.config.provider}", provider=self.config.provider)
            ok = True
            return content
        except asyncio.TimeoutError:
            raise ProviderTimeoutError(limit, provider=self.config.provider) from None
        finally:
            latency_ms = (time.monotonic() - start_time) * 1000
            log_data = {
                "ts": datetime.now(timezone.utc).isoformat(),
                "component": "ai-gateway",
                "fn": "generate",
                "provider": self.config.provider,
                "model": self.config.model,
                "latency_ms": f"{latency_ms:.2f}",
                "prompt_length": len(prompt),
                "response_length": len(content),
                "ok": ok,
            }
            logger.info(json.dumps(log_data))
