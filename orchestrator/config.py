import logging
import os
from typing import Final

from trip_engine.gateway import AIGatewayConfig


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _level_env(name: str, default: str) -> str:
    value = os.getenv(name, default).strip().upper()
    # getLevelName maps known names to ints and anything else to "Level X"
    return value if isinstance(logging.getLevelName(value), int) else default


class _Config:
    def __init__(self) -> None:
        # Security / limits
        self.api_key: str | None = os.getenv("ORCHESTRATOR_API_KEY")
        self.rate_limit: str = os.getenv("ORCHESTRATOR_RATE_LIMIT", "10/minute")

        # AI provider
        self.ai_provider: str = os.getenv("AI_PROVIDER", "openai").strip().lower()
        self.openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        self.openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
        self.gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash-lite")
        self.gemini_api_key: str | None = os.getenv("GEMINI_API_KEY")
        self.ai_timeout_sec: float = _float_env("AI_TIMEOUT_SEC", 60.0)
        self.ai_temperature: float = _float_env("AI_TEMPERATURE", 0.7)
        self.ai_max_output_tokens: int = _int_env("AI_MAX_OUTPUT_TOKENS", 4000)

        # Pipeline
        self.request_deadline_sec: float = _float_env("REQUEST_DEADLINE_SEC", 300.0)
        self.deadline_margin_sec: float = _float_env("DEADLINE_MARGIN_SEC", 5.0)
        self.phase2_concurrency: int = _int_env("PHASE2_CONCURRENCY", 2)
        self.legacy_concurrency: int = _int_env("LEGACY_CONCURRENCY", 1)
        self.duplicate_max_passes: int = _int_env("DUPLICATE_MAX_PASSES", 3)
        self.trip_config_path: str | None = os.getenv("TRIP_CONFIG_PATH")

        # Service
        self.log_level: str = _level_env("LOG_LEVEL", "INFO")
        self.port: int = _int_env("PORT", 3002)

    def gateway_config(self) -> AIGatewayConfig:
        if self.ai_provider == "gemini":
            model, key = self.gemini_model, self.gemini_api_key
        else:
            model, key = self.openai_model, self.openai_api_key
        return AIGatewayConfig(
            provider=self.ai_provider,
            model=model,
            api_key=key,
            timeout_sec=self.ai_timeout_sec,
            temperature=self.ai_temperature,
            max_output_tokens=self.ai_max_output_tokens,
        )


CONFIG: Final[_Config] = _Config()
