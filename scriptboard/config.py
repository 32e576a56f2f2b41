"""Runtime settings read from the environment (and an optional .env file)."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

from dotenv import load_dotenv
from pydantic import BaseModel

from scriptboard.llm import LLM, EchoLLM, HttpLLM, ProviderFormat

_SETTINGS_DEFAULTS: dict[str, Any] = {
    "provider_format": "gemini",
    "provider_url": "https://generativelanguage.googleapis.com",
    "api_key": "",
    "model": "gemini-2.5-flash",
    "timeout": 120.0,
    "copilot_temperature": 0.7,
    "analysis_delay": 2.0,
    "analysis_min_length": 200,
    "host": "0.0.0.0",
    "port": 13013,
    "log_level": "INFO",
}

_ENV_VARS: dict[str, str] = {
    "provider_format": "LLM_PROVIDER_FORMAT",
    "provider_url": "LLM_PROVIDER_URL",
    "api_key": "LLM_API_KEY",
    "model": "LLM_MODEL",
    "timeout": "LLM_TIMEOUT",
    "copilot_temperature": "COPILOT_TEMPERATURE",
    "analysis_delay": "ANALYSIS_DELAY",
    "analysis_min_length": "ANALYSIS_MIN_LENGTH",
    "host": "HOST",
    "port": "PORT",
    "log_level": "LOG_LEVEL",
}


class Settings(BaseModel):
    provider_format: ProviderFormat | Literal["echo"]
    provider_url: str
    api_key: str
    model: str
    timeout: float
    copilot_temperature: float
    analysis_delay: float
    analysis_min_length: int
    host: str
    port: int
    log_level: str

    def public(self) -> dict[str, Any]:
        """Settings safe to show in the UI (no API key)."""
        return self.model_dump(exclude={"api_key"})

    def make_llm(self) -> LLM:
        """Build the configured backend. "echo" needs no running model."""
        if self.provider_format == "echo":
            return EchoLLM()
        return HttpLLM(
            provider_url=self.provider_url,
            api_key=self.api_key,
            provider_format=self.provider_format,
            model=self.model,
            timeout=self.timeout,
        )


def load_settings(env_file: Path | None = None, **overrides: Any) -> Settings:
    """Build Settings from defaults, then environment variables, then overrides.

    Values from the environment are strings; pydantic converts them.
    """
    load_dotenv(env_file or Path.cwd() / ".env")
    values = dict(_SETTINGS_DEFAULTS)
    for field, var in _ENV_VARS.items():
        raw = os.getenv(var)
        if raw is not None and raw != "":
            values[field] = raw
    values.update(overrides)
    return Settings.model_validate(values)
