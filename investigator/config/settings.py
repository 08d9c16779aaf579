from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


# -------------------------
# DEFAULTS
# -------------------------

MODEL_NAME = "llama-3.2-3b-instruct"  # LM Studio model name, override with LLM_MODEL
LLM_BASE_URL = "http://127.0.0.1:1234/v1"  # any OpenAI-compatible /v1 endpoint
LLM_API_KEY = "lm-studio"  # LM Studio accepts any non-empty key
TEMPERATURE = 0.2
MAX_TOKENS = 1024
MAX_RETRIES = 2

BANK_API_BASE_URL = "http://127.0.0.1:5000/api"


class SettingsError(ValueError):
    """Raised when an environment variable cannot be parsed."""


@dataclass(frozen=True)
class Settings:
    llm_base_url: str = LLM_BASE_URL
    llm_api_key: str = LLM_API_KEY
    llm_model: str = MODEL_NAME
    llm_temperature: float = TEMPERATURE
    llm_max_tokens: int = MAX_TOKENS
    llm_timeout_seconds: float = 60.0
    llm_max_retries: int = MAX_RETRIES

    bank_api_base_url: str = BANK_API_BASE_URL
    bank_api_timeout_seconds: float = 30.0
    bank_api_max_retries: int = 3
    bank_api_backoff_seconds: float = 1.0

    http_tool_timeout_seconds: float = 10.0

    chat_session_ttl_seconds: float = 3600.0
    chat_max_sessions: int = 1000

    audit_log_path: Optional[Path] = None
    log_level: str = "INFO"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise SettingsError(f"Expected numeric value for {name}, got {raw!r}") from e


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise SettingsError(f"Expected integer value for {name}, got {raw!r}") from e


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Build Settings from the environment (a .env file is loaded first if present)."""
    load_dotenv(env_file)

    audit = os.getenv("INVESTIGATION_AUDIT_LOG")

    return Settings(
        llm_base_url=os.getenv("LLM_BASE_URL", LLM_BASE_URL),
        llm_api_key=os.getenv("LLM_API_KEY", LLM_API_KEY),
        llm_model=os.getenv("LLM_MODEL", MODEL_NAME),
        llm_temperature=_env_float("LLM_TEMPERATURE", TEMPERATURE),
        llm_max_tokens=_env_int("LLM_MAX_TOKENS", MAX_TOKENS),
        llm_timeout_seconds=_env_float("LLM_TIMEOUT_SECONDS", 60.0),
        llm_max_retries=_env_int("LLM_MAX_RETRIES", MAX_RETRIES),
        bank_api_base_url=os.getenv("BANK_API_BASE_URL", BANK_API_BASE_URL),
        bank_api_timeout_seconds=_env_float("BANK_API_TIMEOUT_SECONDS", 30.0),
        bank_api_max_retries=_env_int("BANK_API_MAX_RETRIES", 3),
        bank_api_backoff_seconds=_env_float("BANK_API_BACKOFF_SECONDS", 1.0),
        http_tool_timeout_seconds=_env_float("HTTP_TOOL_TIMEOUT_SECONDS", 10.0),
        chat_session_ttl_seconds=_env_float("CHAT_SESSION_TTL_SECONDS", 3600.0),
        chat_max_sessions=_env_int("CHAT_MAX_SESSIONS", 1000),
        audit_log_path=Path(audit) if audit else None,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
