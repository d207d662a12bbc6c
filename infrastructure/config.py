"""Environment-driven settings. Every variable uses the ``APP__`` prefix."""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import tzinfo
from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_DB_DSN = "sqlite+aiosqlite:///./order_entry.db"
DEFAULT_LLM_BASE_URL = "https://dashscope.aliyuncs.com/compatible-mode/v1"
DEFAULT_LLM_MODEL = "qwen-plus"
DEFAULT_TIMEZONE = "Asia/Shanghai"


def _as_text(value: Any, fallback: str = "") -> str:
    if not isinstance(value, str):
        return fallback
    text = value.strip()
    return text or fallback


def _as_float(value: Any, fallback: float, minimum: float = 0.0) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return fallback
    if parsed < minimum:
        return fallback
    return parsed


def _as_int(value: Any, fallback: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return fallback
    if parsed <= 0:
        return fallback
    return parsed


def _as_zone(value: Any, fallback: str) -> tzinfo:
    try:
        return ZoneInfo(_as_text(value, fallback))
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(fallback)


@dataclass(frozen=True)
class Settings:
    service_name: str = "order-entry"
    db_dsn: str = DEFAULT_DB_DSN
    llm_api_key: Optional[str] = None
    llm_base_url: str = DEFAULT_LLM_BASE_URL
    llm_model: str = DEFAULT_LLM_MODEL
    llm_temperature: float = 0.3
    llm_max_tokens: int = 1000
    llm_timeout_s: float = 30.0
    flush_delay_s: float = 0.5
    log_level: str = "INFO"
    # Business calendar for "today", week, month and year; timestamps stay in UTC.
    timezone: tzinfo = ZoneInfo(DEFAULT_TIMEZONE)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env_map: Mapping[str, str] = env if env is not None else os.environ
        api_key = (
            _as_text(env_map.get("APP__LLM_API_KEY"))
            or _as_text(env_map.get("DASHSCOPE_API_KEY"))
            or _as_text(env_map.get("OPENAI_API_KEY"))
        )
        return cls(
            service_name=_as_text(env_map.get("APP__SERVICE_NAME"), "order-entry"),
            db_dsn=_as_text(env_map.get("APP__DB_DSN"), DEFAULT_DB_DSN),
            llm_api_key=api_key or None,
            llm_base_url=_as_text(env_map.get("APP__LLM_BASE_URL"), DEFAULT_LLM_BASE_URL),
            llm_model=_as_text(env_map.get("APP__LLM_MODEL"), DEFAULT_LLM_MODEL),
            llm_temperature=_as_float(env_map.get("APP__LLM_TEMPERATURE"), 0.3),
            llm_max_tokens=_as_int(env_map.get("APP__LLM_MAX_TOKENS"), 1000),
            llm_timeout_s=_as_float(env_map.get("APP__LLM_TIMEOUT_S"), 30.0, minimum=0.1),
            flush_delay_s=_as_float(env_map.get("APP__FLUSH_DELAY_S"), 0.5),
            log_level=_as_text(env_map.get("APP__LOG_LEVEL"), "INFO").upper(),
            timezone=_as_zone(env_map.get("APP__TIMEZONE"), DEFAULT_TIMEZONE),
        )
