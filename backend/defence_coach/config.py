from __future__ import annotations

import logging
import os
from typing import Optional

from pydantic import BaseModel

LOG = logging.getLogger("defence_coach.config")


def _env_flag(name: str) -> bool:
    return (os.getenv(name) or "").strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        LOG.warning("Ignoring invalid %s=%r; using %s", name, raw, default)
        return default


class Settings(BaseModel):
    database_url: str = "sqlite+aiosqlite:///./data.db"
    vapi_web_token: Optional[str] = None
    vapi_workflow_id: Optional[str] = None
    llm_api_key: Optional[str] = None
    llm_model: str = "meta/llama-4-maverick-17b-128e-instruct"
    llm_url: str = "https://integrate.api.nvidia.com/v1/chat/completions"
    llm_timeout: float = 30.0
    dev_mock_fallback: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        return cls(
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            vapi_web_token=os.getenv("VAPI_WEB_TOKEN") or None,
            vapi_workflow_id=os.getenv("VAPI_WORKFLOW_ID") or None,
            llm_api_key=os.getenv("LLM_API_KEY") or None,
            llm_model=os.getenv("LLM_MODEL", defaults.llm_model),
            llm_url=os.getenv("LLM_URL", defaults.llm_url),
            llm_timeout=_env_float("LLM_TIMEOUT", defaults.llm_timeout),
            dev_mock_fallback=_env_flag("DEV_MOCK_FALLBACK"),
        )
