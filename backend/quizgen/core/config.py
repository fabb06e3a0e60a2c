"""
Centralized application configuration.

Uses pydantic BaseSettings for automatic env-var loading and validation.
Import the singleton ``settings`` instance throughout the package.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

# Resolve project root once; relative paths resolve from here
_PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))

LLM_PROVIDERS = ("OPENAI", "GOOGLE", "NVIDIA", "OLLAMA", "MYOPENLM")


class Settings(BaseSettings):
    """Application settings, validated from environment variables."""

    # ── Environment ────────────────────────────────────────
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = False

    # ── Logging ───────────────────────────────────────────
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "./logs"

    # ── LLM ───────────────────────────────────────────────
    LLM_PROVIDER: str = "OPENAI"  # OPENAI, GOOGLE, NVIDIA, OLLAMA, MYOPENLM
    OPENAI_MODEL: str = "gpt-3.5-turbo"
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: Optional[str] = None
    GOOGLE_MODEL: str = "models/gemini-2.5-flash"
    GOOGLE_API_KEY: str = ""
    NVIDIA_MODEL: str = "qwen/qwen3.5-397b-a17b"
    NVIDIA_API_KEY: str = ""
    OLLAMA_MODEL: str = "llama3"
    MYOPENLM_MODEL: str = "default"
    MYOPENLM_API_URL: str = "http://localhost:8080/api/chat"
    LLM_TIMEOUT: int = 120
    LLM_MAX_TOKENS: int = 1000

    # ── Structured output ─────────────────────────────────
    LLM_TEMPERATURE_STRUCTURED_DEFAULT: float = 1.0
    LLM_MAX_ATTEMPTS: int = 3
    LLM_JSON_REPAIR_FALLBACK: bool = False

    # ── Quiz generation ───────────────────────────────────
    QUIZ_MODEL: Optional[str] = None
    QUIZ_MCQ_TEMPERATURE: float = 0.7
    QUIZ_OPEN_ENDED_TEMPERATURE: float = 0.5
    QUIZ_MAX_ATTEMPTS: int = 3

    @field_validator("LLM_PROVIDER", mode="after")
    @classmethod
    def _uppercase_provider(cls, v: str) -> str:
        v = v.upper()
        if v not in LLM_PROVIDERS:
            logging.getLogger("config").warning(
                f"Unknown LLM_PROVIDER {v!r}, falling back to OPENAI (known: {', '.join(LLM_PROVIDERS)})"
            )
            return "OPENAI"
        return v

    @field_validator("LLM_MAX_ATTEMPTS", "QUIZ_MAX_ATTEMPTS", mode="after")
    @classmethod
    def _at_least_one_attempt(cls, v: int) -> int:
        if v < 1:
            raise ValueError("attempt counts must be >= 1")
        return v

    @field_validator("LOG_LEVEL", mode="after")
    @classmethod
    def _uppercase_level(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode="after")
    def _resolve_paths_and_cross_validate(self):
        """Resolve relative paths to absolute & warn about missing provider keys."""
        if self.LOG_DIR and not os.path.isabs(self.LOG_DIR):
            object.__setattr__(self, "LOG_DIR", os.path.join(_PROJECT_ROOT, self.LOG_DIR))

        if self.DEBUG:
            object.__setattr__(self, "LOG_LEVEL", "DEBUG")

        _log = logging.getLogger("config")
        required_keys = {
            "OPENAI": "OPENAI_API_KEY",
            "GOOGLE": "GOOGLE_API_KEY",
            "NVIDIA": "NVIDIA_API_KEY",
        }
        key_name = required_keys.get(self.LLM_PROVIDER)
        if key_name and not getattr(self, key_name):
            _log.warning(f"LLM_PROVIDER is {self.LLM_PROVIDER} but {key_name} is empty")

        return self

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
