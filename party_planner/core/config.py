"""Configuration helpers for API keys and environment variables."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://localhost:3001"]


def _flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(slots=True)
class ApiSettings:
    """Centralised container for credentials and runtime switches."""

    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"
    llm_provider: str = "openai"
    xai_api_key: Optional[str] = None
    xai_model: str = "grok-4-fast-reasoning"
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    catalog_path: Optional[str] = None
    sentry_dsn: Optional[str] = None
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    wildness_first: bool = False
    enable_dev_commands: bool = False
    conversation_max_age_minutes: int = 60

    @classmethod
    def from_env(cls) -> "ApiSettings":
        """Load settings from environment variables."""

        origins = os.getenv("CORS_ORIGINS")
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o"),
            llm_provider=os.getenv("LLM_PROVIDER", "openai").strip().lower(),
            xai_api_key=os.getenv("XAI_API_KEY"),
            xai_model=os.getenv("XAI_MODEL", "grok-4-fast-reasoning"),
            supabase_url=os.getenv("SUPABASE_URL"),
            supabase_anon_key=os.getenv("SUPABASE_ANON_KEY"),
            catalog_path=os.getenv("CATALOG_PATH"),
            sentry_dsn=os.getenv("SENTRY_DSN"),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else list(DEFAULT_CORS_ORIGINS),
            wildness_first=_flag("WILDNESS_FIRST"),
            enable_dev_commands=_flag("ENABLE_DEV_COMMANDS"),
            conversation_max_age_minutes=int(os.getenv("CONVERSATION_MAX_AGE_MINUTES", "60")),
        )

    def ensure(self, field: str) -> str:
        """Return the requested field and fail fast if it is missing."""

        value = getattr(self, field)
        if not value:
            raise RuntimeError(f"Missing configuration value: {field}")
        return value

    def apply_langsmith_tracing(self) -> None:
        os.environ.setdefault("LANGCHAIN_TRACING_V2", "true")
        os.environ.setdefault("LANGCHAIN_ENDPOINT", "https://api.smith.langchain.com")
        if self.openai_api_key:
            os.environ.setdefault("OPENAI_API_KEY", self.openai_api_key)
        if self.xai_api_key:
            os.environ.setdefault("XAI_API_KEY", self.xai_api_key)
