"""Application settings and configuration helpers."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Literal

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strongly-typed configuration sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = Field(default="Cartpilot Shopping Assistant", description="Human-readable service name.")
    environment: str = Field(default="local", description="Deployment environment identifier.")
    log_level: str = Field(default="INFO", description="Application log level.")

    openai_api_key: str | None = Field(default=None, description="API key for the chat completions service.")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of an OpenAI-compatible chat completions API.",
    )
    openai_model: str = Field(default="gpt-4o", description="Chat model identifier.")
    openai_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    openai_max_tokens: int = Field(default=2000, ge=1)
    openai_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single chat completion request.",
    )
    stream_responses: bool = Field(
        default=True,
        description="Stream partial assistant text while the first model reply is generated.",
    )

    max_function_iterations: int = Field(
        default=10,
        ge=1,
        description="Maximum routed function calls per user-initiated sequence.",
    )
    capability_timeout_seconds: float = Field(
        default=8.0,
        gt=0,
        description="Timeout applied to each routed capability invocation.",
    )
    address_validation_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Timeout applied to each per-shop delivery zone check.",
    )
    event_buffer_size: int = Field(
        default=64,
        ge=1,
        description="Capacity of the per-sequence turn event queue; the oldest event is dropped when full.",
    )

    turn_log_backend: Literal["sqlite", "memory"] = Field(
        default="sqlite",
        description="Where the conversation turn log is persisted.",
    )
    sqlite_path: Path = Field(
        default=Path("./db/conversations.db"),
        description="Conversation DB path.",
    )

    commerce_api_url: AnyHttpUrl | None = Field(
        default=None,
        description="Base URL of the commerce backend. If omitted, in-memory bindings are used.",
    )
    commerce_api_token: str | None = Field(
        default=None,
        description="Bearer token sent to the commerce backend.",
    )

    frontend_origin: AnyHttpUrl | None = Field(
        default=None,
        description="Allowed frontend origin (CORS). If omitted, defaults to localhost dev server.",
    )
    additional_origins: List[AnyHttpUrl] = Field(
        default_factory=list,
        description="Additional allowed CORS origins for multi-client deployments.",
    )

    @property
    def cors_origins(self) -> list[str]:
        """Return the full list of allowed CORS origins."""

        origins: list[str] = []

        if self.frontend_origin:
            origins.append(str(self.frontend_origin).rstrip("/"))
        else:
            origins.extend([
                "http://localhost:8081",
                "http://127.0.0.1:8081",
            ])

        for origin in self.additional_origins:
            origins.append(str(origin).rstrip("/"))

        seen: set[str] = set()
        unique: list[str] = []
        for origin in origins:
            if origin not in seen:
                seen.add(origin)
                unique.append(origin)

        return unique

    @property
    def model_enabled(self) -> bool:
        return bool(self.openai_api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings instance."""

    return Settings()
