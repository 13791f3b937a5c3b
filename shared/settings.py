"""Centralised application configuration.

Settings are loaded from environment variables or the `.env` file in the
project root. Using pydantic's BaseSettings provides convenient parsing
and type checking. The gateway builds exactly one Settings instance at
startup (see ``load_settings``) and hands it to the app factory; request
handlers never read the environment themselves.
"""

from __future__ import annotations

import sys
from typing import List

from pydantic import AliasChoices, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    # Service / HTTP listener
    service_name: str = Field(
        default="arco-backend",
        validation_alias=AliasChoices("SERVICE_NAME", "service_name"),
    )
    host: str = Field(default="0.0.0.0", validation_alias=AliasChoices("HOST", "host"))
    port: int = Field(default=4000, validation_alias=AliasChoices("PORT", "port"))
    # Comma-separated list; "*" allows any origin
    cors_origins: str = Field(
        default="*", validation_alias=AliasChoices("CORS_ORIGINS", "cors_origins")
    )
    max_body_bytes: int = Field(
        default=2 * 1024 * 1024,
        validation_alias=AliasChoices("MAX_BODY_BYTES", "max_body_bytes"),
    )

    # LLM provider ("openai" or "gemini")
    llm_provider: str = Field(
        default="openai", validation_alias=AliasChoices("LLM_PROVIDER", "llm_provider")
    )
    openai_api_key: str | None = Field(
        default=None, validation_alias=AliasChoices("OPENAI_API_KEY", "openai_api_key")
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        validation_alias=AliasChoices("OPENAI_CHAT_MODEL", "openai_model"),
    )
    gemini_api_key: str | None = Field(
        default=None, validation_alias=AliasChoices("GEMINI_API_KEY", "gemini_api_key")
    )
    gemini_model: str = Field(
        default="gemini-2.5-flash",
        validation_alias=AliasChoices("GEMINI_MODEL", "gemini_model"),
    )
    temperature: float = Field(
        default=0.2, validation_alias=AliasChoices("LLM_TEMPERATURE", "temperature")
    )
    retry_temperature: float = Field(
        default=0.1,
        validation_alias=AliasChoices("LLM_RETRY_TEMPERATURE", "retry_temperature"),
    )
    llm_timeout_seconds: float = Field(
        default=25.0,
        validation_alias=AliasChoices("LLM_TIMEOUT_SECONDS", "llm_timeout_seconds"),
    )

    # Retrieval proxy
    proxy_base_url: str = Field(
        validation_alias=AliasChoices("PROXY_BASE_URL", "proxy_base_url")
    )
    proxy_api_key: str = Field(
        validation_alias=AliasChoices("PROXY_API_KEY", "proxy_api_key")
    )
    # Empty prefix = global search over the whole corpus
    default_path_prefix: str = Field(
        default="",
        validation_alias=AliasChoices("DEFAULT_PATH_PREFIX", "default_path_prefix"),
    )
    top_k_default: int = Field(
        default=8, validation_alias=AliasChoices("TOP_K_DEFAULT", "top_k_default")
    )
    max_chars_per_chunk: int = Field(
        default=1000,
        validation_alias=AliasChoices("MAX_CHARS_PER_CHUNK", "max_chars_per_chunk"),
    )
    retrieval_timeout_seconds: float = Field(
        default=25.0,
        validation_alias=AliasChoices(
            "RETRIEVAL_TIMEOUT_SECONDS", "retrieval_timeout_seconds"
        ),
    )

    # Context / answer shaping
    context_chars_per_snippet: int = Field(
        default=1000,
        validation_alias=AliasChoices(
            "CONTEXT_CHARS_PER_SNIPPET", "context_chars_per_snippet"
        ),
    )
    sources_hint_limit: int = Field(
        default=6,
        validation_alias=AliasChoices("SOURCES_HINT_LIMIT", "sources_hint_limit"),
    )
    quality_gate_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("QUALITY_GATE_ENABLED", "quality_gate_enabled"),
    )
    include_debug: bool = Field(
        default=True, validation_alias=AliasChoices("INCLUDE_DEBUG", "include_debug")
    )

    # Logging/observability
    langfuse_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("LANGFUSE_ENABLED", "langfuse_enabled"),
    )
    langfuse_host: str = Field(
        default="", validation_alias=AliasChoices("LANGFUSE_HOST", "langfuse_host")
    )
    langfuse_public_key: str = Field(
        default="",
        validation_alias=AliasChoices("LANGFUSE_PUBLIC_KEY", "langfuse_public_key"),
    )
    langfuse_secret_key: str = Field(
        default="",
        validation_alias=AliasChoices("LANGFUSE_SECRET_KEY", "langfuse_secret_key"),
    )
    tracing_backend: str = Field(
        default="langfuse",
        validation_alias=AliasChoices("TRACING_BACKEND", "tracing_backend"),
    )
    trace_name: str = Field(
        default="arco-trace", validation_alias=AliasChoices("TRACE_NAME", "trace_name")
    )

    @model_validator(mode="after")
    def _check_provider(self) -> "Settings":
        provider = self.llm_provider.strip().lower()
        if provider not in {"openai", "gemini"}:
            raise ValueError(f"LLM_PROVIDER must be 'openai' or 'gemini', got {provider!r}")
        if provider == "openai" and not self.openai_api_key:
            raise ValueError("OPENAI_API_KEY is required when LLM_PROVIDER=openai")
        if provider == "gemini" and not self.gemini_api_key:
            raise ValueError("GEMINI_API_KEY is required when LLM_PROVIDER=gemini")
        if not self.proxy_base_url.strip() or not self.proxy_api_key.strip():
            raise ValueError("PROXY_BASE_URL and PROXY_API_KEY must not be empty")
        return self

    @property
    def retrieve_url(self) -> str:
        return f"{self.proxy_base_url.strip().rstrip('/')}/retrieve"

    @property
    def allowed_origins(self) -> List[str]:
        return [o.strip().rstrip("/") for o in self.cors_origins.split(",") if o.strip()] or ["*"]


def _missing_fields(exc: ValidationError) -> List[str]:
    names = []
    for err in exc.errors():
        if err.get("type") == "missing" and err.get("loc"):
            names.append(str(err["loc"][0]).upper())
    return names


def load_settings(**overrides) -> Settings:
    """Build the process-wide Settings or exit the process.

    A missing or invalid required key is fatal at startup: the reason is
    printed with a ``[boot]`` prefix and the interpreter exits with status 1.
    """
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        missing = _missing_fields(exc)
        if missing:
            print(f"[boot] Missing variables: {', '.join(missing)}", file=sys.stderr)
        else:
            print(f"[boot] Invalid configuration: {exc}", file=sys.stderr)
        raise SystemExit(1)
