"""Bridge configuration using Pydantic Settings."""

import json
from functools import lru_cache
from pathlib import PurePosixPath
from typing import Annotated, Literal

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Origins the hosted platform and local development servers run on.
DEFAULT_ALLOWED_ORIGINS: tuple[str, ...] = (
    "https://raiken.dev",
    "https://app.raiken.dev",
    "https://staging.raiken.dev",
    "http://localhost:3000",
    "http://localhost:3001",
    "http://localhost:3002",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:3001",
    "http://127.0.0.1:3002",
)


class Settings(BaseSettings):
    """Bridge settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = "Test Bridge"
    app_version: str = "0.1.0"
    log_level: str = "INFO"
    api_prefix: str = "/api"

    # Direct mode server
    host: str = "127.0.0.1"
    port: int = 3460
    port_fallback_start: int = 3460
    port_fallback_count: int = 10

    # CORS (merged with DEFAULT_ALLOWED_ORIGINS)
    allowed_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        validation_alias=AliasChoices("allowed_origins", "raiken_allowed_origins"),
    )

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def parse_allowed_origins(cls, v: str | list[str] | None) -> list[str]:
        """Parse ALLOWED_ORIGINS from a JSON array or a comma-separated string."""
        if v is None:
            return []
        if isinstance(v, str):
            try:
                v = json.loads(v)
            except json.JSONDecodeError:
                v = [o.strip() for o in v.split(",") if o.strip()]
        return list(v) if isinstance(v, list) else [v]

    # Session
    token_max_age_hours: int = 24

    # Relay mode
    relay_url: str = "ws://localhost:3001/bridge"
    relay_ping_interval: float = 30.0
    relay_reconnect_delay: float = 5.0
    relay_connect_timeout: float = 10.0
    relay_max_retries: int | None = None

    # Runner
    runner_command: Annotated[list[str], NoDecode] = ["npx", "playwright"]
    runner_results_dir: str = "test-results"
    reports_dir: str = "test-reports"
    preflight_timeout: float = 5.0
    completion_grace: float = 5.0
    execution_timeout: float = 180.0
    response_timeout: float = 200.0
    execution_lock_scope: Literal["path", "global"] = "path"

    @field_validator("runner_command", mode="before")
    @classmethod
    def parse_runner_command(cls, v: str | list[str]) -> list[str]:
        """Accept RUNNER_COMMAND as a JSON array or a whitespace-separated string."""
        if isinstance(v, str):
            try:
                v = json.loads(v)
            except json.JSONDecodeError:
                v = v.split()
        return list(v)

    @model_validator(mode="after")
    def check_reports_dir(self) -> "Settings":
        """The runner wipes its own results dir, so reports must live elsewhere."""
        reports = PurePosixPath(self.reports_dir)
        results = PurePosixPath(self.runner_results_dir)
        if reports == results or results in reports.parents:
            raise ValueError("reports_dir must not be inside runner_results_dir")
        return self

    # AI analysis
    ai_analysis_enabled: bool = True
    ai_provider: Literal["openai", "ollama"] = "openai"
    ai_model: str = "anthropic/claude-3.5-sonnet"
    ai_base_url: str = "https://openrouter.ai/api/v1"
    ai_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("ai_api_key", "openrouter_api_key"),
    )
    ollama_base_url: str = "http://localhost:11434"
    ai_timeout: float = 60.0
    ai_max_output_chars: int = 3000
    ai_max_error_chars: int = 1500
    ai_max_errors: int = 10
    ai_max_log_lines: int = 20
    ai_max_artifacts: int = 10

    # Report size caps
    report_max_screenshots: int = 10
    report_max_videos: int = 3
    report_max_traces: int = 3
    report_max_errors: int = 50
    report_max_log_lines: int = 200
    report_max_output_chars: int = 200_000

    @property
    def cors_origins(self) -> list[str]:
        """Built-in allow-list plus configured extras, without duplicates."""
        merged = list(DEFAULT_ALLOWED_ORIGINS)
        for origin in self.allowed_origins:
            if origin not in merged:
                merged.append(origin)
        return merged


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
