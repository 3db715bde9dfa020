"""Configuration with 4-layer resolution: defaults -> YAML -> env -> CLI.

Uses pydantic-settings with YamlConfigSettingsSource for layered configuration.
Supports ``.env`` file loading, ``REPO_RADAR_`` prefixed env vars, and
nested delimiter ``__`` for overriding sub-model fields
(e.g. ``REPO_RADAR_GITHUB__TOKEN``).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, ClassVar, Literal

import structlog
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class GitHubSettings(BaseModel):
    """GitHub API access (metrics, search, README, owner notifications)."""

    token: str | None = None
    notify_token: str | None = Field(
        default=None,
        description="Token used to open owner notification issues. Falls back to token.",
    )
    api_url: str = "https://api.github.com"
    api_version: str = "2022-11-28"
    per_page: int = Field(default=100, gt=0, le=100)


class HTTPSettings(BaseModel):
    """Outbound HTTP behaviour shared by every client."""

    timeout: float = Field(
        default=20.0, gt=0.0, description="Per-request timeout in seconds."
    )


class RateLimitSettings(BaseModel):
    """Quota throttle for the metrics provider."""

    low_water_mark: int = Field(default=100, ge=0)
    reset_buffer_seconds: float = Field(default=2.0, ge=0.0)
    default_remaining: int = Field(default=5000, ge=0)


class CollectorSettings(BaseModel):
    """Daily snapshot collection."""

    batch_size: int = Field(default=30, gt=0)
    batch_delay_seconds: float = Field(
        default=1.0, ge=0.0, description="Courtesy delay between batches."
    )
    snapshot_window: int = Field(
        default=8, ge=2, description="Snapshots read back for momentum scoring."
    )
    retention_days: int = Field(default=90, gt=0)


class DiscoverySettings(BaseModel):
    """Bulk discovery of new repositories."""

    max_per_pool: int = Field(default=100, gt=0)
    min_stars: int = Field(default=50, ge=0)
    lookback_days: int = Field(default=30, gt=0)
    global_min_stars: int = Field(default=1000, ge=0)


class DailyPickSettings(BaseModel):
    """Project-of-the-day selection."""

    min_stars: int = Field(default=30, ge=0)
    lookback_days: int = Field(default=7, gt=0)
    per_topic: int = Field(default=10, gt=0, le=100)
    readme_max_chars: int = Field(default=4000, gt=0)
    default_category: str = "AI Agents"


class EmbeddingSettings(BaseModel):
    """Embedding providers and query cache."""

    primary: Literal["gemini", "cloudflare"] = "gemini"
    gemini_api_key: str | None = None
    gemini_model: str = "text-embedding-004"
    cloudflare_account_id: str | None = None
    cloudflare_api_token: str | None = None
    cloudflare_model: str = "@cf/baai/bge-large-en-v1.5"
    cache_ttl_hours: float = Field(default=24.0, gt=0.0)


class WriteupSettings(BaseModel):
    """LLM writeup generation for the daily pick."""

    model: str = "gemini/gemini-2.5-flash"
    temperature: float = Field(default=0.4, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2048, gt=0)
    timeout: float = Field(
        default=60.0, gt=0.0, description="Per-call LLM timeout in seconds."
    )
    attempts: int = Field(default=3, ge=1, le=10)


class PublishSettings(BaseModel):
    """Newsletter webhook sink."""

    webhook_url: str | None = None
    token: str | None = None
    site_url: str = "https://aidigitalcrew.com"
    attempts: int = Field(default=3, ge=1, le=10)


class StoreSettings(BaseModel):
    """Document store location."""

    path: Path | None = Path("./data/store.json")


class APISettings(BaseModel):
    """FastAPI server settings."""

    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    """Logging / observability configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json"] = "console"
    file: Path | None = None


# ---------------------------------------------------------------------------
# Main Settings (4-layer resolution)
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Top-level application settings.

    Resolution order (last wins):
        1. Field defaults (defined above)
        2. YAML config file (``config.yaml`` or ``--config`` path)
        3. Environment variables (prefixed ``REPO_RADAR_``)
        4. CLI overrides (applied programmatically after loading)
    """

    model_config = SettingsConfigDict(
        env_prefix="REPO_RADAR_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        yaml_file="config.yaml",
        yaml_file_encoding="utf-8",
        extra="ignore",
    )

    _config_path_override: ClassVar[Path | None] = None

    github: GitHubSettings = Field(default_factory=GitHubSettings)
    http: HTTPSettings = Field(default_factory=HTTPSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    collector: CollectorSettings = Field(default_factory=CollectorSettings)
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)
    daily: DailyPickSettings = Field(default_factory=DailyPickSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    writeup: WriteupSettings = Field(default_factory=WriteupSettings)
    publish: PublishSettings = Field(default_factory=PublishSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    api: APISettings = Field(default_factory=APISettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings source priority.

        Resolution order (first = highest priority):
            init_settings (CLI) > env_settings > dotenv (.env) > yaml > defaults

        Args:
            settings_cls: The settings class.
            init_settings: Init / programmatic overrides.
            env_settings: Environment variable source.
            dotenv_settings: Dotenv file source (.env).
            file_secret_settings: Secret file source (unused).

        Returns:
            Ordered tuple of settings sources (first = highest priority).
        """
        yaml_file = cls._config_path_override or settings_cls.model_config.get(
            "yaml_file", "config.yaml"
        )
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file),
        )

    @classmethod
    def load(cls, config_path: Path | None = None, **overrides: Any) -> Settings:
        """Load settings with optional config path and CLI overrides.

        Args:
            config_path: Optional path to a YAML config file.
            **overrides: Key-value CLI overrides applied at highest priority.

        Returns:
            Fully-resolved Settings instance.

        Raises:
            ValidationError: If any setting value fails validation.
        """
        cls._config_path_override = config_path
        try:
            return cls(**overrides)
        finally:
            cls._config_path_override = None


def format_validation_error(exc: ValidationError) -> str:
    """Format a Pydantic ValidationError into a user-friendly message.

    Args:
        exc: The validation error to format.

    Returns:
        A multi-line string with each error on its own line.
    """
    lines: list[str] = []
    for error in exc.errors():
        loc = " -> ".join(str(part) for part in error["loc"])
        msg = error["msg"]
        raw_input = error.get("input")
        if raw_input is not None:
            lines.append(f"  {loc}: {msg} (got {raw_input!r})")
        else:
            lines.append(f"  {loc}: {msg}")
    return "Configuration error:\n" + "\n".join(lines)
