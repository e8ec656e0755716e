"""Configuration management using Pydantic Settings."""

import os
from functools import lru_cache
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

RunMode = Literal["series", "parallel"]
SummaryLevel = Literal["short", "long", "verbose"]


def stringify_env(env: Any) -> Any:
    """Coerce mapping values to strings; YAML reads ``PORT: 8080`` as an int."""
    if isinstance(env, dict):
        return {str(k): str(v) for k, v in env.items()}
    return env


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    arbalest_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    arbalest_debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    arbalest_log_file: str | None = Field(
        default=None,
        description="Optional log file path (rotated daily)",
    )
    arbalest_run_mode: RunMode = Field(
        default="series",
        description="How top-level tasks run",
    )
    arbalest_exit_on_error: bool = Field(
        default=True,
        description="Stop a series chain at the first failure",
    )
    arbalest_tasks_dir: str = Field(
        default="tasks",
        description="Directory searched for task modules",
    )
    arbalest_env_prefix: str = Field(
        default="ARB",
        description="Prefix for options exported to adaptor commands",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance loaded from environment.

    Example:
        >>> settings = get_settings()
        >>> settings.arbalest_run_mode
        'series'
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()


# =============================================================================
# RUN CONFIGURATION
# =============================================================================


class RunConfig(BaseModel):
    """Options for a single run."""

    model_config = ConfigDict(frozen=False)

    cwd: str = Field(
        default_factory=os.getcwd,
        description="Working directory for module lookup and commands",
    )
    run_mode: RunMode = Field(
        default="series",
        description="By default tasks wait in line; 'parallel' runs top-level tasks together",
    )
    exit_on_error: bool = Field(
        default=True,
        description="Abort the rest of a series chain when a task fails",
    )
    summary: SummaryLevel = Field(
        default="short",
        description="How much task information to report after a run",
    )
    strict: bool = Field(default=False, description="Fail on warnings such as skipped tasks")
    handoff: bool = Field(
        default=False,
        description="Hand the prepared runner to the caller instead of running it",
    )
    dry_run: bool = Field(default=False, description="Report tasks without running them")
    dry_run_duration: float = Field(
        default=0.0,
        ge=0,
        description="Seconds each task pretends to take in a dry run",
    )
    tasks_dir: list[str] = Field(
        default_factory=lambda: ["tasks"],
        description="Directories searched for task modules",
    )
    env_prefix: str = Field(default="ARB", description="Prefix for exported options")
    env: dict[str, str] = Field(
        default_factory=dict,
        description="Extra environment variables for adaptor commands",
    )

    @field_validator("env", mode="before")
    @classmethod
    def validate_env(cls, v: Any) -> Any:
        """Accept non-string values such as ``PORT: 8080``."""
        return stringify_env(v)

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "RunConfig":
        """Seed a run configuration from process settings."""
        values: dict[str, Any] = {
            "run_mode": settings.arbalest_run_mode,
            "exit_on_error": settings.arbalest_exit_on_error,
            "tasks_dir": [settings.arbalest_tasks_dir],
            "env_prefix": settings.arbalest_env_prefix,
        }
        values.update(overrides)
        return cls(**values)


# Single character flags, e.g. ``arbalest run a b -p``
FLAG_TRANSFORMS: dict[str, dict[str, Any]] = {
    "p": {"run_mode": "parallel"},
    "s": {"strict": True},
    "e": {"exit_on_error": True},
}


def merge_config(
    opts: dict[str, Any] | None = None,
    base: RunConfig | None = None,
) -> RunConfig:
    """Merge incoming options over ``base`` (or the defaults).

    Single character keys from ``FLAG_TRANSFORMS`` that are set truthy are
    expanded into their long form; unknown keys are ignored.

    Example:
        >>> merge_config({"p": True}).run_mode
        'parallel'
    """
    incoming = dict(opts or {})
    merged = (base or RunConfig()).model_dump()

    for flag, transform in FLAG_TRANSFORMS.items():
        if incoming.pop(flag, None):
            merged.update(transform)

    for key, value in incoming.items():
        if key in RunConfig.model_fields and value is not None:
            merged[key] = value

    if isinstance(merged.get("tasks_dir"), str):
        merged["tasks_dir"] = [merged["tasks_dir"]]

    return RunConfig(**merged)
