"""Configuration models, YAML loader and environment overrides."""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

BUILTIN_SITES = ("indeed", "aarp", "usajobs")

Frequency = Literal["daily", "weekly", "biweekly", "monthly"]

# Environment variable -> dotted path inside the settings document.
ENV_OVERRIDES: dict[str, tuple[str, ...]] = {
    "SCRAPING_KILL_SWITCH": ("governor", "kill_switch"),
    "MIN_QUALITY_THRESHOLD": ("governor", "min_quality"),
    "WARNING_QUALITY_THRESHOLD": ("governor", "warning_quality"),
    "QUALITY_CHECK_HOURS": ("governor", "quality_check_hours"),
    "MAX_JOBS_PER_SITE": ("governor", "max_jobs_per_site"),
    "MAX_JOBS_PER_USER_PER_SITE": ("governor", "max_jobs_per_user_per_site"),
    "MAX_USERS_PER_BATCH": ("governor", "max_users_per_batch"),
    "MAX_ERRORS_BEFORE_STOP": ("governor", "max_errors_before_stop"),
    "DELAY_BETWEEN_SITES": ("governor", "delay_between_sites"),
    "DELAY_BETWEEN_QUERIES": ("governor", "delay_between_queries"),
    "DELAY_BETWEEN_BATCHES": ("governor", "delay_between_batches"),
    "DUPLICATE_THRESHOLD": ("governor", "duplicate_threshold"),
    "DEDUPLICATION_WINDOW_HOURS": ("governor", "dedup_window_hours"),
    "INDEED_ENABLED": ("governor", "sites_enabled", "indeed"),
    "AARP_ENABLED": ("governor", "sites_enabled", "aarp"),
    "USAJOBS_ENABLED": ("governor", "sites_enabled", "usajobs"),
    "JOB_SCHEDULER_ENABLED": ("scheduler", "enabled"),
    "JOB_SCHEDULER_FREQUENCY": ("scheduler", "frequency"),
    "SESSION_TIMEOUT_MINUTES": ("scheduler", "session_timeout_minutes"),
}


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/jobcurator.db"


class GovernorConfig(BaseModel):
    """Operational limits consulted before and during every session."""

    kill_switch: bool = False
    sites_enabled: dict[str, bool] = Field(
        default_factory=lambda: {site: True for site in BUILTIN_SITES},
    )
    max_jobs_per_site: int = Field(default=50, ge=0)
    max_jobs_per_user_per_site: int = Field(default=5, ge=0)
    max_users_per_batch: int = Field(default=3, ge=1)
    max_errors_before_stop: int = Field(default=10, ge=1)
    min_quality: float = Field(default=40.0, ge=0.0, le=100.0)
    warning_quality: float = Field(default=60.0, ge=0.0, le=100.0)
    quality_check_hours: int = Field(default=24, ge=1)
    delay_between_sites: float = Field(default=2.0, ge=0.0)
    delay_between_queries: float = Field(default=1.0, ge=0.0)
    delay_between_batches: float = Field(default=5.0, ge=0.0)
    duplicate_threshold: float = Field(default=0.85, gt=0.0, le=1.0)
    dedup_window_hours: int = Field(default=168, ge=1)

    @field_validator("sites_enabled")
    @classmethod
    def keep_builtin_sites(cls, v: dict[str, bool]) -> dict[str, bool]:
        merged = {site: True for site in BUILTIN_SITES}
        merged.update({k.lower(): flag for k, flag in v.items()})
        return merged

    @model_validator(mode="after")
    def warning_above_minimum(self) -> "GovernorConfig":
        if self.warning_quality < self.min_quality:
            msg = (
                f"warning_quality ({self.warning_quality}) must be >= "
                f"min_quality ({self.min_quality})"
            )
            raise ValueError(msg)
        return self


class SchedulerConfig(BaseModel):
    """Periodic trigger settings. Disabled until an operator turns it on."""

    enabled: bool = False
    frequency: Frequency = "weekly"
    timezone: str = "America/New_York"
    session_timeout_minutes: float = Field(default=60, gt=0)
    biweekly_interval_days: int = Field(default=14, ge=1)

    @field_validator("frequency", mode="before")
    @classmethod
    def normalize_frequency(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class OrchestratorConfig(BaseModel):
    """Per-session fan-out limits."""

    max_jobs_per_user: int = Field(default=10, ge=1)
    max_queries_per_user: int = Field(default=3, ge=1)
    retry_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=2.0, ge=0.0)


class BrowserConfig(BaseModel):
    """Browser session configuration for the content fetcher."""

    cookies_path: str = "config/cookies.json"
    timeout_ms: int = Field(default=30000, ge=1000)
    headless: bool = True


class CustomSiteConfig(BaseModel):
    """An operator-defined site: URL template plus selector table."""

    name: str
    search_url: str
    selectors: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "site name must not be empty"
            raise ValueError(msg)
        return v.strip().lower()

    @field_validator("search_url")
    @classmethod
    def template_has_keywords(cls, v: str) -> str:
        if "{keywords}" not in v:
            msg = "search_url must contain a {keywords} placeholder"
            raise ValueError(msg)
        return v


class Settings(BaseModel):
    """Top-level settings loaded from YAML and the environment."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    governor: GovernorConfig = Field(default_factory=GovernorConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    sites: list[CustomSiteConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def enable_custom_sites(self) -> "Settings":
        for site in self.sites:
            self.governor.sites_enabled.setdefault(site.name, True)
        return self

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)

    @classmethod
    def load(
        cls,
        path: str | Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> "Settings":
        """Load YAML (if present), apply environment overrides, validate.

        A missing file is not an error here: built-in defaults apply.
        """
        raw: dict[str, Any] = {}
        if path is not None and Path(path).exists():
            raw = yaml.safe_load(Path(path).read_text()) or {}
        raw = apply_env_overrides(raw, os.environ if env is None else env)
        return cls.model_validate(raw)


def apply_env_overrides(raw: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    """Return a copy of ``raw`` with recognised environment variables merged in.

    Values stay strings; pydantic coerces them during validation.
    """
    merged = _deep_copy(raw)
    for var, path in ENV_OVERRIDES.items():
        value = env.get(var)
        if value is None or value.strip() == "":
            continue
        node = merged
        for key in path[:-1]:
            child = node.get(key)
            if not isinstance(child, dict):
                child = {}
                node[key] = child
            node = child
        node[path[-1]] = value.strip()
    return merged


def _deep_copy(raw: dict[str, Any]) -> dict[str, Any]:
    return {k: _deep_copy(v) if isinstance(v, dict) else v for k, v in raw.items()}
