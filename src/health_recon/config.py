"""Runtime configuration for the processing pipeline and its triggers."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

SUPPORTED_ENVIRONMENTS = frozenset({"development", "production", "test"})
SUPPORTED_RATE_LIMIT_BACKENDS = frozenset({"memory", "sql"})


class ConfigError(ValueError):
    """Missing or invalid configuration detected before any work starts."""


@dataclass(slots=True)
class InferenceSettings:
    """Language-model gateway settings."""

    api_key: str | None = None
    model: str = "gpt-4.1-mini"
    base_url: str | None = None
    timeout_seconds: float = 60.0
    max_retries: int = 2
    calls_per_minute: int = 0


@dataclass(slots=True)
class PipelineSettings:
    """Batch sizes and windows for the processing stages."""

    extraction_batch_size: int = 3
    classification_batch_size: int = 100
    classification_max_chars: int = 20_000
    briefing_window_hours: int = 24
    briefing_pause_seconds: float = 2.0
    skip_existing_briefings: bool = True
    default_briefing_slug: str | None = None


@dataclass(slots=True)
class RateLimitSettings:
    """Request throttle settings for on-demand triggers."""

    backend: str = "memory"
    limit: int = 5
    window_seconds: int = 60
    retention_hours: int = 24


@dataclass(slots=True)
class TriggerSettings:
    """Scheduler trigger authentication and HTTP serving settings."""

    cron_secret: str | None = None
    environment: str = "production"
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".health_recon.db")
    inference: InferenceSettings = field(default_factory=InferenceSettings)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)
    trigger: TriggerSettings = field(default_factory=TriggerSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("HEALTH_RECON_DB_PATH", ".health_recon.db")),
            inference=InferenceSettings(
                api_key=os.getenv("OPENAI_API_KEY") or None,
                model=os.getenv("HEALTH_RECON_OPENAI_MODEL", "gpt-4.1-mini"),
                base_url=os.getenv("HEALTH_RECON_OPENAI_BASE_URL") or None,
                timeout_seconds=_env_float("HEALTH_RECON_OPENAI_TIMEOUT_SECONDS", 60.0),
                max_retries=_env_int("HEALTH_RECON_OPENAI_MAX_RETRIES", 2),
                calls_per_minute=_env_int("HEALTH_RECON_INFERENCE_CALLS_PER_MINUTE", 0),
            ),
            pipeline=PipelineSettings(
                extraction_batch_size=_env_int("HEALTH_RECON_EXTRACTION_BATCH_SIZE", 3),
                classification_batch_size=_env_int(
                    "HEALTH_RECON_CLASSIFICATION_BATCH_SIZE",
                    100,
                ),
                classification_max_chars=_env_int(
                    "HEALTH_RECON_CLASSIFICATION_MAX_CHARS",
                    20_000,
                ),
                briefing_window_hours=_env_int("HEALTH_RECON_BRIEFING_WINDOW_HOURS", 24),
                briefing_pause_seconds=_env_float("HEALTH_RECON_BRIEFING_PAUSE_SECONDS", 2.0),
                skip_existing_briefings=_env_bool(
                    "HEALTH_RECON_SKIP_EXISTING_BRIEFINGS",
                    default=True,
                ),
                default_briefing_slug=os.getenv("HEALTH_RECON_DEFAULT_BRIEFING_SLUG") or None,
            ),
            rate_limit=RateLimitSettings(
                backend=os.getenv("HEALTH_RECON_RATE_LIMIT_BACKEND", "memory").strip().lower(),
                limit=_env_int("HEALTH_RECON_RATE_LIMIT", 5),
                window_seconds=_env_int("HEALTH_RECON_RATE_LIMIT_WINDOW_SECONDS", 60),
                retention_hours=_env_int("HEALTH_RECON_RATE_LIMIT_RETENTION_HOURS", 24),
            ),
            trigger=TriggerSettings(
                cron_secret=os.getenv("HEALTH_RECON_CRON_SECRET") or None,
                environment=os.getenv("HEALTH_RECON_ENV", "production").strip().lower(),
                host=os.getenv("HEALTH_RECON_HOST", "127.0.0.1"),
                port=_env_int("HEALTH_RECON_PORT", 8000),
            ),
        )

    def validate_for_inference(self) -> None:
        """Raise configuration error if the inference gateway cannot be built."""

        if not self.inference.api_key:
            raise ConfigError("OPENAI_API_KEY is not set.")
        if self.inference.timeout_seconds <= 0:
            raise ConfigError("HEALTH_RECON_OPENAI_TIMEOUT_SECONDS must be > 0.")
        if self.inference.max_retries < 0:
            raise ConfigError("HEALTH_RECON_OPENAI_MAX_RETRIES must be >= 0.")
        if self.inference.calls_per_minute < 0:
            raise ConfigError("HEALTH_RECON_INFERENCE_CALLS_PER_MINUTE must be >= 0.")

    def validate_for_pipeline(self) -> None:
        """Raise configuration error if batch sizes or windows are unusable."""

        if self.pipeline.extraction_batch_size <= 0:
            raise ConfigError("HEALTH_RECON_EXTRACTION_BATCH_SIZE must be > 0.")
        if self.pipeline.classification_batch_size <= 0:
            raise ConfigError("HEALTH_RECON_CLASSIFICATION_BATCH_SIZE must be > 0.")
        if self.pipeline.classification_max_chars <= 0:
            raise ConfigError("HEALTH_RECON_CLASSIFICATION_MAX_CHARS must be > 0.")
        if self.pipeline.briefing_window_hours <= 0:
            raise ConfigError("HEALTH_RECON_BRIEFING_WINDOW_HOURS must be > 0.")
        if self.pipeline.briefing_pause_seconds < 0:
            raise ConfigError("HEALTH_RECON_BRIEFING_PAUSE_SECONDS must be >= 0.")

    def validate_for_triggers(self) -> None:
        """Raise configuration error if trigger auth or throttling is misconfigured."""

        if self.trigger.environment not in SUPPORTED_ENVIRONMENTS:
            raise ConfigError(
                f"Invalid HEALTH_RECON_ENV: {self.trigger.environment!r}. "
                f"Expected one of: {', '.join(sorted(SUPPORTED_ENVIRONMENTS))}.",
            )
        if self.rate_limit.backend not in SUPPORTED_RATE_LIMIT_BACKENDS:
            raise ConfigError(
                f"Invalid HEALTH_RECON_RATE_LIMIT_BACKEND: {self.rate_limit.backend!r}. "
                f"Expected one of: {', '.join(sorted(SUPPORTED_RATE_LIMIT_BACKENDS))}.",
            )
        if self.rate_limit.limit <= 0:
            raise ConfigError("HEALTH_RECON_RATE_LIMIT must be > 0.")
        if self.rate_limit.window_seconds <= 0:
            raise ConfigError("HEALTH_RECON_RATE_LIMIT_WINDOW_SECONDS must be > 0.")

    @property
    def allows_unauthenticated_triggers(self) -> bool:
        """Local development may call scheduler triggers without a secret."""

        return self.trigger.cron_secret is None and self.trigger.environment == "development"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as error:
        raise ConfigError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as error:
        raise ConfigError(f"Invalid number value for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ConfigError(f"Invalid boolean value for {name}: {value!r}")
