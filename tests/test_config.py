from __future__ import annotations

from pathlib import Path

import allure
import pytest

from health_recon.config import (
    ConfigError,
    InferenceSettings,
    PipelineSettings,
    RateLimitSettings,
    Settings,
    TriggerSettings,
)

pytestmark = [
    allure.epic("Platform"),
    allure.feature("Configuration"),
]


def test_from_env_reads_overrides(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("HEALTH_RECON_OPENAI_MODEL", "gpt-test")
    monkeypatch.setenv("HEALTH_RECON_EXTRACTION_BATCH_SIZE", "7")
    monkeypatch.setenv("HEALTH_RECON_BRIEFING_PAUSE_SECONDS", "0.5")
    monkeypatch.setenv("HEALTH_RECON_SKIP_EXISTING_BRIEFINGS", "off")
    monkeypatch.setenv("HEALTH_RECON_RATE_LIMIT_BACKEND", " SQL ")
    monkeypatch.setenv("HEALTH_RECON_ENV", "Development")
    monkeypatch.setenv("HEALTH_RECON_DEFAULT_BRIEFING_SLUG", "acme")

    settings = Settings.from_env(db_path=Path("custom.db"))

    assert settings.db_path == Path("custom.db")
    assert settings.inference.api_key == "sk-test"
    assert settings.inference.model == "gpt-test"
    assert settings.pipeline.extraction_batch_size == 7
    assert settings.pipeline.briefing_pause_seconds == 0.5
    assert settings.pipeline.skip_existing_briefings is False
    assert settings.pipeline.default_briefing_slug == "acme"
    assert settings.rate_limit.backend == "sql"
    assert settings.trigger.environment == "development"


def test_from_env_rejects_malformed_numbers(monkeypatch) -> None:
    monkeypatch.setenv("HEALTH_RECON_RATE_LIMIT", "five")

    with pytest.raises(ConfigError, match="HEALTH_RECON_RATE_LIMIT"):
        Settings.from_env()


def test_from_env_rejects_malformed_booleans(monkeypatch) -> None:
    monkeypatch.setenv("HEALTH_RECON_SKIP_EXISTING_BRIEFINGS", "maybe")

    with pytest.raises(ConfigError, match="Invalid boolean value"):
        Settings.from_env()


def test_validate_for_inference_requires_api_key() -> None:
    settings = Settings(inference=InferenceSettings(api_key=None))

    with pytest.raises(ConfigError, match="OPENAI_API_KEY is not set"):
        settings.validate_for_inference()


def test_validate_for_inference_rejects_negative_quota() -> None:
    settings = Settings(inference=InferenceSettings(api_key="k", calls_per_minute=-1))

    with pytest.raises(ConfigError, match="CALLS_PER_MINUTE"):
        settings.validate_for_inference()


def test_validate_for_pipeline_rejects_non_positive_batch() -> None:
    settings = Settings(pipeline=PipelineSettings(extraction_batch_size=0))

    with pytest.raises(ConfigError, match="EXTRACTION_BATCH_SIZE"):
        settings.validate_for_pipeline()


def test_validate_for_triggers_rejects_unknown_environment() -> None:
    settings = Settings(trigger=TriggerSettings(environment="staging"))

    with pytest.raises(ConfigError, match="Invalid HEALTH_RECON_ENV"):
        settings.validate_for_triggers()


def test_validate_for_triggers_rejects_unknown_backend() -> None:
    settings = Settings(rate_limit=RateLimitSettings(backend="redis"))

    with pytest.raises(ConfigError, match="RATE_LIMIT_BACKEND"):
        settings.validate_for_triggers()


def test_unauthenticated_triggers_only_in_development() -> None:
    assert Settings(trigger=TriggerSettings(environment="development")).allows_unauthenticated_triggers
    assert not Settings(trigger=TriggerSettings(environment="production")).allows_unauthenticated_triggers
    assert not Settings(
        trigger=TriggerSettings(environment="development", cron_secret="s"),
    ).allows_unauthenticated_triggers
