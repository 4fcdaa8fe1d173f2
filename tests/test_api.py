from __future__ import annotations

from dataclasses import replace

import allure
import pytest
from fastapi.testclient import TestClient

from conftest import VALID_BRIEFING, FakeGateway, add_doc, add_org, add_signal
from health_recon.api.app import create_app
from health_recon.config import ConfigError, RateLimitSettings, Settings, TriggerSettings
from health_recon.ratelimit.limiter import RateLimiter
from health_recon.ratelimit.stores import InMemoryCounterStore
from health_recon.store.models import StoreError
from health_recon.store.repository import DocumentStore

pytestmark = [
    allure.epic("HTTP Triggers"),
    allure.feature("Cron & On-demand Routes"),
]

AUTH = {"Authorization": "Bearer cron-secret"}


class _ListFailingStore(DocumentStore):
    def list_organizations(self, slugs=None):
        raise StoreError("database is locked")


def _client(
    settings: Settings,
    store: DocumentStore,
    gateway: FakeGateway | None = None,
    **kwargs,
) -> TestClient:
    app = create_app(
        settings,
        store=store,
        limiter=RateLimiter(InMemoryCounterStore()),
        gateway_factory=lambda _settings, _limiter: gateway or FakeGateway(),
        pause_seconds=0,
    )
    return TestClient(app, **kwargs)


def test_healthz(settings: Settings, store: DocumentStore) -> None:
    response = _client(settings, store).get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_cron_requires_bearer_secret(settings: Settings, store: DocumentStore) -> None:
    client = _client(settings, store)

    missing = client.get("/api/cron/daily-briefings")
    wrong = client.get("/api/cron/daily-briefings", headers={"Authorization": "Bearer nope"})

    for response in (missing, wrong):
        assert response.status_code == 401
        assert response.json() == {
            "ok": False,
            "error": {"code": "unauthorized", "message": "Unauthorized cron request"},
        }


def test_cron_without_configured_secret_outside_development(
    settings: Settings,
    store: DocumentStore,
) -> None:
    settings = replace(settings, trigger=TriggerSettings(environment="production"))

    response = _client(settings, store).get("/api/cron/classify-news", headers=AUTH)

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "config_error"


def test_cron_open_in_development_without_secret(settings: Settings, store: DocumentStore) -> None:
    settings = replace(settings, trigger=TriggerSettings(environment="development"))

    response = _client(settings, store).get("/api/cron/classify-news")

    assert response.status_code == 200
    assert response.json() == {"ok": True, "data": {"classified": 0, "total": 0}}


def test_cron_daily_briefings_reports_batch(settings: Settings, store: DocumentStore) -> None:
    add_signal(store, add_org(store, "acme"), "New CIO")
    add_org(store, "quiet")
    client = _client(settings, store, FakeGateway(default=VALID_BRIEFING))

    response = client.get("/api/cron/daily-briefings", headers=AUTH)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["totalSystems"] == 2
    assert (data["successful"], data["failed"], data["skipped"]) == (1, 0, 1)


def test_cron_process_runs_every_organization(settings: Settings, store: DocumentStore) -> None:
    acme = add_org(store, "acme")
    add_doc(store, url="https://acme.org/1", organization=acme)
    client = _client(settings, store, FakeGateway(default="{}"))

    response = client.get("/api/cron/process", headers=AUTH)

    assert response.json() == {
        "ok": True,
        "data": {"totalSystems": 1, "successful": 1, "failed": 0, "processed": 1},
    }


def test_cron_failure_is_reported(settings: Settings) -> None:
    store = _ListFailingStore(settings.db_path)
    store.init_schema()
    try:
        response = _client(settings, store).get("/api/cron/daily-briefings", headers=AUTH)
    finally:
        store.close()

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "cron_failed"


def test_daily_briefing_success(settings: Settings, store: DocumentStore) -> None:
    acme = add_org(store, "acme")
    add_signal(store, acme, "Epic go-live")
    client = _client(settings, store, FakeGateway(default=VALID_BRIEFING))

    response = client.post("/api/daily-briefing", json={"slug": "acme"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["created"] is True
    assert data["briefingId"] == store.latest_briefing(acme.organization_id).briefing_id


def test_daily_briefing_without_activity(settings: Settings, store: DocumentStore) -> None:
    add_org(store, "acme")

    response = _client(settings, store).post("/api/daily-briefing", json={"slug": "acme"})

    assert response.json() == {
        "ok": True,
        "data": {"created": False, "reason": "no_recent_activity"},
    }


def test_daily_briefing_uses_configured_default_slug(
    settings: Settings,
    store: DocumentStore,
) -> None:
    add_org(store, "acme")
    settings = replace(
        settings,
        pipeline=replace(settings.pipeline, default_briefing_slug="acme"),
    )

    response = _client(settings, store).post("/api/daily-briefing")

    assert response.status_code == 200
    assert response.json()["data"]["created"] is False


def test_daily_briefing_requires_a_slug(settings: Settings, store: DocumentStore) -> None:
    client = _client(settings, store)

    missing = client.post("/api/daily-briefing", json={})
    too_long = client.post("/api/daily-briefing", json={"slug": "x" * 101})

    assert missing.status_code == 400
    assert missing.json()["error"]["code"] == "invalid_request"
    assert too_long.status_code == 400
    assert too_long.json()["error"]["code"] == "invalid_request"


def test_daily_briefing_unknown_system(settings: Settings, store: DocumentStore) -> None:
    response = _client(settings, store).post("/api/daily-briefing", json={"slug": "nope"})

    assert response.status_code == 404
    assert response.json()["error"] == {"code": "system_not_found", "message": "System not found"}


def test_daily_briefing_invalid_model_output(settings: Settings, store: DocumentStore) -> None:
    add_signal(store, add_org(store, "acme"), "Signal")
    client = _client(settings, store, FakeGateway(default="I cannot help with that"))

    response = client.post("/api/daily-briefing", json={"slug": "acme"})

    assert response.status_code == 502
    assert response.json()["error"] == {
        "code": "generation_failed",
        "message": "Model response invalid",
    }
    assert len(store.list_run_records()) == 1


def test_missing_api_key_is_a_config_error(settings: Settings, store: DocumentStore) -> None:
    settings = replace(settings, inference=replace(settings.inference, api_key=None))

    response = _client(settings, store).post("/api/process")

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "config_error"


def test_on_demand_routes_are_rate_limited(settings: Settings, store: DocumentStore) -> None:
    settings = replace(settings, rate_limit=RateLimitSettings(limit=2, window_seconds=60))
    client = _client(settings, store)

    statuses = [client.post("/api/process").status_code for _ in range(3)]
    limited = client.post("/api/process")

    assert statuses == [200, 200, 429]
    assert limited.status_code == 429
    assert limited.json()["error"]["code"] == "rate_limited"
    assert 1 <= int(limited.headers["Retry-After"]) <= 60
    assert "X-RateLimit-Reset" in limited.headers
    assert client.post(
        "/api/process",
        headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
    ).status_code == 200


def test_run_pipeline_for_system(settings: Settings, store: DocumentStore) -> None:
    acme = add_org(store, "acme")
    add_doc(store, url="https://acme.org/1", organization=acme)
    client = _client(settings, store, FakeGateway(default="{}"))

    response = client.post("/api/systems/acme/run-pipeline")
    missing = client.post("/api/systems/nope/run-pipeline")

    assert response.json() == {
        "ok": True,
        "data": {"slug": "acme", "processed": 1, "succeeded": 1, "failed": 0},
    }
    assert missing.status_code == 404


def test_create_app_rejects_invalid_trigger_settings(
    settings: Settings,
    store: DocumentStore,
) -> None:
    settings = replace(settings, trigger=TriggerSettings(environment="staging"))

    with pytest.raises(ConfigError):
        create_app(settings, store=store)


def test_config_errors_do_not_consume_rate_limit(settings: Settings, store: DocumentStore) -> None:
    settings = replace(
        settings,
        inference=replace(settings.inference, api_key=None),
        rate_limit=RateLimitSettings(limit=1, window_seconds=60),
    )
    limiter = RateLimiter(InMemoryCounterStore())
    app = create_app(
        settings,
        store=store,
        limiter=limiter,
        gateway_factory=lambda _settings, _limiter: FakeGateway(),
        pause_seconds=0,
    )
    client = TestClient(app)

    statuses = [client.post("/api/process").status_code for _ in range(3)]

    assert statuses == [500, 500, 500]
    assert limiter.stats(limit=1).active_keys == 0
