"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from health_recon.config import (
    InferenceSettings,
    PipelineSettings,
    Settings,
    TriggerSettings,
)
from health_recon.inference.base import JSON_OBJECT_FORMAT
from health_recon.storage.common import utc_now
from health_recon.store.models import (
    DocumentCreate,
    DocumentView,
    OrganizationCreate,
    OrganizationView,
    SignalCategory,
    SignalSeverity,
    SignalWrite,
    SourceKind,
)
from health_recon.store.repository import DocumentStore

Response = str | None | Exception | Callable[[str], str | None]

VALID_BRIEFING = '{"bullets": ["New CIO appointed", "Epic go-live scheduled"], "narrative": "Busy day."}'


class FakeGateway:
    """Scripted inference gateway; falls back to `default` once the script runs out."""

    def __init__(self, responses: list[Response] | None = None, *, default: Response = None):
        self.responses = list(responses or [])
        self.default = default
        self.prompts: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    def infer(self, prompt: str, expected_format: str = JSON_OBJECT_FORMAT) -> str | None:
        self.prompts.append(prompt)
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(prompt)
        return response


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or utc_now()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        db_path=tmp_path / "health-recon.db",
        inference=InferenceSettings(api_key="test-key"),
        pipeline=PipelineSettings(briefing_pause_seconds=0),
        trigger=TriggerSettings(cron_secret="cron-secret", environment="test"),
    )


@pytest.fixture()
def store(settings: Settings) -> Iterator[DocumentStore]:
    repository = DocumentStore(settings.db_path)
    repository.init_schema()
    yield repository
    repository.close()


def add_org(store: DocumentStore, slug: str, name: str | None = None) -> OrganizationView:
    return store.add_organization(OrganizationCreate(slug=slug, name=name or slug.title()))


def add_doc(  # noqa: PLR0913
    store: DocumentStore,
    *,
    url: str,
    text: str = "Body text",
    organization: OrganizationView | None = None,
    source_type: SourceKind = SourceKind.WEBSITE,
    processed: bool = False,
    title: str | None = None,
    crawled_at: datetime | None = None,
) -> DocumentView:
    document, _ = store.add_document(
        DocumentCreate(
            source_url=url,
            source_type=source_type,
            raw_text=text,
            organization_id=organization.organization_id if organization else None,
            title=title,
            crawled_at=crawled_at,
            processed=processed,
        ),
    )
    return document


def add_signal(
    store: DocumentStore,
    organization: OrganizationView,
    summary: str,
    *,
    created_at: datetime | None = None,
) -> str:
    return store.insert_signal(
        organization_id=organization.organization_id,
        document_id=None,
        signal=SignalWrite(
            category=SignalCategory.LEADERSHIP_CHANGE,
            severity=SignalSeverity.HIGH,
            summary=summary,
        ),
        created_at=created_at,
    )
