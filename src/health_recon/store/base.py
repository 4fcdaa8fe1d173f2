"""Store interface consumed by the pipeline stages."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from health_recon.store.models import (
    BriefingView,
    DocumentView,
    EntityWrite,
    OrganizationView,
    PipelineRunWrite,
    RunRecordWrite,
    SignalWrite,
    WindowedInputs,
)


class DocumentStoreAdapter(Protocol):
    """Operations the stages need from persistence; each may raise `StoreError`."""

    def fetch_unprocessed_documents(
        self,
        organization_id: str | None,
        limit: int,
    ) -> list[DocumentView]: ...

    def insert_entity(
        self,
        *,
        organization_id: str | None,
        document_id: str | None,
        entity: EntityWrite,
    ) -> str: ...

    def insert_signal(
        self,
        *,
        organization_id: str | None,
        document_id: str | None,
        signal: SignalWrite,
        created_at: datetime | None = None,
    ) -> str: ...

    def mark_processed(self, document_id: str) -> bool: ...

    def fetch_organization_by_slug(self, slug: str) -> OrganizationView | None: ...

    def list_organizations(self, slugs: list[str] | None = None) -> list[OrganizationView]: ...

    def fetch_windowed_inputs(
        self,
        organization_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> WindowedInputs: ...

    def insert_briefing(
        self,
        *,
        organization_id: str,
        bullets: list[str],
        narrative: str,
    ) -> BriefingView: ...

    def insert_run_record(self, record: RunRecordWrite) -> str: ...

    def has_briefing_since(self, organization_id: str, since: datetime) -> bool: ...

    def fetch_unclassified_news(self, limit: int) -> list[DocumentView]: ...

    def assign_organization(self, *, document_id: str, organization_id: str) -> bool: ...

    def insert_pipeline_run(self, run: PipelineRunWrite) -> str: ...
