"""Document store facade backed by SQLModel + SQLite."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, col, select

from health_recon.storage.alembic_runner import upgrade_head
from health_recon.storage.common import (
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware,
    utc_now,
)
from health_recon.storage.sqlmodel_models import (
    Briefing,
    BriefingRun,
    Document,
    Entity,
    Organization,
    PipelineRun,
    Signal,
)
from health_recon.store.models import (
    BriefingView,
    DocumentCreate,
    DocumentView,
    EntityWrite,
    OrganizationCreate,
    OrganizationView,
    PipelineRunStatus,
    PipelineRunView,
    PipelineRunWrite,
    PipelineStage,
    RunRecordView,
    RunRecordWrite,
    RunStatus,
    SignalCategory,
    SignalSeverity,
    SignalView,
    SignalWrite,
    SourceKind,
    StoreError,
    WindowedInputs,
)

DEFAULT_BUSY_TIMEOUT_MS = 5_000


class DocumentStore:
    """Persistence for organizations, documents, derived records and audit rows.

    Every method may raise `StoreError`; an empty result is not an error.
    """

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with Session(self.engine) as session:
                yield session
        except SQLAlchemyError as error:
            raise StoreError(f"{type(error).__name__}: {error}") from error

    # Organizations

    def add_organization(self, payload: OrganizationCreate) -> OrganizationView:
        """Register an organization; the slug must be unused."""

        row = Organization(
            organization_id=str(uuid4()),
            slug=payload.slug,
            name=payload.name,
            website=payload.website,
            created_at=to_db_datetime(utc_now()),
        )
        with self._session() as session:
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_organization_view(row)

    def fetch_organization_by_slug(self, slug: str) -> OrganizationView | None:
        with self._session() as session:
            row = session.exec(
                select(Organization).where(Organization.slug == slug),
            ).one_or_none()
            return _to_organization_view(row) if row is not None else None

    def list_organizations(self, slugs: list[str] | None = None) -> list[OrganizationView]:
        """Organizations ordered by slug, optionally restricted to the given slugs."""

        with self._session() as session:
            query = select(Organization)
            if slugs is not None:
                query = query.where(col(Organization.slug).in_(slugs))
            rows = session.exec(query.order_by(col(Organization.slug).asc())).all()
            return [_to_organization_view(row) for row in rows]

    # Documents

    def add_document(self, payload: DocumentCreate) -> tuple[DocumentView, bool]:
        """Insert a document unless the same content already exists for the organization.

        Returns the stored document and whether it was newly created.
        """

        content_hash = content_hash_for(payload.source_url, payload.raw_text)
        with self._session() as session:
            existing = session.exec(
                select(Document).where(
                    Document.organization_id == payload.organization_id,
                    Document.content_hash == content_hash,
                ),
            ).first()
            if existing is not None:
                return _to_document_view(existing), False

            row = Document(
                document_id=str(uuid4()),
                organization_id=payload.organization_id,
                source_url=payload.source_url,
                source_type=payload.source_type.value,
                title=payload.title,
                raw_text=payload.raw_text,
                content_hash=content_hash,
                processed=payload.processed,
                crawled_at=to_db_datetime(payload.crawled_at or utc_now()),
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                duplicate = session.exec(
                    select(Document).where(
                        Document.organization_id == payload.organization_id,
                        Document.content_hash == content_hash,
                    ),
                ).one()
                return _to_document_view(duplicate), False
            session.refresh(row)
            return _to_document_view(row), True

    def get_document(self, document_id: str) -> DocumentView | None:
        with self._session() as session:
            row = session.exec(
                select(Document).where(Document.document_id == document_id),
            ).one_or_none()
            return _to_document_view(row) if row is not None else None

    def fetch_unprocessed_documents(
        self,
        organization_id: str | None,
        limit: int,
    ) -> list[DocumentView]:
        """Oldest unprocessed documents, for one organization or across all of them."""

        with self._session() as session:
            query = select(Document).where(col(Document.processed).is_(False))
            if organization_id is not None:
                query = query.where(Document.organization_id == organization_id)
            rows = session.exec(
                query.order_by(
                    col(Document.crawled_at).asc(),
                    col(Document.document_id).asc(),
                ).limit(limit),
            ).all()
            return [_to_document_view(row) for row in rows]

    def mark_processed(self, document_id: str) -> bool:
        """Flip `processed` from false to true; False when another worker got there first."""

        with self._session() as session:
            result = session.exec(
                sa_update(Document)
                .where(
                    col(Document.document_id) == document_id,
                    col(Document.processed).is_(False),
                )
                .values(processed=True),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def fetch_unclassified_news(self, limit: int) -> list[DocumentView]:
        """Processed news documents that are not linked to any organization yet."""

        with self._session() as session:
            rows = session.exec(
                select(Document)
                .where(
                    Document.source_type == SourceKind.NEWS.value,
                    col(Document.organization_id).is_(None),
                    col(Document.processed).is_(True),
                )
                .order_by(col(Document.crawled_at).asc(), col(Document.document_id).asc())
                .limit(limit),
            ).all()
            return [_to_document_view(row) for row in rows]

    def assign_organization(self, *, document_id: str, organization_id: str) -> bool:
        """Link a document, and rows already extracted from it, to an organization.

        Only applies while the document is still unassociated.
        """

        with self._session() as session:
            result = session.exec(
                sa_update(Document)
                .where(
                    col(Document.document_id) == document_id,
                    col(Document.organization_id).is_(None),
                )
                .values(organization_id=organization_id),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.exec(
                sa_update(Signal)
                .where(
                    col(Signal.document_id) == document_id,
                    col(Signal.organization_id).is_(None),
                )
                .values(organization_id=organization_id),
            )
            session.exec(
                sa_update(Entity)
                .where(
                    col(Entity.source_document_id) == document_id,
                    col(Entity.organization_id).is_(None),
                )
                .values(organization_id=organization_id),
            )
            session.commit()
            return True

    # Derived records

    def insert_entity(
        self,
        *,
        organization_id: str | None,
        document_id: str | None,
        entity: EntityWrite,
    ) -> str:
        entity_id = str(uuid4())
        with self._session() as session:
            session.add(
                Entity(
                    entity_id=entity_id,
                    organization_id=organization_id,
                    source_document_id=document_id,
                    entity_type=entity.entity_type.value,
                    name=entity.name,
                    role=entity.role,
                    attributes_json=_dump_json(entity.attributes),
                    created_at=to_db_datetime(utc_now()),
                ),
            )
            session.commit()
        return entity_id

    def insert_signal(
        self,
        *,
        organization_id: str | None,
        document_id: str | None,
        signal: SignalWrite,
        created_at: datetime | None = None,
    ) -> str:
        signal_id = str(uuid4())
        with self._session() as session:
            session.add(
                Signal(
                    signal_id=signal_id,
                    organization_id=organization_id,
                    document_id=document_id,
                    severity=signal.severity.value,
                    category=signal.category.value,
                    summary=signal.summary,
                    details_json=_dump_json(signal.details),
                    created_at=to_db_datetime(created_at or utc_now()),
                ),
            )
            session.commit()
        return signal_id

    def count_entities(self, *, document_id: str | None = None) -> int:
        with self._session() as session:
            query = select(func.count()).select_from(Entity)
            if document_id is not None:
                query = query.where(Entity.source_document_id == document_id)
            return int(session.exec(query).one())

    def count_signals(self, *, document_id: str | None = None) -> int:
        with self._session() as session:
            query = select(func.count()).select_from(Signal)
            if document_id is not None:
                query = query.where(Signal.document_id == document_id)
            return int(session.exec(query).one())

    def fetch_windowed_inputs(
        self,
        organization_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> WindowedInputs:
        """Signals created and documents crawled in `[window_start, window_end]`."""

        start = to_db_datetime(window_start)
        end = to_db_datetime(window_end)
        with self._session() as session:
            signal_rows = session.exec(
                select(Signal)
                .where(
                    Signal.organization_id == organization_id,
                    col(Signal.created_at) >= start,
                    col(Signal.created_at) <= end,
                )
                .order_by(col(Signal.created_at).desc()),
            ).all()
            document_rows = session.exec(
                select(Document)
                .where(
                    Document.organization_id == organization_id,
                    col(Document.crawled_at) >= start,
                    col(Document.crawled_at) <= end,
                )
                .order_by(col(Document.crawled_at).desc()),
            ).all()
            return WindowedInputs(
                signals=[_to_signal_view(row) for row in signal_rows],
                documents=[_to_document_view(row) for row in document_rows],
            )

    # Briefings and audit rows

    def insert_briefing(
        self,
        *,
        organization_id: str,
        bullets: list[str],
        narrative: str,
    ) -> BriefingView:
        row = Briefing(
            briefing_id=str(uuid4()),
            organization_id=organization_id,
            summary_json=json.dumps(
                {"bullets": bullets, "narrative": narrative},
                ensure_ascii=False,
            ),
            created_at=to_db_datetime(utc_now()),
        )
        with self._session() as session:
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_briefing_view(row)

    def latest_briefing(self, organization_id: str) -> BriefingView | None:
        with self._session() as session:
            row = session.exec(
                select(Briefing)
                .where(Briefing.organization_id == organization_id)
                .order_by(col(Briefing.created_at).desc())
                .limit(1),
            ).first()
            return _to_briefing_view(row) if row is not None else None

    def count_briefings(self, organization_id: str) -> int:
        with self._session() as session:
            return int(
                session.exec(
                    select(func.count())
                    .select_from(Briefing)
                    .where(Briefing.organization_id == organization_id),
                ).one(),
            )

    def has_briefing_since(self, organization_id: str, since: datetime) -> bool:
        with self._session() as session:
            row = session.exec(
                select(Briefing.briefing_id)
                .where(
                    Briefing.organization_id == organization_id,
                    col(Briefing.created_at) >= to_db_datetime(since),
                )
                .limit(1),
            ).first()
            return row is not None

    def insert_run_record(self, record: RunRecordWrite) -> str:
        run_id = str(uuid4())
        with self._session() as session:
            session.add(
                BriefingRun(
                    run_id=run_id,
                    organization_id=record.organization_id,
                    status=record.status.value,
                    briefing_id=record.briefing_id,
                    error_message=record.error_message,
                    created_at=to_db_datetime(utc_now()),
                ),
            )
            session.commit()
        return run_id

    def list_run_records(
        self,
        *,
        organization_id: str | None = None,
        limit: int = 20,
    ) -> list[RunRecordView]:
        """Most recent briefing run records first."""

        with self._session() as session:
            query = select(BriefingRun)
            if organization_id is not None:
                query = query.where(BriefingRun.organization_id == organization_id)
            rows = session.exec(
                query.order_by(col(BriefingRun.created_at).desc()).limit(limit),
            ).all()
            return [_to_run_record_view(row) for row in rows]

    def insert_pipeline_run(self, run: PipelineRunWrite) -> str:
        run_id = str(uuid4())
        with self._session() as session:
            session.add(
                PipelineRun(
                    run_id=run_id,
                    organization_id=run.organization_id,
                    stage=run.stage.value,
                    status=run.status.value,
                    attempted_count=run.attempted_count,
                    succeeded_count=run.succeeded_count,
                    error_message=run.error_message,
                    created_at=to_db_datetime(utc_now()),
                ),
            )
            session.commit()
        return run_id

    def list_pipeline_runs(
        self,
        *,
        stage: PipelineStage | None = None,
        limit: int = 20,
    ) -> list[PipelineRunView]:
        with self._session() as session:
            query = select(PipelineRun)
            if stage is not None:
                query = query.where(PipelineRun.stage == stage.value)
            rows = session.exec(
                query.order_by(col(PipelineRun.created_at).desc()).limit(limit),
            ).all()
            return [_to_pipeline_run_view(row) for row in rows]


def content_hash_for(source_url: str, raw_text: str | None) -> str:
    """Stable hash used to deduplicate documents per organization."""

    digest = hashlib.sha256()
    digest.update(source_url.encode("utf-8"))
    digest.update(b"\n")
    digest.update((raw_text or "").encode("utf-8"))
    return digest.hexdigest()


def _dump_json(value: dict[str, Any] | None) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


def _load_json(value: str | None) -> dict[str, Any] | None:
    if value is None:
        return None
    decoded = json.loads(value)
    return decoded if isinstance(decoded, dict) else None


def _to_organization_view(row: Organization) -> OrganizationView:
    return OrganizationView(
        organization_id=row.organization_id,
        slug=row.slug,
        name=row.name,
        website=row.website,
        created_at=to_utc_aware(row.created_at),
    )


def _to_document_view(row: Document) -> DocumentView:
    return DocumentView(
        document_id=row.document_id,
        organization_id=row.organization_id,
        source_url=row.source_url,
        source_type=SourceKind(row.source_type),
        title=row.title,
        raw_text=row.raw_text,
        content_hash=row.content_hash,
        processed=bool(row.processed),
        crawled_at=to_utc_aware(row.crawled_at),
    )


def _to_signal_view(row: Signal) -> SignalView:
    return SignalView(
        signal_id=row.signal_id,
        organization_id=row.organization_id,
        document_id=row.document_id,
        category=SignalCategory(row.category),
        severity=SignalSeverity(row.severity),
        summary=row.summary,
        details=_load_json(row.details_json),
        created_at=to_utc_aware(row.created_at),
    )


def _to_briefing_view(row: Briefing) -> BriefingView:
    payload = json.loads(row.summary_json)
    return BriefingView(
        briefing_id=row.briefing_id,
        organization_id=row.organization_id,
        bullets=[str(item) for item in payload.get("bullets", [])],
        narrative=str(payload.get("narrative", "")),
        created_at=to_utc_aware(row.created_at),
    )


def _to_run_record_view(row: BriefingRun) -> RunRecordView:
    return RunRecordView(
        run_id=row.run_id,
        organization_id=row.organization_id,
        status=RunStatus(row.status),
        briefing_id=row.briefing_id,
        error_message=row.error_message,
        created_at=to_utc_aware(row.created_at),
    )


def _to_pipeline_run_view(row: PipelineRun) -> PipelineRunView:
    return PipelineRunView(
        run_id=row.run_id,
        organization_id=row.organization_id,
        stage=PipelineStage(row.stage),
        status=PipelineRunStatus(row.status),
        attempted_count=row.attempted_count,
        succeeded_count=row.succeeded_count,
        error_message=row.error_message,
        created_at=to_utc_aware(row.created_at),
    )
