"""Domain models exchanged with the document store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class StoreError(RuntimeError):
    """Read or write against the document store failed."""


class OrganizationNotFound(LookupError):
    """No organization matches the requested slug."""

    def __init__(self, slug: str) -> None:
        super().__init__(f"Organization not found: {slug}")
        self.slug = slug


class SourceKind(str, Enum):
    """Where an ingested document came from."""

    WEBSITE = "website"
    NEWS = "news"
    PDF = "pdf"
    LINKEDIN = "linkedin"


class EntityType(str, Enum):
    """Kinds of named actors extracted from documents."""

    PERSON = "person"
    FACILITY = "facility"
    INITIATIVE = "initiative"
    VENDOR = "vendor"
    TECHNOLOGY = "technology"


class SignalCategory(str, Enum):
    """Domain categories for extracted signals."""

    LEADERSHIP_CHANGE = "leadership_change"
    STRATEGY = "strategy"
    TECHNOLOGY = "technology"
    FINANCE = "finance"
    WORKFORCE = "workforce"
    AI = "ai"
    EPIC_MIGRATION = "epic_migration"


class SignalSeverity(str, Enum):
    """How much a signal matters for account planning."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RunStatus(str, Enum):
    """Outcome recorded for one briefing synthesis attempt."""

    SUCCESS = "success"
    NO_RECENT_ACTIVITY = "no_recent_activity"
    ERROR = "error"


class PipelineStage(str, Enum):
    """Batch stages audited through pipeline runs."""

    EXTRACTION = "extraction"
    CLASSIFICATION = "classification"


class PipelineRunStatus(str, Enum):
    """Outcome of one extraction or classification batch."""

    SUCCESS = "success"
    ERROR = "error"


@dataclass(slots=True)
class OrganizationCreate:
    """Input payload for registering an organization."""

    slug: str
    name: str
    website: str | None = None


@dataclass(slots=True)
class OrganizationView:
    """Organization as seen by the pipeline stages."""

    organization_id: str
    slug: str
    name: str
    website: str | None
    created_at: datetime


@dataclass(slots=True)
class DocumentCreate:
    """Input payload used by ingestion glue and fixtures to add a document."""

    source_url: str
    source_type: SourceKind
    raw_text: str | None
    organization_id: str | None = None
    title: str | None = None
    crawled_at: datetime | None = None
    processed: bool = False


@dataclass(slots=True)
class DocumentView:
    """Document row projected for the stages."""

    document_id: str
    organization_id: str | None
    source_url: str
    source_type: SourceKind
    title: str | None
    raw_text: str | None
    content_hash: str
    processed: bool
    crawled_at: datetime


@dataclass(slots=True)
class EntityWrite:
    """One extracted entity ready to persist."""

    entity_type: EntityType
    name: str
    role: str | None = None
    attributes: dict[str, Any] | None = None


@dataclass(slots=True)
class SignalWrite:
    """One extracted signal ready to persist."""

    category: SignalCategory
    severity: SignalSeverity
    summary: str
    details: dict[str, Any] | None = None


@dataclass(slots=True)
class SignalView:
    """Signal row used for briefing aggregation."""

    signal_id: str
    organization_id: str | None
    document_id: str | None
    category: SignalCategory
    severity: SignalSeverity
    summary: str
    details: dict[str, Any] | None
    created_at: datetime


@dataclass(slots=True)
class WindowedInputs:
    """Signals and documents for one organization inside a time window."""

    signals: list[SignalView] = field(default_factory=list)
    documents: list[DocumentView] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.signals and not self.documents


@dataclass(slots=True)
class BriefingView:
    """Stored briefing with its decoded payload."""

    briefing_id: str
    organization_id: str
    bullets: list[str]
    narrative: str
    created_at: datetime


@dataclass(slots=True)
class RunRecordWrite:
    """Audit entry for one briefing synthesis attempt."""

    organization_id: str
    status: RunStatus
    briefing_id: str | None = None
    error_message: str | None = None


@dataclass(slots=True)
class RunRecordView:
    """Stored run record."""

    run_id: str
    organization_id: str
    status: RunStatus
    briefing_id: str | None
    error_message: str | None
    created_at: datetime


@dataclass(slots=True)
class PipelineRunWrite:
    """Audit entry for one extraction or classification batch."""

    stage: PipelineStage
    status: PipelineRunStatus
    organization_id: str | None = None
    attempted_count: int = 0
    succeeded_count: int = 0
    error_message: str | None = None


@dataclass(slots=True)
class PipelineRunView:
    """Stored pipeline run."""

    run_id: str
    organization_id: str | None
    stage: PipelineStage
    status: PipelineRunStatus
    attempted_count: int
    succeeded_count: int
    error_message: str | None
    created_at: datetime
