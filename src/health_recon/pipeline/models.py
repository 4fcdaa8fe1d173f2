"""Result types produced by the pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from health_recon.inference.models import FailureKind
from health_recon.store.models import EntityWrite, RunStatus, SignalWrite


@dataclass(slots=True)
class ExtractedRecords:
    """Entities and signals parsed from one extraction response."""

    entities: list[EntityWrite] = field(default_factory=list)
    signals: list[SignalWrite] = field(default_factory=list)


@dataclass(slots=True)
class BriefingPayload:
    """Validated briefing response."""

    bullets: list[str]
    narrative: str


@dataclass(slots=True)
class ExtractionSummary:
    """Counters for one extraction batch; `processed` is the batch size."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0

    def to_payload(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
        }


@dataclass(slots=True)
class ClassificationSummary:
    """Counters for one classification batch."""

    classified: int = 0
    total: int = 0

    def to_payload(self) -> dict[str, int]:
        return {"classified": self.classified, "total": self.total}


@dataclass(slots=True)
class BriefingOutcome:
    """Outcome of one briefing synthesis attempt for one organization."""

    organization_id: str
    slug: str
    status: RunStatus
    briefing_id: str | None = None
    failure_kind: FailureKind | None = None
    error_message: str | None = None
    run_id: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCESS


@dataclass(slots=True)
class BriefingBatchItem:
    """Per-organization entry of a briefing batch."""

    slug: str
    success: bool
    skipped: bool = False
    reason: str | None = None
    briefing_id: str | None = None
    error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"slug": self.slug, "success": self.success}
        if self.skipped:
            payload["skipped"] = True
        if self.reason is not None:
            payload["reason"] = self.reason
        if self.briefing_id is not None:
            payload["briefingId"] = self.briefing_id
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(slots=True)
class BriefingBatchResult:
    """Aggregate returned to the scheduler after a briefing batch."""

    total_systems: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    results: list[BriefingBatchItem] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "totalSystems": self.total_systems,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "results": [item.to_payload() for item in self.results],
        }


@dataclass(slots=True)
class ExtractionBatchResult:
    """Aggregate of per-organization extraction runs."""

    total_systems: int = 0
    successful: int = 0
    failed: int = 0
    processed: int = 0

    def to_payload(self) -> dict[str, int]:
        return {
            "totalSystems": self.total_systems,
            "successful": self.successful,
            "failed": self.failed,
            "processed": self.processed,
        }
