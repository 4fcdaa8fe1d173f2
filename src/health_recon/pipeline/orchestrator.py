"""Batch drivers for the pipeline stages with per-item failure isolation."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime

from health_recon.config import Settings
from health_recon.inference.base import InferenceGateway
from health_recon.pipeline.briefing import BriefingStage
from health_recon.pipeline.classification import ClassificationStage
from health_recon.pipeline.extraction import ExtractionStage
from health_recon.pipeline.models import (
    BriefingBatchItem,
    BriefingBatchResult,
    BriefingOutcome,
    ClassificationSummary,
    ExtractionBatchResult,
    ExtractionSummary,
)
from health_recon.pipeline.outcome import truncate_error
from health_recon.storage.common import to_utc_aware, utc_now
from health_recon.store.base import DocumentStoreAdapter
from health_recon.store.models import (
    OrganizationNotFound,
    PipelineRunStatus,
    PipelineRunWrite,
    PipelineStage,
    RunStatus,
)

logger = logging.getLogger(__name__)

BRIEFING_ALREADY_EXISTS = "briefing_already_exists"


class PipelineOrchestrator:
    """Runs stages over organizations or documents and aggregates counters."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        settings: Settings,
        store: DocumentStoreAdapter,
        gateway: InferenceGateway,
        pause_seconds: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings
        self.store = store
        self.pause_seconds = (
            settings.pipeline.briefing_pause_seconds if pause_seconds is None else pause_seconds
        )
        self._sleep = sleep
        self._clock = clock

        self.extraction = ExtractionStage(
            store=store,
            gateway=gateway,
            batch_size=settings.pipeline.extraction_batch_size,
        )
        self.classification = ClassificationStage(
            store=store,
            gateway=gateway,
            batch_size=settings.pipeline.classification_batch_size,
            max_chars=settings.pipeline.classification_max_chars,
        )
        self.briefing = BriefingStage(
            store=store,
            gateway=gateway,
            window_hours=settings.pipeline.briefing_window_hours,
            clock=clock,
        )

    # Briefings

    def run_briefing(self, slug: str, *, reference_time: datetime | None = None) -> BriefingOutcome:
        """Synthesize one organization's briefing; unknown slug raises `OrganizationNotFound`."""

        return self.briefing.run_for_slug(slug, reference_time=reference_time)

    def run_briefings(
        self,
        slugs: list[str] | None = None,
        *,
        reference_time: datetime | None = None,
    ) -> BriefingBatchResult:
        """Synthesize briefings for all organizations (ordered by slug) or the given subset."""

        reference = reference_time or self._clock()
        organizations = self.store.list_organizations(slugs)
        result = BriefingBatchResult(total_systems=len(organizations))
        logger.info("Starting briefing batch for %d organizations", len(organizations))
        day_start = to_utc_aware(reference).replace(hour=0, minute=0, second=0, microsecond=0)

        attempted_previous = False
        for organization in organizations:
            try:
                if self.settings.pipeline.skip_existing_briefings and self.store.has_briefing_since(
                    organization.organization_id,
                    day_start,
                ):
                    logger.info("Briefing already exists for %s today, skipping", organization.slug)
                    result.skipped += 1
                    result.results.append(
                        BriefingBatchItem(
                            slug=organization.slug,
                            success=False,
                            skipped=True,
                            reason=BRIEFING_ALREADY_EXISTS,
                        ),
                    )
                    continue

                if attempted_previous and self.pause_seconds > 0:
                    self._sleep(self.pause_seconds)
                outcome = self.briefing.run(organization, reference_time=reference)
                attempted_previous = outcome.status != RunStatus.NO_RECENT_ACTIVITY
            except Exception as error:  # noqa: BLE001
                logger.exception("Failed to generate briefing for %s", organization.slug)
                result.failed += 1
                result.results.append(
                    BriefingBatchItem(slug=organization.slug, success=False, error=str(error)),
                )
                continue

            result.results.append(_batch_item(outcome))
            if outcome.status == RunStatus.SUCCESS:
                result.successful += 1
            elif outcome.status == RunStatus.NO_RECENT_ACTIVITY:
                result.skipped += 1
            else:
                result.failed += 1

        logger.info(
            "Briefing batch completed: total=%d successful=%d failed=%d skipped=%d",
            result.total_systems,
            result.successful,
            result.failed,
            result.skipped,
        )
        return result

    # Extraction

    def run_extraction(self) -> ExtractionSummary:
        """One extraction batch over unprocessed documents of any organization."""

        return self.extraction.run(organization_id=None)

    def run_extraction_for_organization(self, slug: str) -> ExtractionSummary:
        """Extraction batch for one organization, audited as a pipeline run."""

        organization = self.store.fetch_organization_by_slug(slug)
        if organization is None:
            raise OrganizationNotFound(slug)
        try:
            summary = self.extraction.run(organization_id=organization.organization_id)
        except Exception as exc:
            self._record_pipeline_run(
                PipelineRunWrite(
                    stage=PipelineStage.EXTRACTION,
                    status=PipelineRunStatus.ERROR,
                    organization_id=organization.organization_id,
                    error_message=truncate_error(str(exc)),
                ),
            )
            raise
        self._record_pipeline_run(
            PipelineRunWrite(
                stage=PipelineStage.EXTRACTION,
                status=PipelineRunStatus.SUCCESS,
                organization_id=organization.organization_id,
                attempted_count=summary.processed,
                succeeded_count=summary.succeeded,
            ),
        )
        return summary

    def run_extraction_for_all(self) -> ExtractionBatchResult:
        organizations = self.store.list_organizations()
        result = ExtractionBatchResult(total_systems=len(organizations))
        for organization in organizations:
            try:
                summary = self.run_extraction_for_organization(organization.slug)
            except Exception:  # noqa: BLE001
                logger.exception("Extraction failed for %s", organization.slug)
                result.failed += 1
                continue
            result.successful += 1
            result.processed += summary.processed
        return result

    # Classification

    def run_classification(self) -> ClassificationSummary:
        """Classification batch, audited as a pipeline run."""

        try:
            summary = self.classification.run()
        except Exception as exc:
            self._record_pipeline_run(
                PipelineRunWrite(
                    stage=PipelineStage.CLASSIFICATION,
                    status=PipelineRunStatus.ERROR,
                    error_message=truncate_error(str(exc)),
                ),
            )
            raise
        self._record_pipeline_run(
            PipelineRunWrite(
                stage=PipelineStage.CLASSIFICATION,
                status=PipelineRunStatus.SUCCESS,
                attempted_count=summary.total,
                succeeded_count=summary.classified,
            ),
        )
        return summary

    def _record_pipeline_run(self, run: PipelineRunWrite) -> None:
        try:
            self.store.insert_pipeline_run(run)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to record %s pipeline run", run.stage.value)


def _batch_item(outcome: BriefingOutcome) -> BriefingBatchItem:
    if outcome.status == RunStatus.SUCCESS:
        return BriefingBatchItem(slug=outcome.slug, success=True, briefing_id=outcome.briefing_id)
    if outcome.status == RunStatus.NO_RECENT_ACTIVITY:
        return BriefingBatchItem(
            slug=outcome.slug,
            success=False,
            skipped=True,
            reason=RunStatus.NO_RECENT_ACTIVITY.value,
        )
    return BriefingBatchItem(slug=outcome.slug, success=False, error=outcome.error_message)
