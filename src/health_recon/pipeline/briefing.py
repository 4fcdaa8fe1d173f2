"""Briefing synthesis stage: trailing-window activity to a narrative summary."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from health_recon.inference.base import JSON_OBJECT_FORMAT, InferenceGateway
from health_recon.inference.models import FailureKind, InferenceError, OutputValidationError
from health_recon.pipeline.models import BriefingOutcome
from health_recon.pipeline.outcome import AttemptResult, StageFailure, attempt_and_record
from health_recon.pipeline.prompts import build_briefing_prompt
from health_recon.pipeline.validator import parse_briefing
from health_recon.storage.common import utc_now
from health_recon.store.base import DocumentStoreAdapter
from health_recon.store.models import (
    OrganizationNotFound,
    OrganizationView,
    RunStatus,
    StoreError,
)

logger = logging.getLogger(__name__)


class BriefingStage:
    """Synthesize one organization's briefing and record the attempt."""

    def __init__(
        self,
        *,
        store: DocumentStoreAdapter,
        gateway: InferenceGateway,
        window_hours: int = 24,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.window_hours = window_hours
        self._clock = clock

    def run_for_slug(self, slug: str, *, reference_time: datetime | None = None) -> BriefingOutcome:
        organization = self.store.fetch_organization_by_slug(slug)
        if organization is None:
            raise OrganizationNotFound(slug)
        return self.run(organization, reference_time=reference_time)

    def run(
        self,
        organization: OrganizationView,
        *,
        reference_time: datetime | None = None,
    ) -> BriefingOutcome:
        """Never raises; failures are reported on the outcome and in its run record."""

        reference = reference_time or self._clock()
        recorded = attempt_and_record(
            self.store,
            organization_id=organization.organization_id,
            attempt=lambda: self._synthesize(organization, reference),
        )
        result = recorded.result
        if result.status == RunStatus.SUCCESS:
            logger.info(
                "Briefing %s generated for %s",
                result.briefing_id,
                organization.slug,
            )
        elif result.status == RunStatus.NO_RECENT_ACTIVITY:
            logger.info("No recent activity for %s, briefing skipped", organization.slug)
        return BriefingOutcome(
            organization_id=organization.organization_id,
            slug=organization.slug,
            status=result.status,
            briefing_id=result.briefing_id,
            failure_kind=result.failure_kind,
            error_message=result.error_message,
            run_id=recorded.run_id,
        )

    def _synthesize(self, organization: OrganizationView, reference: datetime) -> AttemptResult:
        window_start = reference - timedelta(hours=self.window_hours)
        try:
            inputs = self.store.fetch_windowed_inputs(
                organization.organization_id,
                window_start,
                reference,
            )
        except StoreError as error:
            raise StageFailure(
                FailureKind.STORAGE_FAILED,
                f"{FailureKind.STORAGE_FAILED.value}: {error}",
            ) from error
        if inputs.is_empty:
            return AttemptResult(status=RunStatus.NO_RECENT_ACTIVITY)

        prompt = build_briefing_prompt(organization, inputs, window_hours=self.window_hours)
        try:
            raw_output = self.gateway.infer(prompt, JSON_OBJECT_FORMAT)
        except InferenceError as error:
            raise StageFailure(error.kind, f"{error.kind.value}: {error}") from error
        try:
            payload = parse_briefing(raw_output)
        except OutputValidationError as error:
            raise StageFailure(error.kind, str(error)) from error

        try:
            briefing = self.store.insert_briefing(
                organization_id=organization.organization_id,
                bullets=payload.bullets,
                narrative=payload.narrative,
            )
        except StoreError as error:
            raise StageFailure(
                FailureKind.STORAGE_FAILED,
                f"{FailureKind.STORAGE_FAILED.value}: {error}",
            ) from error
        return AttemptResult(status=RunStatus.SUCCESS, briefing_id=briefing.briefing_id)
