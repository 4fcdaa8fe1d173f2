"""On-demand pipeline triggers, throttled per client address."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from health_recon.api.deps import AppContext, get_context, get_orchestrator, rate_limit
from health_recon.api.errors import ApiError, api_success
from health_recon.inference.models import FailureKind
from health_recon.pipeline.models import BriefingOutcome
from health_recon.pipeline.orchestrator import PipelineOrchestrator
from health_recon.store.models import RunStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

_GENERATION_FAILED_MESSAGES: dict[FailureKind, str] = {
    FailureKind.MODEL_RESPONSE_MISSING: "Model response missing",
    FailureKind.MODEL_RESPONSE_INVALID: "Model response invalid",
    FailureKind.MODEL_RESPONSE_UNEXPECTED: "Model response unexpected structure",
    FailureKind.INFERENCE_FAILED: "Model request failed",
    FailureKind.INFERENCE_RATE_LIMITED: "Model request quota exhausted",
}


class BriefingRequest(BaseModel):
    slug: str | None = Field(default=None, min_length=1, max_length=100)


@router.post("/daily-briefing", dependencies=[Depends(rate_limit("daily-briefing"))])
def daily_briefing(
    payload: BriefingRequest | None = None,
    context: AppContext = Depends(get_context),
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Generate one organization's briefing from the last day of activity."""

    slug = (payload.slug if payload is not None else None) or (
        context.settings.pipeline.default_briefing_slug
    )
    if slug is None:
        raise ApiError(400, "invalid_request", "slug is required")
    outcome = orchestrator.run_briefing(slug)
    return api_success(_briefing_data(outcome))


@router.post("/process", dependencies=[Depends(rate_limit("process"))])
def process(
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Run one extraction batch over unprocessed documents."""

    summary = orchestrator.run_extraction()
    return api_success(summary.to_payload())


@router.post("/systems/{slug}/run-pipeline", dependencies=[Depends(rate_limit("pipeline"))])
def run_pipeline(
    slug: str,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Run one extraction batch for an organization and record the pipeline run."""

    summary = orchestrator.run_extraction_for_organization(slug)
    return api_success({"slug": slug, **summary.to_payload()})


def _briefing_data(outcome: BriefingOutcome) -> dict[str, Any]:
    if outcome.status == RunStatus.SUCCESS:
        return {"created": True, "briefingId": outcome.briefing_id}
    if outcome.status == RunStatus.NO_RECENT_ACTIVITY:
        return {"created": False, "reason": RunStatus.NO_RECENT_ACTIVITY.value}
    if outcome.failure_kind == FailureKind.STORAGE_FAILED:
        raise ApiError(500, "storage_failed", "Failed to store daily briefing")
    message = _GENERATION_FAILED_MESSAGES.get(outcome.failure_kind)  # type: ignore[arg-type]
    if message is None:
        raise ApiError(500, "generation_failed", "An unexpected error occurred")
    raise ApiError(502, "generation_failed", message)
