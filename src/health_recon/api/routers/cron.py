"""Scheduler triggers, authenticated by the shared cron secret."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends

from health_recon.api.deps import get_orchestrator, get_request_id, require_cron_secret
from health_recon.api.errors import ApiError, api_success
from health_recon.pipeline.orchestrator import PipelineOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cron", dependencies=[Depends(require_cron_secret)])


@router.get("/daily-briefings")
def daily_briefings(
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
    request_id: str = Depends(get_request_id),
) -> dict[str, Any]:
    """Generate briefings for every organization."""

    context = {"route": "/api/cron/daily-briefings", "request_id": request_id}
    try:
        result = orchestrator.run_briefings()
    except Exception as error:
        logger.exception("Daily briefings cron failed", extra=context)
        raise ApiError(500, "cron_failed", "Daily briefings cron job failed") from error
    logger.info(
        "Daily briefings cron completed: total=%d successful=%d failed=%d skipped=%d",
        result.total_systems,
        result.successful,
        result.failed,
        result.skipped,
        extra=context,
    )
    return api_success(result.to_payload())


@router.get("/classify-news")
def classify_news(
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
    request_id: str = Depends(get_request_id),
) -> dict[str, Any]:
    """Link unassociated news documents to organizations."""

    context = {"route": "/api/cron/classify-news", "request_id": request_id}
    try:
        summary = orchestrator.run_classification()
    except Exception as error:
        logger.exception("Classify news cron failed", extra=context)
        raise ApiError(500, "cron_failed", "Classify news cron job failed") from error
    logger.info(
        "Classify news cron completed: classified=%d total=%d",
        summary.classified,
        summary.total,
        extra=context,
    )
    return api_success(summary.to_payload())


@router.get("/process")
def process_all(
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
    request_id: str = Depends(get_request_id),
) -> dict[str, Any]:
    """Run one extraction batch for every organization."""

    context = {"route": "/api/cron/process", "request_id": request_id}
    try:
        result = orchestrator.run_extraction_for_all()
    except Exception as error:
        logger.exception("Process cron failed", extra=context)
        raise ApiError(500, "cron_failed", "Process cron job failed") from error
    logger.info(
        "Process cron completed: organizations=%d successful=%d failed=%d processed=%d",
        result.total_systems,
        result.successful,
        result.failed,
        result.processed,
        extra=context,
    )
    return api_success(result.to_payload())
