"""Attempt a stage and record exactly one run record for the attempt."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from health_recon.inference.models import FailureKind
from health_recon.store.base import DocumentStoreAdapter
from health_recon.store.models import RunRecordWrite, RunStatus

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE_CHARS = 500


class StageFailure(Exception):
    """Ends an attempt with a known failure kind and the message to record."""

    def __init__(self, kind: FailureKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


@dataclass(slots=True)
class AttemptResult:
    """What the attempted stage produced before it is recorded."""

    status: RunStatus
    briefing_id: str | None = None
    failure_kind: FailureKind | None = None
    error_message: str | None = None


@dataclass(slots=True)
class RecordedAttempt:
    """Attempt result plus the id of its run record, if the write succeeded."""

    result: AttemptResult
    run_id: str | None


def attempt_and_record(
    store: DocumentStoreAdapter,
    *,
    organization_id: str,
    attempt: Callable[[], AttemptResult],
) -> RecordedAttempt:
    """Run `attempt` and write one run record whatever the outcome.

    `StageFailure` becomes an `error` record with its message; any other
    exception is logged and recorded as `internal_error`. A failure while
    writing the run record is logged and never raised.
    """

    try:
        result = attempt()
    except StageFailure as failure:
        logger.warning(
            "Stage attempt failed for organization %s: %s",
            organization_id,
            failure.message,
            extra={"organization_id": organization_id, "failure_kind": failure.kind.value},
        )
        result = AttemptResult(
            status=RunStatus.ERROR,
            failure_kind=failure.kind,
            error_message=truncate_error(failure.message),
        )
    except Exception as error:  # noqa: BLE001
        logger.exception(
            "Unexpected error during stage attempt for organization %s",
            organization_id,
        )
        result = AttemptResult(
            status=RunStatus.ERROR,
            failure_kind=FailureKind.INTERNAL_ERROR,
            error_message=truncate_error(f"{FailureKind.INTERNAL_ERROR.value}: {error}"),
        )

    run_id: str | None = None
    try:
        run_id = store.insert_run_record(
            RunRecordWrite(
                organization_id=organization_id,
                status=result.status,
                briefing_id=result.briefing_id,
                error_message=result.error_message,
            ),
        )
    except Exception:  # noqa: BLE001
        logger.exception(
            "Failed to record %s run for organization %s",
            result.status.value,
            organization_id,
        )
    return RecordedAttempt(result=result, run_id=run_id)


def truncate_error(message: str) -> str:
    return message[:MAX_ERROR_MESSAGE_CHARS]
