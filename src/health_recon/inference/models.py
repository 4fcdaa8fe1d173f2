"""Failure kinds shared by the inference gateway and the stages that call it."""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    """Stable failure kinds recorded in run records and logs."""

    MODEL_RESPONSE_MISSING = "model_response_missing"
    MODEL_RESPONSE_INVALID = "model_response_invalid"
    MODEL_RESPONSE_UNEXPECTED = "model_response_unexpected"
    INFERENCE_FAILED = "inference_failed"
    INFERENCE_RATE_LIMITED = "inference_rate_limited"
    STORAGE_FAILED = "storage_failed"
    INTERNAL_ERROR = "internal_error"


class InferenceError(RuntimeError):
    """The gateway could not obtain a completion from the provider."""

    def __init__(
        self,
        message: str,
        *,
        kind: FailureKind = FailureKind.INFERENCE_FAILED,
        reason_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.reason_code = reason_code


class OutputValidationError(ValueError):
    """Model output was missing, not JSON, or not the expected shape."""

    def __init__(self, kind: FailureKind, detail: str | None = None) -> None:
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)
        self.kind = kind
        self.detail = detail
