"""Deterministic classification of inference provider failures."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

PROVIDER_FAILURE_CLASSIFIER_VERSION = 1

HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR = 500


class ProviderFailureReason(str, Enum):
    """Normalized reasons an inference call can fail."""

    TIMEOUT = "timeout"
    BILLING_OR_QUOTA = "billing_or_quota"
    ACCESS_OR_AUTH = "access_or_auth"
    MODEL_NOT_AVAILABLE = "model_not_available"
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    NON_RETRYABLE = "non_retryable"


_BILLING_OR_QUOTA_PATTERNS: tuple[str, ...] = (
    "insufficient_quota",
    "quota",
    "billing",
    "payment",
    "credits",
)
_ACCESS_OR_AUTH_PATTERNS: tuple[str, ...] = (
    "invalid api key",
    "incorrect api key",
    "invalid_api_key",
    "unauthorized",
    "forbidden",
    "permission denied",
    "authentication",
)
_MODEL_NOT_AVAILABLE_PATTERNS: tuple[str, ...] = (
    "model_not_found",
    "model not found",
    "does not exist",
    "unsupported model",
    "invalid model",
)
_RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "rate limit",
    "rate_limit",
    "too many requests",
    "429",
)
_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "timed out",
    "timeout",
    "temporarily unavailable",
    "overloaded",
    "connection error",
    "connection reset",
    "bad gateway",
    "service unavailable",
)


@dataclass(slots=True)
class ProviderFailureClassification:
    """Normalized provider failure classification result."""

    reason: ProviderFailureReason
    reason_code: str
    matched_rule: str
    matched_pattern: str | None

    @property
    def retryable(self) -> bool:
        return self.reason in {
            ProviderFailureReason.TIMEOUT,
            ProviderFailureReason.RATE_LIMITED,
            ProviderFailureReason.TRANSIENT,
        }

    def to_log_details(self, *, model: str) -> dict[str, object]:
        """Serialize classifier diagnostics for structured logs."""

        return {
            "classifier_version": PROVIDER_FAILURE_CLASSIFIER_VERSION,
            "model": model,
            "reason_code": self.reason_code,
            "matched_rule": self.matched_rule,
            "matched_pattern": self.matched_pattern,
            "retryable": self.retryable,
        }


def classify_provider_failure(  # noqa: PLR0911
    *,
    message: str,
    status_code: int | None = None,
    timed_out: bool = False,
    provider: str = "openai",
) -> ProviderFailureClassification:
    """Classify a provider failure into a stable reason code."""

    if timed_out:
        return _classification(provider, ProviderFailureReason.TIMEOUT, "timeout", None)

    haystack = message.lower()

    pattern = _first_match(haystack, _BILLING_OR_QUOTA_PATTERNS)
    if pattern is not None:
        return _classification(
            provider,
            ProviderFailureReason.BILLING_OR_QUOTA,
            "billing_or_quota",
            pattern,
        )

    pattern = _first_match(haystack, _ACCESS_OR_AUTH_PATTERNS)
    if pattern is not None or status_code in {HTTP_UNAUTHORIZED, HTTP_FORBIDDEN}:
        return _classification(
            provider,
            ProviderFailureReason.ACCESS_OR_AUTH,
            "access_or_auth" if pattern is not None else "auth_status_code",
            pattern,
        )

    pattern = _first_match(haystack, _MODEL_NOT_AVAILABLE_PATTERNS)
    if pattern is not None or status_code == HTTP_NOT_FOUND:
        return _classification(
            provider,
            ProviderFailureReason.MODEL_NOT_AVAILABLE,
            "model_not_available" if pattern is not None else "not_found_status_code",
            pattern,
        )

    pattern = _first_match(haystack, _RATE_LIMIT_PATTERNS)
    if pattern is not None or status_code == HTTP_TOO_MANY_REQUESTS:
        return _classification(
            provider,
            ProviderFailureReason.RATE_LIMITED,
            "rate_limit" if pattern is not None else "rate_limit_status_code",
            pattern,
        )

    pattern = _first_match(haystack, _TRANSIENT_PATTERNS)
    if pattern is not None or (status_code is not None and status_code >= HTTP_SERVER_ERROR):
        return _classification(
            provider,
            ProviderFailureReason.TRANSIENT,
            "generic_transient" if pattern is not None else "server_status_code",
            pattern,
        )

    return _classification(
        provider,
        ProviderFailureReason.NON_RETRYABLE,
        "fallback_non_retryable",
        None,
    )


def _classification(
    provider: str,
    reason: ProviderFailureReason,
    matched_rule: str,
    matched_pattern: str | None,
) -> ProviderFailureClassification:
    return ProviderFailureClassification(
        reason=reason,
        reason_code=f"{provider}_{reason.value}",
        matched_rule=matched_rule,
        matched_pattern=matched_pattern,
    )


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
