from __future__ import annotations

import allure

from health_recon.inference.failure_classifier import (
    PROVIDER_FAILURE_CLASSIFIER_VERSION,
    ProviderFailureReason,
    classify_provider_failure,
)

pytestmark = [
    allure.epic("Inference"),
    allure.feature("Provider Failures"),
]


def test_classifier_version_is_stable() -> None:
    assert PROVIDER_FAILURE_CLASSIFIER_VERSION == 1


def test_timeout_wins_over_message_patterns() -> None:
    classified = classify_provider_failure(message="insufficient_quota", timed_out=True)

    assert classified.reason == ProviderFailureReason.TIMEOUT
    assert classified.reason_code == "openai_timeout"
    assert classified.retryable


def test_billing_is_preferred_over_rate_limit_status() -> None:
    classified = classify_provider_failure(
        message="You exceeded your current quota, please check your plan and billing details.",
        status_code=429,
    )

    assert classified.reason == ProviderFailureReason.BILLING_OR_QUOTA
    assert classified.matched_pattern == "quota"
    assert not classified.retryable


def test_auth_status_code_without_pattern() -> None:
    classified = classify_provider_failure(message="request rejected", status_code=401)

    assert classified.reason == ProviderFailureReason.ACCESS_OR_AUTH
    assert classified.matched_rule == "auth_status_code"
    assert classified.matched_pattern is None


def test_model_not_available() -> None:
    classified = classify_provider_failure(message="The model `gpt-x` does not exist")

    assert classified.reason == ProviderFailureReason.MODEL_NOT_AVAILABLE
    assert classified.reason_code == "openai_model_not_available"


def test_rate_limit_is_retryable() -> None:
    classified = classify_provider_failure(message="Rate limit reached for requests")

    assert classified.reason == ProviderFailureReason.RATE_LIMITED
    assert classified.retryable


def test_server_errors_are_transient() -> None:
    classified = classify_provider_failure(message="upstream exploded", status_code=503)

    assert classified.reason == ProviderFailureReason.TRANSIENT
    assert classified.matched_rule == "server_status_code"


def test_falls_back_to_non_retryable_with_log_details() -> None:
    classified = classify_provider_failure(message="bad request: messages must be non-empty")

    assert classified.reason == ProviderFailureReason.NON_RETRYABLE
    assert classified.to_log_details(model="gpt-4.1-mini") == {
        "classifier_version": 1,
        "model": "gpt-4.1-mini",
        "reason_code": "openai_non_retryable",
        "matched_rule": "fallback_non_retryable",
        "matched_pattern": None,
        "retryable": False,
    }
