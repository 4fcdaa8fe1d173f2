"""Inference gateways backed by the OpenAI API."""

from __future__ import annotations

import logging

import openai
from openai import OpenAI

from health_recon.config import Settings
from health_recon.inference.base import JSON_OBJECT_FORMAT, InferenceGateway
from health_recon.inference.failure_classifier import classify_provider_failure
from health_recon.inference.models import FailureKind, InferenceError
from health_recon.ratelimit.limiter import RateLimiter

logger = logging.getLogger(__name__)

INFERENCE_RATE_LIMIT_KEY = "inference"
INFERENCE_WINDOW_MS = 60_000


class OpenAIInferenceGateway:
    """Single-prompt Chat Completions call returning the raw message text."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        api_key: str | None,
        model: str,
        base_url: str | None = None,
        timeout_seconds: float = 60.0,
        max_retries: int = 2,
        client: OpenAI | None = None,
    ) -> None:
        self.model = model
        self._client = client or OpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
            max_retries=max_retries,
        )

    def infer(self, prompt: str, expected_format: str = JSON_OBJECT_FORMAT) -> str | None:
        try:
            completion = self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                response_format={"type": expected_format},  # type: ignore[typeddict-item]
            )
        except openai.APITimeoutError as error:
            raise self._failure(error, timed_out=True) from error
        except openai.OpenAIError as error:
            raise self._failure(error, timed_out=False) from error

        if not completion.choices:
            return None
        content = completion.choices[0].message.content
        return content or None

    def _failure(self, error: openai.OpenAIError, *, timed_out: bool) -> InferenceError:
        classification = classify_provider_failure(
            message=str(error),
            status_code=getattr(error, "status_code", None),
            timed_out=timed_out,
        )
        logger.warning(
            "Inference call failed (%s): %s",
            classification.reason_code,
            error,
            extra=classification.to_log_details(model=self.model),
        )
        return InferenceError(
            f"{classification.reason_code}: {error}",
            kind=FailureKind.INFERENCE_FAILED,
            reason_code=classification.reason_code,
        )


class RateLimitedInferenceGateway:
    """Consult the rate limiter under one caller identity before each call."""

    def __init__(
        self,
        inner: InferenceGateway,
        limiter: RateLimiter,
        *,
        calls_per_minute: int,
        key: str = INFERENCE_RATE_LIMIT_KEY,
    ) -> None:
        self.inner = inner
        self.limiter = limiter
        self.calls_per_minute = calls_per_minute
        self.key = key

    def infer(self, prompt: str, expected_format: str = JSON_OBJECT_FORMAT) -> str | None:
        decision = self.limiter.check(self.key, self.calls_per_minute, INFERENCE_WINDOW_MS)
        if not decision.allowed:
            raise InferenceError(
                f"Inference quota exhausted until {decision.reset_at.isoformat()}",
                kind=FailureKind.INFERENCE_RATE_LIMITED,
                reason_code="inference_rate_limited",
            )
        return self.inner.infer(prompt, expected_format)


def build_inference_gateway(
    settings: Settings,
    *,
    limiter: RateLimiter | None = None,
) -> InferenceGateway:
    """Build the configured gateway; call `settings.validate_for_inference()` first."""

    gateway: InferenceGateway = OpenAIInferenceGateway(
        api_key=settings.inference.api_key,
        model=settings.inference.model,
        base_url=settings.inference.base_url,
        timeout_seconds=settings.inference.timeout_seconds,
        max_retries=settings.inference.max_retries,
    )
    if settings.inference.calls_per_minute > 0 and limiter is not None:
        gateway = RateLimitedInferenceGateway(
            gateway,
            limiter,
            calls_per_minute=settings.inference.calls_per_minute,
        )
    return gateway
