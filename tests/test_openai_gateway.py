from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import allure
import httpx
import openai
import pytest

from conftest import FakeClock, FakeGateway
from health_recon.config import InferenceSettings, Settings
from health_recon.inference.models import FailureKind, InferenceError
from health_recon.inference.openai_gateway import (
    OpenAIInferenceGateway,
    RateLimitedInferenceGateway,
    build_inference_gateway,
)
from health_recon.ratelimit.limiter import RateLimiter
from health_recon.ratelimit.stores import InMemoryCounterStore

pytestmark = [
    allure.epic("Inference"),
    allure.feature("OpenAI Gateway"),
]

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


class _Completions:
    def __init__(self, result: Any) -> None:
        self.result = result
        self.calls: list[dict[str, Any]] = []

    def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def _client(result: Any) -> tuple[Any, _Completions]:
    completions = _Completions(result)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def _completion(content: str | None) -> Any:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def test_infer_sends_single_user_message_with_json_format() -> None:
    client, completions = _client(_completion('{"slug": "acme"}'))
    gateway = OpenAIInferenceGateway(api_key="k", model="gpt-test", client=client)

    assert gateway.infer("Which system?") == '{"slug": "acme"}'
    (call,) = completions.calls
    assert call["model"] == "gpt-test"
    assert call["messages"] == [{"role": "user", "content": "Which system?"}]
    assert call["response_format"] == {"type": "json_object"}


@pytest.mark.parametrize("result", [_completion(None), _completion(""), SimpleNamespace(choices=[])])
def test_empty_completions_return_none(result: Any) -> None:
    client, _ = _client(result)

    assert OpenAIInferenceGateway(api_key="k", model="m", client=client).infer("p") is None


def test_timeout_is_classified(caplog) -> None:
    client, _ = _client(openai.APITimeoutError(request=_REQUEST))
    gateway = OpenAIInferenceGateway(api_key="k", model="m", client=client)

    with caplog.at_level("WARNING"), pytest.raises(InferenceError) as excinfo:
        gateway.infer("p")

    (record,) = caplog.records
    assert record.reason_code == "openai_timeout"
    assert record.retryable is True

    assert excinfo.value.kind == FailureKind.INFERENCE_FAILED
    assert excinfo.value.reason_code == "openai_timeout"
    assert str(excinfo.value).startswith("openai_timeout: ")


def test_connection_errors_are_transient() -> None:
    client, _ = _client(openai.APIConnectionError(message="Connection error.", request=_REQUEST))
    gateway = OpenAIInferenceGateway(api_key="k", model="m", client=client)

    with pytest.raises(InferenceError) as excinfo:
        gateway.infer("p")

    assert excinfo.value.reason_code == "openai_transient"


def test_rate_limited_gateway_stops_at_quota() -> None:
    inner = FakeGateway(default="{}")
    limiter = RateLimiter(InMemoryCounterStore(), clock=FakeClock())
    gateway = RateLimitedInferenceGateway(inner, limiter, calls_per_minute=2)

    gateway.infer("one")
    gateway.infer("two")
    with pytest.raises(InferenceError) as excinfo:
        gateway.infer("three")

    assert excinfo.value.kind == FailureKind.INFERENCE_RATE_LIMITED
    assert inner.calls == 2


def test_build_wraps_gateway_only_when_quota_configured() -> None:
    limiter = RateLimiter(InMemoryCounterStore())
    plain = build_inference_gateway(
        Settings(inference=InferenceSettings(api_key="k")),
        limiter=limiter,
    )
    throttled = build_inference_gateway(
        Settings(inference=InferenceSettings(api_key="k", calls_per_minute=30)),
        limiter=limiter,
    )

    assert isinstance(plain, OpenAIInferenceGateway)
    assert isinstance(throttled, RateLimitedInferenceGateway)
    assert throttled.calls_per_minute == 30
