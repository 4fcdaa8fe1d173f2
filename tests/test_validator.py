from __future__ import annotations

import allure
import pytest

from health_recon.inference.models import FailureKind, OutputValidationError
from health_recon.pipeline.validator import (
    parse_briefing,
    parse_classification,
    parse_extraction,
)
from health_recon.store.models import EntityType, SignalCategory, SignalSeverity

pytestmark = [
    allure.epic("Pipeline Stages"),
    allure.feature("Model Output Validation"),
]


@pytest.mark.parametrize(
    ("raw_output", "kind"),
    [
        (None, FailureKind.MODEL_RESPONSE_MISSING),
        ("   ", FailureKind.MODEL_RESPONSE_MISSING),
        ("not json at all", FailureKind.MODEL_RESPONSE_INVALID),
        ('["a list"]', FailureKind.MODEL_RESPONSE_UNEXPECTED),
    ],
)
def test_unusable_output_maps_to_failure_kind(raw_output: str | None, kind: FailureKind) -> None:
    with pytest.raises(OutputValidationError) as excinfo:
        parse_briefing(raw_output)

    assert excinfo.value.kind == kind
    assert str(excinfo.value).startswith(kind.value)


def test_extraction_normalizes_enums_and_defaults_missing_lists() -> None:
    records = parse_extraction(
        '{"entities": [{"type": "Person", "name": " Dana Ruiz ", "role": "CIO"}]}',
    )

    assert records.signals == []
    (entity,) = records.entities
    assert entity.entity_type == EntityType.PERSON
    assert entity.name == "Dana Ruiz"
    assert entity.role == "CIO"


def test_extraction_accepts_signals_with_details() -> None:
    records = parse_extraction(
        '{"entities": null, "signals": [{"category": "epic_migration", "severity": "HIGH", '
        '"summary": "Go-live in March", "details": {"vendor": "Epic"}}]}',
    )

    (signal,) = records.signals
    assert signal.category == SignalCategory.EPIC_MIGRATION
    assert signal.severity == SignalSeverity.HIGH
    assert signal.details == {"vendor": "Epic"}


@pytest.mark.parametrize(
    "raw_output",
    [
        '{"entities": {"type": "person"}}',
        '{"entities": [{"type": "robot", "name": "R2"}]}',
        '{"entities": [{"type": "person", "name": ""}]}',
        '{"signals": [{"category": "finance", "severity": "urgent", "summary": "x"}]}',
        '{"signals": [{"category": "finance", "severity": "low", "summary": "x", "details": []}]}',
    ],
)
def test_extraction_rejects_malformed_records(raw_output: str) -> None:
    with pytest.raises(OutputValidationError) as excinfo:
        parse_extraction(raw_output)

    assert excinfo.value.kind == FailureKind.MODEL_RESPONSE_UNEXPECTED


def test_briefing_requires_bullets_and_narrative() -> None:
    payload = parse_briefing('{"bullets": ["a", "b"], "narrative": "n"}')
    assert payload.bullets == ["a", "b"]
    assert payload.narrative == "n"

    with pytest.raises(OutputValidationError) as excinfo:
        parse_briefing('{"bullets": "a", "narrative": "n"}')
    assert str(excinfo.value) == "model_response_unexpected"

    with pytest.raises(OutputValidationError, match="only strings"):
        parse_briefing('{"bullets": [1], "narrative": "n"}')


@pytest.mark.parametrize(
    ("raw_output", "expected"),
    [
        ('{"slug": "acme"}', "acme"),
        ('{"slug": "  acme "}', "acme"),
        ('{"slug": null}', None),
        ('{"slug": ""}', None),
        ("{}", None),
    ],
)
def test_classification_returns_slug_or_none(raw_output: str, expected: str | None) -> None:
    assert parse_classification(raw_output) == expected
