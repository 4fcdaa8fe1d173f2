"""Strict validation of model output for each stage."""

from __future__ import annotations

import json
from typing import Any, TypeVar

from health_recon.inference.models import FailureKind, OutputValidationError
from health_recon.pipeline.models import BriefingPayload, ExtractedRecords
from health_recon.store.models import (
    EntityType,
    EntityWrite,
    SignalCategory,
    SignalSeverity,
    SignalWrite,
)

EnumT = TypeVar("EnumT", EntityType, SignalCategory, SignalSeverity)


def load_json_object(raw_output: str | None) -> dict[str, Any]:
    """Decode model output into a JSON object or raise the matching failure kind."""

    if raw_output is None or not raw_output.strip():
        raise OutputValidationError(FailureKind.MODEL_RESPONSE_MISSING)
    try:
        decoded = json.loads(raw_output)
    except json.JSONDecodeError as error:
        raise OutputValidationError(FailureKind.MODEL_RESPONSE_INVALID, str(error)) from error
    if not isinstance(decoded, dict):
        raise OutputValidationError(
            FailureKind.MODEL_RESPONSE_UNEXPECTED,
            "Output must be a JSON object.",
        )
    return decoded


def parse_extraction(raw_output: str | None) -> ExtractedRecords:
    """Parse `{"entities": [...], "signals": [...]}`; absent keys mean no records."""

    payload = load_json_object(raw_output)
    raw_entities = _optional_list(payload, "entities")
    raw_signals = _optional_list(payload, "signals")
    return ExtractedRecords(
        entities=[_parse_entity(item, index) for index, item in enumerate(raw_entities)],
        signals=[_parse_signal(item, index) for index, item in enumerate(raw_signals)],
    )


def parse_briefing(raw_output: str | None) -> BriefingPayload:
    payload = load_json_object(raw_output)
    bullets = payload.get("bullets")
    narrative = payload.get("narrative")
    if not isinstance(bullets, list) or not isinstance(narrative, str):
        raise OutputValidationError(FailureKind.MODEL_RESPONSE_UNEXPECTED)
    if not all(isinstance(item, str) for item in bullets):
        raise OutputValidationError(
            FailureKind.MODEL_RESPONSE_UNEXPECTED,
            "bullets must contain only strings.",
        )
    return BriefingPayload(bullets=list(bullets), narrative=narrative)


def parse_classification(raw_output: str | None) -> str | None:
    """Return the guessed slug, or None when the model made no usable guess."""

    payload = load_json_object(raw_output)
    slug = payload.get("slug")
    if not isinstance(slug, str):
        return None
    slug = slug.strip()
    return slug or None


def _optional_list(payload: dict[str, Any], key: str) -> list[Any]:
    value = payload.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise OutputValidationError(
            FailureKind.MODEL_RESPONSE_UNEXPECTED,
            f"{key} must be an array.",
        )
    return value


def _parse_entity(item: Any, index: int) -> EntityWrite:
    if not isinstance(item, dict):
        raise _unexpected(f"entities[{index}] must be an object.")
    entity_type = _parse_enum(EntityType, item.get("type"), f"entities[{index}].type")
    name = item.get("name")
    if not isinstance(name, str) or not name.strip():
        raise _unexpected(f"entities[{index}].name must be a non-empty string.")
    role = item.get("role")
    if role is not None and not isinstance(role, str):
        raise _unexpected(f"entities[{index}].role must be a string.")
    attributes = item.get("attributes")
    if attributes is not None and not isinstance(attributes, dict):
        raise _unexpected(f"entities[{index}].attributes must be an object.")
    return EntityWrite(
        entity_type=entity_type,
        name=name.strip(),
        role=role,
        attributes=attributes,
    )


def _parse_signal(item: Any, index: int) -> SignalWrite:
    if not isinstance(item, dict):
        raise _unexpected(f"signals[{index}] must be an object.")
    category = _parse_enum(SignalCategory, item.get("category"), f"signals[{index}].category")
    severity = _parse_enum(SignalSeverity, item.get("severity"), f"signals[{index}].severity")
    summary = item.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        raise _unexpected(f"signals[{index}].summary must be a non-empty string.")
    details = item.get("details")
    if details is not None and not isinstance(details, dict):
        raise _unexpected(f"signals[{index}].details must be an object.")
    return SignalWrite(
        category=category,
        severity=severity,
        summary=summary.strip(),
        details=details,
    )


def _parse_enum(
    enum_type: type[EnumT],
    value: Any,
    path: str,
) -> EnumT:
    if not isinstance(value, str):
        raise _unexpected(f"{path} must be a string.")
    try:
        return enum_type(value.strip().lower())
    except ValueError as error:
        raise _unexpected(f"{path} has unsupported value {value!r}.") from error


def _unexpected(detail: str) -> OutputValidationError:
    return OutputValidationError(FailureKind.MODEL_RESPONSE_UNEXPECTED, detail)
