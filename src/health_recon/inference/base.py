"""Gateway interface for language-model inference."""

from __future__ import annotations

from typing import Protocol

JSON_OBJECT_FORMAT = "json_object"


class InferenceGateway(Protocol):
    """Protocol implemented by inference gateways."""

    def infer(self, prompt: str, expected_format: str = JSON_OBJECT_FORMAT) -> str | None:
        """Return raw completion text, or None when the provider sent no content.

        Raises `InferenceError` on transport or provider failure.
        """
