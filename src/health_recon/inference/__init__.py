"""Language-model inference gateway."""

from health_recon.inference.base import JSON_OBJECT_FORMAT, InferenceGateway
from health_recon.inference.models import FailureKind, InferenceError, OutputValidationError

__all__ = [
    "JSON_OBJECT_FORMAT",
    "FailureKind",
    "InferenceError",
    "InferenceGateway",
    "OutputValidationError",
]
