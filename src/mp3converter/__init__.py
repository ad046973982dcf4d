"""Video-to-MP3 conversion pipeline: gateway, worker and shared plumbing."""
from __future__ import annotations

from .envelope import ConversionMessage, is_valid_identifier, validate_identifier
from .exceptions import FailureReason, PipelineError

__version__ = "0.1.0"

__all__ = [
    "ConversionMessage",
    "FailureReason",
    "PipelineError",
    "__version__",
    "is_valid_identifier",
    "validate_identifier",
]
