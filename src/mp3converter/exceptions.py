"""Custom exceptions raised across the conversion pipeline."""
from __future__ import annotations

from enum import Enum
from typing import Optional


class FailureReason(str, Enum):
    """Structured cause attached to pipeline failures."""

    MALFORMED_MESSAGE = "malformed_message"
    INVALID_IDENTIFIER = "invalid_identifier"
    NOT_FOUND = "not_found"
    NO_AUDIO_TRACK = "no_audio_track"
    CONVERSION_FAILED = "conversion_failed"
    STORE_UNAVAILABLE = "store_unavailable"
    BROKER_UNAVAILABLE = "broker_unavailable"
    UNKNOWN = "unknown"


class PipelineError(RuntimeError):
    """Base error for the conversion pipeline."""

    reason: FailureReason = FailureReason.UNKNOWN

    def __init__(self, message: str, *, reason: Optional[FailureReason] = None) -> None:
        super().__init__(message)
        if reason is not None:
            self.reason = reason


class ConfigurationError(PipelineError):
    """Raised when environment-derived settings fail validation."""


# ----------------------------------------------------------------------
# Malformed input (never retried)
# ----------------------------------------------------------------------
class MalformedInput(PipelineError):
    """Input that no amount of retrying can repair."""

    reason = FailureReason.MALFORMED_MESSAGE


class MalformedMessage(MalformedInput):
    """Raised when a queue body cannot be decoded into an envelope."""


class InvalidIdentifier(MalformedInput):
    """Raised when an object id is not a 24 character lowercase hex string."""

    reason = FailureReason.INVALID_IDENTIFIER


# ----------------------------------------------------------------------
# Object store
# ----------------------------------------------------------------------
class StoreError(PipelineError):
    """Raised when the object store cannot complete an operation."""

    reason = FailureReason.STORE_UNAVAILABLE


class NotFound(StoreError):
    """Raised when a well-formed identifier has no stored object."""

    reason = FailureReason.NOT_FOUND


# ----------------------------------------------------------------------
# Converter
# ----------------------------------------------------------------------
class TransientFailure(PipelineError):
    """Failure that may succeed on redelivery."""


class ConversionError(TransientFailure):
    """Raised when ffmpeg fails, exits non-zero or times out."""

    reason = FailureReason.CONVERSION_FAILED


class MissingAudioTrack(ConversionError):
    """Raised when ffprobe finds no audio stream in the source."""

    reason = FailureReason.NO_AUDIO_TRACK


# ----------------------------------------------------------------------
# Broker
# ----------------------------------------------------------------------
class BrokerError(PipelineError):
    """Raised when the message broker rejects an operation."""

    reason = FailureReason.BROKER_UNAVAILABLE


class BrokerConnectionError(BrokerError):
    """Raised after the final failed connection attempt."""


class DeliveryAlreadySettled(BrokerError):
    """Raised when a delivery receives a second ack/nack."""


__all__ = [
    "BrokerConnectionError",
    "BrokerError",
    "ConfigurationError",
    "ConversionError",
    "DeliveryAlreadySettled",
    "FailureReason",
    "InvalidIdentifier",
    "MalformedInput",
    "MalformedMessage",
    "MissingAudioTrack",
    "NotFound",
    "PipelineError",
    "StoreError",
    "TransientFailure",
]
