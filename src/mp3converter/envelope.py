"""Queue message envelope and object identifier helpers."""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional

from .exceptions import InvalidIdentifier, MalformedMessage

_IDENTIFIER_PATTERN = re.compile(r"[0-9a-f]{24}")


def is_valid_identifier(value: object) -> bool:
    """Return True when ``value`` looks like a stored object id."""

    return isinstance(value, str) and bool(_IDENTIFIER_PATTERN.fullmatch(value))


def validate_identifier(value: object) -> str:
    """Return ``value`` unchanged or raise :class:`InvalidIdentifier`."""

    if not is_valid_identifier(value):
        raise InvalidIdentifier(f"Invalid file ID format: {value}")
    return str(value)


@dataclass(frozen=True)
class ConversionMessage:
    """One conversion job, or its completion once ``result_ref`` is set."""

    source_ref: str
    requester: str
    result_ref: Optional[str] = None

    def __post_init__(self) -> None:
        for name in ("source_ref", "requester"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise MalformedMessage(f"Missing required field: {_WIRE_NAMES[name]}")
        if self.result_ref is not None and not isinstance(self.result_ref, str):
            raise MalformedMessage("Field mp3_fid must be a string or null")

    @property
    def is_completion(self) -> bool:
        return self.result_ref is not None

    def with_result(self, result_ref: str) -> "ConversionMessage":
        """Derive the completion envelope for ``result_ref``."""

        return replace(self, result_ref=result_ref)

    # ------------------------------------------------------------------
    # Wire format
    # ------------------------------------------------------------------
    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ConversionMessage":
        if not isinstance(data, Mapping):
            raise MalformedMessage("Message body must be a JSON object")
        if data.get("video_fid") is None:
            raise MalformedMessage("Missing required field: video_fid")
        if data.get("username") is None:
            raise MalformedMessage("Missing required field: username")
        return cls(
            source_ref=data["video_fid"],
            requester=data["username"],
            result_ref=data.get("mp3_fid"),
        )

    @classmethod
    def from_json(cls, payload: str | bytes) -> "ConversionMessage":
        try:
            data = json.loads(payload)
        except (TypeError, ValueError) as exc:
            raise MalformedMessage(f"Invalid JSON: {exc}") from exc
        return cls.from_mapping(data)

    def to_mapping(self) -> dict[str, Optional[str]]:
        return {
            "video_fid": self.source_ref,
            "mp3_fid": self.result_ref,
            "username": self.requester,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_mapping())


_WIRE_NAMES = {"source_ref": "video_fid", "requester": "username"}


__all__ = ["ConversionMessage", "is_valid_identifier", "validate_identifier"]
