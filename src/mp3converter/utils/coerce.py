"""Generic coercion utilities shared across the pipeline."""
from __future__ import annotations

from typing import Any, Optional


def to_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def coerce_int(value: Any, fallback: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback


def coerce_float(value: Any, fallback: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return fallback


__all__ = ["coerce_float", "coerce_int", "to_optional_str"]
