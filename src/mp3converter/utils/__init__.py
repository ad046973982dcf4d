"""Utility helpers shared across the pipeline."""
from __future__ import annotations

from .coerce import coerce_float, coerce_int, to_optional_str

__all__ = [
    "coerce_float",
    "coerce_int",
    "to_optional_str",
]
