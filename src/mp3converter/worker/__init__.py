"""Conversion worker: consume, convert, publish, settle."""
from __future__ import annotations

from .consumer import ConversionWorker
from .policy import Disposition, RetryPolicy, is_permanent

__all__ = ["ConversionWorker", "Disposition", "RetryPolicy", "is_permanent"]
