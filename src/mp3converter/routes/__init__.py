"""Blueprint registry for the gateway."""
from __future__ import annotations

from .gateway import api_bp

__all__ = ["api_bp"]
