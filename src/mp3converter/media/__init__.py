"""External audio conversion."""
from __future__ import annotations

from .converter import AudioConverter, has_audio_stream

__all__ = ["AudioConverter", "has_audio_stream"]
