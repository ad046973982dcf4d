"""ffprobe/ffmpeg wrapper that turns a video payload into MP3 bytes."""
from __future__ import annotations

import logging
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional

import ffmpeg  # type: ignore

from ..config import ConverterSettings
from ..exceptions import ConversionError, MissingAudioTrack

LOGGER = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]
Prober = Callable[..., Mapping[str, Any]]


def has_audio_stream(probe_result: Mapping[str, Any]) -> bool:
    """Return True when an ffprobe result lists at least one audio stream."""

    for stream in probe_result.get("streams", []) or []:
        if isinstance(stream, Mapping) and stream.get("codec_type") == "audio":
            return True
    return False


class AudioConverter:
    """Extract the audio track of a video as MP3 using external binaries."""

    def __init__(
        self,
        settings: ConverterSettings,
        *,
        runner: Runner = subprocess.run,
        prober: Prober = ffmpeg.probe,
    ) -> None:
        self.settings = settings
        self._runner = runner
        self._prober = prober

    def convert(self, content: bytes, *, source_name: str = "input.mp4") -> bytes:
        """Return the MP3 rendition of ``content``.

        Raises :class:`MissingAudioTrack` when the source carries no audio and
        :class:`ConversionError` for any other ffprobe/ffmpeg failure.
        """

        temp_root = str(self.settings.temp_dir) if self.settings.temp_dir else None
        if temp_root:
            Path(temp_root).mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix="mp3converter-", dir=temp_root) as workdir:
            input_path = Path(workdir) / _safe_name(source_name)
            output_path = Path(workdir) / "output.mp3"
            input_path.write_bytes(content)

            self.ensure_audio(input_path)
            self._transcode(input_path, output_path)

            if not output_path.exists() or output_path.stat().st_size == 0:
                raise ConversionError("FFmpeg produced no output")
            data = output_path.read_bytes()
        LOGGER.info("Converted %s to MP3 (%d -> %d bytes)", source_name, len(content), len(data))
        return data

    def ensure_audio(self, input_path: Path) -> None:
        try:
            probe_result = self._prober(str(input_path), cmd=self.settings.ffprobe_path)
        except ffmpeg.Error as exc:
            stderr = exc.stderr.decode(errors="ignore") if getattr(exc, "stderr", None) else str(exc)
            raise ConversionError(f"Failed to probe media source: {stderr.strip()}") from exc
        except OSError as exc:
            raise ConversionError(f"Unable to run ffprobe: {exc}") from exc
        if not has_audio_stream(probe_result):
            raise MissingAudioTrack("Video file has no audio track")

    def build_command(self, input_path: Path, output_path: Path) -> List[str]:
        settings = self.settings
        return [
            settings.ffmpeg_path,
            "-hide_banner",
            "-i",
            str(input_path),
            "-vn",
            "-acodec",
            settings.audio_codec,
            "-ab",
            settings.audio_bitrate,
            "-ar",
            str(settings.sample_rate),
            "-y",
            str(output_path),
        ]

    def _transcode(self, input_path: Path, output_path: Path) -> None:
        command = self.build_command(input_path, output_path)
        LOGGER.info("Running FFmpeg: %s", shlex.join(command))
        try:
            result = self._runner(
                command,
                text=True,
                capture_output=True,
                check=False,
                timeout=self.settings.timeout_seconds,
            )
        except subprocess.TimeoutExpired as exc:
            raise ConversionError(
                f"FFmpeg timed out after {self.settings.timeout_seconds:g} seconds"
            ) from exc
        except OSError as exc:
            raise ConversionError(f"Unable to run FFmpeg: {exc}") from exc
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise ConversionError(f"FFmpeg exited with {result.returncode}: {stderr[-500:]}")


def _safe_name(name: Optional[str]) -> str:
    candidate = Path(name or "").name
    return candidate or "input.mp4"


__all__ = ["AudioConverter", "has_audio_stream"]
