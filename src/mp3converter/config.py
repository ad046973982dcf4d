"""Configuration helpers for the gateway and conversion worker."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

from dotenv import find_dotenv, load_dotenv

from .exceptions import ConfigurationError
from .utils import coerce_float, coerce_int, to_optional_str


def _ensure_dotenv_loaded() -> None:
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path, override=False)


_ensure_dotenv_loaded()


QUEUE_TYPES = {"classic", "quorum"}


def _broker_url() -> str:
    explicit = to_optional_str(os.getenv("RABBITMQ_URL"))
    if explicit:
        return explicit
    host = os.getenv("RABBITMQ_HOST", "rabbitmq")
    port = coerce_int(os.getenv("RABBITMQ_PORT"), 5672)
    user = quote(os.getenv("RABBITMQ_USER", "guest"), safe="")
    password = quote(os.getenv("RABBITMQ_PASSWORD", "guest"), safe="")
    vhost = quote(os.getenv("RABBITMQ_VHOST", "/"), safe="")
    return f"amqp://{user}:{password}@{host}:{port}/{vhost}"


def _mongodb_uri() -> str:
    explicit = to_optional_str(os.getenv("MONGODB_URI"))
    if explicit:
        return explicit
    host = os.getenv("MONGODB_HOST", "host.minikube.internal")
    port = coerce_int(os.getenv("MONGODB_PORT"), 27017)
    username = to_optional_str(os.getenv("MONGODB_USERNAME"))
    password = to_optional_str(os.getenv("MONGODB_PASSWORD"))
    if username and password:
        auth_db = os.getenv("MONGODB_AUTH_DATABASE", "admin")
        credentials = f"{quote(username, safe='')}:{quote(password, safe='')}@"
        return f"mongodb://{credentials}{host}:{port}/?authSource={auth_db}"
    return f"mongodb://{host}:{port}"


DEFAULT_BROKER_URL = _broker_url()
DEFAULT_BROKER_MAX_ATTEMPTS = coerce_int(os.getenv("RABBITMQ_RETRY_MAX_ATTEMPTS"), 10)
DEFAULT_BROKER_RETRY_DELAY = coerce_float(os.getenv("RABBITMQ_RETRY_DELAY"), 5.0)
DEFAULT_BROKER_HEARTBEAT = coerce_int(os.getenv("RABBITMQ_HEARTBEAT"), 0)
DEFAULT_QUEUE_TYPE = os.getenv("RABBITMQ_QUEUE_TYPE", "quorum").strip().lower()
DEFAULT_DEAD_LETTER_SUFFIX = os.getenv("RABBITMQ_DEAD_LETTER_SUFFIX", ".dlq")
DEFAULT_VIDEO_QUEUE = os.getenv("VIDEO_QUEUE", "video")
DEFAULT_MP3_QUEUE = os.getenv("MP3_QUEUE", "mp3")
DEFAULT_PREFETCH_COUNT = coerce_int(os.getenv("PREFETCH_COUNT"), 1)
DEFAULT_MAX_RETRIES = coerce_int(os.getenv("MAX_RETRIES"), 3)

DEFAULT_MONGODB_URI = _mongodb_uri()
DEFAULT_MONGODB_DATABASE = os.getenv("MONGODB_DATABASE", "mp3converter")
DEFAULT_VIDEOS_BUCKET = os.getenv("MONGODB_VIDEOS_BUCKET", "videos")
DEFAULT_MP3S_BUCKET = os.getenv("MONGODB_MP3S_BUCKET", "mp3s")
DEFAULT_MONGODB_TIMEOUT_MS = coerce_int(os.getenv("MONGODB_TIMEOUT_MS"), 5000)

DEFAULT_AUTH_ADDRESS = os.getenv("AUTH_SVC_ADDRESS", "auth:8000")
DEFAULT_AUTH_TIMEOUT = coerce_float(os.getenv("AUTH_TIMEOUT"), 10.0)

DEFAULT_FFMPEG_PATH = os.getenv("FFMPEG_PATH", "ffmpeg")
DEFAULT_FFPROBE_PATH = os.getenv("FFPROBE_PATH", "ffprobe")
DEFAULT_CONVERTER_TEMP_DIR = to_optional_str(os.getenv("CONVERTER_TEMP_DIR"))
DEFAULT_CONVERTER_TIMEOUT = coerce_float(os.getenv("CONVERTER_TIMEOUT_SECONDS"), 600.0)

DEFAULT_DOWNLOAD_CHUNK_SIZE = coerce_int(os.getenv("DOWNLOAD_CHUNK_SIZE"), 8192)
DEFAULT_MAX_UPLOAD_MB = coerce_int(os.getenv("MAX_UPLOAD_MB"), 1024)
DEFAULT_CORS_ORIGIN = os.getenv("GATEWAY_CORS_ORIGIN", "*")

DEFAULT_LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()
DEFAULT_LIBRARY_LOG_LEVEL = os.getenv("LOG_LIBRARY_LEVEL", "WARNING").strip().upper()
DEFAULT_LOG_MAX_BYTES = coerce_int(os.getenv("LOG_MAX_BYTES"), 10 * 1024 * 1024)
DEFAULT_LOG_BACKUP_COUNT = coerce_int(os.getenv("LOG_BACKUP_COUNT"), 5)


def build_default_config() -> Dict[str, Any]:
    """Return the base configuration mapping shared by both services."""

    cfg: Dict[str, Any] = {
        "BROKER_URL": DEFAULT_BROKER_URL,
        "BROKER_MAX_ATTEMPTS": DEFAULT_BROKER_MAX_ATTEMPTS,
        "BROKER_RETRY_DELAY": DEFAULT_BROKER_RETRY_DELAY,
        "BROKER_HEARTBEAT": DEFAULT_BROKER_HEARTBEAT,
        "BROKER_QUEUE_TYPE": DEFAULT_QUEUE_TYPE,
        "BROKER_DEAD_LETTER_SUFFIX": DEFAULT_DEAD_LETTER_SUFFIX,
        "VIDEO_QUEUE": DEFAULT_VIDEO_QUEUE,
        "MP3_QUEUE": DEFAULT_MP3_QUEUE,
        "PREFETCH_COUNT": DEFAULT_PREFETCH_COUNT,
        "MAX_RETRIES": DEFAULT_MAX_RETRIES,
        "MONGODB_URI": DEFAULT_MONGODB_URI,
        "MONGODB_DATABASE": DEFAULT_MONGODB_DATABASE,
        "MONGODB_VIDEOS_BUCKET": DEFAULT_VIDEOS_BUCKET,
        "MONGODB_MP3S_BUCKET": DEFAULT_MP3S_BUCKET,
        "MONGODB_TIMEOUT_MS": DEFAULT_MONGODB_TIMEOUT_MS,
        "AUTH_SVC_ADDRESS": DEFAULT_AUTH_ADDRESS,
        "AUTH_TIMEOUT": DEFAULT_AUTH_TIMEOUT,
        "FFMPEG_PATH": DEFAULT_FFMPEG_PATH,
        "FFPROBE_PATH": DEFAULT_FFPROBE_PATH,
        "CONVERTER_TEMP_DIR": DEFAULT_CONVERTER_TEMP_DIR,
        "CONVERTER_TIMEOUT_SECONDS": DEFAULT_CONVERTER_TIMEOUT,
        "DOWNLOAD_CHUNK_SIZE": DEFAULT_DOWNLOAD_CHUNK_SIZE,
        "MAX_CONTENT_LENGTH": DEFAULT_MAX_UPLOAD_MB * 1024 * 1024,
        "GATEWAY_CORS_ORIGIN": DEFAULT_CORS_ORIGIN,
        "LOG_LEVEL": DEFAULT_LOG_LEVEL,
        "LOG_LIBRARY_LEVEL": DEFAULT_LIBRARY_LOG_LEVEL,
        "LOG_DIR": to_optional_str(os.getenv("SERVICE_LOG_DIR")),
        "LOG_MAX_BYTES": DEFAULT_LOG_MAX_BYTES,
        "LOG_BACKUP_COUNT": DEFAULT_LOG_BACKUP_COUNT,
    }
    return cfg


# ----------------------------------------------------------------------
# Typed settings
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class BrokerSettings:
    url: str
    max_attempts: int = 10
    retry_delay: float = 5.0
    heartbeat: int = 0
    queue_type: str = "quorum"
    dead_letter_suffix: Optional[str] = ".dlq"

    def __post_init__(self) -> None:
        if not self.url:
            raise ConfigurationError("Broker URL not configured.")
        if self.max_attempts < 1:
            raise ConfigurationError("BROKER_MAX_ATTEMPTS must be at least 1")
        if self.retry_delay < 0:
            raise ConfigurationError("BROKER_RETRY_DELAY cannot be negative")
        if self.queue_type not in QUEUE_TYPES:
            raise ConfigurationError(
                f"BROKER_QUEUE_TYPE must be one of {sorted(QUEUE_TYPES)}, got {self.queue_type!r}"
            )

    def dead_letter_queue(self, queue: str) -> Optional[str]:
        if not self.dead_letter_suffix:
            return None
        return f"{queue}{self.dead_letter_suffix}"


@dataclass(frozen=True)
class QueueSettings:
    video_queue: str = "video"
    mp3_queue: str = "mp3"
    prefetch_count: int = 1
    max_retries: int = 3

    def __post_init__(self) -> None:
        if not self.video_queue or not self.mp3_queue:
            raise ConfigurationError("Queue names cannot be empty")
        if self.video_queue == self.mp3_queue:
            raise ConfigurationError("Input and output queues must differ")
        if self.prefetch_count < 1:
            raise ConfigurationError("PREFETCH_COUNT must be at least 1")
        if self.max_retries < 0:
            raise ConfigurationError("MAX_RETRIES cannot be negative")


@dataclass(frozen=True)
class StoreSettings:
    uri: str
    database: str = "mp3converter"
    videos_bucket: str = "videos"
    audio_bucket: str = "mp3s"
    timeout_ms: int = 5000

    def __post_init__(self) -> None:
        if not self.uri:
            raise ConfigurationError("MongoDB URI not configured.")
        if not self.database:
            raise ConfigurationError("MONGODB_DATABASE cannot be empty")
        if self.videos_bucket == self.audio_bucket:
            raise ConfigurationError("Video and audio buckets must differ")


@dataclass(frozen=True)
class ConverterSettings:
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    temp_dir: Optional[Path] = None
    timeout_seconds: float = 600.0
    audio_codec: str = "libmp3lame"
    audio_bitrate: str = "192k"
    sample_rate: int = 44100

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise ConfigurationError("CONVERTER_TIMEOUT_SECONDS must be positive")


@dataclass(frozen=True)
class AuthSettings:
    address: str
    timeout: float = 10.0

    @property
    def base_url(self) -> str:
        address = self.address.strip().rstrip("/")
        if address.startswith(("http://", "https://")):
            return address
        return f"http://{address}"


@dataclass(frozen=True)
class PipelineSettings:
    """Validated settings bundle built once at process start."""

    broker: BrokerSettings
    queues: QueueSettings
    store: StoreSettings
    converter: ConverterSettings
    auth: AuthSettings
    download_chunk_size: int = 8192

    @classmethod
    def from_mapping(cls, cfg: Mapping[str, Any]) -> "PipelineSettings":
        temp_dir = to_optional_str(cfg.get("CONVERTER_TEMP_DIR"))
        chunk_size = coerce_int(cfg.get("DOWNLOAD_CHUNK_SIZE"), 8192)
        if chunk_size < 1:
            raise ConfigurationError("DOWNLOAD_CHUNK_SIZE must be positive")
        return cls(
            broker=BrokerSettings(
                url=str(cfg.get("BROKER_URL") or ""),
                max_attempts=coerce_int(cfg.get("BROKER_MAX_ATTEMPTS"), 10),
                retry_delay=coerce_float(cfg.get("BROKER_RETRY_DELAY"), 5.0),
                heartbeat=coerce_int(cfg.get("BROKER_HEARTBEAT"), 0),
                queue_type=str(cfg.get("BROKER_QUEUE_TYPE") or "quorum").lower(),
                dead_letter_suffix=to_optional_str(cfg.get("BROKER_DEAD_LETTER_SUFFIX")),
            ),
            queues=QueueSettings(
                video_queue=str(cfg.get("VIDEO_QUEUE") or "video"),
                mp3_queue=str(cfg.get("MP3_QUEUE") or "mp3"),
                prefetch_count=coerce_int(cfg.get("PREFETCH_COUNT"), 1),
                max_retries=coerce_int(cfg.get("MAX_RETRIES"), 3),
            ),
            store=StoreSettings(
                uri=str(cfg.get("MONGODB_URI") or ""),
                database=str(cfg.get("MONGODB_DATABASE") or "mp3converter"),
                videos_bucket=str(cfg.get("MONGODB_VIDEOS_BUCKET") or "videos"),
                audio_bucket=str(cfg.get("MONGODB_MP3S_BUCKET") or "mp3s"),
                timeout_ms=coerce_int(cfg.get("MONGODB_TIMEOUT_MS"), 5000),
            ),
            converter=ConverterSettings(
                ffmpeg_path=str(cfg.get("FFMPEG_PATH") or "ffmpeg"),
                ffprobe_path=str(cfg.get("FFPROBE_PATH") or "ffprobe"),
                temp_dir=Path(temp_dir).expanduser() if temp_dir else None,
                timeout_seconds=coerce_float(cfg.get("CONVERTER_TIMEOUT_SECONDS"), 600.0),
            ),
            auth=AuthSettings(
                address=str(cfg.get("AUTH_SVC_ADDRESS") or ""),
                timeout=coerce_float(cfg.get("AUTH_TIMEOUT"), 10.0),
            ),
            download_chunk_size=chunk_size,
        )

    def with_queues(
        self,
        *,
        video_queue: Optional[str] = None,
        mp3_queue: Optional[str] = None,
    ) -> "PipelineSettings":
        """Return a copy with queue names overridden (CLI flags)."""

        queues = QueueSettings(
            video_queue=video_queue or self.queues.video_queue,
            mp3_queue=mp3_queue or self.queues.mp3_queue,
            prefetch_count=self.queues.prefetch_count,
            max_retries=self.queues.max_retries,
        )
        return PipelineSettings(
            broker=self.broker,
            queues=queues,
            store=self.store,
            converter=self.converter,
            auth=self.auth,
            download_chunk_size=self.download_chunk_size,
        )


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"
    library_level: str = "WARNING"
    log_dir: Optional[Path] = None
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5

    def __post_init__(self) -> None:
        for name in ("level", "library_level"):
            value = getattr(self, name)
            if not isinstance(logging.getLevelName(value), int):
                raise ConfigurationError(f"Unknown log level for {name}: {value!r}")
        if self.max_bytes < 0 or self.backup_count < 0:
            raise ConfigurationError("LOG_MAX_BYTES and LOG_BACKUP_COUNT cannot be negative")

    @classmethod
    def from_mapping(cls, cfg: Mapping[str, Any]) -> "LoggingSettings":
        log_dir = to_optional_str(cfg.get("LOG_DIR"))
        return cls(
            level=str(cfg.get("LOG_LEVEL") or "INFO").upper(),
            library_level=str(cfg.get("LOG_LIBRARY_LEVEL") or "WARNING").upper(),
            log_dir=Path(log_dir).expanduser() if log_dir else None,
            max_bytes=coerce_int(cfg.get("LOG_MAX_BYTES"), 10 * 1024 * 1024),
            backup_count=coerce_int(cfg.get("LOG_BACKUP_COUNT"), 5),
        )


def load_logging_settings(overrides: Optional[Mapping[str, Any]] = None) -> LoggingSettings:
    cfg = build_default_config()
    if overrides:
        cfg.update(overrides)
    return LoggingSettings.from_mapping(cfg)


def load_settings(overrides: Optional[Mapping[str, Any]] = None) -> PipelineSettings:
    """Build validated settings from the environment plus ``overrides``."""

    cfg = build_default_config()
    if overrides:
        cfg.update(overrides)
    return PipelineSettings.from_mapping(cfg)


__all__ = [
    "AuthSettings",
    "BrokerSettings",
    "ConverterSettings",
    "LoggingSettings",
    "PipelineSettings",
    "QueueSettings",
    "StoreSettings",
    "build_default_config",
    "load_logging_settings",
    "load_settings",
]
