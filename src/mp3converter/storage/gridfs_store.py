"""GridFS-backed object store with separate video and audio namespaces."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import BinaryIO, Iterator, Optional, Union

import gridfs
from gridfs.errors import NoFile
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from ..config import StoreSettings
from ..envelope import is_valid_identifier, validate_identifier
from ..exceptions import InvalidIdentifier, NotFound, StoreError

LOGGER = logging.getLogger(__name__)

Content = Union[bytes, BinaryIO]


class Bucket(str, Enum):
    """Logical namespaces; physical bucket names come from settings."""

    VIDEOS = "videos"
    AUDIO = "audio-outputs"


@dataclass(frozen=True)
class StoredObject:
    id: str
    bucket: Bucket
    filename: str
    length: int
    content: bytes


class StoredStream:
    """Readable handle over a stored object, closed by the caller."""

    def __init__(self, *, id: str, bucket: Bucket, filename: str, length: Optional[int], source) -> None:
        self.id = id
        self.bucket = bucket
        self.filename = filename
        self.length = length
        self._source = source

    def read(self, size: int = -1) -> bytes:
        return self._source.read(size)

    def iter_chunks(self, chunk_size: int = 8192) -> Iterator[bytes]:
        """Yield the content in bounded chunks, closing the handle at the end."""

        try:
            while True:
                chunk = self._source.read(chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self.close()

    def close(self) -> None:
        try:
            self._source.close()
        except Exception as exc:  # pragma: no cover - driver dependent
            LOGGER.warning("Error closing stream for %s: %s", self.id, exc)

    def __enter__(self) -> "StoredStream":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()


class ObjectStore:
    """Encapsulate GridFS bucket access and identifier validation."""

    def __init__(self, settings: StoreSettings, *, client: Optional[MongoClient] = None) -> None:
        self.settings = settings
        self._client = client
        self._owns_client = client is None
        self._buckets: dict[Bucket, gridfs.GridFSBucket] = {}
        self._lock = Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def connect(self) -> None:
        with self._lock:
            if self._client is not None:
                return
            LOGGER.info("Connecting to MongoDB (database=%s)", self.settings.database)
            self._client = MongoClient(
                self.settings.uri,
                serverSelectionTimeoutMS=self.settings.timeout_ms,
            )

    def close(self) -> None:
        with self._lock:
            client = self._client
            self._client = None
            self._buckets.clear()
        if client is None or not self._owns_client:
            return
        try:
            client.close()
        except Exception as exc:  # pragma: no cover - driver dependent
            LOGGER.warning("Error closing MongoDB client: %s", exc)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def put(self, bucket: Bucket, filename: str, content: Content) -> str:
        """Store ``content`` under a freshly assigned identifier."""

        grid = self._bucket(bucket)
        try:
            object_id = grid.upload_from_stream(filename, content)
        except PyMongoError as exc:
            raise StoreError(f"Failed to store {filename} in {bucket.value}: {exc}") from exc
        file_id = str(object_id)
        LOGGER.info("Stored %s in %s as %s", filename, bucket.value, file_id)
        return file_id

    def get(self, bucket: Bucket, file_id: str) -> StoredObject:
        with self.open(bucket, file_id) as stream:
            try:
                content = stream.read()
            except PyMongoError as exc:
                raise StoreError(f"Failed to read {file_id} from {bucket.value}: {exc}") from exc
        LOGGER.info("Read %s from %s (%d bytes)", file_id, bucket.value, len(content))
        return StoredObject(
            id=file_id,
            bucket=bucket,
            filename=stream.filename,
            length=len(content),
            content=content,
        )

    def open(self, bucket: Bucket, file_id: str) -> StoredStream:
        object_id = self._object_id(bucket, file_id)
        grid = self._bucket(bucket)
        try:
            grid_out = grid.open_download_stream(object_id)
        except NoFile as exc:
            raise NotFound(f"{_label(bucket)} file not found: {file_id}") from exc
        except PyMongoError as exc:
            raise StoreError(f"Failed to open {file_id} in {bucket.value}: {exc}") from exc
        filename = grid_out.filename or f"{file_id}{_default_suffix(bucket)}"
        return StoredStream(
            id=file_id,
            bucket=bucket,
            filename=filename,
            length=grid_out.length,
            source=grid_out,
        )

    def exists(self, bucket: Bucket, file_id: str) -> bool:
        if not is_valid_identifier(file_id):
            return False
        try:
            grid = self._bucket(bucket)
            cursor = grid.find({"_id": ObjectId(file_id)}).limit(1)
            for _ in cursor:
                return True
        except Exception as exc:
            LOGGER.warning("Error checking if %s exists in %s: %s", file_id, bucket.value, exc)
        return False

    def delete(self, bucket: Bucket, file_id: str) -> None:
        object_id = self._object_id(bucket, file_id)
        grid = self._bucket(bucket)
        try:
            grid.delete(object_id)
        except NoFile as exc:
            raise NotFound(f"{_label(bucket)} file not found: {file_id}") from exc
        except PyMongoError as exc:
            raise StoreError(f"Failed to delete {file_id} from {bucket.value}: {exc}") from exc
        LOGGER.info("Deleted %s from %s", file_id, bucket.value)

    def discard(self, bucket: Bucket, file_id: str) -> bool:
        """Best-effort delete; returns False instead of raising."""

        try:
            self.delete(bucket, file_id)
        except NotFound:
            LOGGER.info("Discard of %s in %s: already absent", file_id, bucket.value)
            return True
        except Exception as exc:
            LOGGER.error("Failed to discard %s from %s: %s", file_id, bucket.value, exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _bucket(self, bucket: Bucket) -> gridfs.GridFSBucket:
        grid = self._buckets.get(bucket)
        if grid is not None:
            return grid
        self.connect()
        with self._lock:
            grid = self._buckets.get(bucket)
            if grid is None:
                database = self._client[self.settings.database]
                grid = gridfs.GridFSBucket(database, bucket_name=self._bucket_name(bucket))
                self._buckets[bucket] = grid
                LOGGER.info("Initialised GridFS bucket %s (%s)", bucket.value, self._bucket_name(bucket))
        return grid

    def _bucket_name(self, bucket: Bucket) -> str:
        if bucket is Bucket.VIDEOS:
            return self.settings.videos_bucket
        return self.settings.audio_bucket

    @staticmethod
    def _object_id(bucket: Bucket, file_id: str) -> ObjectId:
        if not is_valid_identifier(file_id):
            LOGGER.error("Invalid ObjectId format for %s: %s", bucket.value, file_id)
        try:
            return ObjectId(validate_identifier(file_id))
        except InvalidId as exc:
            raise InvalidIdentifier(f"Invalid file ID format: {file_id}") from exc


def _label(bucket: Bucket) -> str:
    return "Video" if bucket is Bucket.VIDEOS else "Audio"


def _default_suffix(bucket: Bucket) -> str:
    return ".mp4" if bucket is Bucket.VIDEOS else ".mp3"


__all__ = ["Bucket", "ObjectStore", "StoredObject", "StoredStream"]
