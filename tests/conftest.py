from __future__ import annotations

import io
import itertools
import json
from typing import Any, Dict, List, Optional, Tuple

import pytest

from mp3converter.broker import Delivery
from mp3converter.config import (
    AuthSettings,
    BrokerSettings,
    ConverterSettings,
    PipelineSettings,
    QueueSettings,
    StoreSettings,
)
from mp3converter.envelope import validate_identifier
from mp3converter.exceptions import BrokerError, NotFound, StoreError
from mp3converter.storage import Bucket, StoredObject, StoredStream


@pytest.fixture(autouse=True)
def _log_dir(tmp_path_factory, monkeypatch):
    monkeypatch.setenv("SERVICE_LOG_DIR", str(tmp_path_factory.mktemp("logs")))


class FakeStore:
    """In-memory stand-in for ObjectStore keyed by (bucket, id)."""

    _ids = itertools.count(1)

    def __init__(self) -> None:
        self.objects: Dict[Tuple[Bucket, str], Tuple[str, bytes]] = {}
        self.deleted: List[Tuple[Bucket, str]] = []
        self.fail_put = False
        self.fail_delete = False
        self.connected = False
        self.closed = False

    def connect(self) -> None:
        self.connected = True

    def close(self) -> None:
        self.closed = True

    def seed(self, bucket: Bucket, content: bytes, filename: str = "clip.mp4") -> str:
        return self.put(bucket, filename, content)

    def put(self, bucket: Bucket, filename: str, content) -> str:
        if self.fail_put:
            raise StoreError("store unavailable")
        data = content if isinstance(content, bytes) else content.read()
        file_id = f"{next(self._ids):024x}"
        self.objects[(bucket, file_id)] = (filename, data)
        return file_id

    def get(self, bucket: Bucket, file_id: str) -> StoredObject:
        validate_identifier(file_id)
        try:
            filename, data = self.objects[(bucket, file_id)]
        except KeyError:
            label = "Video" if bucket is Bucket.VIDEOS else "Audio"
            raise NotFound(f"{label} file not found: {file_id}") from None
        return StoredObject(id=file_id, bucket=bucket, filename=filename, length=len(data), content=data)

    def open(self, bucket: Bucket, file_id: str) -> StoredStream:
        stored = self.get(bucket, file_id)
        return StoredStream(
            id=file_id,
            bucket=bucket,
            filename=stored.filename,
            length=stored.length,
            source=io.BytesIO(stored.content),
        )

    def exists(self, bucket: Bucket, file_id: str) -> bool:
        return (bucket, file_id) in self.objects

    def delete(self, bucket: Bucket, file_id: str) -> None:
        validate_identifier(file_id)
        if self.fail_delete:
            raise StoreError("store unavailable")
        if self.objects.pop((bucket, file_id), None) is None:
            raise NotFound(f"file not found: {file_id}")
        self.deleted.append((bucket, file_id))

    def discard(self, bucket: Bucket, file_id: str) -> bool:
        try:
            self.delete(bucket, file_id)
        except NotFound:
            return True
        except StoreError:
            return False
        return True

    def ids(self, bucket: Bucket) -> List[str]:
        return [file_id for (b, file_id) in self.objects if b is bucket]


class FakeMessage:
    """Mimics the kombu message methods used to settle a delivery."""

    def __init__(self) -> None:
        self.actions: List[Tuple[str, Optional[bool]]] = []

    def ack(self) -> None:
        self.actions.append(("ack", None))

    def reject(self, requeue: bool = False) -> None:
        self.actions.append(("reject", requeue))


class FakeBroker:
    """Records topology and traffic in place of BrokerClient."""

    def __init__(self) -> None:
        self.declared: List[str] = []
        self.prefetch: Optional[int] = None
        self.published: List[Tuple[str, str]] = []
        self.fail_publish = False
        self.connected = False
        self.closed = 0
        self.cancelled = False
        self.pending: List[Delivery] = []

    def connect(self) -> None:
        self.connected = True

    def close(self) -> None:
        self.closed += 1
        self.connected = False

    def declare_queue(self, name: str, *, durable: bool = True, auto_delete: bool = False) -> None:
        if name not in self.declared:
            self.declared.append(name)

    def ensure_queue(self, name: str) -> None:
        self.connected = True
        self.declare_queue(name)

    def set_prefetch(self, count: int) -> None:
        self.prefetch = count

    def publish(self, queue: str, body: str) -> None:
        if self.fail_publish:
            raise BrokerError(f"Failed to publish to {queue}: connection reset")
        if queue not in self.declared:
            raise BrokerError(f"Queue {queue} has not been declared")
        self.published.append((queue, body))

    def consume(self, queue: str, handler) -> None:
        while self.pending and not self.cancelled:
            handler(self.pending.pop(0))

    def cancel(self) -> None:
        self.cancelled = True

    def ack(self, delivery: Delivery) -> None:
        delivery.mark_settled("ack")
        delivery.message.ack()

    def nack(self, delivery: Delivery, *, requeue: bool) -> None:
        delivery.mark_settled("requeue" if requeue else "dead-letter")
        delivery.message.reject(requeue=requeue)

    def bodies(self, queue: str) -> List[Dict[str, Any]]:
        return [json.loads(body) for name, body in self.published if name == queue]


class FakeConverter:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.calls: List[bytes] = []

    def convert(self, content: bytes, *, source_name: str = "input.mp4") -> bytes:
        self.calls.append(content)
        if self.error is not None:
            raise self.error
        return b"ID3" + content


def make_delivery(body, headers: Optional[Dict[str, Any]] = None) -> Delivery:
    if isinstance(body, dict):
        body = json.dumps(body)
    if isinstance(body, str):
        body = body.encode("utf-8")
    return Delivery(body=body, headers=headers, delivery_tag=1, message=FakeMessage())


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def fake_broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def queue_settings() -> QueueSettings:
    return QueueSettings(video_queue="video", mp3_queue="mp3", prefetch_count=1, max_retries=3)


@pytest.fixture
def pipeline_settings(queue_settings: QueueSettings, tmp_path) -> PipelineSettings:
    return PipelineSettings(
        broker=BrokerSettings(url="memory://", max_attempts=2, retry_delay=0.0, queue_type="classic"),
        queues=queue_settings,
        store=StoreSettings(uri="mongodb://localhost:27017"),
        converter=ConverterSettings(temp_dir=tmp_path / "work"),
        auth=AuthSettings(address="auth:8000"),
    )
