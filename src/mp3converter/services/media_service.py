"""Upload/download orchestration behind the gateway routes."""
from __future__ import annotations

import logging
from typing import BinaryIO, Union

from flask import Flask

from ..broker import BrokerClient
from ..config import PipelineSettings
from ..envelope import ConversionMessage
from ..exceptions import BrokerError
from ..storage import Bucket, ObjectStore, StoredStream

LOGGER = logging.getLogger(__name__)


class MediaService:
    """Store uploads, queue them for conversion and open converted results."""

    def __init__(
        self,
        store: ObjectStore,
        broker: BrokerClient,
        *,
        video_queue: str,
        chunk_size: int = 8192,
    ) -> None:
        self.store = store
        self.broker = broker
        self.video_queue = video_queue
        self.chunk_size = chunk_size

    def submit_video(self, filename: str, content: Union[bytes, BinaryIO], requester: str) -> str:
        """Store a video and publish its conversion job.

        If publishing fails the stored video is discarded before the
        :class:`BrokerError` propagates, so no orphaned upload remains.
        """

        video_fid = self.store.put(Bucket.VIDEOS, filename, content)
        message = ConversionMessage(source_ref=video_fid, requester=requester)
        try:
            self.broker.ensure_queue(self.video_queue)
            self.broker.publish(self.video_queue, message.to_json())
        except Exception as exc:
            LOGGER.error("Failed to publish conversion job for %s: %s", video_fid, exc)
            if not self.store.discard(Bucket.VIDEOS, video_fid):
                LOGGER.error("Failed to roll back stored video %s", video_fid)
            # Force a fresh connection on the next upload.
            self.broker.close()
            if isinstance(exc, BrokerError):
                raise
            raise BrokerError(f"Failed to publish to {self.video_queue}: {exc}") from exc
        LOGGER.info("Queued video %s for %s", video_fid, requester)
        return video_fid

    def open_audio(self, fid: str) -> StoredStream:
        return self.store.open(Bucket.AUDIO, fid)


def init_media_service(app: Flask) -> MediaService:
    settings: PipelineSettings = app.extensions["pipeline_settings"]
    service = MediaService(
        app.extensions["object_store"],
        app.extensions["broker_client"],
        video_queue=settings.queues.video_queue,
        chunk_size=settings.download_chunk_size,
    )
    app.extensions["media_service"] = service
    return service


def get_media_service(app: Flask) -> MediaService:
    service = app.extensions.get("media_service")
    if isinstance(service, MediaService):
        return service
    return init_media_service(app)


__all__ = ["MediaService", "get_media_service", "init_media_service"]
