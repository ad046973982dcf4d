"""Sequential consumer turning queued videos into stored MP3 files."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from ..broker import BrokerClient, Delivery
from ..config import QueueSettings
from ..envelope import ConversionMessage
from ..exceptions import MalformedMessage
from ..media import AudioConverter
from ..storage import Bucket, ObjectStore
from .policy import Disposition, RetryPolicy, is_permanent

LOGGER = logging.getLogger(__name__)

LOG_BODY_LIMIT = 200


class ConversionWorker:
    """Consume conversion jobs one at a time and settle each delivery once."""

    def __init__(
        self,
        broker: BrokerClient,
        store: ObjectStore,
        converter: AudioConverter,
        queues: QueueSettings,
        *,
        policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.broker = broker
        self.store = store
        self.converter = converter
        self.queues = queues
        self.policy = policy or RetryPolicy(max_retries=queues.max_retries)

    # ------------------------------------------------------------------
    # Loop control
    # ------------------------------------------------------------------
    def setup(self) -> None:
        LOGGER.info("Setting up queues...")
        self.broker.declare_queue(self.queues.video_queue)
        self.broker.declare_queue(self.queues.mp3_queue)
        self.broker.set_prefetch(self.queues.prefetch_count)
        LOGGER.info("Queues setup completed")

    def run(self) -> None:
        """Declare topology and block consuming until :meth:`stop`."""

        self.setup()
        LOGGER.info("Starting message consumption...")
        self.broker.consume(self.queues.video_queue, self.handle)

    def stop(self) -> None:
        LOGGER.info("Stopping consumption of %s", self.queues.video_queue)
        self.broker.cancel()

    # ------------------------------------------------------------------
    # Per-delivery processing
    # ------------------------------------------------------------------
    def handle(self, delivery: Delivery) -> Disposition:
        LOGGER.info("Received message: %s", delivery.text(limit=LOG_BODY_LIMIT))
        try:
            message = self.process(delivery)
        except Exception as exc:
            LOGGER.error("Error processing message: %s", exc, exc_info=True)
            return self._settle_failure(delivery, exc)
        self.broker.ack(delivery)
        LOGGER.info("Successfully processed video: %s", message.source_ref)
        return Disposition.ACK

    def process(self, delivery: Delivery) -> ConversionMessage:
        """Run download, convert, upload and publish; returns the completion."""

        message = ConversionMessage.from_json(delivery.body)
        if message.is_completion:
            raise MalformedMessage(f"Inbound message already has mp3_fid: {message.result_ref}")
        LOGGER.info("Processing video: %s for user: %s", message.source_ref, message.requester)

        source = self.store.get(Bucket.VIDEOS, message.source_ref)
        LOGGER.info("Video downloaded, size: %d bytes", source.length)

        audio = self.converter.convert(source.content, source_name=source.filename)
        LOGGER.info("Conversion complete, MP3 size: %d bytes", len(audio))

        result_ref = self.store.put(Bucket.AUDIO, _audio_filename(source.filename, message.source_ref), audio)
        LOGGER.info("MP3 uploaded with ID: %s", result_ref)

        completion = message.with_result(result_ref)
        try:
            self.broker.publish(self.queues.mp3_queue, completion.to_json())
        except Exception:
            LOGGER.warning("Cleaning up uploaded MP3: %s", result_ref)
            if not self.store.discard(Bucket.AUDIO, result_ref):
                LOGGER.error("Failed to cleanup MP3: %s", result_ref)
            raise
        LOGGER.info("Completion message published to %s", self.queues.mp3_queue)
        return completion

    def _settle_failure(self, delivery: Delivery, exc: Exception) -> Disposition:
        retry_count = delivery.retry_count
        disposition = self.policy.decide(exc, retry_count)
        if disposition is Disposition.DEAD_LETTER:
            if is_permanent(exc):
                LOGGER.error("Permanent failure: %s. Rejecting message without requeue.", exc)
            else:
                LOGGER.error("Max retries (%d) reached. Rejecting message without requeue.", retry_count)
            self.broker.nack(delivery, requeue=False)
        else:
            self.broker.nack(delivery, requeue=True)
            LOGGER.warning(
                "Message returned to queue for retry (attempt %d/%d)",
                retry_count + 1,
                self.policy.max_retries,
            )
        return disposition


def _audio_filename(source_filename: Optional[str], source_ref: str) -> str:
    stem = Path(source_filename or "").stem
    return f"{stem or source_ref}.mp3"


__all__ = ["ConversionWorker"]
