"""Command line entrypoint for the conversion worker process."""
from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import Optional, Sequence

from ..broker import BrokerClient
from ..config import PipelineSettings, load_logging_settings, load_settings
from ..exceptions import ConfigurationError
from ..logging_config import configure_logging
from ..media import AudioConverter
from ..storage import ObjectStore
from .consumer import ConversionWorker

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mp3converter-worker",
        description="Consume video messages from RabbitMQ and convert them to MP3.",
    )
    parser.add_argument(
        "--video-queue",
        default=None,
        help="The video queue name to consume from (default: VIDEO_QUEUE).",
    )
    parser.add_argument(
        "--mp3-queue",
        default=None,
        help="The mp3 queue name to publish to (default: MP3_QUEUE).",
    )
    return parser.parse_args(argv)


def build_worker(settings: PipelineSettings) -> ConversionWorker:
    return ConversionWorker(
        BrokerClient(settings.broker),
        ObjectStore(settings.store),
        AudioConverter(settings.converter),
        settings.queues,
    )


def _install_signal_handlers(worker: ConversionWorker) -> None:
    def _handle(signum, _frame) -> None:
        LOGGER.info("Received signal %s; shutting down", signal.Signals(signum).name)
        worker.stop()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def run(settings: PipelineSettings) -> int:
    worker = build_worker(settings)
    LOGGER.info("Consuming from queue: %s", settings.queues.video_queue)
    LOGGER.info("Publishing to queue: %s", settings.queues.mp3_queue)
    try:
        LOGGER.info("Initializing services...")
        worker.broker.connect()
        worker.store.connect()
        LOGGER.info("Services initialized successfully")
        _install_signal_handlers(worker)
        worker.run()
    except Exception as exc:
        LOGGER.error("Fatal error: %s", exc, exc_info=True)
        return EXIT_FAILURE
    finally:
        LOGGER.info("Cleaning up...")
        worker.broker.close()
        worker.store.close()
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        configure_logging("worker", load_logging_settings())
    except ConfigurationError as exc:
        print(f"Invalid logging configuration: {exc}", file=sys.stderr)
        return EXIT_FAILURE
    LOGGER.info("Starting Video Converter Consumer...")
    try:
        settings = load_settings().with_queues(
            video_queue=args.video_queue,
            mp3_queue=args.mp3_queue,
        )
    except ConfigurationError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return EXIT_FAILURE
    return run(settings)


if __name__ == "__main__":
    raise SystemExit(main())
