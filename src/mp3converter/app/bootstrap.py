"""Bootstrap helpers for the gateway Flask application."""
from __future__ import annotations

from typing import Any, Mapping, Optional

from flask import Flask

from ..config import PipelineSettings, build_default_config, load_logging_settings
from ..logging_config import configure_logging


def init_logging(overrides: Optional[Mapping[str, Any]] = None) -> None:
    """Configure logging for the gateway service."""

    configure_logging("gateway", load_logging_settings(overrides))


def load_configuration(app: Flask, overrides: Optional[Mapping[str, Any]] = None) -> PipelineSettings:
    """Populate config defaults on the app and build the validated settings."""

    app.config.from_mapping(build_default_config())
    if overrides:
        app.config.from_mapping(overrides)
    settings = PipelineSettings.from_mapping(app.config)
    app.extensions["pipeline_settings"] = settings
    return settings


__all__ = ["init_logging", "load_configuration"]
