"""Gateway application factory."""
from __future__ import annotations

from typing import Any, Mapping, Optional

from flask import Flask

from .bootstrap import init_logging, load_configuration
from .extensions import (
    configure_cors,
    init_auth_client,
    init_broker_client,
    init_object_store,
    register_blueprints,
    register_error_handlers,
)


def create_app(overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    """Create and configure the gateway Flask application.

    Store and broker connections are opened lazily on first use.
    """

    init_logging(overrides)
    app = Flask(__name__)
    settings = load_configuration(app, overrides)

    init_object_store(app, settings)
    init_broker_client(app, settings)
    init_auth_client(app, settings)

    register_blueprints(app)
    register_error_handlers(app)

    cors_origin = app.config.get("GATEWAY_CORS_ORIGIN", "*")
    configure_cors(app, cors_origin)

    return app


__all__ = ["create_app"]
