"""Extension wiring for the gateway Flask application."""
from __future__ import annotations

import logging
from http import HTTPStatus

from flask import Flask, Response, jsonify, request
from werkzeug.exceptions import HTTPException

from ..broker import BrokerClient
from ..config import PipelineSettings
from ..routes import api_bp
from ..services import AuthClient
from ..storage import ObjectStore

LOGGER = logging.getLogger(__name__)


def init_object_store(app: Flask, settings: PipelineSettings) -> ObjectStore:
    store = ObjectStore(settings.store)
    app.extensions["object_store"] = store
    return store


def init_broker_client(app: Flask, settings: PipelineSettings) -> BrokerClient:
    broker = BrokerClient(settings.broker)
    app.extensions["broker_client"] = broker
    return broker


def init_auth_client(app: Flask, settings: PipelineSettings) -> AuthClient:
    client = AuthClient(settings.auth.base_url, timeout=settings.auth.timeout)
    app.extensions["auth_client"] = client
    return client


def register_blueprints(app: Flask) -> None:
    app.register_blueprint(api_bp)


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        return jsonify({"error": exc.description}), exc.code or HTTPStatus.INTERNAL_SERVER_ERROR

    @app.errorhandler(Exception)
    def _unhandled_error(exc: Exception):
        LOGGER.error("Unhandled error serving %s %s: %s", request.method, request.path, exc, exc_info=True)
        return jsonify({"error": "internal server error"}), HTTPStatus.INTERNAL_SERVER_ERROR


def configure_cors(app: Flask, cors_origin: str | None) -> None:
    allowed_default = cors_origin or "*"

    @app.after_request
    def add_cors_headers(response: Response) -> Response:
        origin = request.headers.get("Origin")
        allowed_origin = allowed_default
        if allowed_default == "*" and origin:
            allowed_origin = origin
        response.headers["Access-Control-Allow-Origin"] = allowed_origin
        response.headers.setdefault("Access-Control-Allow-Headers", "Authorization, Content-Type")
        response.headers.setdefault("Access-Control-Allow-Methods", "GET,POST,OPTIONS")
        if allowed_origin != "*":
            response.headers.setdefault("Access-Control-Allow-Credentials", "true")
        if origin:
            response.headers.add("Vary", "Origin")
        return response


__all__ = [
    "configure_cors",
    "init_auth_client",
    "init_broker_client",
    "init_object_store",
    "register_blueprints",
    "register_error_handlers",
]
