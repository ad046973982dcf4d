"""Token validation for gateway routes."""
from __future__ import annotations

import logging
from functools import wraps
from http import HTTPStatus
from typing import Any, Callable, Mapping, Optional, TypeVar, cast

from flask import Flask, current_app, g, jsonify, request

from .auth_client import AuthClient, AuthServiceError

LOGGER = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def get_auth_client(app: Flask) -> AuthClient:
    client = app.extensions.get("auth_client")
    if client is None:
        raise RuntimeError("Auth client not initialised on Flask app.")
    return client


def _unauthorized():
    return jsonify({"error": "not authorized"}), HTTPStatus.UNAUTHORIZED


def _is_success(status: int) -> bool:
    return 200 <= status < 300


def is_admin(token_data: Mapping[str, Any]) -> bool:
    return token_data.get("admin") is True


def require_token(*, admin: bool = False) -> Callable[[F], F]:
    """Reject requests whose bearer token the auth service does not accept."""

    def decorator(view: F) -> F:
        @wraps(view)
        def wrapped(*args: Any, **kwargs: Any):
            authorization = request.headers.get("Authorization")
            if not authorization:
                return _unauthorized()
            try:
                status, token_data = get_auth_client(current_app).validate(authorization)
            except AuthServiceError as exc:
                LOGGER.warning("Token validation unavailable: %s", exc)
                return _unauthorized()
            if not _is_success(status) or token_data is None:
                return _unauthorized()
            if admin and not is_admin(token_data):
                return _unauthorized()
            g.token_data = dict(token_data)
            return view(*args, **kwargs)

        return cast(F, wrapped)

    return decorator


def current_token_data() -> Mapping[str, Any]:
    return getattr(g, "token_data", None) or {}


def requester_from(token_data: Optional[Mapping[str, Any]]) -> str:
    """Name recorded on queued jobs: username, else email, else ``unknown``."""

    data = token_data or {}
    for key in ("username", "email"):
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    return "unknown"


__all__ = [
    "current_token_data",
    "get_auth_client",
    "is_admin",
    "requester_from",
    "require_token",
]
