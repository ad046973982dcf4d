"""Gateway-side services."""
from __future__ import annotations

from .auth import current_token_data, get_auth_client, requester_from, require_token
from .auth_client import AuthClient, AuthServiceError
from .media_service import MediaService, get_media_service, init_media_service

__all__ = [
    "AuthClient",
    "AuthServiceError",
    "MediaService",
    "current_token_data",
    "get_auth_client",
    "get_media_service",
    "init_media_service",
    "requester_from",
    "require_token",
]
