"""HTTP client for the external authentication service."""
from __future__ import annotations

import logging
from typing import Any, Mapping, MutableMapping, Optional, Tuple

import requests

LOGGER = logging.getLogger(__name__)


class AuthServiceError(RuntimeError):
    """Raised when the auth service cannot be reached."""


class AuthClient:
    """Thin wrapper around the auth service's register/login/validate API."""

    def __init__(self, base_url: str, *, timeout: float = 10.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = requests.Session()

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        auth: Optional[Tuple[str, str]] = None,
    ) -> requests.Response:
        url = self._url(path)
        try:
            return self._session.request(
                method,
                url,
                json=json,
                headers=headers,
                auth=auth,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            LOGGER.error("Auth service request failed: %s", exc)
            raise AuthServiceError("auth service unavailable") from exc

    @staticmethod
    def _json(response: requests.Response) -> Optional[MutableMapping[str, Any]]:
        try:
            payload = response.json()
        except ValueError:
            return None
        return payload if isinstance(payload, dict) else None

    def register(self, email: str, password: str) -> Tuple[int, Optional[MutableMapping[str, Any]]]:
        response = self._request("POST", "/api/register", json={"email": email, "password": password})
        return response.status_code, self._json(response)

    def login(self, email: str, password: str) -> Tuple[int, str]:
        """Exchange credentials (sent as HTTP Basic) for a token string."""

        response = self._request("POST", "/api/login", auth=(email, password))
        return response.status_code, response.text

    def validate(self, authorization: str) -> Tuple[int, Optional[MutableMapping[str, Any]]]:
        response = self._request("POST", "/api/validate", headers={"Authorization": authorization})
        return response.status_code, self._json(response)


__all__ = ["AuthClient", "AuthServiceError"]
