from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

try:
    import streamlit as st
except ImportError:  # pragma: no cover - streamlit not available during some tests
    st = None


logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:8000"
DEFAULT_TOKEN_FILE = "~/.admin_console/token"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_ADMIN_NAME = "Admin"
DEFAULT_TICKETS_URL = "/admin/tickets"


class ApiConfigError(RuntimeError):
    """Raised when the admin API configuration is missing or invalid."""


class ApiError(RuntimeError):
    """Raised when a request to the admin API fails."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _api_secrets() -> Dict[str, Any]:
    if st is None:
        return {}
    try:
        return dict(st.secrets.get("admin_api", {}))
    except Exception:
        return {}


def _config_value(env_key: str, secret_key: str, default: Optional[str] = None) -> Optional[str]:
    secrets = _api_secrets()
    if secret_key in secrets and secrets[secret_key]:
        return str(secrets[secret_key])

    value = os.getenv(env_key)
    if value:
        return value

    return default


def get_api_url() -> str:
    return _config_value("ADMIN_API_URL", "url", DEFAULT_API_URL).rstrip("/")


def get_timeout() -> float:
    raw = _config_value("ADMIN_API_TIMEOUT", "timeout", str(DEFAULT_TIMEOUT_SECONDS))
    try:
        timeout = float(raw)
    except ValueError as exc:
        raise ApiConfigError(
            f"Invalid API timeout {raw!r}. Set ADMIN_API_TIMEOUT or st.secrets['admin_api']['timeout'] to a number of seconds."
        ) from exc
    if timeout <= 0:
        raise ApiConfigError("API timeout must be positive.")
    return timeout


def get_token_path() -> Path:
    return Path(_config_value("ADMIN_API_TOKEN_FILE", "token_file", DEFAULT_TOKEN_FILE)).expanduser()


def get_admin_name() -> str:
    return _config_value("ADMIN_DISPLAY_NAME", "admin_name", DEFAULT_ADMIN_NAME)


def get_tickets_url() -> str:
    return _config_value("ADMIN_TICKETS_URL", "tickets_url", DEFAULT_TICKETS_URL)


def read_token() -> Optional[str]:
    """Read the bearer token, preferring the persisted token file."""

    path = get_token_path()
    try:
        token = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        token = ""
    except OSError as exc:
        logger.warning("Could not read token file %s: %s", path, exc)
        token = ""

    if token:
        return token
    return _config_value("ADMIN_API_TOKEN", "token")


class AdminApiClient:
    """Thin wrapper over the admin REST API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        token_provider=read_token,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.token_provider = token_provider
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        # Token is re-read on every request so a refreshed login is picked up.
        token = self.token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        else:
            logger.warning("No API token available; sending unauthenticated request")
        return headers

    def _request(self, method: str, endpoint: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{endpoint}"
        try:
            response = self.session.request(
                method,
                url,
                headers=self._headers(),
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ApiError(f"{method} {endpoint} failed: {exc}") from exc

        if not response.ok:
            try:
                detail = response.json()
            except ValueError:
                detail = response.text
            logger.error("API error response from %s %s: %s", method, endpoint, detail)
            raise ApiError(
                f"API request failed: {response.status_code}",
                status_code=response.status_code,
            )

        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(f"{method} {endpoint} returned invalid JSON") from exc

    def list_users(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/users") or []

    def list_support_tickets(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/support-tickets") or []

    def update_support_ticket(self, ticket_id: int, body: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/api/support-tickets/{ticket_id}", body)


@lru_cache(maxsize=1)
def get_client() -> AdminApiClient:
    """Initialise and cache the API client."""

    return AdminApiClient(get_api_url(), timeout=get_timeout())
