# Tableau Connection Manager MCP Server
# File: auth.py
# Version: v1

"""Personal Access Token sign-in / sign-out against the Tableau REST API."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

import httpx
from httpx import RequestError

from .config import DEFAULT_API_VERSION, TableauConfig
from .errors import AuthenticationError, ProtocolError
from .models import SessionDescriptor

logger = logging.getLogger(__name__)

AUTH_HEADER = "X-Tableau-Auth"

_SITE_FRAGMENT = "/#/"
_API_SUFFIX = "/api"


def _normalize_once(url: str) -> str:
    url = url.strip().rstrip("/")

    # Browser URLs carry the site switcher as a fragment, e.g.
    # https://10ay.online.tableau.com/#/site/mysite
    marker = url.find(_SITE_FRAGMENT)
    if marker != -1:
        url = url[:marker].rstrip("/")

    if url.endswith(_API_SUFFIX):
        url = url[: -len(_API_SUFFIX)].rstrip("/")

    return url


def normalize_server_url(raw: Optional[str]) -> str:
    """Reduce a user-supplied Tableau URL to its bare server base.

    Trims whitespace and trailing slashes, cuts a pasted ``/#/...`` site
    fragment and drops a trailing ``/api``.  Applied until stable, so the
    function is idempotent.
    """
    url = raw or ""
    while True:
        cleaned = _normalize_once(url)
        if cleaned == url:
            return cleaned
        url = cleaned


@dataclass
class PATAuthenticator:
    """Signs in with a Personal Access Token and hands back a session.

    Holds no state beyond its connection settings: every successful
    ``sign_in`` returns a fresh ``SessionDescriptor`` owned by the caller.
    """

    server_url: str
    api_version: str = DEFAULT_API_VERSION
    timeout_seconds: float = 30.0
    verify_tls: bool = True

    # Injected by tests (httpx.MockTransport); None means real network.
    transport: Optional[httpx.AsyncBaseTransport] = None

    def __post_init__(self) -> None:
        self.server_url = normalize_server_url(self.server_url)
        if not self.server_url:
            raise ValueError("A Tableau server URL is required.")

    @classmethod
    def from_config(
        cls,
        config: TableauConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "PATAuthenticator":
        if not config.server_url:
            raise RuntimeError(
                "TABLEAU_SERVER_URL is not set. "
                "Please configure it before signing in."
            )
        return cls(
            server_url=config.server_url,
            api_version=config.api_version,
            timeout_seconds=float(config.timeout_seconds),
            verify_tls=config.verify_tls,
            transport=transport,
        )

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout_seconds,
            verify=self.verify_tls,
            transport=self.transport,
        )

    async def sign_in(
        self,
        token_name: str,
        token_secret: str,
        site_content_url: str = "",
    ) -> SessionDescriptor:
        """Exchange a PAT for an auth token on the given site.

        ``site_content_url`` is the human-facing site name; an empty string
        selects the Default site.
        """
        url = f"{self.server_url}/api/{self.api_version}/auth/signin"
        payload = {
            "credentials": {
                "personalAccessTokenName": token_name,
                "personalAccessTokenSecret": token_secret,
                "site": {"contentUrl": site_content_url or ""},
            }
        }
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

        async with self._http_client() as http_client:
            try:
                response = await http_client.post(url, json=payload, headers=headers)
            except RequestError as exc:
                raise AuthenticationError(
                    f"Error calling Tableau sign-in at '{url}': {exc}"
                ) from exc

        if not response.is_success:
            raise AuthenticationError(
                "Tableau PAT authentication failed",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            data: Any = response.json()
        except ValueError as exc:
            raise ProtocolError(
                "Malformed auth response: body is not JSON",
                status_code=response.status_code,
                body=response.text,
            ) from exc

        credentials: Dict[str, Any] = {}
        if isinstance(data, dict) and isinstance(data.get("credentials"), dict):
            credentials = data["credentials"]

        token = credentials.get("token")
        if not token:
            raise ProtocolError(
                "Malformed auth response: missing credentials token",
                status_code=response.status_code,
            )

        site = credentials.get("site") or {}
        user = credentials.get("user") or {}
        if not isinstance(site, dict) or not isinstance(user, dict):
            raise ProtocolError(
                "Malformed auth response: credentials site / user is not an object",
                status_code=response.status_code,
                body=response.text,
            )

        session = SessionDescriptor(
            server_url=self.server_url,
            api_version=self.api_version,
            token=str(token),
            site_id=str(site.get("id") or ""),
            user_id=str(user.get("id") or ""),
        )
        logger.info(
            "Signed in to %s (site id %s)", session.server_url, session.site_id
        )
        return session

    async def sign_out(self, session: SessionDescriptor) -> None:
        """Invalidate the session's token.

        Not idempotent: a second sign-out with the same token is expected
        to fail with ``AuthenticationError``.
        """
        url = f"{session.api_base}/auth/signout"
        headers = {
            AUTH_HEADER: session.token,
            "Accept": "application/json",
        }

        async with self._http_client() as http_client:
            try:
                response = await http_client.post(url, headers=headers)
            except RequestError as exc:
                raise AuthenticationError(
                    f"Error calling Tableau sign-out at '{url}': {exc}"
                ) from exc

        if not response.is_success:
            raise AuthenticationError(
                "Tableau sign out failed",
                status_code=response.status_code,
                body=response.text,
            )

        logger.info("Signed out from %s", session.server_url)
