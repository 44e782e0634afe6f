# Tableau Connection Manager MCP Server
# File: tests/conftest.py
# Version: v1

"""Shared fixtures: a scripted fake Tableau REST API behind httpx.MockTransport."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest

from tableau_connection_mcp.models import SessionDescriptor

SERVER = "https://tableau.example.com"
API = "3.21"
SITE = "site-1"
SITE_PATH = f"/api/{API}/sites/{SITE}"

Handler = Callable[[httpx.Request], httpx.Response]
Route = Union[httpx.Response, Handler]


class FakeTableau:
    """Route table keyed by (method, path); records every request in order."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Route] = {}
        self.requests: List[httpx.Request] = []

    def add(
        self,
        method: str,
        path: str,
        status: int = 200,
        json_body: Any = None,
        text: Optional[str] = None,
    ) -> None:
        if text is not None:
            self.routes[(method, path)] = httpx.Response(status, text=text)
        elif json_body is not None:
            self.routes[(method, path)] = httpx.Response(status, json=json_body)
        else:
            self.routes[(method, path)] = httpx.Response(status)

    def add_handler(self, method: str, path: str, handler: Handler) -> None:
        self.routes[(method, path)] = handler

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(
                404, json={"error": {"code": "404000", "summary": "Not Found"}}
            )
        if callable(route):
            return route(request)
        return route

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: Optional[str] = None) -> List[Tuple[str, str]]:
        return [
            (r.method, r.url.path)
            for r in self.requests
            if method is None or r.method == method
        ]

    @staticmethod
    def body(request: httpx.Request) -> Dict[str, Any]:
        return json.loads(request.content)


@pytest.fixture
def fake_tableau() -> FakeTableau:
    return FakeTableau()


@pytest.fixture
def session() -> SessionDescriptor:
    return SessionDescriptor(
        server_url=SERVER,
        api_version=API,
        token="secret-token",
        site_id=SITE,
        user_id="user-1",
    )


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Strip TABLEAU_* settings and point the credential file into tmp_path."""
    for name in (
        "TABLEAU_SERVER_URL",
        "TABLEAU_PAT_NAME",
        "TABLEAU_PAT_SECRET",
        "TABLEAU_SITE_CONTENT_URL",
        "TABLEAU_API_VERSION",
        "TABLEAU_MOCK_MODE",
        "TABLEAU_VERIFY_TLS",
        "TABLEAU_TIMEOUT_SECONDS",
        "TABLEAU_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TABLEAU_CREDENTIALS_FILE", str(tmp_path / "credentials.json"))
    return tmp_path


@pytest.fixture
def mock_env(clean_env, monkeypatch):
    monkeypatch.setenv("TABLEAU_MOCK_MODE", "1")
    return clean_env
