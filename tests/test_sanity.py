# Tableau Connection Manager MCP Server
# File: tests/test_sanity.py
# Version: v1

"""Basic sanity tests for configuration and the client factory."""

import asyncio

import tableau_connection_mcp
from tableau_connection_mcp.auth import PATAuthenticator
from tableau_connection_mcp.config import TableauConfig
from tableau_connection_mcp.inventory import ConnectionInventory
from tableau_connection_mcp.tools import tasks
from tableau_connection_mcp.transports.stdio_server import SERVER_NAME, build_server


def test_version_is_a_string() -> None:
    assert isinstance(tableau_connection_mcp.__version__, str)


def test_config_from_env_minimal(clean_env) -> None:
    config = TableauConfig.from_env()
    assert config.server_url is None
    assert config.api_version == "3.21"
    assert config.site_content_url == ""
    assert config.mock_mode is False
    assert config.has_pat is False


def test_config_from_env_parses_and_clamps(clean_env, monkeypatch) -> None:
    monkeypatch.setenv("TABLEAU_SERVER_URL", "https://10ay.online.tableau.com")
    monkeypatch.setenv("TABLEAU_PAT_NAME", "rotation")
    monkeypatch.setenv("TABLEAU_PAT_SECRET", "s3cr3t")
    monkeypatch.setenv("TABLEAU_API_VERSION", "3.24")
    monkeypatch.setenv("TABLEAU_VERIFY_TLS", "off")
    monkeypatch.setenv("TABLEAU_TIMEOUT_SECONDS", "100000")

    config = TableauConfig.from_env()
    assert config.has_pat is True
    assert config.api_version == "3.24"
    assert config.verify_tls is False
    assert config.timeout_seconds == 600


def test_make_clients_real(clean_env, monkeypatch) -> None:
    monkeypatch.setenv("TABLEAU_SERVER_URL", "https://host/#/site/x")
    authenticator, inventory = tasks.make_clients()
    assert isinstance(authenticator, PATAuthenticator)
    assert authenticator.server_url == "https://host"
    assert isinstance(inventory, ConnectionInventory)


def test_make_clients_mock(mock_env) -> None:
    authenticator, inventory = tasks.make_clients()
    assert isinstance(authenticator, tasks.MockAuthenticator)
    assert isinstance(inventory, tasks.MockConnectionInventory)


def test_build_server_registers_tools(mock_env) -> None:
    server = build_server()
    assert server.name == SERVER_NAME

    names = sorted(t.name for t in asyncio.run(server.list_tools()))
    assert "tableau_list_connection_groups" in names
    assert "tableau_update_connection_group" in names


def test_http_server_settings_and_streamable_app(mock_env) -> None:
    server = build_server(host="127.0.0.1", port=8765)

    assert server.settings.port == 8765
    assert server.streamable_http_app() is not None
