# Tableau Connection Manager MCP Server
# File: config.py
# Version: v1

"""Configuration loading for the Tableau Connection Manager."""

from __future__ import annotations

from dataclasses import dataclass
import os

DEFAULT_API_VERSION = "3.21"


def _parse_bool_env(name: str, default: bool = False) -> bool:
    """Parse a boolean-like environment variable.

    Accepts 1/0, true/false, yes/no, on/off (case-insensitive).
    """
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def _parse_int_env(
    name: str,
    default: int,
    min_value: int | None = None,
    max_value: int | None = None,
) -> int:
    """Parse an int environment variable with clamping and safe fallback."""
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        value = int(default)
    else:
        try:
            value = int(str(raw).strip())
        except ValueError:
            value = int(default)

    if min_value is not None and value < min_value:
        value = min_value
    if max_value is not None and value > max_value:
        value = max_value

    return value


@dataclass
class TableauConfig:
    """Configuration values required to talk to Tableau Cloud / Server.

    The PAT fields are optional here: the terminal tool collects them
    interactively, while the MCP tools read them from the environment
    (or from the saved credential file).
    """

    server_url: str | None
    token_name: str | None
    token_secret: str | None
    site_content_url: str = ""
    api_version: str = DEFAULT_API_VERSION
    mock_mode: bool = False

    verify_tls: bool = True
    timeout_seconds: int = 30

    # None means "use the platform default location".
    credentials_file: str | None = None

    log_level: str = "INFO"

    # Streamable-HTTP MCP transport
    http_host: str = "127.0.0.1"
    http_port: int = 8000

    @property
    def has_pat(self) -> bool:
        return bool(self.token_name and self.token_secret)

    @classmethod
    def from_env(cls) -> "TableauConfig":
        """Create configuration from environment variables."""
        server_url = os.getenv("TABLEAU_SERVER_URL")
        token_name = os.getenv("TABLEAU_PAT_NAME")
        token_secret = os.getenv("TABLEAU_PAT_SECRET")
        site_content_url = os.getenv("TABLEAU_SITE_CONTENT_URL") or ""
        api_version = (
            os.getenv("TABLEAU_API_VERSION") or DEFAULT_API_VERSION
        ).strip()

        mock_mode = _parse_bool_env("TABLEAU_MOCK_MODE", default=False)
        verify_tls = _parse_bool_env("TABLEAU_VERIFY_TLS", default=True)

        timeout_seconds = _parse_int_env(
            "TABLEAU_TIMEOUT_SECONDS", default=30, min_value=1, max_value=600
        )

        credentials_file = os.getenv("TABLEAU_CREDENTIALS_FILE") or None
        log_level = (os.getenv("TABLEAU_LOG_LEVEL") or "INFO").strip().upper()

        http_host = os.getenv("TABLEAU_MCP_HOST") or "127.0.0.1"
        http_port = _parse_int_env(
            "TABLEAU_MCP_PORT", default=8000, min_value=1, max_value=65535
        )

        return cls(
            server_url=server_url,
            token_name=token_name,
            token_secret=token_secret,
            site_content_url=site_content_url,
            api_version=api_version,
            mock_mode=mock_mode,
            verify_tls=verify_tls,
            timeout_seconds=timeout_seconds,
            credentials_file=credentials_file,
            log_level=log_level,
            http_host=http_host,
            http_port=http_port,
        )
