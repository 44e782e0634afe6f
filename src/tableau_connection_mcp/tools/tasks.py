# Tableau Connection Manager MCP Server
# File: tools/tasks.py
# Version: v1
#
# NOTE: This module is the single place where we define "business logic"
# that is exposed as MCP tools.  The MCP transports (stdio / http) simply
# call `register_tools(server)` to wire these up.

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from copy import deepcopy
from dataclasses import replace
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from ..auth import PATAuthenticator, normalize_server_url
from ..config import TableauConfig
from ..credentials import CredentialStore
from ..errors import AuthenticationError
from ..grouping import find_group
from ..inventory import (
    ConnectionInventory,
    _COLLECTIONS,
    _nested_items,
    _parse_asset,
    _parse_connection,
    check_new_connection_fields,
)
from ..models import (
    DATASOURCE,
    WORKBOOK,
    Asset,
    Connection,
    SessionDescriptor,
    summarize_outcomes,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers (error shape, mock clients, client factory)
# ---------------------------------------------------------------------------


def _make_error(
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Small, LLM-friendly error shape used by diagnostics."""
    err: Dict[str, Any] = {"code": code, "message": message}
    if details:
        err["details"] = details
    return err


_MOCK_SERVER_URL = "https://mock.tableau.local"


class MockAuthenticator:
    """In-memory stand-in for PATAuthenticator (TABLEAU_MOCK_MODE)."""

    def __init__(self, config: Optional[TableauConfig] = None) -> None:
        self._config = config
        self.server_url = normalize_server_url(
            (config.server_url if config else None) or _MOCK_SERVER_URL
        )
        self.api_version = config.api_version if config else "3.21"
        self.signed_out: List[str] = []

    async def sign_in(
        self,
        token_name: str,
        token_secret: str,
        site_content_url: str = "",
    ) -> SessionDescriptor:
        if not token_name or not token_secret:
            raise AuthenticationError(
                "Tableau PAT authentication failed",
                status_code=401,
                body='{"error":{"code":"401001","summary":"Signin Error"}}',
            )
        return SessionDescriptor(
            server_url=self.server_url,
            api_version=self.api_version,
            token="mock-token",
            site_id=f"mock-site-{site_content_url or 'default'}",
            user_id="mock-user",
        )

    async def sign_out(self, session: SessionDescriptor) -> None:
        self.signed_out.append(session.site_id)


class MockConnectionInventory(ConnectionInventory):
    """ConnectionInventory backed by a small static site.

    Only the HTTP-level hooks are replaced; enumeration, grouping and the
    batch loop are the real implementations.  Updates mutate the in-memory
    payloads so a re-enumeration reflects them.
    """

    def __init__(self, config: Optional[TableauConfig] = None) -> None:
        super().__init__()
        self._config = config

        self._assets: Dict[str, List[Dict[str, Any]]] = {
            DATASOURCE: [
                {
                    "id": "ds-sales",
                    "name": "Sales Extract",
                    "contentUrl": "SalesExtract",
                    "type": "postgres",
                    "project": {"id": "p-1", "name": "Sales"},
                },
                {
                    "id": "ds-finance",
                    "name": "Finance Live",
                    "contentUrl": "FinanceLive",
                    "type": "postgres",
                    "project": {"id": "p-2", "name": "Finance"},
                },
                {
                    "id": "ds-marketing",
                    "name": "Marketing Warehouse",
                    "contentUrl": "MarketingWarehouse",
                    "type": "snowflake",
                    "project": {"id": "p-3", "name": "Marketing"},
                },
            ],
            WORKBOOK: [
                {
                    "id": "wb-exec",
                    "name": "Executive Dashboard",
                    "contentUrl": "ExecutiveDashboard",
                    "project": {"id": "p-1", "name": "Sales"},
                },
                {
                    "id": "wb-restricted",
                    "name": "Restricted Workbook",
                    "contentUrl": "RestrictedWorkbook",
                    "project": {"id": "p-2", "name": "Finance"},
                },
            ],
        }

        self._connections: Dict[Tuple[str, str], List[Dict[str, Any]]] = {
            (DATASOURCE, "ds-sales"): [
                {
                    "id": "c-sales-pg",
                    "type": "postgres",
                    "serverAddress": "pg.internal",
                    "serverPort": "5432",
                    "userName": "etl_user",
                },
            ],
            (DATASOURCE, "ds-finance"): [
                {
                    "id": "c-finance-pg",
                    "type": "postgres",
                    "serverAddress": "pg.internal",
                    "serverPort": "5432",
                    "userName": "etl_user",
                },
            ],
            (DATASOURCE, "ds-marketing"): [
                {
                    "id": "c-marketing-sf",
                    "type": "snowflake",
                    "serverAddress": "acme.snowflakecomputing.com",
                    "serverPort": "443",
                    "userName": "ANALYST",
                },
            ],
            (WORKBOOK, "wb-exec"): [
                {
                    "id": "c-exec-pg",
                    "type": "postgres",
                    "serverAddress": "pg.internal",
                    "serverPort": "5432",
                    "userName": "etl_user",
                },
                {
                    "id": "c-exec-hyper",
                    "type": "hyper",
                    "serverAddress": "",
                    "serverPort": "",
                    "userName": "",
                },
            ],
            # (WORKBOOK, "wb-restricted") is deliberately absent: its
            # connections query fails like a 403 would.
        }

        self.put_calls: List[Dict[str, Any]] = []

    async def _list_assets(
        self, session: SessionDescriptor, parent_type: str
    ) -> List[Asset]:
        _, wrapper_key, item_key = _COLLECTIONS[parent_type]
        payload = {wrapper_key: {item_key: deepcopy(self._assets[parent_type])}}
        return [
            _parse_asset(item, parent_type)
            for item in _nested_items(payload, wrapper_key, item_key)
        ]

    async def list_connections_for(
        self,
        session: SessionDescriptor,
        parent_type: str,
        parent_id: str,
    ) -> List[Connection]:
        items = self._connections.get((parent_type, parent_id))
        if items is None:
            logger.warning(
                "Warning: Failed to query connections for %s %s. Status: %s",
                parent_type,
                parent_id,
                403,
            )
            return []
        return [_parse_connection(dict(item)) for item in items]

    async def _put_connection(
        self,
        session: SessionDescriptor,
        parent_type: str,
        parent_id: str,
        connection_id: str,
        new_server_address: str,
        new_server_port: str,
        new_user_name: str,
        new_password: str,
    ) -> Optional[str]:
        self.put_calls.append(
            {
                "parent_type": parent_type,
                "parent_id": parent_id,
                "connection_id": connection_id,
            }
        )
        for item in self._connections.get((parent_type, parent_id), []):
            if item["id"] == connection_id:
                item.update(
                    serverAddress=new_server_address,
                    serverPort=new_server_port,
                    userName=new_user_name,
                )
                return None
        return f"HTTP 404: connection {connection_id} not found on {parent_id}"


def make_clients(
    cfg: Optional[TableauConfig] = None,
) -> Tuple[Any, Any]:
    """Create (authenticator, inventory) for the given (or env) configuration.

    If TABLEAU_MOCK_MODE is truthy, lightweight in-process mocks are
    returned instead of real HTTP clients.

    Tasks pass the configuration returned by `_resolve_pat`, so the server
    URL of saved credentials reaches the authenticator.  Tests replace this
    function with a one-argument fake.
    """
    cfg = cfg or TableauConfig.from_env()

    if cfg.mock_mode:
        return MockAuthenticator(config=cfg), MockConnectionInventory(config=cfg)

    return PATAuthenticator.from_config(cfg), ConnectionInventory.from_config(cfg)


PatTriple = Tuple[str, str, str]


def _resolve_pat(cfg: TableauConfig) -> Tuple[TableauConfig, PatTriple]:
    """Pick PAT name / secret / site from env, then the saved credential file.

    Saved credentials belong to the server they were saved for: the returned
    configuration points at that server, and a different TABLEAU_SERVER_URL
    makes the saved PAT unusable.
    """
    if cfg.has_pat:
        return cfg, (str(cfg.token_name), str(cfg.token_secret), cfg.site_content_url)

    saved = CredentialStore(cfg.credentials_file).load()
    if saved is not None:
        saved_url = normalize_server_url(saved.server_url)
        env_url = normalize_server_url(cfg.server_url)
        if env_url and saved_url and env_url != saved_url:
            raise RuntimeError(
                f"Saved credentials are for {saved_url}, not {env_url}. "
                "Set TABLEAU_PAT_NAME and TABLEAU_PAT_SECRET for this server, "
                "or save credentials for it with the terminal tool."
            )
        if saved_url:
            cfg = replace(cfg, server_url=saved_url)
        return cfg, (saved.token_name, saved.token_secret, saved.site_name)

    if cfg.mock_mode:
        return cfg, ("mock-pat", "mock-secret", cfg.site_content_url)

    raise RuntimeError(
        "No Personal Access Token configured. Set TABLEAU_PAT_NAME and "
        "TABLEAU_PAT_SECRET, or save credentials with the terminal tool."
    )


def _clients_for_task() -> Tuple[Any, Any, PatTriple]:
    """Resolve the PAT first so the clients target the matching server."""
    cfg, pat = _resolve_pat(TableauConfig.from_env())
    authenticator, inventory = make_clients(cfg)
    return authenticator, inventory, pat


@asynccontextmanager
async def _signed_in(authenticator: Any, pat: PatTriple) -> AsyncIterator[SessionDescriptor]:
    """Sign in for the duration of one task; sign-out failures are ignored."""
    token_name, token_secret, site = pat
    session = await authenticator.sign_in(token_name, token_secret, site)
    try:
        yield session
    finally:
        try:
            await authenticator.sign_out(session)
        except AuthenticationError as exc:
            logger.debug("Ignoring sign-out failure: %s", exc)


# ---------------------------------------------------------------------------
# Core async tasks (library-style)
# ---------------------------------------------------------------------------


async def ping() -> Dict[str, Any]:
    """Configuration-only health check; makes no network calls."""
    cfg = TableauConfig.from_env()
    server_url = normalize_server_url(cfg.server_url)
    ok = bool(cfg.mock_mode or (server_url and cfg.has_pat))
    return {
        "ok": ok,
        "mock_mode": bool(cfg.mock_mode),
        "server_url": server_url or None,
    }


async def list_connection_groups(include_members: bool = True) -> Dict[str, Any]:
    """Sign in, enumerate the site and return the connection groups."""
    authenticator, inventory, pat = _clients_for_task()

    async with _signed_in(authenticator, pat) as session:
        data_sources, workbooks = await inventory.enumerate(session)

    groups = inventory.group(data_sources, workbooks)
    items = [g.to_dict(include_members=include_members) for g in groups]

    return {
        "summary": (
            f"Found {len(items)} unique connections across "
            f"{len(data_sources)} data sources and {len(workbooks)} workbooks."
        ),
        "data": items,
        "meta": {
            "group_count": len(items),
            "data_source_count": len(data_sources),
            "workbook_count": len(workbooks),
            "connection_count": sum(g.total for g in groups),
            "site_id": session.site_id,
        },
    }


async def get_inventory() -> Dict[str, Any]:
    """Full enumeration result (assets with their connections)."""
    authenticator, inventory, pat = _clients_for_task()

    async with _signed_in(authenticator, pat) as session:
        snapshot = await inventory.build_inventory(session)

    return snapshot.to_dict()


async def update_connection_group(
    current_server_address: str,
    current_server_port: str,
    current_user_name: str,
    new_server_address: str,
    new_server_port: str,
    new_user_name: str,
    new_password: str,
    dry_run: bool = False,
) -> Dict[str, Any]:
    """Re-enumerate, find the group by its current triple and update it.

    The group is selected by key rather than display id because ids are
    reassigned on every enumeration.
    """
    check_new_connection_fields(
        new_server_address, new_server_port, new_user_name, new_password
    )

    authenticator, inventory, pat = _clients_for_task()

    async with _signed_in(authenticator, pat) as session:
        data_sources, workbooks = await inventory.enumerate(session)
        groups = inventory.group(data_sources, workbooks)

        group = find_group(
            groups,
            current_server_address or "",
            current_server_port or "",
            current_user_name or "",
        )
        if group is None:
            raise LookupError(
                "No connection group found for server "
                f"'{current_server_address}', port '{current_server_port}', "
                f"username '{current_user_name}'."
            )

        if dry_run:
            targets = [m.to_dict() for m in group.members]
            return {
                "summary": (
                    f"Dry run: would update {group.total} connection(s) "
                    f"({group.data_source_count} data sources, "
                    f"{group.workbook_count} workbooks)."
                ),
                "data": {"group": group.to_dict(), "targets": targets},
                "meta": {"dry_run": True, "total": group.total},
            }

        outcomes = await inventory.update_group(
            session,
            group,
            new_server_address,
            new_server_port,
            new_user_name,
            new_password,
        )

    counts = summarize_outcomes(outcomes)
    return {
        "summary": (
            f"Batch update complete: {counts['succeeded']} succeeded, "
            f"{counts['failed']} failed."
        ),
        "data": {
            "group": group.to_dict(include_members=False),
            "outcomes": [o.to_dict() for o in outcomes],
        },
        "meta": {"dry_run": False, **counts},
    }


# ---------------------------------------------------------------------------
# Diagnostics & site info helpers
# ---------------------------------------------------------------------------


def _collect_site_info() -> Dict[str, Any]:
    """Redacted snapshot of Tableau configuration from env."""
    cfg = TableauConfig.from_env()
    server_url = normalize_server_url(cfg.server_url) or None

    host = None
    if server_url:
        host = urlparse(server_url).hostname or server_url

    store = CredentialStore(cfg.credentials_file)

    return {
        "server_url": server_url,
        "host": host,
        "site_content_url": cfg.site_content_url,
        "api_version": cfg.api_version,
        "mock_mode": bool(cfg.mock_mode),
        "verify_tls": bool(cfg.verify_tls),
        "timeout_seconds": cfg.timeout_seconds,
        "pat": {
            "name_configured": bool(cfg.token_name),
            "secret_configured": bool(cfg.token_secret),
        },
        "credentials_file": {
            "path": str(store.path),
            "exists": store.path.is_file(),
        },
    }


async def get_site_info() -> Dict[str, Any]:
    return _collect_site_info()


def _elapsed_ms(t0: float) -> int:
    return int((time.time() - t0) * 1000)


async def diagnostics() -> Dict[str, Any]:
    """Run configuration, sign-in and enumeration checks, reported as data."""
    started = time.time()
    config_info = _collect_site_info()

    checks: List[Dict[str, Any]] = []

    def _result(ok: bool) -> Dict[str, Any]:
        return {
            "ok": ok,
            "mock_mode": config_info["mock_mode"],
            "config": config_info,
            "checks": checks,
            "meta": {"elapsed_ms": _elapsed_ms(started)},
        }

    # Client init
    t0 = time.time()
    try:
        authenticator, inventory, pat = _clients_for_task()
        checks.append({"name": "client_init", "ok": True, "error": None, "elapsed_ms": _elapsed_ms(t0)})
    except Exception as exc:
        checks.append(
            {
                "name": "client_init",
                "ok": False,
                "error": _make_error("CONFIG_ERROR", str(exc)),
                "elapsed_ms": _elapsed_ms(t0),
            }
        )
        return _result(False)

    # Sign in
    t0 = time.time()
    try:
        token_name, token_secret, site = pat
        session = await authenticator.sign_in(token_name, token_secret, site)
        checks.append({"name": "sign_in", "ok": True, "error": None, "elapsed_ms": _elapsed_ms(t0)})
    except Exception as exc:
        checks.append(
            {
                "name": "sign_in",
                "ok": False,
                "error": _make_error("AUTH_ERROR", str(exc)),
                "elapsed_ms": _elapsed_ms(t0),
            }
        )
        return _result(False)

    overall_ok = True

    # Enumerate + group
    t0 = time.time()
    try:
        data_sources, workbooks = await inventory.enumerate(session)
        groups = inventory.group(data_sources, workbooks)
        checks.append(
            {
                "name": "enumerate",
                "ok": True,
                "data_sources": len(data_sources),
                "workbooks": len(workbooks),
                "groups": len(groups),
                "error": None,
                "elapsed_ms": _elapsed_ms(t0),
            }
        )
    except Exception as exc:
        overall_ok = False
        checks.append(
            {
                "name": "enumerate",
                "ok": False,
                "error": _make_error("BACKEND_ERROR", str(exc)),
                "elapsed_ms": _elapsed_ms(t0),
            }
        )

    # Sign out
    t0 = time.time()
    try:
        await authenticator.sign_out(session)
        checks.append({"name": "sign_out", "ok": True, "error": None, "elapsed_ms": _elapsed_ms(t0)})
    except Exception as exc:
        overall_ok = False
        checks.append(
            {
                "name": "sign_out",
                "ok": False,
                "error": _make_error("AUTH_ERROR", str(exc)),
                "elapsed_ms": _elapsed_ms(t0),
            }
        )

    return _result(overall_ok)


# ---------------------------------------------------------------------------
# MCP tool registration
# ---------------------------------------------------------------------------


def register_tools(server: Any) -> None:
    """Register MCP tools on an MCP Server-like instance."""
    if server is None or not hasattr(server, "tool"):
        raise ValueError(
            "register_tools(server) expects an MCP Server-like object that exposes a .tool() decorator."
        )

    @server.tool(name="tableau_ping", description="Check that the Tableau connection manager is configured.")
    async def mcp_ping() -> Dict[str, Any]:
        return await ping()

    @server.tool(
        name="tableau_list_connection_groups",
        description=(
            "List unique database connections (server / port / username) across all "
            "data sources and workbooks on the Tableau site."
        ),
    )
    async def mcp_list_connection_groups(include_members: bool = True) -> Dict[str, Any]:
        return await list_connection_groups(include_members=include_members)

    @server.tool(
        name="tableau_get_inventory",
        description="Return every data source and workbook on the site with its embedded connections.",
    )
    async def mcp_get_inventory() -> Dict[str, Any]:
        return await get_inventory()

    @server.tool(
        name="tableau_update_connection_group",
        description=(
            "Push a new server address, port, username and password to every connection "
            "that currently uses the given server / port / username. Use dry_run to preview."
        ),
    )
    async def mcp_update_connection_group(
        current_server_address: str,
        current_server_port: str,
        current_user_name: str,
        new_server_address: str,
        new_server_port: str,
        new_user_name: str,
        new_password: str,
        dry_run: bool = False,
    ) -> Dict[str, Any]:
        return await update_connection_group(
            current_server_address=current_server_address,
            current_server_port=current_server_port,
            current_user_name=current_user_name,
            new_server_address=new_server_address,
            new_server_port=new_server_port,
            new_user_name=new_user_name,
            new_password=new_password,
            dry_run=dry_run,
        )

    @server.tool(
        name="tableau_diagnostics",
        description="Run sign-in and enumeration health checks against the Tableau site.",
    )
    async def mcp_diagnostics() -> Dict[str, Any]:
        return await diagnostics()

    @server.tool(
        name="tableau_get_site_info",
        description="Return redacted Tableau connection settings (no secrets).",
    )
    async def mcp_get_site_info() -> Dict[str, Any]:
        return await get_site_info()
