# Tableau Connection Manager MCP Server
# File: inventory.py
# Version: v1
"""Connection inventory for a Tableau site.

Implements:

- list_data_sources() / list_workbooks() via the site-scoped collections
- list_connections_for() via the per-asset connections endpoint
- enumerate() to walk both collections and attach parent linkage
- group() to merge connections sharing server / port / username
- update_connection() / update_group() to push new credentials

All requests are issued strictly one after another.  Failures listing the
parent collections are fatal (EnumerationError); failures on a single
asset or a single connection are logged and recovered locally.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
import logging

import httpx
from httpx import RequestError

from .auth import AUTH_HEADER
from .config import TableauConfig
from .errors import EnumerationError, redact_body
from .grouping import group_connections
from .models import (
    DATASOURCE,
    PARENT_TYPES,
    WORKBOOK,
    Asset,
    Connection,
    ConnectionGroup,
    Inventory,
    SessionDescriptor,
    UpdateOutcome,
)

logger = logging.getLogger(__name__)

# parent type -> (collection path segment, JSON wrapper key, JSON item key)
_COLLECTIONS: Dict[str, Tuple[str, str, str]] = {
    DATASOURCE: ("datasources", "datasources", "datasource"),
    WORKBOOK: ("workbooks", "workbooks", "workbook"),
}

_LABELS = {DATASOURCE: "data source", WORKBOOK: "workbook"}


def _text(value: Any) -> str:
    """Upstream fields may be missing, null or numeric (ports)."""
    if value is None:
        return ""
    return str(value)


def _nested_items(data: Any, wrapper_key: str, item_key: str) -> List[Dict[str, Any]]:
    """Extract ``data[wrapper_key][item_key]`` as a list of dicts.

    A missing wrapper or item key means zero items.  A single object in
    place of a list is accepted as a one-element list.
    """
    if not isinstance(data, dict):
        return []
    wrapper = data.get(wrapper_key)
    if not isinstance(wrapper, dict):
        return []
    items = wrapper.get(item_key)
    if isinstance(items, dict):
        items = [items]
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


def _parse_asset(item: Dict[str, Any], parent_type: str) -> Asset:
    project = item.get("project")
    project_name = project.get("name") if isinstance(project, dict) else None
    return Asset(
        id=_text(item.get("id")),
        name=_text(item.get("name")),
        content_url=item.get("contentUrl"),
        project_name=project_name,
        type=item.get("type") if parent_type == DATASOURCE else None,
        raw=item,
    )


def _parse_connection(item: Dict[str, Any]) -> Connection:
    return Connection(
        id=_text(item.get("id")),
        type=_text(item.get("type")),
        server_address=_text(item.get("serverAddress")),
        server_port=_text(item.get("serverPort")),
        user_name=_text(item.get("userName")),
    )


def _check_parent_type(parent_type: str) -> Tuple[str, str, str]:
    try:
        return _COLLECTIONS[parent_type]
    except KeyError:
        raise ValueError(
            f"Unknown parent type {parent_type!r}; expected one of "
            f"{', '.join(PARENT_TYPES)}."
        ) from None


def check_new_connection_fields(
    server_address: Optional[str],
    server_port: Optional[str],
    user_name: Optional[str],
    password: Optional[str],
) -> None:
    """Reject a batch update request with any blank field."""
    missing = [
        name
        for name, value in (
            ("server address", server_address),
            ("server port", server_port),
            ("username", user_name),
            ("password", password),
        )
        if value is None or not str(value).strip()
    ]
    if missing:
        raise ValueError(f"New {', '.join(missing)} required.")


@dataclass
class ConnectionInventory:
    """Enumerates, groups and updates embedded connections on a site.

    Stateless apart from connection settings: every call takes the
    caller's ``SessionDescriptor`` and nothing is cached between calls.
    """

    timeout_seconds: float = 30.0
    verify_tls: bool = True

    # Injected by tests (httpx.MockTransport); None means real network.
    transport: Optional[httpx.AsyncBaseTransport] = None

    @classmethod
    def from_config(
        cls,
        config: TableauConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ConnectionInventory":
        return cls(
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

    @staticmethod
    def _headers(session: SessionDescriptor, write: bool = False) -> Dict[str, str]:
        headers = {
            AUTH_HEADER: session.token,
            "Accept": "application/json",
        }
        if write:
            headers["Content-Type"] = "application/json"
        return headers

    # ------------------------------------------------------------------
    # Parent collections
    # ------------------------------------------------------------------

    async def _list_assets(
        self, session: SessionDescriptor, parent_type: str
    ) -> List[Asset]:
        path, wrapper_key, item_key = _COLLECTIONS[parent_type]
        label = _LABELS[parent_type]
        url = f"{session.site_base}/{path}"

        async with self._http_client() as http_client:
            try:
                response = await http_client.get(url, headers=self._headers(session))
            except RequestError as exc:
                raise EnumerationError(
                    f"Error calling Tableau API at '{url}': {exc}"
                ) from exc

        if not response.is_success:
            raise EnumerationError(
                f"Failed to query {label}s from '{url}'",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise EnumerationError(
                f"Unexpected non-JSON response listing {label}s from '{url}'",
                status_code=response.status_code,
                body=response.text,
            ) from exc

        assets = [
            _parse_asset(item, parent_type)
            for item in _nested_items(data, wrapper_key, item_key)
        ]
        logger.info("Found %d %ss on the site.", len(assets), label)
        return assets

    async def list_data_sources(self, session: SessionDescriptor) -> List[Asset]:
        """List every data source on the signed-in site (no connections yet)."""
        return await self._list_assets(session, DATASOURCE)

    async def list_workbooks(self, session: SessionDescriptor) -> List[Asset]:
        """List every workbook on the signed-in site (no connections yet)."""
        return await self._list_assets(session, WORKBOOK)

    # ------------------------------------------------------------------
    # Per-asset connections
    # ------------------------------------------------------------------

    async def list_connections_for(
        self,
        session: SessionDescriptor,
        parent_type: str,
        parent_id: str,
    ) -> List[Connection]:
        """Fetch the connections of one data source or workbook.

        Best-effort: any failure (status, transport or body) is logged as a
        warning and yields an empty list so the remaining assets can still
        be enumerated.
        """
        path, _, _ = _check_parent_type(parent_type)
        label = _LABELS[parent_type]
        url = f"{session.site_base}/{path}/{parent_id}/connections"

        async with self._http_client() as http_client:
            try:
                response = await http_client.get(url, headers=self._headers(session))
            except RequestError as exc:
                logger.warning(
                    "Warning: Failed to query connections for %s %s: %s",
                    label,
                    parent_id,
                    exc,
                )
                return []

        if not response.is_success:
            logger.warning(
                "Warning: Failed to query connections for %s %s. Status: %s",
                label,
                parent_id,
                response.status_code,
            )
            return []

        try:
            data = response.json()
        except ValueError:
            logger.warning(
                "Warning: Malformed connections response for %s %s: %s",
                label,
                parent_id,
                redact_body(response.text)[:200],
            )
            return []

        return [
            _parse_connection(item)
            for item in _nested_items(data, "connections", "connection")
        ]

    async def _attach_connections(
        self,
        session: SessionDescriptor,
        assets: List[Asset],
        parent_type: str,
    ) -> None:
        label = _LABELS[parent_type]
        for asset in assets:
            logger.info(
                "Querying connections for %s: %s (ID: %s)", label, asset.name, asset.id
            )
            connections = await self.list_connections_for(session, parent_type, asset.id)
            for conn in connections:
                conn.parent_id = asset.id
                conn.parent_type = parent_type
                conn.parent_name = asset.name
            asset.connections = connections

    async def enumerate(
        self, session: SessionDescriptor
    ) -> Tuple[List[Asset], List[Asset]]:
        """Return (data sources, workbooks), each with linked connections.

        Upstream asset order and per-asset connection order are preserved.
        Connections are fetched one asset at a time.
        """
        data_sources = await self.list_data_sources(session)
        await self._attach_connections(session, data_sources, DATASOURCE)

        workbooks = await self.list_workbooks(session)
        await self._attach_connections(session, workbooks, WORKBOOK)

        return data_sources, workbooks

    async def build_inventory(self, session: SessionDescriptor) -> Inventory:
        """Enumerate and wrap the result with site id and timestamp."""
        data_sources, workbooks = await self.enumerate(session)
        return Inventory(
            site_id=session.site_id,
            enumerated_at=datetime.now(timezone.utc),
            data_sources=data_sources,
            workbooks=workbooks,
        )

    @staticmethod
    def group(
        data_sources: List[Asset], workbooks: List[Asset]
    ) -> List[ConnectionGroup]:
        return group_connections(data_sources, workbooks)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

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
        """Issue one connection PUT.  Returns None on success, else an error."""
        if parent_type not in PARENT_TYPES:
            return f"Unknown parent type {parent_type!r}"

        path, _, _ = _COLLECTIONS[parent_type]
        label = _LABELS[parent_type]
        url = f"{session.site_base}/{path}/{parent_id}/connections/{connection_id}"
        payload = {
            "connection": {
                "serverAddress": new_server_address,
                "serverPort": new_server_port,
                "userName": new_user_name,
                "password": new_password,
            }
        }

        async with self._http_client() as http_client:
            try:
                response = await http_client.put(
                    url, json=payload, headers=self._headers(session, write=True)
                )
            except RequestError as exc:
                logger.warning(
                    "Failed to update %s connection %s on %s: %s",
                    label,
                    connection_id,
                    parent_id,
                    exc,
                )
                return f"Request error: {exc}"

        if not response.is_success:
            snippet = redact_body(response.text)[:500]
            logger.warning(
                "Failed to update %s connection %s on %s. Status: %s",
                label,
                connection_id,
                parent_id,
                response.status_code,
            )
            if snippet:
                return f"HTTP {response.status_code}: {snippet}"
            return f"HTTP {response.status_code}"

        logger.info("Updated %s connection %s on %s.", label, connection_id, parent_id)
        return None

    async def update_connection(
        self,
        session: SessionDescriptor,
        parent_type: str,
        parent_id: str,
        connection_id: str,
        new_server_address: str,
        new_server_port: str,
        new_user_name: str,
        new_password: str,
    ) -> bool:
        """Update one connection; failures are logged and return False."""
        error = await self._put_connection(
            session,
            parent_type,
            parent_id,
            connection_id,
            new_server_address,
            new_server_port,
            new_user_name,
            new_password,
        )
        return error is None

    async def update_group(
        self,
        session: SessionDescriptor,
        group: ConnectionGroup,
        new_server_address: str,
        new_server_port: str,
        new_user_name: str,
        new_password: str,
    ) -> List[UpdateOutcome]:
        """Push new credentials to every member of ``group``, in order.

        Every member is attempted regardless of earlier failures, and one
        outcome is recorded per member before the next PUT starts.
        """
        outcomes: List[UpdateOutcome] = []
        for member in group.members:
            error = await self._put_connection(
                session,
                member.parent_type or "",
                member.parent_id or "",
                member.id,
                new_server_address,
                new_server_port,
                new_user_name,
                new_password,
            )
            outcomes.append(
                UpdateOutcome(
                    parent_name=member.parent_name,
                    parent_type=member.parent_type,
                    success=error is None,
                    error=error,
                    parent_id=member.parent_id,
                    connection_id=member.id,
                )
            )

        succeeded = sum(1 for o in outcomes if o.success)
        logger.info(
            "Batch update of group %d complete: %d succeeded, %d failed.",
            group.id,
            succeeded,
            len(outcomes) - succeeded,
        )
        return outcomes
