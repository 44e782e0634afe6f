# Tableau Connection Manager MCP Server
# File: models.py
# Version: v1

"""Domain models used by the Tableau Connection Manager."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

DATASOURCE = "datasource"
WORKBOOK = "workbook"

PARENT_TYPES = (DATASOURCE, WORKBOOK)

GroupKey = Tuple[str, str, str]


@dataclass(frozen=True)
class SessionDescriptor:
    """Result of a successful PAT sign-in.

    Read-only for its whole lifetime; the token is left out of ``repr`` so
    the descriptor can be logged safely.
    """

    server_url: str
    api_version: str
    token: str = field(repr=False)
    site_id: str
    user_id: str

    @property
    def api_base(self) -> str:
        return f"{self.server_url}/api/{self.api_version}"

    @property
    def site_base(self) -> str:
        return f"{self.api_base}/sites/{self.site_id}"


@dataclass
class Connection:
    """One database connection embedded in a data source or workbook."""

    id: str
    type: str = ""
    server_address: str = ""
    server_port: str = ""
    user_name: str = ""

    # Parent linkage, attached during enumeration.
    parent_id: Optional[str] = None
    parent_type: Optional[str] = None
    parent_name: Optional[str] = None

    @property
    def key(self) -> GroupKey:
        return (self.server_address, self.server_port, self.user_name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "serverAddress": self.server_address,
            "serverPort": self.server_port,
            "userName": self.user_name,
            "parentId": self.parent_id,
            "parentType": self.parent_type,
            "parentName": self.parent_name,
        }


@dataclass
class Asset:
    """A data source or workbook together with its connections."""

    id: str
    name: str
    content_url: Optional[str] = None
    project_name: Optional[str] = None

    # Only data sources carry a type tag (e.g. "postgres").
    type: Optional[str] = None

    connections: List[Connection] = field(default_factory=list)

    # Raw JSON payload from the API, for debugging / advanced use.
    raw: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "contentUrl": self.content_url or "",
            "type": self.type or "",
            "projectName": self.project_name or "",
            "connections": [c.to_dict() for c in self.connections],
        }


@dataclass
class ConnectionGroup:
    """Connections sharing one (server address, port, username) triple."""

    id: int
    server_address: str
    server_port: str
    user_name: str
    members: List[Connection] = field(default_factory=list)

    @property
    def key(self) -> GroupKey:
        return (self.server_address, self.server_port, self.user_name)

    @property
    def data_source_count(self) -> int:
        return sum(1 for m in self.members if m.parent_type == DATASOURCE)

    @property
    def workbook_count(self) -> int:
        return sum(1 for m in self.members if m.parent_type == WORKBOOK)

    @property
    def total(self) -> int:
        return len(self.members)

    @property
    def affected_assets(self) -> List[str]:
        """Distinct parent names, in member order."""
        seen: Dict[str, None] = {}
        for m in self.members:
            if m.parent_name is not None:
                seen.setdefault(m.parent_name, None)
        return list(seen)

    @property
    def display_name(self) -> str:
        return f"{self.server_address}:{self.server_port} ({self.user_name})"

    def to_dict(self, include_members: bool = True) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "serverAddress": self.server_address,
            "serverPort": self.server_port,
            "userName": self.user_name,
            "totalConnections": self.total,
            "dataSourceCount": self.data_source_count,
            "workbookCount": self.workbook_count,
        }
        if include_members:
            out["members"] = [m.to_dict() for m in self.members]
        return out


@dataclass
class UpdateOutcome:
    """Result of updating a single connection during a batch."""

    parent_name: Optional[str]
    parent_type: Optional[str]
    success: bool
    error: Optional[str] = None

    parent_id: Optional[str] = None
    connection_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parentName": self.parent_name,
            "parentType": self.parent_type,
            "parentId": self.parent_id,
            "connectionId": self.connection_id,
            "success": self.success,
            "error": self.error,
        }


def summarize_outcomes(outcomes: List[UpdateOutcome]) -> Dict[str, int]:
    """Aggregate a batch into total / succeeded / failed counts."""
    succeeded = sum(1 for o in outcomes if o.success)
    return {
        "total": len(outcomes),
        "succeeded": succeeded,
        "failed": len(outcomes) - succeeded,
    }


@dataclass
class Inventory:
    """Snapshot of one enumeration pass, suitable for JSON export."""

    site_id: str
    enumerated_at: datetime
    data_sources: List[Asset]
    workbooks: List[Asset]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "siteId": self.site_id,
            "enumeratedAt": self.enumerated_at.isoformat(),
            "dataSources": [a.to_dict() for a in self.data_sources],
            "workbooks": [a.to_dict() for a in self.workbooks],
        }
