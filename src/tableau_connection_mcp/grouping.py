# Tableau Connection Manager MCP Server
# File: grouping.py
# Version: v1

"""Group connections that share a server address, port and username.

Pure functions only: no I/O, deterministic for a given input order.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .models import Asset, ConnectionGroup, GroupKey


def group_connections(
    data_sources: Iterable[Asset],
    workbooks: Iterable[Asset],
) -> List[ConnectionGroup]:
    """Merge every connection into exactly one group keyed by its triple.

    Data-source connections are visited before workbook connections, each
    in asset-then-connection order, and display ids are handed out densely
    (1..N) in first-seen order.  The key is a tuple, so values containing
    any particular delimiter cannot collide.
    """
    groups: Dict[GroupKey, ConnectionGroup] = {}

    for assets in (data_sources, workbooks):
        for asset in assets:
            for conn in asset.connections:
                group = groups.get(conn.key)
                if group is None:
                    group = ConnectionGroup(
                        id=len(groups) + 1,
                        server_address=conn.server_address,
                        server_port=conn.server_port,
                        user_name=conn.user_name,
                    )
                    groups[conn.key] = group
                group.members.append(conn)

    return list(groups.values())


def find_group(
    groups: Iterable[ConnectionGroup],
    server_address: str,
    server_port: str,
    user_name: str,
) -> Optional[ConnectionGroup]:
    """Return the group whose key equals the given triple, if any."""
    key = (server_address, server_port, user_name)
    for group in groups:
        if group.key == key:
            return group
    return None


def find_group_by_id(
    groups: Iterable[ConnectionGroup],
    group_id: int,
) -> Optional[ConnectionGroup]:
    for group in groups:
        if group.id == group_id:
            return group
    return None
