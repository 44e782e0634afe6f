# Tableau Connection Manager MCP Server
# File: tests/test_inventory.py
# Version: v1

from __future__ import annotations

import logging

import httpx
import pytest

from tableau_connection_mcp.errors import EnumerationError
from tableau_connection_mcp.inventory import (
    ConnectionInventory,
    check_new_connection_fields,
)
from tableau_connection_mcp.models import DATASOURCE, WORKBOOK

from conftest import SITE_PATH


def _inventory(fake) -> ConnectionInventory:
    return ConnectionInventory(transport=fake.transport)


def _site(fake) -> None:
    """Two data sources and one workbook; ds-b's connection listing is forbidden."""
    fake.add(
        "GET",
        f"{SITE_PATH}/datasources",
        json_body={
            "datasources": {
                "datasource": [
                    {
                        "id": "ds-a",
                        "name": "Alpha",
                        "contentUrl": "alpha",
                        "type": "postgres",
                        "project": {"name": "Finance"},
                    },
                    {"id": "ds-b", "name": "Beta"},
                ]
            }
        },
    )
    fake.add(
        "GET",
        f"{SITE_PATH}/datasources/ds-a/connections",
        json_body={
            "connections": {
                "connection": [
                    {
                        "id": "c1",
                        "type": "postgres",
                        "serverAddress": "db1",
                        "serverPort": 5432,
                        "userName": "svc",
                    }
                ]
            }
        },
    )
    fake.add("GET", f"{SITE_PATH}/datasources/ds-b/connections", status=403)
    fake.add(
        "GET",
        f"{SITE_PATH}/workbooks",
        json_body={"workbooks": {"workbook": {"id": "wb-1", "name": "Ops"}}},
    )
    fake.add(
        "GET",
        f"{SITE_PATH}/workbooks/wb-1/connections",
        json_body={
            "connections": {
                "connection": [
                    {"id": "c2", "serverAddress": "db1", "serverPort": "5432", "userName": "svc"},
                    {"id": "c3", "type": "hyper"},
                ]
            }
        },
    )


@pytest.mark.asyncio
async def test_list_data_sources_parses_assets(fake_tableau, session) -> None:
    _site(fake_tableau)

    assets = await _inventory(fake_tableau).list_data_sources(session)

    assert [a.id for a in assets] == ["ds-a", "ds-b"]
    assert assets[0].name == "Alpha"
    assert assets[0].type == "postgres"
    assert assets[0].project_name == "Finance"
    assert assets[0].connections == []

    (request,) = fake_tableau.requests
    assert request.headers["X-Tableau-Auth"] == "secret-token"
    assert request.headers["Accept"] == "application/json"


@pytest.mark.asyncio
async def test_missing_collection_key_means_no_items(fake_tableau, session) -> None:
    fake_tableau.add("GET", f"{SITE_PATH}/workbooks", json_body={"pagination": {}})

    assert await _inventory(fake_tableau).list_workbooks(session) == []


@pytest.mark.asyncio
async def test_list_failure_is_enumeration_error(fake_tableau, session) -> None:
    fake_tableau.add(
        "GET", f"{SITE_PATH}/datasources", status=500, text="upstream exploded"
    )

    with pytest.raises(EnumerationError) as excinfo:
        await _inventory(fake_tableau).list_data_sources(session)

    assert excinfo.value.status_code == 500
    assert excinfo.value.body == "upstream exploded"


@pytest.mark.asyncio
async def test_list_transport_error_is_enumeration_error(fake_tableau, session) -> None:
    def _boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    fake_tableau.add_handler("GET", f"{SITE_PATH}/workbooks", _boom)

    with pytest.raises(EnumerationError):
        await _inventory(fake_tableau).list_workbooks(session)


@pytest.mark.asyncio
async def test_list_connections_for_failure_is_empty_with_warning(
    fake_tableau, session, caplog
) -> None:
    _site(fake_tableau)

    with caplog.at_level(logging.WARNING):
        result = await _inventory(fake_tableau).list_connections_for(
            session, DATASOURCE, "ds-b"
        )

    assert result == []
    assert "ds-b" in caplog.text
    assert "403" in caplog.text


@pytest.mark.asyncio
async def test_list_connections_for_rejects_unknown_parent_type(
    fake_tableau, session
) -> None:
    with pytest.raises(ValueError, match="expected one of datasource, workbook"):
        await _inventory(fake_tableau).list_connections_for(session, "flow", "f-1")
    assert fake_tableau.requests == []


@pytest.mark.asyncio
async def test_enumerate_continues_past_failed_asset(fake_tableau, session) -> None:
    _site(fake_tableau)

    data_sources, workbooks = await _inventory(fake_tableau).enumerate(session)

    assert [a.id for a in data_sources] == ["ds-a", "ds-b"]
    assert [len(a.connections) for a in data_sources] == [1, 0]
    assert [len(a.connections) for a in workbooks] == [2]

    c1 = data_sources[0].connections[0]
    assert (c1.parent_id, c1.parent_type, c1.parent_name) == ("ds-a", DATASOURCE, "Alpha")
    assert c1.server_port == "5432"

    c3 = workbooks[0].connections[1]
    assert c3.key == ("", "", "")
    assert c3.parent_type == WORKBOOK

    # strictly sequential, data sources before workbooks
    assert fake_tableau.calls() == [
        ("GET", f"{SITE_PATH}/datasources"),
        ("GET", f"{SITE_PATH}/datasources/ds-a/connections"),
        ("GET", f"{SITE_PATH}/datasources/ds-b/connections"),
        ("GET", f"{SITE_PATH}/workbooks"),
        ("GET", f"{SITE_PATH}/workbooks/wb-1/connections"),
    ]


@pytest.mark.asyncio
async def test_enumerate_then_group(fake_tableau, session) -> None:
    _site(fake_tableau)
    inventory = _inventory(fake_tableau)

    groups = inventory.group(*await inventory.enumerate(session))

    assert [g.key for g in groups] == [("db1", "5432", "svc"), ("", "", "")]
    assert groups[0].data_source_count == 1
    assert groups[0].workbook_count == 1


@pytest.mark.asyncio
async def test_build_inventory_exports_camel_case(fake_tableau, session) -> None:
    _site(fake_tableau)

    inventory = await _inventory(fake_tableau).build_inventory(session)
    exported = inventory.to_dict()

    assert exported["siteId"] == "site-1"
    assert "enumeratedAt" in exported
    assert exported["dataSources"][0]["projectName"] == "Finance"
    assert exported["dataSources"][0]["connections"][0]["serverAddress"] == "db1"
    assert exported["workbooks"][0]["connections"][0]["parentName"] == "Ops"


def test_check_new_connection_fields() -> None:
    check_new_connection_fields("db2", "5432", "svc", "pw")

    with pytest.raises(ValueError, match="password"):
        check_new_connection_fields("db2", "5432", "svc", "")
    with pytest.raises(ValueError, match="server address, username"):
        check_new_connection_fields("  ", "5432", None, "pw")
