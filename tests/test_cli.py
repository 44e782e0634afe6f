# Tableau Connection Manager MCP Server
# File: tests/test_cli.py
# Version: v1

"""Tests for the interactive terminal flow, driven by scripted input."""

from __future__ import annotations

import asyncio
import json
from typing import Iterable, List

from tableau_connection_mcp import cli
from tableau_connection_mcp.credentials import CredentialStore
from tableau_connection_mcp.errors import AuthenticationError
from tableau_connection_mcp.models import (
    DATASOURCE,
    WORKBOOK,
    Connection,
    ConnectionGroup,
    UpdateOutcome,
)
from tableau_connection_mcp.tools import tasks

LOGIN = ["https://10ay.online.tableau.com/#/site/x", "pat", "secret"]


def _run(coro):
    return asyncio.run(coro)


def _scripted(answers: Iterable[str]):
    queue = list(answers)

    def _next(prompt: str) -> str:
        return queue.pop(0)

    return _next


def _mock_clients():
    return tasks.MockAuthenticator(), tasks.MockConnectionInventory()


def _cli(argv: List[str], answers: Iterable[str], secrets: Iterable[str] = (), clients=None):
    out: List[str] = []
    clients = clients or _mock_clients()
    code = _run(
        cli.run(
            cli.build_parser().parse_args(argv),
            input_fn=_scripted(answers),
            secret_fn=_scripted(secrets),
            out=out.append,
            clients=clients,
        )
    )
    return code, "\n".join(out), clients


# ---------------------------------------------------------------------------
# Presentation
# ---------------------------------------------------------------------------


def test_format_group_lists_members() -> None:
    group = ConnectionGroup(
        id=1,
        server_address="db1",
        server_port="5432",
        user_name="svc",
        members=[
            Connection(id="c1", parent_id="d1", parent_type=DATASOURCE, parent_name="Sales"),
            Connection(id="c2", parent_id="w1", parent_type=WORKBOOK, parent_name="Dash"),
        ],
    )

    text = cli.format_group(group)

    assert text.splitlines()[0] == "[1] Server: db1, Port: 5432, Username: svc"
    assert "Data Sources: 1, Workbooks: 1" in text
    assert "[DS] Sales (datasource)" in text
    assert "[WB] Dash (workbook)" in text


def test_format_summary_lists_failures_only() -> None:
    outcomes = [
        UpdateOutcome("Sales", DATASOURCE, True),
        UpdateOutcome("Dash", WORKBOOK, False, error="HTTP 403"),
    ]

    text = cli.format_summary(outcomes)

    assert "Successfully updated: 1" in text
    assert "Failed: 1" in text
    assert "x Dash (workbook): HTTP 403" in text
    assert "Sales" not in text


# ---------------------------------------------------------------------------
# Interactive flow
# ---------------------------------------------------------------------------


def test_full_rotation_flow(clean_env) -> None:
    code, output, (auth, inventory) = _cli(
        LOGIN,
        answers=["1", "pg2.internal", "6432", "etl_user", "y"],
        secrets=["rotated"],
    )

    assert code == cli.EXIT_OK
    assert "Authentication successful!" in output
    assert "[1] Server: pg.internal, Port: 5432, Username: etl_user" in output
    assert "This will update 3 connection(s) (2 data sources, 1 workbooks)" in output
    assert "Successfully updated: 3" in output
    assert len(inventory.put_calls) == 3
    assert auth.signed_out == ["mock-site-default"]


def test_quit_makes_no_changes(clean_env) -> None:
    code, output, (auth, inventory) = _cli(LOGIN, answers=["q"])

    assert code == cli.EXIT_OK
    assert "Exiting without making changes." in output
    assert inventory.put_calls == []
    assert auth.signed_out == ["mock-site-default"]


def test_invalid_selections(clean_env) -> None:
    code, output, _ = _cli(LOGIN, answers=["abc"])
    assert code == cli.EXIT_ERROR
    assert "Invalid selection." in output

    code, output, _ = _cli(LOGIN, answers=["9"])
    assert code == cli.EXIT_ERROR
    assert "Invalid ID." in output


def test_blank_new_field_aborts(clean_env) -> None:
    code, output, (_, inventory) = _cli(
        LOGIN, answers=["2", "", "443", "ANALYST"], secrets=["pw"]
    )

    assert code == cli.EXIT_ERROR
    assert "server address" in output
    assert inventory.put_calls == []


def test_declining_confirmation_cancels(clean_env) -> None:
    code, output, (_, inventory) = _cli(
        LOGIN, answers=["2", "sf2", "443", "ANALYST", "n"], secrets=["pw"]
    )

    assert code == cli.EXIT_OK
    assert "Update cancelled." in output
    assert inventory.put_calls == []


def test_partial_failure_exit_code(clean_env, monkeypatch) -> None:
    auth, inventory = _mock_clients()

    async def _forbidden(*args):
        return "HTTP 403: Forbidden"

    monkeypatch.setattr(inventory, "_put_connection", _forbidden)

    code, output, _ = _cli(
        LOGIN,
        answers=["2", "sf2", "443", "ANALYST", "y"],
        secrets=["pw"],
        clients=(auth, inventory),
    )

    assert code == cli.EXIT_PARTIAL
    assert "Failed: 1" in output
    assert "Marketing Warehouse (datasource): HTTP 403: Forbidden" in output


def test_sign_in_failure_is_reported(clean_env) -> None:
    class _Rejecting(tasks.MockAuthenticator):
        async def sign_in(self, token_name, token_secret, site_content_url=""):
            raise AuthenticationError("Tableau PAT authentication failed", status_code=401)

    auth = _Rejecting()
    code, output, _ = _cli(LOGIN, answers=[], clients=(auth, tasks.MockConnectionInventory()))

    assert code == cli.EXIT_ERROR
    assert "Error: Tableau PAT authentication failed (HTTP 401)" in output
    assert auth.signed_out == []


def test_prompted_login_requires_secret(clean_env) -> None:
    code, output, _ = _cli([], answers=["https://host", "pat", ""], secrets=[""])

    assert code == cli.EXIT_ERROR
    assert "ABOUT THIS TOOL" in output
    assert "required" in output


def test_export_inventory(clean_env, tmp_path) -> None:
    target = tmp_path / "inventory.json"

    code, _, _ = _cli(LOGIN + ["--export-inventory", str(target)], answers=["q"])

    assert code == cli.EXIT_OK
    exported = json.loads(target.read_text(encoding="utf-8"))
    assert exported["siteId"] == "mock-site-default"
    assert len(exported["dataSources"]) == 3


def test_export_to_unwritable_path_is_reported(clean_env, tmp_path) -> None:
    target = tmp_path / "missing-dir" / "inventory.json"

    code, output, (auth, inventory) = _cli(
        LOGIN + ["--export-inventory", str(target)], answers=[]
    )

    assert code == cli.EXIT_ERROR
    assert "Error: could not write inventory to" in output
    assert not target.exists()
    assert inventory.put_calls == []
    assert auth.signed_out == ["mock-site-default"]


def test_save_and_reuse_credentials(clean_env) -> None:
    code, output, _ = _cli(LOGIN + ["finance", "--save-credentials"], answers=["q"])
    assert code == cli.EXIT_OK
    assert "Credentials saved to" in output

    saved = CredentialStore(clean_env / "credentials.json").load()
    assert saved.site_name == "finance"

    code, output, (auth, _) = _cli(["--use-saved"], answers=["q"])
    assert code == cli.EXIT_OK
    assert "Using saved credentials" in output
    assert auth.signed_out == ["mock-site-finance"]


def test_forget_credentials(clean_env) -> None:
    store = CredentialStore(clean_env / "credentials.json")
    store.save("https://host", "pat", "secret")

    code, output, _ = _cli(["--forget-credentials"], answers=[])

    assert code == cli.EXIT_OK
    assert "Saved credentials cleared." in output
    assert store.load() is None
