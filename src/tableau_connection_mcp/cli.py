# Tableau Connection Manager MCP Server
# File: cli.py
# Version: v1

"""Interactive terminal front-end: ``tableau-connection-manager``.

Signs in with a PAT, lists unique connections across data sources and
workbooks, lets the operator pick one group and pushes new credentials
to every member of it.

    tableau-connection-manager <server_url> <token_name> <token_secret> [site_name]

With no positional arguments the tool prompts for everything (the PAT
secret and the new password are read without echo).
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import logging
import sys
from dataclasses import replace
from typing import Any, Callable, List, Optional, Sequence, Tuple

from . import __version__
from .config import TableauConfig
from .credentials import CredentialStore
from .errors import AuthenticationError, TableauClientError
from .grouping import find_group_by_id
from .inventory import check_new_connection_fields
from .models import DATASOURCE, ConnectionGroup, UpdateOutcome, summarize_outcomes
from .tools import tasks

logger = logging.getLogger(__name__)

RULE = "=" * 80

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_PARTIAL = 2

_INTRO = """\
ABOUT THIS TOOL
--------------------------------------------------------------------------------
Groups the database connections of every data source and workbook on a
Tableau Cloud / Server site by server, port and username, and updates a
whole group in one batch.

You'll need:
  1. Your Tableau Server or Cloud URL
  2. A Personal Access Token (PAT) name and secret
  3. Your site name (leave blank for the Default site)
--------------------------------------------------------------------------------
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tableau-connection-manager",
        description="Batch-update embedded database connections on a Tableau site.",
    )
    parser.add_argument("server_url", nargs="?", help="e.g. https://10ay.online.tableau.com")
    parser.add_argument("token_name", nargs="?", help="Personal Access Token name")
    parser.add_argument("token_secret", nargs="?", help="Personal Access Token secret")
    parser.add_argument("site_name", nargs="?", default="", help="Site content URL (blank = Default)")
    parser.add_argument("--api-version", help="Tableau REST API version (default: TABLEAU_API_VERSION or 3.21)")
    parser.add_argument("--use-saved", action="store_true", help="Sign in with the saved credentials")
    parser.add_argument("--save-credentials", action="store_true", help="Save the PAT after a successful sign-in")
    parser.add_argument("--forget-credentials", action="store_true", help="Delete saved credentials")
    parser.add_argument("--export-inventory", metavar="PATH", help="Write the enumerated inventory as JSON")
    parser.add_argument("--mock", action="store_true", help="Run against the built-in mock site")
    parser.add_argument("--log-level", help="Logging level (default: TABLEAU_LOG_LEVEL or INFO)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


# ---------------------------------------------------------------------------
# Presentation
# ---------------------------------------------------------------------------


def format_group(group: ConnectionGroup) -> str:
    lines = [
        f"[{group.id}] Server: {group.server_address}, Port: {group.server_port}, "
        f"Username: {group.user_name}",
        f"    Used by {group.total} connection(s):",
        f"      Data Sources: {group.data_source_count}, Workbooks: {group.workbook_count}",
    ]
    for member in group.members:
        marker = "DS" if member.parent_type == DATASOURCE else "WB"
        lines.append(f"      [{marker}] {member.parent_name} ({member.parent_type})")
    return "\n".join(lines)


def format_groups(groups: Sequence[ConnectionGroup]) -> str:
    header = [RULE, "UNIQUE CONNECTIONS (Data Sources + Workbooks)", RULE, ""]
    body = [format_group(g) + "\n" for g in groups]
    return "\n".join(header + body)


def format_summary(outcomes: List[UpdateOutcome]) -> str:
    counts = summarize_outcomes(outcomes)
    lines = ["Batch update complete!", f"  Successfully updated: {counts['succeeded']}"]
    if counts["failed"]:
        lines.append(f"  Failed: {counts['failed']}")
        for o in outcomes:
            if not o.success:
                lines.append(f"    x {o.parent_name} ({o.parent_type}): {o.error}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Interactive flow
# ---------------------------------------------------------------------------


InputFn = Callable[[str], str]
OutputFn = Callable[..., Any]


def _resolve_login(
    args: argparse.Namespace,
    store: CredentialStore,
    input_fn: InputFn,
    secret_fn: InputFn,
    out: OutputFn,
) -> Tuple[str, str, str, str]:
    """Return (server_url, token_name, token_secret, site_name)."""
    if args.server_url and args.token_name and args.token_secret:
        return args.server_url, args.token_name, args.token_secret, args.site_name or ""

    if args.use_saved:
        saved = store.load()
        if saved is None:
            raise ValueError(f"No saved credentials found at {store.path}.")
        out(f"Using saved credentials for {saved.server_url} (last used {saved.last_used}).")
        return saved.server_url, saved.token_name, saved.token_secret, saved.site_name

    out(_INTRO)
    server_url = input_fn("Enter Tableau Server URL (e.g., https://10ay.online.tableau.com): ").strip()
    token_name = input_fn("Enter your PAT token name: ").strip()
    token_secret = secret_fn("Enter your PAT token secret: ")
    site_name = input_fn("Enter site name (leave blank for Default site): ").strip()

    if not server_url or not token_name or not token_secret:
        raise ValueError("Server URL, PAT token name and secret are required.")
    return server_url, token_name, token_secret, site_name


async def run(
    args: argparse.Namespace,
    input_fn: InputFn = input,
    secret_fn: InputFn = getpass.getpass,
    out: OutputFn = print,
    clients: Optional[Tuple[Any, Any]] = None,
) -> int:
    """Run one sign-in / enumerate / group / update cycle."""
    cfg = TableauConfig.from_env()
    if args.api_version:
        cfg = replace(cfg, api_version=args.api_version)
    if args.mock:
        cfg = replace(cfg, mock_mode=True)

    store = CredentialStore(cfg.credentials_file)
    if args.forget_credentials:
        store.clear()
        out("Saved credentials cleared.")
        if not (args.server_url or args.use_saved):
            return EXIT_OK

    try:
        server_url, token_name, token_secret, site_name = _resolve_login(
            args, store, input_fn, secret_fn, out
        )
    except ValueError as exc:
        out(f"Error: {exc}")
        return EXIT_ERROR

    cfg = replace(cfg, server_url=server_url)
    try:
        authenticator, inventory = clients or tasks.make_clients(cfg)
    except (RuntimeError, ValueError) as exc:
        out(f"Error: {exc}")
        return EXIT_ERROR

    out("\nAuthenticating with Tableau using PAT...")
    try:
        session = await authenticator.sign_in(token_name, token_secret, site_name)
    except TableauClientError as exc:
        out(f"Error: {exc}")
        return EXIT_ERROR
    out("Authentication successful!\n")

    if args.save_credentials and store.save(server_url, token_name, token_secret, site_name):
        out(f"Credentials saved to {store.path}.")

    try:
        return await _manage_connections(args, session, inventory, input_fn, secret_fn, out)
    except TableauClientError as exc:
        out(f"\nError: {exc}")
        return EXIT_ERROR
    finally:
        out("\nSigning out...")
        try:
            await authenticator.sign_out(session)
            out("Signed out successfully!")
        except AuthenticationError as exc:
            logger.debug("Ignoring sign-out failure: %s", exc)


async def _manage_connections(
    args: argparse.Namespace,
    session: Any,
    inventory: Any,
    input_fn: InputFn,
    secret_fn: InputFn,
    out: OutputFn,
) -> int:
    out("Enumerating data sources and workbooks...\n")
    snapshot = await inventory.build_inventory(session)

    if args.export_inventory:
        try:
            with open(args.export_inventory, "w", encoding="utf-8") as fh:
                json.dump(snapshot.to_dict(), fh, indent=2)
        except OSError as exc:
            out(f"\nError: could not write inventory to {args.export_inventory}: {exc}")
            return EXIT_ERROR
        out(f"Inventory written to {args.export_inventory}.")

    groups = inventory.group(snapshot.data_sources, snapshot.workbooks)
    if not groups:
        out("\nNo connections found.")
        return EXIT_OK

    out(format_groups(groups))
    out(RULE)

    selection = input_fn(
        f"\nEnter the ID of the connection you want to modify [1-{len(groups)}] (or 'q' to quit): "
    ).strip()
    if not selection or selection.lower() == "q":
        out("\nExiting without making changes.")
        return EXIT_OK

    try:
        selected_id = int(selection)
    except ValueError:
        out("\nInvalid selection.")
        return EXIT_ERROR

    group = find_group_by_id(groups, selected_id)
    if group is None:
        out("\nInvalid ID.")
        return EXIT_ERROR

    out(f"\nSelected connection group #{group.id}")
    out(
        f"Current: Server={group.server_address}, Port={group.server_port}, "
        f"Username={group.user_name}"
    )
    out(
        f"This will update {group.total} connection(s) ({group.data_source_count} data "
        f"sources, {group.workbook_count} workbooks)"
    )

    out("\n" + RULE)
    out("ENTER NEW CONNECTION DETAILS")
    out(RULE + "\n")
    new_server_address = input_fn("New Server Address: ").strip()
    new_server_port = input_fn("New Server Port: ").strip()
    new_user_name = input_fn("New Username: ").strip()
    new_password = secret_fn("New Password: ")

    try:
        check_new_connection_fields(
            new_server_address, new_server_port, new_user_name, new_password
        )
    except ValueError as exc:
        out(f"\nError: {exc}")
        return EXIT_ERROR

    out("\n" + RULE)
    out("CONFIRM BATCH UPDATE")
    out(RULE)
    out(f"Old: Server={group.server_address}, Port={group.server_port}, Username={group.user_name}")
    out(f"New: Server={new_server_address}, Port={new_server_port}, Username={new_user_name}")
    out(f"\nThis will update {group.total} connection(s):")
    for member in group.members:
        out(f"  - {member.parent_name} ({member.parent_type})")

    confirm = input_fn("\nProceed with batch update? (y/n): ").strip().lower()
    if confirm != "y":
        out("\nUpdate cancelled.")
        return EXIT_OK

    out("\nUpdating connections...")
    outcomes = await inventory.update_group(
        session,
        group,
        new_server_address,
        new_server_port,
        new_user_name,
        new_password,
    )
    out("\n" + format_summary(outcomes))

    if any(not o.success for o in outcomes):
        return EXIT_PARTIAL
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Synchronous entrypoint for console_scripts."""
    args = build_parser().parse_args(argv)

    level = (args.log_level or TableauConfig.from_env().log_level).upper()
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    print("Tableau Data Source Connection Manager")
    print("======================================\n")

    try:
        return asyncio.run(run(args))
    except (KeyboardInterrupt, EOFError):
        print("\nCancelled.")
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
