# demo_mcp_update_dry_run.py
# Version: v1
#
# Demo: call the MCP-style update task in dry-run mode and print the
# connections it would touch.  Nothing is written to the site.
#
# Usage:
#
#   TABLEAU_MOCK_MODE=1 python demo_mcp_update_dry_run.py

import asyncio
from typing import Any, Dict

from tableau_connection_mcp.tools import tasks


async def main() -> None:
    print("Calling MCP task: list_connection_groups(include_members=False)")
    listing: Dict[str, Any] = await tasks.list_connection_groups(include_members=False)
    print(listing["summary"])

    if not listing["data"]:
        print("No connections found.")
        return

    first = listing["data"][0]
    print(
        f"Dry run for {first['serverAddress']}:{first['serverPort']} "
        f"({first['userName']})"
    )

    result = await tasks.update_connection_group(
        current_server_address=first["serverAddress"],
        current_server_port=first["serverPort"],
        current_user_name=first["userName"],
        new_server_address="new-host.example.com",
        new_server_port=first["serverPort"] or "5432",
        new_user_name=first["userName"] or "svc_user",
        new_password="not-used-in-dry-run",
        dry_run=True,
    )
    print(result["summary"])

    for t in result["data"]["targets"]:
        print(f"- {t['parentName']} ({t['parentType']}) connection={t['id']}")


if __name__ == "__main__":
    asyncio.run(main())
