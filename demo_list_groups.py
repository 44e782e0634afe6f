# demo_list_groups.py
# Version: v1

r"""
Quick smoke test: sign in with a PAT and print the connection groups.

Run with virtualenv active and env vars loaded:
  export TABLEAU_SERVER_URL=https://10ay.online.tableau.com
  export TABLEAU_PAT_NAME=... TABLEAU_PAT_SECRET=... TABLEAU_SITE_CONTENT_URL=...
  python demo_list_groups.py

Set TABLEAU_MOCK_MODE=1 to run against the built-in mock site instead.
"""

import asyncio

from tableau_connection_mcp.config import TableauConfig
from tableau_connection_mcp.tools import tasks


async def main() -> None:
    cfg, (token_name, token_secret, site) = tasks._resolve_pat(TableauConfig.from_env())
    authenticator, inventory = tasks.make_clients(cfg)

    session = await authenticator.sign_in(token_name, token_secret, site)
    print(f"Signed in to site id {session.site_id}")

    try:
        data_sources, workbooks = await inventory.enumerate(session)
        print(f"Data sources: {len(data_sources)}, workbooks: {len(workbooks)}")

        for g in inventory.group(data_sources, workbooks):
            print(
                f"[{g.id}] {g.display_name}: {g.total} connection(s) "
                f"({g.data_source_count} DS / {g.workbook_count} WB)"
            )
    finally:
        await authenticator.sign_out(session)


if __name__ == "__main__":
    asyncio.run(main())
