#!/usr/bin/env python3
"""Create or update the PocketBase collections used by taskmirror."""

import asyncio

from taskmirror.core.config import settings
from taskmirror.core.logging import configure_logfire
from taskmirror.core.schema import sync_schema


async def main() -> None:
    configure_logfire()

    # Ensure credentials are present
    admin_email = settings.require_credential("pocketbase_admin_email", "PocketBase Admin Email")
    admin_password = settings.require_credential("pocketbase_admin_password", "PocketBase Admin Password")

    collection_ids = await sync_schema(
        admin_email=admin_email,
        admin_password=admin_password,
    )
    for name, collection_id in collection_ids.items():
        print(f"{name}: {collection_id}")


if __name__ == "__main__":
    asyncio.run(main())
