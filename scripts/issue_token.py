#!/usr/bin/env python3
"""Issue a session token for a user, replacing any open session.

Usage:
    python scripts/issue_token.py <national_id>
"""

import asyncio
import logging
import sys

from src.core import db_client
from src.core.db_client import sanitize_param
from src.services import identity_service


logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


async def issue_token(national_id: str) -> None:
    user = await db_client.get_first_record(
        collection="users",
        filter_query=f'national_id = "{sanitize_param(national_id)}"',
    )

    if not user:
        logger.error("No user with national id %s", national_id)
        sys.exit(1)

    token = await identity_service.issue_session_token(user_id=user["id"])
    logger.info("%s (%s): %s", national_id, user["role"], token)


async def main() -> None:
    """Main entry point."""
    args = sys.argv[1:]

    if not args or "--help" in args or "-h" in args:
        logger.info(__doc__)
        return

    await db_client.init_db()
    try:
        await issue_token(args[0])
    finally:
        await db_client.close_connection()


if __name__ == "__main__":
    asyncio.run(main())
