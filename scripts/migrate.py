#!/usr/bin/env python3
"""Database setup script - creates all tables and seeds default fees."""

import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from bridgeroute.config import get_settings
from bridgeroute.storage.database import close_db, init_db, session_scope
from bridgeroute.storage.repository import MarketDataRepository


async def main():
    """Create tables, then seed empty fee tables from the catalog."""
    settings = get_settings()

    print(f"Database URL: {settings.get_safe_dict()['database_url']}")
    print("Creating database tables...")

    try:
        await init_db()
        async with session_scope() as session:
            inserted = await MarketDataRepository(session).seed_default_fees()
        print(f"Database ready ({inserted} default fee rows inserted)")
    except Exception as e:
        print(f"Error preparing database: {e}")
        raise
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
