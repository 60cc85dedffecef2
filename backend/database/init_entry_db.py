"""
Clinic Core - Entry Tables Initialization

Creates the eleven normalized entry tables in the PostgreSQL database.

Usage: python database/init_entry_db.py [create|drop|check]
"""

import asyncio
import logging
import sys
from pathlib import Path

from sqlalchemy import text
from dotenv import load_dotenv

# Load environment variables
ROOT_DIR = Path(__file__).parent.parent
load_dotenv(ROOT_DIR / '.env')
sys.path.insert(0, str(ROOT_DIR))

from database.connection import Base, dispose_engine, get_engine
from entries.models import ENTRY_TABLES

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def entry_metadata_tables():
    return [Base.metadata.tables[name] for name in ENTRY_TABLES]


async def create_tables():
    """Create the entry tables (existing tables are left alone)"""
    logger.info("Creating entry database tables...")

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all, tables=entry_metadata_tables())

        result = await conn.execute(text("""
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = 'public'
            AND table_name LIKE 'tbl_entry_%'
            ORDER BY table_name
        """))
        tables = [row[0] for row in result.fetchall()]

        logger.info(f"Entry tables: {tables}")
        return tables


async def drop_tables():
    """Drop the entry tables (use with caution!)"""
    logger.info("Dropping entry database tables...")

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.drop_all, tables=entry_metadata_tables())
        logger.info("All entry tables dropped")


async def check_tables():
    """Return (present, missing) entry tables"""
    async with get_engine().begin() as conn:
        result = await conn.execute(text("""
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = 'public'
            ORDER BY table_name
        """))
        existing = {row[0] for row in result.fetchall()}
    present = [t for t in ENTRY_TABLES if t in existing]
    missing = [t for t in ENTRY_TABLES if t not in existing]
    return present, missing


async def main():
    """Main initialization function"""
    command = sys.argv[1] if len(sys.argv) > 1 else "create"

    if command == "drop":
        await drop_tables()
    elif command == "check":
        present, missing = await check_tables()
        print(f"Present: {present}")
        print(f"Missing: {missing}")
    elif command == "create":
        tables = await create_tables()
        print(f"Created tables: {tables}")
    else:
        print(f"Unknown command: {command}")
        print("Usage: python database/init_entry_db.py [create|drop|check]")

    await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
