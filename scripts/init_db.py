"""
Database initialization script - meeting statistics collections

Run once to create collections and indexes:
    python scripts/init_db.py
"""

import asyncio
import sys
from pathlib import Path
from dotenv import load_dotenv

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment variables
load_dotenv()

from app.core.config import settings
from app.core.logging import setup_logging, get_logger
from app.db.mongo import connect_to_mongo, close_mongo_connection, get_database
from app.db.indexes import create_indexes

setup_logging()
logger = get_logger("scripts.init_db")


async def main():
    logger.info(f"Connecting to MongoDB: {settings.MONGODB_DB_NAME}")
    await connect_to_mongo()

    try:
        await create_indexes()

        db = await get_database()
        for name in ("meeting_stats", "meeting_records"):
            indexes = await db[name].index_information()
            logger.info(f"{name}: {', '.join(sorted(indexes))}")
    finally:
        await close_mongo_connection()


if __name__ == "__main__":
    asyncio.run(main())
