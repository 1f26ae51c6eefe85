"""
Manually shift every user's comparison baseline to their current totals.

Normally run by the in-process monthly scheduler. Running it twice in the
same month overwrites the previous baseline.

Run:
    python scripts/rollover_month.py
"""

import asyncio
import sys
from pathlib import Path
from dotenv import load_dotenv

sys.path.insert(0, str(Path(__file__).parent.parent))

load_dotenv()

from app.core.logging import setup_logging, get_logger
from app.db.mongo import connect_to_mongo, close_mongo_connection
from app.services.meeting_stats_service import roll_over_month

setup_logging()
logger = get_logger("scripts.rollover_month")


async def main():
    await connect_to_mongo()
    try:
        await roll_over_month()
        logger.info("Manual rollover finished")
    finally:
        await close_mongo_connection()


if __name__ == "__main__":
    asyncio.run(main())
