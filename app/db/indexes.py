"""
app/db/indexes.py

Purpose: Database index management

- Unique index guaranteeing one statistics document per user
- Lookup index for active meeting records
- Sort index for recent meeting history
"""

from pymongo import ASCENDING, DESCENDING

from app.db.mongo import (
    get_meeting_stats_collection,
    get_meeting_records_collection,
)
from app.core.logging import get_logger

logger = get_logger(__name__)


async def create_indexes():
    """
    Creates all necessary database indexes.
    This function is idempotent - safe to run multiple times.
    """
    try:
        stats = get_meeting_stats_collection()
        records = get_meeting_records_collection()

        logger.info("Creating database indexes...")

        # ==============================================
        # MEETING STATS COLLECTION INDEXES
        # ==============================================

        # One statistics document per user; concurrent upserts collide here
        await stats.create_index(
            [("user_id", ASCENDING)],
            unique=True,
            name="user_id_unique"
        )
        logger.debug("Created unique index on meeting_stats.user_id")

        # ==============================================
        # MEETING RECORDS COLLECTION INDEXES
        # ==============================================

        # Active-record lookup on meeting end / cancel.
        # Not unique: concurrent starts may leave duplicate active records
        await records.create_index(
            [("user_id", ASCENDING), ("meeting_id", ASCENDING), ("status", ASCENDING)],
            name="user_meeting_status_idx"
        )
        logger.debug("Created index on meeting_records.user_id + meeting_id + status")

        # Recent meetings, newest first
        await records.create_index(
            [("user_id", ASCENDING), ("start_time", DESCENDING)],
            name="user_recent_meetings_idx"
        )
        logger.debug("Created index on meeting_records.user_id + start_time")

        logger.info("Database indexes created")

    except Exception as e:
        logger.error(f"Failed to create indexes: {str(e)}", exc_info=True)
        raise
