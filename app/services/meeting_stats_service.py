"""
app/services/meeting_stats_service.py

Purpose: Per-user meeting statistics aggregation

- Lazily creates the single statistics document per user
- Records meeting start / end / cancellation
- Builds the formatted view (durations, month-over-month change)
- Shifts the monthly comparison baseline
- Lists recent meetings

Counter updates are single atomic $inc upserts. Meeting records are still
looked up before they are written, so two concurrent starts for the same
(user_id, meeting_id) can both insert an active record.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.config import settings
from app.core.exceptions import StoreError
from app.core.logging import get_logger, LogContext
from app.db.mongo import get_meeting_stats_collection, get_meeting_records_collection
from app.models.meeting_stats import (
    COUNTER_FIELDS,
    MeetingRecord,
    MeetingStatus,
    UserStatistics,
)
from app.schemas.meeting_stats import FormattedStats, RecentMeeting, StatValue
from utils.time_utils import (
    calculate_percentage_change,
    classify_change,
    format_duration,
    format_timestamp,
    minutes_between,
)

logger = get_logger(__name__)

DEFAULT_MEETING_TITLE = "Video Call"


def _insert_defaults(user_id: str, exclude: set) -> Dict[str, Any]:
    """$setOnInsert payload for a fresh statistics document, minus paths updated elsewhere."""
    doc = UserStatistics.new_document(user_id)
    return {key: value for key, value in doc.items() if key not in exclude and key != "user_id"}


async def get_or_create_statistics(user_id: str) -> UserStatistics:
    """
    Retrieves the user's statistics document, creating a zero-valued one on
    first access.

    Args:
        user_id: Authenticated user ID

    Returns:
        UserStatistics

    Raises:
        StoreError: If MongoDB is unreachable
    """
    collection = get_meeting_stats_collection()

    try:
        try:
            doc = await collection.find_one_and_update(
                {"user_id": user_id},
                {"$setOnInsert": _insert_defaults(user_id, exclude=set())},
                upsert=True,
                return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            # A concurrent request created it first
            logger.debug("Statistics created concurrently, re-reading", extra={"user_id": user_id})
            doc = await collection.find_one({"user_id": user_id})
    except PyMongoError as e:
        logger.error(f"Error getting user stats: {e}", extra={"user_id": user_id}, exc_info=True)
        raise StoreError("Failed to load meeting statistics") from e

    return UserStatistics.from_document(doc)


async def _increment_counters(user_id: str, increments: Dict[str, int]) -> UserStatistics:
    """
    Atomically adds to the user's counters, creating the document if needed.
    """
    collection = get_meeting_stats_collection()
    now = datetime.utcnow()

    update = {
        "$inc": increments,
        "$set": {"last_updated": now},
        "$setOnInsert": _insert_defaults(user_id, exclude=set(increments) | {"last_updated"}),
    }

    try:
        try:
            doc = await collection.find_one_and_update(
                {"user_id": user_id},
                update,
                upsert=True,
                return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            # Lost the insert race; the document exists now, so plain update
            doc = await collection.find_one_and_update(
                {"user_id": user_id},
                update,
                return_document=ReturnDocument.AFTER
            )
    except PyMongoError as e:
        logger.error(f"Error updating user stats: {e}", extra={"user_id": user_id}, exc_info=True)
        raise StoreError("Failed to update meeting statistics") from e

    return UserStatistics.from_document(doc)


async def record_meeting_start(
    user_id: str,
    meeting_id: str,
    meeting_title: Optional[str] = None,
    is_scheduled: bool = False
) -> MeetingRecord:
    """
    Creates an active meeting record and counts the call.

    The record insert is not rolled back if the counter update fails.

    Args:
        user_id: Authenticated user ID
        meeting_id: Call identifier supplied by the client
        meeting_title: Optional title, defaults to "Video Call"
        is_scheduled: Whether the call was scheduled in advance

    Returns:
        The created MeetingRecord
    """
    with LogContext(user_id=user_id, meeting_id=meeting_id):
        records = get_meeting_records_collection()
        now = datetime.utcnow()

        record = MeetingRecord(
            user_id=user_id,
            meeting_id=meeting_id,
            meeting_title=meeting_title or DEFAULT_MEETING_TITLE,
            start_time=now,
            is_scheduled=bool(is_scheduled),
            status=MeetingStatus.ACTIVE,
            created_at=now
        )

        try:
            result = await records.insert_one(record.to_document())
        except PyMongoError as e:
            logger.error(f"Error recording meeting start: {e}", exc_info=True)
            raise StoreError("Failed to record meeting start") from e

        record.id = str(result.inserted_id)

        increments = {"total_calls": 1}
        if is_scheduled:
            increments["meetings_scheduled"] = 1
        await _increment_counters(user_id, increments)

        logger.info("Meeting started", extra={"user_id": user_id, "meeting_id": meeting_id})
        return record


async def _find_active_record(user_id: str, meeting_id: str) -> Optional[Dict[str, Any]]:
    records = get_meeting_records_collection()
    return await records.find_one(
        {
            "user_id": user_id,
            "meeting_id": meeting_id,
            "status": MeetingStatus.ACTIVE.value
        },
        sort=[("start_time", ASCENDING)]
    )


async def _close_active_record(doc: Dict[str, Any], changes: Dict[str, Any]) -> bool:
    """
    Applies changes only if the record is still active.

    Returns:
        False if another request closed it first
    """
    records = get_meeting_records_collection()
    result = await records.update_one(
        {"_id": doc["_id"], "status": MeetingStatus.ACTIVE.value},
        {"$set": changes}
    )
    return result.modified_count > 0


async def record_meeting_end(
    user_id: str,
    meeting_id: str,
    participant_count: Optional[int] = 1
) -> Optional[MeetingRecord]:
    """
    Completes the active meeting record and adds its duration and
    participants to the user's totals.

    Args:
        user_id: Authenticated user ID
        meeting_id: Call identifier
        participant_count: Participants seen during the call

    Returns:
        Completed MeetingRecord, or None if no active record matched
    """
    if participant_count is None:
        participant_count = 1

    with LogContext(user_id=user_id, meeting_id=meeting_id):
        try:
            doc = await _find_active_record(user_id, meeting_id)

            if not doc:
                logger.warning(f"No active meeting found for user {user_id} and meeting {meeting_id}")
                return None

            end_time = datetime.utcnow()
            # Negative on clock skew; stored as-is
            duration = minutes_between(doc["start_time"], end_time)

            changes = {
                "end_time": end_time,
                "duration": duration,
                "participant_count": participant_count,
                "status": MeetingStatus.COMPLETED.value
            }

            if not await _close_active_record(doc, changes):
                logger.warning("Meeting was closed by a concurrent request")
                return None
        except PyMongoError as e:
            logger.error(f"Error recording meeting end: {e}", exc_info=True)
            raise StoreError("Failed to record meeting end") from e

        await _increment_counters(
            user_id,
            {"total_duration": duration, "total_participants": participant_count}
        )

        logger.info(
            f"Meeting ended after {duration} minutes",
            extra={"user_id": user_id, "meeting_id": meeting_id}
        )
        return MeetingRecord.from_document({**doc, **changes})


async def cancel_meeting(user_id: str, meeting_id: str) -> Optional[MeetingRecord]:
    """
    Marks the active meeting record as cancelled.

    Counters are left untouched: the call was already counted on start and
    no duration or participants are added.

    Returns:
        Cancelled MeetingRecord, or None if no active record matched
    """
    with LogContext(user_id=user_id, meeting_id=meeting_id):
        try:
            doc = await _find_active_record(user_id, meeting_id)

            if not doc:
                logger.warning(f"No active meeting to cancel for user {user_id} and meeting {meeting_id}")
                return None

            changes = {
                "end_time": datetime.utcnow(),
                "status": MeetingStatus.CANCELLED.value
            }

            if not await _close_active_record(doc, changes):
                logger.warning("Meeting was closed by a concurrent request")
                return None
        except PyMongoError as e:
            logger.error(f"Error cancelling meeting: {e}", exc_info=True)
            raise StoreError("Failed to cancel meeting") from e

        logger.info("Meeting cancelled", extra={"user_id": user_id, "meeting_id": meeting_id})
        return MeetingRecord.from_document({**doc, **changes})


def _stat_value(current: int, previous: int, display=None) -> StatValue:
    change = calculate_percentage_change(current, previous)
    return StatValue(
        value=current if display is None else display,
        raw_value=None if display is None else current,
        change=change,
        change_type=classify_change(change)
    )


def build_formatted_view(stats: UserStatistics) -> FormattedStats:
    """
    Projects raw counters into the display view, comparing each against
    last_month_stats.
    """
    baseline = stats.last_month_stats
    return FormattedStats(
        total_calls=_stat_value(stats.total_calls, baseline.total_calls),
        total_duration=_stat_value(
            stats.total_duration,
            baseline.total_duration,
            display=format_duration(stats.total_duration)
        ),
        total_participants=_stat_value(stats.total_participants, baseline.total_participants),
        meetings_scheduled=_stat_value(stats.meetings_scheduled, baseline.meetings_scheduled),
        last_updated=stats.last_updated
    )


async def get_formatted_view(user_id: str) -> FormattedStats:
    """Formatted statistics for display, creating the document if needed."""
    stats = await get_or_create_statistics(user_id)
    return build_formatted_view(stats)


async def roll_over_month() -> None:
    """
    Copies every user's live counters into last_month_stats.

    Live counters are not reset; the baseline moves. Running twice in one
    month overwrites the previous baseline.
    """
    collection = get_meeting_stats_collection()
    processed = 0

    try:
        async for doc in collection.find({}):
            baseline = {field: doc.get(field, 0) for field in COUNTER_FIELDS}
            await collection.update_one(
                {"_id": doc["_id"]},
                {"$set": {"last_month_stats": baseline}}
            )
            processed += 1
    except PyMongoError as e:
        logger.error(f"Error resetting monthly stats after {processed} users: {e}", exc_info=True)
        raise StoreError("Failed to roll over monthly statistics") from e

    logger.info(f"Monthly stats reset completed for {processed} users")


async def get_recent_meetings(user_id: str, limit: Optional[int] = None) -> List[RecentMeeting]:
    """
    Retrieves the user's meetings, newest start first.

    Args:
        user_id: Authenticated user ID
        limit: Maximum number of meetings, clamped to RECENT_MEETINGS_MAX_LIMIT

    Returns:
        List of RecentMeeting with formatted duration and start time
    """
    if not limit or limit < 1:
        limit = settings.RECENT_MEETINGS_DEFAULT_LIMIT
    limit = min(limit, settings.RECENT_MEETINGS_MAX_LIMIT)

    records = get_meeting_records_collection()

    try:
        cursor = records.find(
            {"user_id": user_id},
            sort=[("start_time", DESCENDING)],
            limit=limit
        )
        docs = await cursor.to_list(length=limit)
    except PyMongoError as e:
        logger.error(f"Error getting recent meetings: {e}", extra={"user_id": user_id}, exc_info=True)
        raise StoreError("Failed to load recent meetings") from e

    meetings = []
    for doc in docs:
        record = MeetingRecord.from_document(doc)
        meetings.append(
            RecentMeeting(
                **record.model_dump(),
                formatted_duration=format_duration(record.duration),
                formatted_start_time=format_timestamp(record.start_time)
            )
        )
    return meetings
