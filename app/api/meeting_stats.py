"""
app/api/meeting_stats.py

Purpose: Meeting statistics REST endpoints

- GET  /meeting-stats          formatted view for the current user
- GET  /recent-meetings        newest meetings first
- POST /meeting-stats/update   manual start / end / cancel trigger

Error bodies stay generic; details are only logged.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_current_user_id
from app.core.exceptions import StoreError, ValidationError
from app.core.logging import get_logger
from app.schemas.meeting_stats import StatsUpdateRequest
from app.services import meeting_stats_service

logger = get_logger(__name__)
router = APIRouter()


def _parse_limit(raw: Optional[str]) -> Optional[int]:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


@router.get("/meeting-stats")
async def get_meeting_stats(user_id: str = Depends(get_current_user_id)):
    """Current formatted statistics."""
    try:
        stats = await meeting_stats_service.get_formatted_view(user_id)
    except StoreError as e:
        logger.error(f"Error fetching meeting stats: {e.message}", extra={"user_id": user_id})
        raise StoreError("Failed to fetch meeting statistics") from e

    return {"success": True, "stats": stats.to_wire()}


@router.get("/recent-meetings")
async def get_recent_meetings(
    limit: Optional[str] = Query(default=None, description="Maximum number of meetings"),
    user_id: str = Depends(get_current_user_id)
):
    """Recent meetings, newest first. A non-numeric limit falls back to the default."""
    try:
        meetings = await meeting_stats_service.get_recent_meetings(user_id, _parse_limit(limit))
    except StoreError as e:
        logger.error(f"Error fetching recent meetings: {e.message}", extra={"user_id": user_id})
        raise StoreError("Failed to fetch recent meetings") from e

    return {"success": True, "meetings": [meeting.to_wire() for meeting in meetings]}


@router.post("/meeting-stats/update")
async def update_meeting_stats(
    body: StatsUpdateRequest,
    user_id: str = Depends(get_current_user_id)
):
    """
    Manually records a meeting start, end or cancellation.

    Returns the operation result (null when an end/cancel matched no active
    meeting) together with the recomputed statistics.
    """
    if body.action not in ("start", "end", "cancel"):
        raise ValidationError("Invalid action")

    if not body.meeting_id:
        raise ValidationError("meetingId is required")

    logger.info(
        f"Manual stats update: {body.action}",
        extra={"user_id": user_id, "meeting_id": body.meeting_id, "action": body.action}
    )

    try:
        if body.action == "start":
            result = await meeting_stats_service.record_meeting_start(
                user_id, body.meeting_id, body.meeting_title, bool(body.is_scheduled)
            )
        elif body.action == "end":
            result = await meeting_stats_service.record_meeting_end(
                user_id, body.meeting_id, body.participant_count
            )
        else:
            result = await meeting_stats_service.cancel_meeting(user_id, body.meeting_id)

        stats = await meeting_stats_service.get_formatted_view(user_id)
    except StoreError as e:
        logger.error(f"Error updating meeting stats: {e.message}", extra={"user_id": user_id})
        raise StoreError("Failed to update meeting statistics") from e

    return {
        "success": True,
        "result": result.to_wire() if result else None,
        "stats": stats.to_wire()
    }
