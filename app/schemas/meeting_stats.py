"""
app/schemas/meeting_stats.py

Purpose: Request/response and real-time payload schemas

- Validates REST bodies and inbound real-time messages
- Shapes the formatted statistics view returned to clients
- Keeps the camelCase wire names used by the browser client
"""

from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.models.meeting_stats import MeetingRecord

ChangeType = Literal["positive", "negative", "neutral"]


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class StatsUpdateRequest(WireModel):
    """
    Body of POST /api/meeting-stats/update.

    action is validated by the endpoint so an unknown value maps to 400.
    """
    action: str = Field(..., description="start, end or cancel")
    meeting_id: Optional[str] = None
    meeting_title: Optional[str] = None
    participant_count: Optional[int] = Field(default=None, ge=0)
    is_scheduled: Optional[bool] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "action": "start",
                "meetingId": "room-42",
                "meetingTitle": "Weekly sync",
                "isScheduled": True
            }
        },
    )


class StatValue(WireModel):
    """One card of the formatted view."""
    value: Union[int, str]
    raw_value: Optional[int] = None
    change: int
    change_type: ChangeType


class FormattedStats(WireModel):
    total_calls: StatValue
    total_duration: StatValue
    total_participants: StatValue
    meetings_scheduled: StatValue
    last_updated: datetime

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class RecentMeeting(MeetingRecord):
    formatted_duration: str
    formatted_start_time: str


# ==============================================
# REAL-TIME PAYLOADS
# ==============================================

class MeetingStartedEvent(WireModel):
    meeting_id: str
    meeting_title: Optional[str] = None
    is_scheduled: Optional[bool] = False
    user_id: Optional[str] = None  # ignored, identity comes from the connection


class MeetingEndedEvent(WireModel):
    meeting_id: str
    participant_count: Optional[int] = Field(default=1, ge=0)
    user_id: Optional[str] = None


class MeetingCancelledEvent(WireModel):
    meeting_id: str
    user_id: Optional[str] = None


class StatsBroadcast(WireModel):
    user_id: str
    stats: FormattedStats


class StatsErrorEvent(WireModel):
    error: str
