"""
app/models/meeting_stats.py

Purpose: Meeting statistics document models

- UserStatistics: one aggregate document per user
- MeetingRecord: one document per call attended
- Stored with snake_case field names, serialized to camelCase on the wire
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class MeetingStatus(str, Enum):
    """Lifecycle states of a meeting record."""
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DocumentModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        extra="ignore",
    )

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready camelCase representation."""
        return self.model_dump(mode="json", by_alias=True)


class PeriodCounters(DocumentModel):
    """The four counters tracked per user."""
    total_calls: int = 0
    total_duration: int = 0  # minutes
    total_participants: int = 0
    meetings_scheduled: int = 0


COUNTER_FIELDS = tuple(PeriodCounters.model_fields)


class UserStatistics(PeriodCounters):
    """
    Aggregate statistics for a single user.

    last_month_stats holds the baseline used for percentage change display.
    """
    user_id: str
    last_month_stats: PeriodCounters = Field(default_factory=PeriodCounters)
    last_updated: datetime = Field(default_factory=datetime.utcnow)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def new_document(cls, user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Zero-valued document inserted on first access."""
        now = now or datetime.utcnow()
        return cls(user_id=user_id, last_updated=now, created_at=now).model_dump()

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "UserStatistics":
        return cls.model_validate(doc)


class MeetingRecord(DocumentModel):
    """A single call, from start to completion or cancellation."""
    id: Optional[str] = None
    user_id: str
    meeting_id: str
    meeting_title: str = "Video Call"
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: int = 0  # minutes
    participant_count: int = 1
    is_scheduled: bool = False
    status: MeetingStatus = MeetingStatus.ACTIVE
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "MeetingRecord":
        data = dict(doc)
        object_id = data.pop("_id", None)
        if object_id is not None:
            data["id"] = str(object_id)
        return cls.model_validate(data)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"id"})
