import asyncio
from datetime import datetime, timedelta

import pytest
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from app.core.exceptions import StoreError
from app.models.meeting_stats import MeetingStatus, UserStatistics
from app.services import meeting_stats_service as service
from utils.time_utils import minutes_between

USER = "user-1"


async def _snapshot(db):
    stats = await db.meeting_stats.find({}).to_list(length=None)
    records = await db.meeting_records.find({}).to_list(length=None)
    return stats, records


async def test_get_or_create_is_idempotent(db):
    for _ in range(3):
        stats = await service.get_or_create_statistics(USER)

    assert stats.user_id == USER
    assert stats.total_calls == 0
    assert await db.meeting_stats.count_documents({"user_id": USER}) == 1


async def test_get_or_create_concurrently_keeps_one_document(db):
    results = await asyncio.gather(*[service.get_or_create_statistics(USER) for _ in range(5)])

    assert all(stats.user_id == USER for stats in results)
    assert await db.meeting_stats.count_documents({"user_id": USER}) == 1


async def test_get_or_create_rereads_after_duplicate_key(monkeypatch):
    existing = UserStatistics.new_document(USER)
    existing["total_calls"] = 4

    class RacingCollection:
        async def find_one_and_update(self, *args, **kwargs):
            raise DuplicateKeyError("E11000 duplicate key error")

        async def find_one(self, query):
            assert query == {"user_id": USER}
            return existing

    monkeypatch.setattr(service, "get_meeting_stats_collection", lambda: RacingCollection())

    stats = await service.get_or_create_statistics(USER)
    assert stats.total_calls == 4


async def test_store_unreachable_raises_store_error(monkeypatch):
    class DownCollection:
        async def find_one_and_update(self, *args, **kwargs):
            raise ServerSelectionTimeoutError("no servers")

    monkeypatch.setattr(service, "get_meeting_stats_collection", lambda: DownCollection())

    with pytest.raises(StoreError):
        await service.get_formatted_view(USER)


async def test_start_creates_active_record_and_counts_call(db):
    record = await service.record_meeting_start(USER, "room-1", "Standup", is_scheduled=True)

    assert record.id is not None
    assert record.status == MeetingStatus.ACTIVE.value
    assert record.meeting_title == "Standup"
    assert await db.meeting_records.count_documents(
        {"user_id": USER, "meeting_id": "room-1", "status": "active"}
    ) == 1

    stats = await service.get_or_create_statistics(USER)
    assert stats.total_calls == 1
    assert stats.meetings_scheduled == 1


async def test_start_defaults_title(db):
    record = await service.record_meeting_start(USER, "room-1")

    assert record.meeting_title == "Video Call"
    assert record.is_scheduled is False
    stats = await service.get_or_create_statistics(USER)
    assert stats.meetings_scheduled == 0


async def test_start_then_end_completes_record(db):
    await service.record_meeting_start(USER, "room-1")
    record = await service.record_meeting_end(USER, "room-1", participant_count=4)

    assert record.status == MeetingStatus.COMPLETED.value
    assert await db.meeting_records.count_documents({"user_id": USER, "status": "active"}) == 0
    assert await db.meeting_records.count_documents({"user_id": USER, "status": "completed"}) == 1

    stored = await db.meeting_records.find_one({"user_id": USER, "meeting_id": "room-1"})
    assert stored["participant_count"] == 4
    assert stored["duration"] == minutes_between(stored["start_time"], stored["end_time"])


async def test_end_without_active_record_is_a_noop(db):
    await service.record_meeting_start(USER, "room-1")
    await service.record_meeting_end(USER, "room-1")
    before = await _snapshot(db)

    assert await service.record_meeting_end(USER, "room-1") is None
    assert await service.record_meeting_end(USER, "unknown-room") is None

    assert await _snapshot(db) == before


async def test_end_to_end_sixty_five_minute_call(db):
    await service.record_meeting_start(USER, "room-1", "Planning")
    start = (await db.meeting_records.find_one({"meeting_id": "room-1"}))["start_time"]
    await db.meeting_records.update_one(
        {"meeting_id": "room-1"},
        {"$set": {"start_time": start - timedelta(minutes=65)}}
    )

    record = await service.record_meeting_end(USER, "room-1", participant_count=3)

    assert record.duration == 65
    stats = await service.get_or_create_statistics(USER)
    assert stats.total_calls == 1
    assert stats.total_duration == 65
    assert stats.total_participants == 3

    view = await service.get_formatted_view(USER)
    assert view.total_duration.value == "1h 5m"
    assert view.total_duration.raw_value == 65


async def test_negative_duration_is_stored_as_is(db):
    await db.meeting_records.insert_one({
        "user_id": USER,
        "meeting_id": "skewed",
        "meeting_title": "Video Call",
        "start_time": datetime.utcnow() + timedelta(minutes=10),
        "duration": 0,
        "participant_count": 1,
        "is_scheduled": False,
        "status": "active",
        "created_at": datetime.utcnow()
    })

    record = await service.record_meeting_end(USER, "skewed")

    assert record.duration == -10
    stats = await service.get_or_create_statistics(USER)
    assert stats.total_duration == -10


async def test_end_defaults_participant_count(db):
    await service.record_meeting_start(USER, "room-1")
    record = await service.record_meeting_end(USER, "room-1", participant_count=None)

    assert record.participant_count == 1


async def test_cancel_marks_record_and_keeps_counters(db):
    await service.record_meeting_start(USER, "room-1")
    record = await service.cancel_meeting(USER, "room-1")

    assert record.status == MeetingStatus.CANCELLED.value
    assert record.end_time is not None
    stats = await service.get_or_create_statistics(USER)
    assert stats.total_calls == 1
    assert stats.total_duration == 0
    assert stats.total_participants == 0

    assert await service.cancel_meeting(USER, "room-1") is None
    assert await service.record_meeting_end(USER, "room-1") is None


async def test_concurrent_starts_may_duplicate_active_records(db):
    # Known race: lookup-before-write does not prevent duplicates
    await asyncio.gather(
        service.record_meeting_start(USER, "room-1"),
        service.record_meeting_start(USER, "room-1")
    )

    active = await db.meeting_records.count_documents(
        {"user_id": USER, "meeting_id": "room-1", "status": "active"}
    )
    assert 1 <= active <= 2
    stats = await service.get_or_create_statistics(USER)
    assert stats.total_calls == 2


async def test_concurrent_increments_are_not_lost(db):
    for room in ("a", "b", "c"):
        await service.record_meeting_start(USER, room)

    await asyncio.gather(*[
        service.record_meeting_end(USER, room, participant_count=2)
        for room in ("a", "b", "c")
    ])

    stats = await service.get_or_create_statistics(USER)
    assert stats.total_participants == 6


async def test_formatted_view_compares_with_baseline(db):
    await service.get_or_create_statistics(USER)
    await db.meeting_stats.update_one(
        {"user_id": USER},
        {"$set": {
            "total_calls": 11,
            "total_duration": 90,
            "total_participants": 0,
            "meetings_scheduled": 3,
            "last_month_stats": {
                "total_calls": 10,
                "total_duration": 100,
                "total_participants": 0,
                "meetings_scheduled": 0
            }
        }}
    )

    view = (await service.get_formatted_view(USER)).to_wire()

    assert view["totalCalls"] == {"value": 11, "change": 10, "changeType": "positive"}
    assert view["totalDuration"] == {
        "value": "1h 30m", "rawValue": 90, "change": -10, "changeType": "negative"
    }
    assert view["totalParticipants"] == {"value": 0, "change": 0, "changeType": "neutral"}
    assert view["meetingsScheduled"]["change"] == 100
    assert "lastUpdated" in view


async def test_roll_over_month_shifts_baseline_only(db):
    await service.record_meeting_start(USER, "room-1", is_scheduled=True)
    await service.record_meeting_end(USER, "room-1", participant_count=5)
    await service.record_meeting_start("user-2", "room-9")
    before = await service.get_or_create_statistics(USER)

    await service.roll_over_month()

    after = await service.get_or_create_statistics(USER)
    assert after.last_month_stats.total_calls == before.total_calls == 1
    assert after.last_month_stats.meetings_scheduled == 1
    assert after.last_month_stats.total_participants == 5
    assert after.total_calls == before.total_calls
    assert after.total_participants == before.total_participants

    other = await service.get_or_create_statistics("user-2")
    assert other.last_month_stats.total_calls == 1

    view = await service.get_formatted_view(USER)
    assert view.total_calls.change == 0
    assert view.total_calls.change_type == "neutral"


async def test_recent_meetings_newest_first_and_limited(db):
    base = datetime(2026, 5, 1, 9, 0)
    for offset, room in enumerate(["first", "second", "third"]):
        await db.meeting_records.insert_one({
            "user_id": USER,
            "meeting_id": room,
            "meeting_title": room.title(),
            "start_time": base + timedelta(hours=offset),
            "end_time": base + timedelta(hours=offset, minutes=125),
            "duration": 125,
            "participant_count": 2,
            "is_scheduled": False,
            "status": "completed",
            "created_at": base
        })
    await db.meeting_records.insert_one({
        "user_id": "someone-else",
        "meeting_id": "other",
        "start_time": base + timedelta(days=1),
        "status": "active"
    })

    meetings = await service.get_recent_meetings(USER, limit=2)

    assert [m.meeting_id for m in meetings] == ["third", "second"]
    assert meetings[0].formatted_duration == "2h 5m"
    assert meetings[0].formatted_start_time == "2026-05-01 11:00:00"

    assert len(await service.get_recent_meetings(USER)) == 3
    assert len(await service.get_recent_meetings(USER, limit=0)) == 3
