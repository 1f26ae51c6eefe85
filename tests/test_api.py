from datetime import timedelta

from starlette.requests import Request

from app.api.deps import resolve_user_id
from app.core.exceptions import StoreError
from app.services import meeting_stats_service

STATS_URL = "/api/meeting-stats"
UPDATE_URL = "/api/meeting-stats/update"
RECENT_URL = "/api/recent-meetings"


def test_get_stats_creates_zero_view(client):
    response = client.get(STATS_URL)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["stats"]["totalCalls"] == {"value": 0, "change": 0, "changeType": "neutral"}
    assert data["stats"]["totalDuration"]["value"] == "0h 0m"
    assert data["stats"]["totalDuration"]["rawValue"] == 0


def test_endpoints_require_authentication(anonymous_client):
    for method, url in (("get", STATS_URL), ("get", RECENT_URL), ("post", UPDATE_URL)):
        kwargs = {"json": {"action": "start", "meetingId": "x"}} if method == "post" else {}
        response = getattr(anonymous_client, method)(url, **kwargs)

        assert response.status_code == 401
        assert response.json()["error"] == "Not authenticated"


def test_start_action_returns_record_and_stats(client):
    response = client.post(UPDATE_URL, json={
        "action": "start",
        "meetingId": "room-1",
        "meetingTitle": "Retro",
        "isScheduled": True
    })

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["result"]["meetingId"] == "room-1"
    assert data["result"]["meetingTitle"] == "Retro"
    assert data["result"]["status"] == "active"
    assert data["stats"]["totalCalls"] == {"value": 1, "change": 100, "changeType": "positive"}
    assert data["stats"]["meetingsScheduled"]["value"] == 1


async def test_end_action_updates_totals(client, db):
    client.post(UPDATE_URL, json={"action": "start", "meetingId": "room-1"})
    start = (await db.meeting_records.find_one({"meeting_id": "room-1"}))["start_time"]
    await db.meeting_records.update_one(
        {"meeting_id": "room-1"},
        {"$set": {"start_time": start - timedelta(minutes=65)}}
    )

    response = client.post(UPDATE_URL, json={
        "action": "end",
        "meetingId": "room-1",
        "participantCount": 3
    })

    assert response.status_code == 200
    data = response.json()
    assert data["result"]["status"] == "completed"
    assert data["result"]["duration"] == 65
    assert data["stats"]["totalDuration"]["value"] == "1h 5m"
    assert data["stats"]["totalParticipants"]["value"] == 3


def test_end_without_active_meeting_returns_null_result(client):
    response = client.post(UPDATE_URL, json={"action": "end", "meetingId": "ghost"})

    assert response.status_code == 200
    assert response.json()["result"] is None


def test_cancel_action(client):
    client.post(UPDATE_URL, json={"action": "start", "meetingId": "room-1"})
    response = client.post(UPDATE_URL, json={"action": "cancel", "meetingId": "room-1"})

    assert response.status_code == 200
    assert response.json()["result"]["status"] == "cancelled"


def test_invalid_action_is_rejected(client):
    response = client.post(UPDATE_URL, json={"action": "pause", "meetingId": "room-1"})

    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "Invalid action"
    assert data["code"] == "VALIDATION_ERROR"


def test_missing_meeting_id_is_rejected(client):
    response = client.post(UPDATE_URL, json={"action": "start"})

    assert response.status_code == 400


def test_recent_meetings(client):
    for room in ("a", "b", "c"):
        client.post(UPDATE_URL, json={"action": "start", "meetingId": room})

    response = client.get(RECENT_URL, params={"limit": 2})

    assert response.status_code == 200
    meetings = response.json()["meetings"]
    assert len(meetings) == 2
    assert meetings[0]["formattedDuration"] == "0h 0m"
    assert "formattedStartTime" in meetings[0]

    assert len(client.get(RECENT_URL).json()["meetings"]) == 3


def test_recent_meetings_non_numeric_limit_uses_default(client):
    for room in ("a", "b", "c"):
        client.post(UPDATE_URL, json={"action": "start", "meetingId": room})

    response = client.get(RECENT_URL, params={"limit": "abc"})

    assert response.status_code == 200
    assert len(response.json()["meetings"]) == 3


def test_store_failure_returns_generic_500(client, monkeypatch):
    async def broken(user_id):
        raise StoreError("connection refused on 10.0.0.5:27017")

    monkeypatch.setattr(meeting_stats_service, "get_formatted_view", broken)

    response = client.get(STATS_URL)

    assert response.status_code == 500
    data = response.json()
    assert data["error"] == "Failed to fetch meeting statistics"
    assert "10.0.0.5" not in response.text


def test_resolve_user_id_from_session():
    request = Request({"type": "http", "headers": [], "session": {"user_id": 42}})
    assert resolve_user_id(request) == "42"


def test_resolve_user_id_from_attached_user():
    request = Request({"type": "http", "headers": [], "session": {}, "state": {"user": {"_id": "u9"}}})
    assert resolve_user_id(request) == "u9"


def test_resolve_user_id_missing():
    request = Request({"type": "http", "headers": [], "session": {}})
    assert resolve_user_id(request) is None
