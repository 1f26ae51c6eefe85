"""
app/client/stats_widget.py

Purpose: Client-side meeting statistics widget

- Loads the formatted view over REST (httpx)
- Subscribes to stats-updated / stats-error pushes (python-socketio client)
- Polls the REST endpoint as a fallback
- Renders the four stat cards into display strings
- Emits meeting-started / meeting-ended for the current call
"""

import asyncio
from typing import Any, Callable, Dict, Optional

import httpx
import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

# card key -> field of the formatted view
CARD_FIELDS = {
    "total-calls": "totalCalls",
    "call-duration": "totalDuration",
    "participants": "totalParticipants",
    "meetings-scheduled": "meetingsScheduled",
}


class StatsWidgetError(Exception):
    """Raised when statistics cannot be loaded."""
    pass


def change_text(change: int, change_type: str) -> str:
    """Human text for a month-over-month change."""
    if change_type == "neutral" or change == 0:
        return "Same as last month"
    sign = "+" if change > 0 else ""
    return f"{sign}{change}% from last month"


def change_icon(change_type: str) -> str:
    if change_type == "positive":
        return "arrow-up"
    if change_type == "negative":
        return "arrow-down"
    return "minus"


def render_cards(stats: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Turns a formatted view into per-card display values.

    Cards missing from the view are skipped.
    """
    cards = {}
    for card, field in CARD_FIELDS.items():
        stat = stats.get(field)
        if not stat:
            continue
        cards[card] = {
            "number": stat["value"],
            "change_type": stat["changeType"],
            "change_text": change_text(stat["change"], stat["changeType"]),
            "icon": change_icon(stat["changeType"]),
        }
    return cards


class StatsWidget:
    """
    Keeps an up-to-date copy of the current user's statistics.

    Args:
        base_url: Server root, e.g. http://localhost:8000
        cookies: Session cookies of the logged-in user
        on_render: Called with the rendered cards after every update
        on_error: Called with a message when an update fails
    """

    def __init__(
        self,
        base_url: str,
        cookies: Optional[Dict[str, str]] = None,
        on_render: Optional[Callable[[Dict[str, Dict[str, Any]]], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
        poll_interval: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        socket_client: Optional[socketio.AsyncClient] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.cookies = cookies or {}
        self.on_render = on_render
        self.on_error = on_error
        self.poll_interval = poll_interval or settings.STATS_POLL_INTERVAL_SECONDS
        self.http = http_client or httpx.AsyncClient(base_url=self.base_url, cookies=self.cookies, timeout=10.0)
        self.socket = socket_client or socketio.AsyncClient(reconnection=True)
        self.current_stats: Optional[Dict[str, Any]] = None
        self.cards: Dict[str, Dict[str, Any]] = {}
        self._poll_task: Optional[asyncio.Task] = None

        self.socket.on("stats-updated", self.handle_stats_updated)
        self.socket.on("stats-error", self.handle_stats_error)

    async def start(self):
        """Connects the push channel, loads initial stats and starts polling."""
        cookie_header = "; ".join(f"{name}={value}" for name, value in self.cookies.items())
        try:
            await self.socket.connect(self.base_url, headers={"Cookie": cookie_header})
        except SocketConnectionError as e:
            # Polling still keeps the view fresh
            logger.warning(f"Stats push channel unavailable: {e}")

        await self.refresh()
        if self._poll_task is None:
            self._poll_task = asyncio.create_task(self._poll(), name="stats-widget-poll")

    async def stop(self):
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

        if self.socket.connected:
            await self.socket.disconnect()
        await self.http.aclose()

    async def load_stats(self) -> Dict[str, Any]:
        """
        Fetches the formatted view over REST.

        Raises:
            StatsWidgetError: On transport failure or an unsuccessful response
        """
        try:
            response = await self.http.get(f"{settings.API_PREFIX}/meeting-stats")
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise StatsWidgetError("Failed to load statistics") from e

        if response.status_code != 200 or not data.get("success"):
            raise StatsWidgetError(data.get("error") or "Failed to load statistics")
        return data["stats"]

    async def refresh(self):
        try:
            stats = await self.load_stats()
        except StatsWidgetError as e:
            logger.error(f"Error loading stats: {e}")
            self._report_error("Failed to load statistics")
            return
        self.update(stats)

    def update(self, stats: Dict[str, Any]):
        if not stats:
            return
        self.current_stats = stats
        self.cards = render_cards(stats)
        if self.on_render:
            self.on_render(self.cards)

    async def handle_stats_updated(self, data: Dict[str, Any]):
        # Broadcasts from the user's other sessions are wrapped as {userId, stats}
        stats = data.get("stats") if "userId" in data else data
        self.update(stats)

    async def handle_stats_error(self, data: Dict[str, Any]):
        logger.error(f"Stats error: {data.get('error')}")
        self._report_error("Failed to update statistics")

    async def record_meeting_start(self, meeting_id: str, meeting_title: str = "Video Call", is_scheduled: bool = False):
        if not self.socket.connected:
            return
        await self.socket.emit("meeting-started", {
            "meetingId": meeting_id,
            "meetingTitle": meeting_title,
            "isScheduled": is_scheduled
        })

    async def record_meeting_end(self, meeting_id: str, participant_count: int = 1):
        if not self.socket.connected:
            return
        await self.socket.emit("meeting-ended", {
            "meetingId": meeting_id,
            "participantCount": participant_count
        })

    async def _poll(self):
        while True:
            await asyncio.sleep(self.poll_interval)
            await self.refresh()

    def _report_error(self, message: str):
        if self.on_error:
            self.on_error(message)
