"""
app/realtime/relay.py

Purpose: Real-time meeting statistics relay (Socket.IO)

- Authenticates each connection from the signed session cookie
- Keeps a per-connection context in the Socket.IO session
- Handles meeting-started / meeting-ended / meeting-cancelled messages
- Pushes stats-updated to the sender and to the user's other sessions
- Emits stats-error to the sender only on failure

The userId carried in message payloads is never trusted.
"""

import json
from base64 import b64decode
from datetime import datetime
from typing import Any, Dict, Optional

import socketio
from itsdangerous import BadSignature
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
from starlette.middleware.sessions import SessionMiddleware
from starlette.requests import cookie_parser

from app.core.config import settings
from app.core.exceptions import StoreError
from app.core.logging import get_logger, LogContext
from app.schemas.meeting_stats import (
    MeetingCancelledEvent,
    MeetingEndedEvent,
    MeetingStartedEvent,
    StatsBroadcast,
    StatsErrorEvent,
)
from app.services import meeting_stats_service

logger = get_logger(__name__)

GENERIC_ERROR = "Failed to update meeting statistics"


def user_room(user_id: str) -> str:
    """Room shared by every connection of one user."""
    return f"user:{user_id}"


def read_session_user_id(environ: Dict[str, Any]) -> Optional[str]:
    """
    Decodes the Starlette session cookie sent with the handshake.

    Cookie parsing, signer and max age are SessionMiddleware's own, built
    from the same options as the HTTP app, so both surfaces accept the
    same sessions.

    Returns:
        session["user_id"], or None if the cookie is missing or invalid
    """
    raw_cookie = environ.get("HTTP_COOKIE")
    if not raw_cookie:
        return None

    middleware = SessionMiddleware(app=None, **settings.session_middleware_options)
    value = cookie_parser(raw_cookie).get(middleware.session_cookie)
    if value is None:
        return None

    try:
        data = middleware.signer.unsign(value.encode("utf-8"), max_age=middleware.max_age)
        session = json.loads(b64decode(data))
    except (BadSignature, ValueError):
        logger.warning("Rejected invalid session cookie on socket handshake")
        return None

    user_id = session.get("user_id") if isinstance(session, dict) else None
    return str(user_id) if user_id else None


class ConnectionContext(BaseModel):
    """Server-verified identity bound to one Socket.IO connection."""
    sid: str
    user_id: str
    connected_at: datetime = Field(default_factory=datetime.utcnow)


class MeetingStatsRelay:
    """
    Socket.IO handlers mirroring the REST start / end / cancel actions.
    """

    def __init__(self, sio: socketio.AsyncServer):
        self.sio = sio
        sio.on("connect", self.on_connect)
        sio.on("disconnect", self.on_disconnect)
        sio.on("meeting-started", self.on_meeting_started)
        sio.on("meeting-ended", self.on_meeting_ended)
        sio.on("meeting-cancelled", self.on_meeting_cancelled)

    async def on_connect(self, sid: str, environ: Dict[str, Any], auth: Any = None):
        user_id = read_session_user_id(environ)
        if not user_id:
            logger.warning(f"Socket connection {sid} rejected: not authenticated")
            return False

        context = ConnectionContext(sid=sid, user_id=user_id)
        await self.sio.save_session(sid, {"context": context})
        await self.sio.enter_room(sid, user_room(user_id))

        logger.info("Stats socket connected", extra={"user_id": user_id, "sid": sid})
        return True

    async def on_disconnect(self, sid: str, reason: Any = None):
        context = await self.get_context(sid)
        if context is None:
            return

        await self.sio.leave_room(sid, user_room(context.user_id))
        logger.info(
            f"Stats socket disconnected ({reason or 'client'})",
            extra={"user_id": context.user_id, "sid": sid}
        )

    async def get_context(self, sid: str) -> Optional[ConnectionContext]:
        try:
            session = await self.sio.get_session(sid)
        except KeyError:
            return None
        return session.get("context") if session else None

    async def on_meeting_started(self, sid: str, data: Optional[Dict[str, Any]]):
        await self._relay(sid, "start", MeetingStartedEvent, data)

    async def on_meeting_ended(self, sid: str, data: Optional[Dict[str, Any]]):
        await self._relay(sid, "end", MeetingEndedEvent, data)

    async def on_meeting_cancelled(self, sid: str, data: Optional[Dict[str, Any]]):
        await self._relay(sid, "cancel", MeetingCancelledEvent, data)

    async def _apply(self, user_id: str, action: str, event: BaseModel):
        if action == "start":
            return await meeting_stats_service.record_meeting_start(
                user_id, event.meeting_id, event.meeting_title, bool(event.is_scheduled)
            )
        if action == "end":
            return await meeting_stats_service.record_meeting_end(
                user_id, event.meeting_id, event.participant_count
            )
        return await meeting_stats_service.cancel_meeting(user_id, event.meeting_id)

    async def _emit_error(self, sid: str, message: str):
        await self.sio.emit("stats-error", StatsErrorEvent(error=message).model_dump(), to=sid)

    async def _relay(self, sid: str, action: str, event_model, data: Optional[Dict[str, Any]]):
        context = await self.get_context(sid)
        if context is None:
            await self._emit_error(sid, "Not authenticated")
            return

        with LogContext(user_id=context.user_id, sid=sid, action=action):
            try:
                event = event_model.model_validate(data or {})
                if event.user_id and event.user_id != context.user_id:
                    logger.debug("Ignoring userId from message payload")

                await self._apply(context.user_id, action, event)
                stats = await meeting_stats_service.get_formatted_view(context.user_id)
            except PydanticValidationError as e:
                logger.warning(f"Invalid {action} payload: {e.error_count()} error(s)")
                await self._emit_error(sid, GENERIC_ERROR)
                return
            except StoreError as e:
                logger.error(f"Error handling meeting {action}: {e.message}")
                await self._emit_error(sid, GENERIC_ERROR)
                return
            except Exception as e:
                logger.error(f"Unexpected error handling meeting {action}: {e}", exc_info=True)
                await self._emit_error(sid, GENERIC_ERROR)
                return

            await self.sio.emit("stats-updated", stats.to_wire(), to=sid)

            broadcast = StatsBroadcast(user_id=context.user_id, stats=stats)
            await self.sio.emit(
                "stats-updated",
                broadcast.model_dump(mode="json", by_alias=True, exclude_none=True),
                room=user_room(context.user_id),
                skip_sid=sid
            )


def create_socket_server() -> socketio.AsyncServer:
    """Builds the ASGI Socket.IO server used alongside the FastAPI app."""
    origins = "*" if "*" in settings.CORS_ORIGINS else settings.CORS_ORIGINS
    return socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=origins,
        logger=settings.DEBUG,
        engineio_logger=False,
        ping_timeout=60,
        ping_interval=25
    )
