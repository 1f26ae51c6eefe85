"""
app/api/deps.py

Purpose: Shared request dependencies

- Resolves the authenticated user from the session cookie or an
  upstream-attached user object
"""

from typing import Optional

from fastapi import Request

from app.core.exceptions import AuthenticationError


def resolve_user_id(request: Request) -> Optional[str]:
    """
    Identity from session["user_id"], falling back to request.state.user.
    """
    user_id = request.session.get("user_id") if "session" in request.scope else None
    if user_id:
        return str(user_id)

    user = getattr(request.state, "user", None)
    if user is None:
        return None
    if isinstance(user, dict):
        user_id = user.get("id") or user.get("_id")
    else:
        user_id = getattr(user, "id", None)
    return str(user_id) if user_id else None


async def get_current_user_id(request: Request) -> str:
    """
    FastAPI dependency returning the authenticated user ID.

    Raises:
        AuthenticationError: If no identity is attached to the request
    """
    user_id = resolve_user_id(request)
    if not user_id:
        raise AuthenticationError("Not authenticated")
    return user_id
