# src/shop_web_bff/session.py

import logging
import time
import typing
import uuid

from fastapi import Request
from starlette.datastructures import MutableHeaders
from starlette.responses import Response as StarletteResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .config import settings
from .session_data import REDIRECT_TARGET_KEY

logger = logging.getLogger(__name__)

# --- Simple In-Memory Session Store ---
# This is a basic implementation for development/testing: sessions live in
# process memory and are lost on restart. For production, use a shared store
# such as Redis.
# One dict per browser session, keyed by the id kept in the session cookie.
# Plays the role of the browser's session-scoped storage for the callback flow.
SESSION_STORE: typing.Dict[str, dict] = {}
SESSION_LAST_SEEN: typing.Dict[str, float] = {}

SESSION_COOKIE_NAME = "session_id"


def prune_expired_sessions(now: typing.Optional[float] = None) -> int:
    """Drop sessions idle for longer than the cookie lifetime. Returns how many were removed."""
    now = time.monotonic() if now is None else now
    cutoff = now - settings.SESSION_COOKIE_MAX_AGE
    expired = [sid for sid, seen in SESSION_LAST_SEEN.items() if seen < cutoff]
    for sid in expired:
        SESSION_LAST_SEEN.pop(sid, None)
        SESSION_STORE.pop(sid, None)
    if expired:
        logger.debug("Pruned %d expired sessions", len(expired))
    return len(expired)


def _session_cookie_header(session_id: str) -> str:
    cookie = StarletteResponse()
    cookie.set_cookie(
        SESSION_COOKIE_NAME,
        session_id,
        max_age=settings.SESSION_COOKIE_MAX_AGE,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )
    return cookie.headers["set-cookie"]


class SessionMiddlewareCustom:
    """
    Pure ASGI session middleware.

    The server's receive channel is passed through untouched, so endpoints can
    still see http.disconnect through Request.is_disconnected().
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        prune_expired_sessions()
        session_id = Request(scope).cookies.get(SESSION_COOKIE_NAME)
        if not session_id or session_id not in SESSION_STORE:
            session_id = str(uuid.uuid4())
            SESSION_STORE[session_id] = {}
        SESSION_LAST_SEEN[session_id] = time.monotonic()

        scope.setdefault("state", {})
        scope["state"]["session_id"] = session_id
        scope["state"]["session"] = SESSION_STORE[session_id]

        async def send_with_cookie(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message).append("set-cookie", _session_cookie_header(session_id))
            await send(message)

        await self.app(scope, receive, send_with_cookie)


def get_session(request: Request) -> dict:
    return request.state.session


def is_local_path(path: typing.Optional[str]) -> bool:
    """True for application paths such as ``/dashboard``; rejects ``//host`` and absolute URLs."""
    if not path or not path.startswith("/"):
        return False
    return not path.startswith("//") and not path.startswith("/\\")


def remember_redirect_target(session: dict, path: str) -> None:
    """Record where the user was heading before being sent to log in."""
    if not is_local_path(path):
        logger.debug("Not remembering non-local redirect target %r", path)
        return
    session[REDIRECT_TARGET_KEY] = path


def take_redirect_target(session: dict) -> typing.Optional[str]:
    """
    Read and delete the stored redirect target in one step.

    The key is always removed, even when the stored value is not a usable
    local path, so a later unrelated login can never land on it.
    """
    target = session.pop(REDIRECT_TARGET_KEY, None)
    if target is None:
        return None
    if not is_local_path(target):
        logger.warning("Discarding non-local redirect target %r", target)
        return None
    return target
