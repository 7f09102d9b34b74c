# src/shop_web_bff/session_data.py

from pydantic import BaseModel, ConfigDict
from typing import Optional

# Session keys shared by the middleware, the auth guard and the callback flow
USER_KEY = "user"
REDIRECT_TARGET_KEY = "auth_redirect"
NOTIFICATIONS_KEY = "notifications"


class SessionUser(BaseModel):
    """
    The authenticated identity as reported by the shop backend.
    Stored in the server-side session after a successful code exchange.
    """
    model_config = ConfigDict(extra="allow")

    id: str
    email: Optional[str] = None
    username: Optional[str] = None
    role: str = "USER"
    points: int = 0


class ExchangeResponse(BaseModel):
    """Body returned by the shop backend for POST /auth/oauth/{provider}."""
    model_config = ConfigDict(extra="ignore")

    user: Optional[SessionUser] = None
