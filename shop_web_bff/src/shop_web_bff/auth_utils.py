# src/shop_web_bff/auth_utils.py
import logging
import typing

import httpx
from fastapi import Request
from pydantic import ValidationError

from .config import settings
from .session import get_session
from .session_data import USER_KEY, ExchangeResponse

logger = logging.getLogger(__name__)


class ExchangeError(Exception):
    """The shop backend could not turn an authorization code into a session."""

    def __init__(self, message: str = "", status_code: typing.Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _error_message_from(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return ""
    if not isinstance(body, dict):
        return ""
    message = body.get("message") or body.get("detail") or body.get("error") or ""
    return message if isinstance(message, str) else ""


class AuthSessionService:
    """
    Client for the shop backend's OAuth login endpoint.

    On success the backend establishes the session and returns the user, which is
    recorded as the current identity in the BFF session.
    """

    def __init__(
            self,
            session: dict,
            base_url: typing.Optional[str] = None,
            timeout: typing.Optional[float] = None,
            transport: typing.Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._session = session
        self._base_url = base_url or str(settings.AUTH_API_BASE_URL)
        self._timeout = timeout if timeout is not None else settings.EXCHANGE_TIMEOUT_SECONDS
        self._transport = transport

    async def exchange_code(self, provider: str, credentials: typing.Dict[str, str]) -> bool:
        """
        POSTs the credentials to /auth/oauth/{provider}.
        Returns True once a session is established, False when the backend answers
        without a user. Raises ExchangeError on HTTP or transport failure.
        """
        async with httpx.AsyncClient(
                base_url=self._base_url, timeout=self._timeout, transport=self._transport
        ) as client:
            try:
                logger.info("Exchanging %s authorization code with the auth API", provider)
                response = await client.post(f"/auth/oauth/{provider}", json=credentials)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                message = _error_message_from(e.response)
                logger.warning(
                    "Auth API rejected %s code exchange: %s %s",
                    provider, e.response.status_code, message or "(no message)"
                )
                raise ExchangeError(message, status_code=e.response.status_code) from e
            except httpx.RequestError as e:
                logger.warning("Could not reach auth API for %s code exchange: %r", provider, e)
                raise ExchangeError(str(e)) from e

        try:
            payload = ExchangeResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning("Auth API returned an unreadable %s login response: %s", provider, e)
            return False

        if payload.user is None:
            logger.warning("Auth API %s login response carried no user", provider)
            return False

        self._session[USER_KEY] = payload.user.model_dump()
        logger.info("Session established for user id %s via %s", payload.user.id, provider)
        return True


def get_auth_service(request: Request) -> AuthSessionService:
    return AuthSessionService(get_session(request))
