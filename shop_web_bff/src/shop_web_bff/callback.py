# src/shop_web_bff/callback.py
"""
Identity-provider callback handling.

A provider redirect lands here with either ``code`` or ``error`` in the query.
The handler decides which of four exits applies, exchanges the code when there
is one, and reports the result through a notification sink and a navigator.
It never raises to its caller.
"""
import asyncio
import logging
import typing
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict

from .notifications import Notification

logger = logging.getLogger(__name__)

PROVIDER_DISPLAY_NAMES = {
    "google": "Google",
    "line": "LINE",
}

ExchangeCode = typing.Callable[[str, typing.Dict[str, str]], typing.Awaitable[bool]]
Notify = typing.Callable[[Notification], None]
TakeRedirectTarget = typing.Callable[[], typing.Optional[str]]


class Navigate(typing.Protocol):
    def __call__(self, path: str, *, replace_history: bool = False) -> None: ...


class CallbackQuery(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    code: typing.Optional[str] = None
    error: typing.Optional[str] = None
    error_description: typing.Optional[str] = None

    @classmethod
    def from_params(cls, params: typing.Mapping[str, str]) -> "CallbackQuery":
        return cls(
            code=params.get("code"),
            error=params.get("error"),
            error_description=params.get("error_description"),
        )


# --- Outcomes ---

@dataclass(frozen=True)
class ProviderError:
    reason: str


@dataclass(frozen=True)
class MissingCode:
    pass


@dataclass(frozen=True)
class Authenticated:
    redirect_to: str


@dataclass(frozen=True)
class ExchangeFailure:
    message: str


@dataclass(frozen=True)
class StaleResult:
    pass


CallbackOutcome = typing.Union[ProviderError, MissingCode, Authenticated, ExchangeFailure, StaleResult]


class Mount:
    """Liveness of one callback invocation. Results settling after unmount() are dropped."""

    def __init__(self):
        self._active = True

    def unmount(self) -> None:
        self._active = False

    async def is_active(self) -> bool:
        return self._active


@dataclass(frozen=True)
class CallbackMessages:
    signed_in: str
    failed: str
    missing_code: str = "No authorization code received"

    @classmethod
    def for_provider(cls, provider: str) -> "CallbackMessages":
        name = PROVIDER_DISPLAY_NAMES.get(provider, provider.capitalize())
        return cls(signed_in=f"Signed in with {name}!", failed=f"{name} sign-in failed")


class CallbackHandler:
    """
    One-shot handler for a single callback mount.

    Calling handle() again while a run is in flight, or after it finished,
    returns the same outcome without starting a second exchange.
    """

    def __init__(
            self,
            exchange_code: ExchangeCode,
            notify: Notify,
            navigate: Navigate,
            take_redirect_target: TakeRedirectTarget,
            provider: str = "google",
            login_path: str = "/auth",
            default_redirect_path: str = "/",
    ):
        self._exchange_code = exchange_code
        self._notify = notify
        self._navigate = navigate
        self._take_redirect_target = take_redirect_target
        self._provider = provider
        self._login_path = login_path
        self._default_redirect_path = default_redirect_path
        self._messages = CallbackMessages.for_provider(provider)
        self._run: typing.Optional[asyncio.Future] = None

    async def handle(self, query: CallbackQuery, mount: Mount) -> CallbackOutcome:
        if self._run is None:
            self._run = asyncio.ensure_future(self._handle_once(query, mount))
        return await self._run

    async def _handle_once(self, query: CallbackQuery, mount: Mount) -> CallbackOutcome:
        if query.error:
            # Raw provider text stays in the logs only
            logger.warning(
                "%s callback reported error=%r description=%r",
                self._provider, query.error, query.error_description
            )
            self._fail(self._messages.failed)
            return ProviderError(reason=query.error)

        if not query.code:
            logger.warning("%s callback received no authorization code", self._provider)
            self._fail(self._messages.missing_code)
            return MissingCode()

        logger.info("%s callback received code, exchanging for a session", self._provider)
        try:
            succeeded = await self._exchange_code(self._provider, {"code": query.code})
            failure_message = "" if succeeded else self._messages.failed
        except Exception as e:
            logger.warning("%s code exchange raised: %r", self._provider, e)
            succeeded = False
            failure_message = str(e) or self._messages.failed

        if not await mount.is_active():
            logger.info("%s callback unmounted before the exchange settled; result dropped", self._provider)
            return StaleResult()

        if not succeeded:
            self._fail(failure_message)
            return ExchangeFailure(message=failure_message)

        self._notify(Notification(kind="success", message=self._messages.signed_in))
        redirect_to = self._take_redirect_target() or self._default_redirect_path
        self._navigate(redirect_to, replace_history=True)
        logger.info("%s sign-in complete, resuming at %s", self._provider, redirect_to)
        return Authenticated(redirect_to=redirect_to)

    def _fail(self, message: str) -> None:
        self._notify(Notification(kind="error", message=message))
        self._navigate(self._login_path)
