"""
Tests for callback.py - the identity-provider callback state machine.

Collaborators are in-memory fakes: a recorder for notifications and
navigation, a plain dict for the session, and AsyncMock for the exchange.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError

from shop_web_bff.auth_utils import ExchangeError
from shop_web_bff.callback import (
    Authenticated,
    CallbackHandler,
    CallbackMessages,
    CallbackQuery,
    ExchangeFailure,
    MissingCode,
    Mount,
    ProviderError,
    StaleResult,
)
from shop_web_bff.session import take_redirect_target
from shop_web_bff.session_data import REDIRECT_TARGET_KEY


class Recorder:
    def __init__(self):
        self.notifications = []
        self.navigations = []

    def notify(self, notification):
        self.notifications.append(notification)

    def navigate(self, path, *, replace_history=False):
        self.navigations.append((path, replace_history))


@pytest.fixture
def recorder():
    return Recorder()


def make_handler(recorder, session, exchange, provider="google"):
    return CallbackHandler(
        exchange_code=exchange,
        notify=recorder.notify,
        navigate=recorder.navigate,
        take_redirect_target=lambda: take_redirect_target(session),
        provider=provider,
        login_path="/auth",
        default_redirect_path="/",
    )


# =============================================================================
# Provider error and missing code
# =============================================================================


class TestRejectedCallbacks:
    """Callbacks that never reach the code exchange."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("params", [
        {"error": "access_denied"},
        {"error": "access_denied", "code": "abc123"},
    ])
    async def test_provider_error_wins(self, recorder, session, params):
        exchange = AsyncMock(return_value=True)
        session[REDIRECT_TARGET_KEY] = "/dashboard"

        outcome = await make_handler(recorder, session, exchange).handle(CallbackQuery(**params), Mount())

        assert outcome == ProviderError(reason="access_denied")
        exchange.assert_not_called()
        assert recorder.navigations == [("/auth", False)]
        assert len(recorder.notifications) == 1
        assert recorder.notifications[0].kind == "error"
        # Raw provider text is not shown to the user
        assert "access_denied" not in recorder.notifications[0].message
        # A retried login should still resume the same place
        assert session[REDIRECT_TARGET_KEY] == "/dashboard"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("params", [{}, {"code": ""}])
    async def test_missing_code(self, recorder, session, params):
        exchange = AsyncMock(return_value=True)

        outcome = await make_handler(recorder, session, exchange).handle(CallbackQuery(**params), Mount())

        assert outcome == MissingCode()
        exchange.assert_not_called()
        assert recorder.navigations == [("/auth", False)]
        assert [(n.kind, n.message) for n in recorder.notifications] == [
            ("error", "No authorization code received"),
        ]

    @pytest.mark.asyncio
    async def test_empty_error_does_not_block_exchange(self, recorder, session):
        exchange = AsyncMock(return_value=True)

        outcome = await make_handler(recorder, session, exchange).handle(
            CallbackQuery(code="abc123", error=""), Mount()
        )

        assert isinstance(outcome, Authenticated)
        exchange.assert_awaited_once_with("google", {"code": "abc123"})


# =============================================================================
# Code exchange
# =============================================================================


class TestExchange:
    """Callbacks carrying a code."""

    @pytest.mark.asyncio
    async def test_success_resumes_redirect_target(self, recorder, session):
        session[REDIRECT_TARGET_KEY] = "/dashboard"
        exchange = AsyncMock(return_value=True)

        outcome = await make_handler(recorder, session, exchange).handle(CallbackQuery(code="abc123"), Mount())

        assert outcome == Authenticated(redirect_to="/dashboard")
        exchange.assert_awaited_once_with("google", {"code": "abc123"})
        assert [(n.kind, n.message) for n in recorder.notifications] == [
            ("success", "Signed in with Google!"),
        ]
        assert recorder.navigations == [("/dashboard", True)]
        assert REDIRECT_TARGET_KEY not in session

    @pytest.mark.asyncio
    async def test_success_without_target_goes_to_root(self, recorder, session):
        exchange = AsyncMock(return_value=True)

        outcome = await make_handler(recorder, session, exchange).handle(CallbackQuery(code="abc123"), Mount())

        assert outcome == Authenticated(redirect_to="/")
        assert recorder.navigations == [("/", True)]
        assert REDIRECT_TARGET_KEY not in session

    @pytest.mark.asyncio
    async def test_rejected_exchange_keeps_target(self, recorder, session):
        session[REDIRECT_TARGET_KEY] = "/dashboard"
        exchange = AsyncMock(return_value=False)

        outcome = await make_handler(recorder, session, exchange).handle(CallbackQuery(code="abc123"), Mount())

        assert outcome == ExchangeFailure(message="Google sign-in failed")
        assert [(n.kind, n.message) for n in recorder.notifications] == [
            ("error", "Google sign-in failed"),
        ]
        assert recorder.navigations == [("/auth", False)]
        assert session[REDIRECT_TARGET_KEY] == "/dashboard"

    @pytest.mark.asyncio
    async def test_exception_message_is_surfaced(self, recorder, session):
        exchange = AsyncMock(side_effect=ExchangeError("network down"))

        outcome = await make_handler(recorder, session, exchange).handle(CallbackQuery(code="abc123"), Mount())

        assert outcome == ExchangeFailure(message="network down")
        assert [n.message for n in recorder.notifications] == ["network down"]
        assert recorder.navigations == [("/auth", False)]

    @pytest.mark.asyncio
    async def test_unexpected_exception_without_message_uses_generic_text(self, recorder, session):
        exchange = AsyncMock(side_effect=RuntimeError())

        outcome = await make_handler(recorder, session, exchange).handle(CallbackQuery(code="abc123"), Mount())

        assert outcome == ExchangeFailure(message="Google sign-in failed")
        assert len(recorder.notifications) == 1

    @pytest.mark.asyncio
    async def test_other_provider_is_passed_through(self, recorder, session):
        exchange = AsyncMock(return_value=True)

        await make_handler(recorder, session, exchange, provider="line").handle(CallbackQuery(code="xyz"), Mount())

        exchange.assert_awaited_once_with("line", {"code": "xyz"})
        assert recorder.notifications[0].message == "Signed in with LINE!"


# =============================================================================
# Liveness and re-entrancy
# =============================================================================


class TestMountLifetime:
    """Results that settle after the mount ended, and repeated invocations."""

    @pytest.mark.asyncio
    async def test_unmount_before_settle_drops_result(self, recorder, session):
        session[REDIRECT_TARGET_KEY] = "/dashboard"
        release = asyncio.Event()

        async def slow_exchange(provider, credentials):
            await release.wait()
            return True

        mount = Mount()
        task = asyncio.ensure_future(
            make_handler(recorder, session, slow_exchange).handle(CallbackQuery(code="abc123"), mount)
        )
        await asyncio.sleep(0)
        mount.unmount()
        release.set()

        assert await task == StaleResult()
        assert recorder.notifications == []
        assert recorder.navigations == []
        assert session[REDIRECT_TARGET_KEY] == "/dashboard"

    @pytest.mark.asyncio
    async def test_unmount_before_failure_drops_result(self, recorder, session):
        mount = Mount()

        async def failing_exchange(provider, credentials):
            mount.unmount()
            raise ExchangeError("network down")

        outcome = await make_handler(recorder, session, failing_exchange).handle(CallbackQuery(code="abc123"), mount)

        assert outcome == StaleResult()
        assert recorder.notifications == []
        assert recorder.navigations == []

    @pytest.mark.asyncio
    async def test_concurrent_handle_shares_one_exchange(self, recorder, session):
        exchange = AsyncMock(return_value=True)
        handler = make_handler(recorder, session, exchange)
        query = CallbackQuery(code="abc123")
        mount = Mount()

        first, second = await asyncio.gather(handler.handle(query, mount), handler.handle(query, mount))

        assert first == second == Authenticated(redirect_to="/")
        exchange.assert_awaited_once()
        assert len(recorder.notifications) == 1
        assert len(recorder.navigations) == 1

    @pytest.mark.asyncio
    async def test_duplicate_mount_fails_cleanly_on_used_code(self, recorder, session):
        session[REDIRECT_TARGET_KEY] = "/dashboard"
        exchange = AsyncMock(side_effect=[True, ExchangeError("Authorization code already used")])
        query = CallbackQuery(code="abc123")

        first = await make_handler(recorder, session, exchange).handle(query, Mount())
        second = await make_handler(recorder, session, exchange).handle(query, Mount())

        assert first == Authenticated(redirect_to="/dashboard")
        assert second == ExchangeFailure(message="Authorization code already used")
        assert [n.kind for n in recorder.notifications] == ["success", "error"]
        assert recorder.navigations == [("/dashboard", True), ("/auth", False)]
        assert REDIRECT_TARGET_KEY not in session


class TestCallbackQuery:
    def test_from_params_ignores_unrelated_keys(self):
        query = CallbackQuery.from_params({"code": "abc123", "state": "s", "scope": "email"})

        assert query.code == "abc123"
        assert query.error is None

    def test_is_immutable(self):
        query = CallbackQuery(code="abc123")

        with pytest.raises(ValidationError):
            query.code = "other"

    def test_messages_fall_back_to_capitalized_provider(self):
        messages = CallbackMessages.for_provider("github")

        assert messages.failed == "Github sign-in failed"
