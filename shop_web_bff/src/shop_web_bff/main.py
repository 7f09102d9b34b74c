# src/shop_web_bff/main.py

import logging
import typing
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Request, HTTPException, status
from fastapi.responses import RedirectResponse, Response

from .auth_utils import AuthSessionService, get_auth_service
from .callback import CallbackHandler, CallbackQuery, Mount
from .config import settings
from .notifications import SessionNotificationSink
from .session import SessionMiddlewareCustom, get_session, remember_redirect_target, take_redirect_target
from .session_data import USER_KEY

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("--- Shop-Web-BFF (FastAPI) Starting Up ---")
    logger.info("Auth API Base URL: %s", settings.AUTH_API_BASE_URL)
    logger.info("OAuth providers: %s", ", ".join(settings.OAUTH_PROVIDERS))
    logger.info("Login path: %s", settings.LOGIN_PATH)
    if not settings.SESSION_COOKIE_SECURE:
        logger.warning("SESSION_COOKIE_SECURE is off; enable it when serving over HTTPS.")
    yield


# --- FastAPI App Setup ---
app = FastAPI(
    title="Shop-Web-BFF API",
    description="Backend-For-Frontend for the shop web client, completing identity-provider logins.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    SessionMiddlewareCustom,
)


class RequestMount(Mount):
    """A callback mount that ends when the browser drops the request."""

    def __init__(self, request: Request):
        super().__init__()
        self._request = request

    async def is_active(self) -> bool:
        if await self._request.is_disconnected():
            self.unmount()
        return await super().is_active()


class ResponseNavigator:
    """Turns a navigation intent into the redirect returned by the callback route."""

    def __init__(self):
        self.response: typing.Optional[Response] = None

    def go_to(self, path: str, *, replace_history: bool = False) -> None:
        if replace_history:
            # 303 replaces the callback entry; keep the consumed code out of caches and referrers
            response = RedirectResponse(url=path, status_code=status.HTTP_303_SEE_OTHER)
            response.headers["Cache-Control"] = "no-store"
            response.headers["Referrer-Policy"] = "no-referrer"
        else:
            response = RedirectResponse(url=path, status_code=status.HTTP_302_FOUND)
        self.response = response


def is_auth_flow_path(path: str) -> bool:
    """The login entry point and provider callbacks, which must never be resumed after login."""
    if path.rstrip("/") == settings.LOGIN_PATH.rstrip("/"):
        return True
    parts = path.strip("/").split("/")
    return len(parts) == 3 and parts[0] == "auth" and parts[2] == "callback"


# --- Dependency for checking authentication ---
async def get_authenticated_user(request: Request) -> dict:
    session = get_session(request)
    user_session_data = session.get(USER_KEY)

    if not user_session_data:
        logger.debug("No user in session for %s; redirecting to %s", request.url.path, settings.LOGIN_PATH)
        if not is_auth_flow_path(request.url.path):
            redirect_path = request.url.path
            if request.url.query:
                redirect_path = f"{redirect_path}?{request.url.query}"
            remember_redirect_target(session, redirect_path)
        raise HTTPException(
            status_code=status.HTTP_307_TEMPORARY_REDIRECT,
            detail="Not authenticated",
            headers={"Location": settings.LOGIN_PATH},
        )

    return user_session_data


# --- Authentication Routes ---
@app.get("/auth/{provider}/callback")
async def oauth_callback(
        provider: str,
        request: Request,
        auth_service: AuthSessionService = Depends(get_auth_service),
):
    provider = provider.lower()
    if provider not in settings.OAUTH_PROVIDERS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown identity provider: {provider}")

    session = get_session(request)
    navigator = ResponseNavigator()
    handler = CallbackHandler(
        exchange_code=auth_service.exchange_code,
        notify=SessionNotificationSink(session).show,
        navigate=navigator.go_to,
        take_redirect_target=lambda: take_redirect_target(session),
        provider=provider,
        login_path=settings.LOGIN_PATH,
        default_redirect_path=settings.DEFAULT_REDIRECT_PATH,
    )
    outcome = await handler.handle(CallbackQuery.from_params(request.query_params), RequestMount(request))
    logger.info("%s callback finished: %s", provider, type(outcome).__name__)

    if navigator.response is None:
        # Client went away before the exchange settled; nobody is left to redirect
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return navigator.response


@app.get("/logout")
async def logout(request: Request):
    session = get_session(request)
    user_before_logout = (session.get(USER_KEY) or {}).get("id", "Not in session")
    session.clear()
    logger.info("Logged out user id %s", user_before_logout)
    return RedirectResponse(url=settings.LOGIN_PATH, status_code=status.HTTP_302_FOUND)


# --- BFF API Endpoints (called by the frontend) ---
@app.get("/api/bff/userinfo")
async def get_user_info(user: dict = Depends(get_authenticated_user)):
    return {"user": user}


@app.get("/api/bff/notifications")
async def get_notifications(request: Request):
    sink = SessionNotificationSink(get_session(request))
    return {"notifications": [n.model_dump() for n in sink.drain()]}


@app.get("/")
async def home():
    return {"message": "Shop Web BFF is running!"}
