"""
hubcomm: FastAPI application entry-point.

Run with:
    uvicorn hubcomm.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from hubcomm.config import settings
from hubcomm.errors import HubError
from hubcomm.routers.auth import CurrentUser, set_auth_cookie, token_for
from hubcomm.services.container import HubServices

# ── Import routers ──
from hubcomm.routers import auth, broadcasts, mentions, messages, presence, realtime

import hubcomm.models  # noqa: F401  (register tables on Base.metadata)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(services: Optional[HubServices] = None) -> FastAPI:
    # ── Lifespan: create tables and wire services on startup ──
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        hub = services or HubServices.build()
        await hub.store.create_all()
        app.state.services = hub
        logger.info(f"{settings.APP_NAME} started")
        yield
        await hub.close()
        if services is None:
            await hub.store.close()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Hub messaging, broadcast alerts, typing presence and notifications.",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=("*",))

    @app.exception_handler(HubError)
    async def hub_error_handler(request: Request, exc: HubError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    # ── Register API routers ──
    app.include_router(auth.router)
    app.include_router(messages.router)
    app.include_router(broadcasts.router)
    app.include_router(presence.router)
    app.include_router(mentions.router)
    app.include_router(realtime.router)

    @app.get("/health")
    async def health(request: Request):
        hub: HubServices = request.app.state.services
        return {"status": "ok", "subscriptions": hub.store.subscription_count()}

    if settings.ENVIRONMENT != "production":
        @app.get("/mock-login/{user_id}")
        def mock_login(user_id: str, name: Optional[str] = None, elevated: bool = False):
            """Issue a token without the identity service (development only)."""
            user = CurrentUser(id=user_id, display_name=name or user_id, is_elevated=elevated)
            resp = JSONResponse({"access_token": token_for(user), "user": user.model_dump()})
            return set_auth_cookie(resp, user)

    return app


app = create_app()
