from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from account_api import __version__
from account_api.core.config import Settings, get_settings
from account_api.core.logging import configure_logging
from account_api.db.create_tables import create_all
from account_api.routers import users as users_router
from account_api.services.account_service import AccountService, build_account_service

log = logging.getLogger("account_api.app")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Inject baseline security headers for a JSON API."""

    def __init__(self, app, *, enforce_hsts: bool) -> None:
        super().__init__(app)
        self._enforce_hsts = enforce_hsts

    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault("Cache-Control", "no-store")
        if self._enforce_hsts:
            response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        return response


def create_app(settings: Settings | None = None, account_service: AccountService | None = None) -> FastAPI:
    """Factory compatible with uvicorn/gunicorn (``uvicorn account_api.app:create_app --factory``)."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        # prod schemas are managed with `python -m account_api.db.create_tables`
        if settings.app_env != "prod":
            create_all()
        yield

    app = FastAPI(title="Account API", version=__version__, lifespan=lifespan)
    app.state.account_service = account_service or build_account_service(settings)

    allowed_cors = {settings.public_base_url}
    if settings.app_env != "prod":
        allowed_cors.update(
            {
                "http://localhost:8000",
                "http://127.0.0.1:8000",
                "http://localhost:5173",
                "http://127.0.0.1:5173",
            }
        )
    allowed_cors = {origin for origin in allowed_cors if origin}
    if allowed_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=sorted(allowed_cors),
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=["*"],
        )
    app.add_middleware(SecurityHeadersMiddleware, enforce_hsts=settings.app_env == "prod")

    @app.get("/healthz")
    def healthz():
        return {"ok": True}

    app.include_router(users_router.router)
    log.info("Account API ready (env=%s, sms=%s)", settings.app_env, app.state.account_service.sms.get_provider_name())
    return app
