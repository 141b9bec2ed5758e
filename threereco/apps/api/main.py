from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import time
from typing import AsyncIterator
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from threereco.apps.api.errors import (
    domain_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from threereco.apps.api.routes.audit_logs import router as audit_logs_router
from threereco.apps.api.routes.authentication import router as authentication_router
from threereco.apps.api.routes.bank_details import router as bank_details_router
from threereco.apps.api.routes.collections import router as collections_router
from threereco.apps.api.routes.health import router as health_router
from threereco.apps.api.routes.materials import router as materials_router
from threereco.apps.api.routes.notifications import router as notifications_router
from threereco.apps.api.routes.organizations import router as organizations_router
from threereco.apps.api.routes.products import router as products_router
from threereco.apps.api.routes.roles import permissions_router, router as roles_router
from threereco.apps.api.routes.transactions import router as transactions_router
from threereco.apps.api.routes.users import router as users_router
from threereco.core.config import BOOTSTRAP_USER_ID, get_settings
from threereco.core.errors import ThreeRecoError
from threereco.core.logging import configure_logging
from threereco.persistence.db import SessionLocal
from threereco.persistence.transaction import audited_transaction
from threereco.services.bootstrap import seed_admin


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Optional first-run bootstrap; scripts/seed_admin.py does the same offline.
    if get_settings().seed_on_startup:
        async with SessionLocal() as session:
            async with audited_transaction(session, audit_user_id=BOOTSTRAP_USER_ID) as tx:
                await seed_admin(tx)
    yield


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    origins = [origin.strip() for origin in settings.cors_allowed_origins.split(",") if origin.strip()]
    if origins:
        # Cookies are the credential, so browsers must be allowed to send them.
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        latency_ms = (time.monotonic() - start) * 1000.0
        logger.info(
            "request_completed request_id=%s method=%s path=%s status=%s latency_ms=%.1f",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            latency_ms,
        )
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    @app.exception_handler(ThreeRecoError)
    async def _domain_exception_handler(request: Request, exc: ThreeRecoError):
        return await domain_exception_handler(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def _starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await http_exception_handler(request, exc)

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException):
        return await http_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    app.include_router(health_router)
    app.include_router(authentication_router)
    app.include_router(materials_router)
    app.include_router(products_router)
    app.include_router(collections_router)
    app.include_router(transactions_router)
    app.include_router(organizations_router)
    # Static role paths must win over "/roles/{object_id}".
    app.include_router(permissions_router)
    app.include_router(roles_router)
    app.include_router(users_router)
    app.include_router(bank_details_router)
    app.include_router(notifications_router)
    app.include_router(audit_logs_router)
    return app


app = create_app()
