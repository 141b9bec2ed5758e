from __future__ import annotations

import logging
from typing import Literal
from uuid import uuid4

from fastapi import APIRouter, Depends, Request, Response
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from threereco.apps.api.deps import (
    Principal,
    RequestContext,
    bootstrap_transaction,
    clear_session_cookie,
    get_db,
    get_optional_user,
    get_session_manager,
    require,
    session_token,
    set_session_cookie,
)
from threereco.apps.api.response import ApiModel, success_response
from threereco.core.errors import BadRequestError, ConflictError, UnauthorizedError
from threereco.domain.models import User
from threereco.persistence.repos import users as users_repo
from threereco.persistence.transaction import audited_transaction
from threereco.services import entities
from threereco.services.auth import mfa as mfa_service
from threereco.services.auth.passwords import hash_password, verify_password
from threereco.services.auth.sessions import SessionManager
from threereco.services.bootstrap import provision_business
from threereco.services.tables import USERS


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/authentication", tags=["authentication"])

_INVALID_CREDENTIALS = "Invalid email or password."


class LoginRequest(ApiModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1)


class RegisterRequest(ApiModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=8)
    type: Literal["system", "collector", "business"] = "collector"


class MfaVerifyRequest(ApiModel):
    code: str


@router.post("/login")
async def login(
    payload: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    manager: SessionManager = Depends(get_session_manager),
) -> Principal:
    # Unknown email and wrong password share one response so accounts cannot be probed.
    user = await users_repo.get_by_email(db, payload.email)
    if user is None or not await verify_password(payload.password, user.password):
        logger.warning("login_failed email=%s", payload.email.lower())
        raise UnauthorizedError(_INVALID_CREDENTIALS)

    # Every fresh login must pass the MFA check again; the session only exists once that is stored.
    async with audited_transaction(db, audit_user_id=user.id, ignore_audit_log=True) as tx:
        await entities.update_row(tx, USERS, user.id, {"mfa_verified": False}, trusted=True)
    state = await manager.create(user.id)

    principal = await users_repo.load_principal(db, user.id)
    set_session_cookie(response, state.token)
    logger.info("login_succeeded user_id=%s", user.id)
    return Principal.from_user(principal)


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    manager: SessionManager = Depends(get_session_manager),
) -> dict[str, str]:
    removed = await manager.destroy(session_token(request))
    clear_session_cookie(response)
    logger.info("logout removed=%s", removed)
    return success_response("Logged out successfully.")


@router.get("/check")
async def check(ctx: RequestContext = Depends(require())) -> Principal:
    return ctx.principal


@router.post("/register")
async def register(
    payload: RegisterRequest,
    response: Response,
    current_user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    manager: SessionManager = Depends(get_session_manager),
) -> Principal:
    """Create an account and sign it in.

    Business accounts also get their own organization and the default business
    roles, with the new user holding the owner role. Every row written here is
    attributed to the new user.
    """
    if current_user is not None:
        raise BadRequestError("You are already logged in.")
    if payload.type == "system":
        logger.warning("register_denied type=system email=%s", payload.email.lower())
        raise UnauthorizedError("You are not allowed to register a system account.")
    if await users_repo.get_by_email(db, payload.email) is not None:
        raise ConflictError("A user with this email already exists.")

    user_id = uuid4()
    password_hash = await hash_password(payload.password)
    async with bootstrap_transaction(db, user_id) as tx:
        user = await entities.create_row(
            tx,
            USERS,
            {
                "id": user_id,
                "email": payload.email,
                "name": payload.name,
                "password": password_hash,
                "type": payload.type,
                "permissions": [],
            },
            trusted=True,
        )
        if payload.type == "business":
            await provision_business(tx, user)

    state = await manager.create(user_id)
    principal = await users_repo.load_principal(db, user_id)
    set_session_cookie(response, state.token)
    logger.info("user_registered user_id=%s type=%s", user_id, payload.type)
    return Principal.from_user(principal)


@router.get("/mfa/enable")
async def enable_mfa(ctx: RequestContext = Depends(require())) -> Response:
    async with ctx.transaction(ignore_audit_log=True) as tx:
        image = await mfa_service.enroll(tx, ctx.user)
    return Response(content=image, media_type="image/png")


@router.post("/mfa/verify")
async def verify_mfa(
    payload: MfaVerifyRequest,
    ctx: RequestContext = Depends(require()),
) -> dict[str, str]:
    async with ctx.transaction(ignore_audit_log=True) as tx:
        await mfa_service.verify(tx, ctx.user, payload.code)
    return success_response("Multi-Factor Authentication verified successfully.")
