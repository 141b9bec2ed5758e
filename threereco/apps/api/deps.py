from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
import logging
from typing import AsyncGenerator, Iterable
from uuid import UUID

from fastapi import Depends, Request, Response
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from threereco.apps.api.response import ApiModel
from threereco.core.config import get_settings
from threereco.core.errors import ForbiddenError, NotFoundError, UnauthorizedError
from threereco.domain.models import User
from threereco.persistence.db import SessionLocal, get_session
from threereco.persistence.filters import RowFilter, TrueFilter
from threereco.persistence.repos import users as users_repo
from threereco.persistence.transaction import AuditedTransaction, audited_transaction
from threereco.services.auth.sessions import SessionManager, SessionState
from threereco.services.authz.permissions import PermissionSet, authorize, effective_permissions
from threereco.services.authz.policies import PolicyKind, compile_policies


logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


_session_manager: SessionManager | None = None


def get_session_manager() -> SessionManager:
    # Process-wide manager; state itself lives in the shared store.
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager(SessionLocal, ttl_seconds=get_settings().session_ttl_seconds)
    return _session_manager


class Principal(ApiModel):
    # Request-facing snapshot of the authenticated user.
    id: UUID
    email: str
    name: str | None = None
    phone: str | None = None
    image: str | None = None
    job_title: str | None = None
    type: str
    primary_organization_id: UUID | None = None
    mfa_enabled: bool = False
    mfa_verified: bool = False
    roles: list[str] = Field(default_factory=list)
    organization_ids: list[UUID] = Field(default_factory=list)
    permissions: list[str] = Field(default_factory=list)

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            phone=user.phone,
            image=user.image,
            job_title=user.job_title,
            type=user.type,
            primary_organization_id=user.primary_organization_id,
            mfa_enabled=bool(user.mfa_enabled),
            mfa_verified=bool(user.mfa_verified),
            roles=[role.name for role in user.roles],
            organization_ids=[organization.id for organization in user.organizations],
            permissions=sorted(effective_permissions(user.permissions, user.roles)),
        )


@dataclass
class RequestContext:
    """Everything a protected handler needs: who is acting and which rows they may see."""

    principal: Principal
    user: User
    policies: RowFilter
    session: SessionState
    db: AsyncSession
    granted: PermissionSet

    def allows(self, *required: str) -> bool:
        return self.granted.allows(required)

    def ensure_broad_or_self(self, broad: str, *, is_self: bool) -> None:
        # Route-level checks admit either variant; only the broad grant reaches other rows.
        if self.allows(broad) or is_self:
            return
        logger.warning("permission_denied user_id=%s required=%s scope=other", self.user.id, broad)
        raise ForbiddenError()

    @property
    def audit_user_id(self) -> UUID:
        return self.user.id

    def transaction(self, *, ignore_audit_log: bool = False) -> AbstractAsyncContextManager[AuditedTransaction]:
        return audited_transaction(
            self.db,
            audit_user_id=self.user.id,
            audit_organization_id=self.user.primary_organization_id,
            ignore_audit_log=ignore_audit_log,
        )


def session_token(request: Request) -> str | None:
    return request.cookies.get(get_settings().session_cookie_name)


def set_session_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_ttl_seconds,
        path="/",
        domain=settings.session_cookie_domain or None,
        secure=settings.session_cookie_secure,
        httponly=False,
        samesite="strict",
    )


def clear_session_cookie(response: Response) -> None:
    settings = get_settings()
    response.delete_cookie(
        key=settings.session_cookie_name,
        path="/",
        domain=settings.session_cookie_domain or None,
        secure=settings.session_cookie_secure,
        httponly=False,
        samesite="strict",
    )


async def authenticate(
    request: Request,
    db: AsyncSession,
    manager: SessionManager,
) -> tuple[User, SessionState]:
    # Cookie -> session -> principal -> publish -> slide expiry, in that order.
    state = await manager.load(session_token(request))
    try:
        user = await users_repo.load_principal(db, state.user_id)
    except NotFoundError as exc:
        raise UnauthorizedError() from exc
    request.state.user = user
    request.state.user_id = user.id
    await manager.refresh(state.token)
    return user, state


async def get_optional_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
    manager: SessionManager = Depends(get_session_manager),
) -> User | None:
    # Public routes still want to know whether the caller already has a session.
    if not session_token(request):
        return None
    try:
        user, _state = await authenticate(request, db, manager)
    except UnauthorizedError:
        return None
    return user


def require(
    *permissions: str,
    policies: Iterable[PolicyKind] = (),
    mfa: bool = False,
):
    """Dependency factory that authenticates, then applies MFA, permission and policy gates."""
    required = tuple(permissions)
    kinds = tuple(policies)

    async def _dependency(
        request: Request,
        db: AsyncSession = Depends(get_db),
        manager: SessionManager = Depends(get_session_manager),
    ) -> RequestContext:
        user, state = await authenticate(request, db, manager)
        if mfa and user.mfa_enabled and not user.mfa_verified:
            logger.warning("mfa_required user_id=%s path=%s", user.id, request.url.path)
            raise ForbiddenError("Multi-Factor Authentication verification is required.")
        granted = PermissionSet(effective_permissions(user.permissions, user.roles))
        try:
            authorize(granted, required)
        except ForbiddenError:
            logger.warning(
                "permission_denied user_id=%s path=%s required=%s",
                user.id,
                request.url.path,
                ",".join(required),
            )
            raise
        row_filter = compile_policies(user, kinds) if kinds else TrueFilter()
        request.state.policies = row_filter
        return RequestContext(
            principal=Principal.from_user(user),
            user=user,
            policies=row_filter,
            session=state,
            db=db,
            granted=granted,
        )

    return _dependency


def bootstrap_transaction(db: AsyncSession, audit_user_id: UUID) -> AbstractAsyncContextManager[AuditedTransaction]:
    # Public routes have no principal yet; the caller names the actor explicitly.
    return audited_transaction(db, audit_user_id=audit_user_id)
