"""FastAPI dependency injection functions."""

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from core.constants import ADMIN_ROLES, AuditAction
from core.exceptions import ConflictError, ForbiddenError, NotFoundError, UnauthorizedError
from core.logging_config import bind_request_context
from core.security import IdentityProvider, UserIdentity
from db.database import Database
from db.models.user import UserProfile
from services.assignment_service import AssignmentService
from services.audit_service import AuditLogger
from services.resolver import EffectivePermissions, PermissionResolver
from services.user_service import UserService

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    """Who is calling and what they may do, computed fresh per request."""

    identity: UserIdentity
    profile: UserProfile
    roles: list[str]
    permissions: EffectivePermissions

    @property
    def user_id(self) -> str:
        return self.profile.id

    @property
    def is_admin(self) -> bool:
        return bool(ADMIN_ROLES.intersection(self.roles))


def get_settings_from_app(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_identity_provider(request: Request) -> IdentityProvider:
    return request.app.state.identity_provider


def get_audit_logger(request: Request) -> AuditLogger:
    return request.app.state.audit_logger


def client_info(request: Request) -> dict[str, Optional[str]]:
    """ip_address / user_agent keyword arguments for AuditLogger.log_event."""
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


async def get_db(database: Database = Depends(get_database)) -> AsyncIterator[AsyncSession]:
    """
    Provide a database session for API endpoints.

    Yields an async SQLAlchemy session that is automatically
    committed on success or rolled back on error.
    """
    async with database.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.debug("Rolling back request transaction: %s", e)
            await session.rollback()
            raise


async def _provision_profile(
    identity: UserIdentity,
    db: AsyncSession,
    settings: Settings,
    audit: AuditLogger,
    request: Request,
) -> UserProfile:
    """First authenticated request of a new identity: profile plus default role."""
    profile = await UserService(db).provision(identity)
    try:
        await AssignmentService(db).assign_roles_by_name(profile.id, [settings.DEFAULT_ROLE])
    except NotFoundError:
        logger.warning(
            "Default role %s does not exist; %s provisioned without roles",
            settings.DEFAULT_ROLE,
            identity.email,
        )
    await audit.log_event(
        AuditAction.USER_REGISTRATION,
        user_id=profile.id,
        resource="user",
        resource_id=profile.id,
        details={"email": profile.email, "default_role": settings.DEFAULT_ROLE},
        **client_info(request),
    )
    return profile


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    provider: IdentityProvider = Depends(get_identity_provider),
    audit: AuditLogger = Depends(get_audit_logger),
    settings: Settings = Depends(get_settings_from_app),
) -> AuthContext:
    """
    Authenticate the bearer credential and resolve the caller's permissions.

    Missing or invalid credentials are rejected without an audit event.

    Raises:
        UnauthorizedError: no valid credential, or no profile and provisioning disabled
        ForbiddenError: the profile is deactivated
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthorizedError("Authentication required")

    identity = await provider.validate_credential(credentials.credentials)
    if identity is None:
        raise UnauthorizedError("Invalid or expired token")

    profile = await db.get(UserProfile, identity.id)
    if profile is None:
        if not settings.AUTO_PROVISION_USERS:
            raise UnauthorizedError("User not found")
        try:
            profile = await _provision_profile(identity, db, settings, audit, request)
        except ConflictError:
            raise UnauthorizedError("User not found") from None

    if not profile.is_active:
        raise ForbiddenError("User account is deactivated")

    resolver = PermissionResolver(db)
    context = AuthContext(
        identity=identity,
        profile=profile,
        roles=await resolver.role_names(profile.id),
        permissions=await resolver.resolve(profile.id),
    )
    bind_request_context(user_id=profile.id)
    return context


class AuditTrail:
    """Audit sink bound to the current request and caller."""

    def __init__(self, audit: AuditLogger, ctx: AuthContext, request: Request):
        self.audit = audit
        self.ctx = ctx
        self.request = request

    async def record(
        self,
        action: AuditAction,
        resource: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        await self.audit.log_event(
            action,
            user_id=self.ctx.user_id,
            resource=resource,
            resource_id=resource_id,
            details=details,
            **client_info(self.request),
        )


async def get_audit_trail(
    request: Request,
    ctx: AuthContext = Depends(get_current_user),
    audit: AuditLogger = Depends(get_audit_logger),
) -> AuditTrail:
    return AuditTrail(audit, ctx, request)
