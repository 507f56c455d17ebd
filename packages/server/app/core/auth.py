"""
Authentication and shop access control.

Humans authenticate with the identity provider; the provider issues a signed
session token (cookie or Bearer header) carrying the subject, the session id
and the organization currently in context. This module verifies that token
and turns it into a ``ProviderIdentity``.

Shop access is decided from the reconciled membership context, never from the
token alone:
- ``require_shop_member``: a definitive membership in some shop
- ``require_shop_admin``: the same, with the admin role

While the membership cannot be decided yet (a signal is still loading or
failed to load) the guards answer 503 so clients show a "checking access"
state instead of a false "no shop".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_session
from app.core.provider import IdentityProvider, get_provider
from app.core.redis import get_redis
from app.services.membership_cache import MembershipLookupCache
from app.services.memberships import MembershipState, load_membership_state
from tcgshop_shared.roles import Role, has_role_permission
from tcgshop_shared.schemas.membership import (
    ProviderOrganization,
    ResolutionState,
    UnifiedMembershipContext,
)

log = structlog.get_logger()
settings = get_settings()

authorization_header = APIKeyHeader(name="Authorization", auto_error=False)

RETRY_AFTER_SECONDS = "2"


# ---------------------------------------------------------------------------
# Provider session tokens
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProviderIdentity:
    """The authenticated actor as described by the provider's session token."""

    subject: str
    session_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    organization_id: Optional[str] = None
    organization_name: Optional[str] = None
    organization_slug: Optional[str] = None
    organization_role: Optional[str] = None

    @property
    def current_organization(self) -> Optional[ProviderOrganization]:
        if not self.organization_id:
            return None
        return ProviderOrganization(
            id=self.organization_id,
            name=self.organization_name or "",
            slug=self.organization_slug,
        )


def decode_session_token(token: str) -> dict:
    """Decode and verify a provider session token. Raises jwt.PyJWTError on failure."""
    return jwt.decode(
        token,
        settings.session_token_key,
        algorithms=[settings.session_token_algorithm],
        options={"require": ["sub", "sid", "exp"]},
    )


def identity_from_claims(claims: dict) -> ProviderIdentity:
    return ProviderIdentity(
        subject=claims["sub"],
        session_id=claims["sid"],
        email=claims.get("email"),
        name=claims.get("name"),
        organization_id=claims.get("org_id"),
        organization_name=claims.get("org_name"),
        organization_slug=claims.get("org_slug"),
        organization_role=claims.get("org_role"),
    )


def _token_from_request(request: Request, authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip()
    return request.cookies.get(settings.session_cookie_name)


async def get_identity(
    request: Request,
    authorization: Optional[str] = Depends(authorization_header),
) -> ProviderIdentity:
    """Main authentication dependency."""
    token = _token_from_request(request, authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        claims = decode_session_token(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    identity = identity_from_claims(claims)
    structlog.contextvars.bind_contextvars(subject=identity.subject)
    request.state.identity = identity
    return identity


# ---------------------------------------------------------------------------
# Membership context
# ---------------------------------------------------------------------------

async def get_membership_cache() -> MembershipLookupCache:
    return MembershipLookupCache(await get_redis(), settings.session_max_age_seconds)


async def get_membership_state(
    identity: ProviderIdentity = Depends(get_identity),
    session: AsyncSession = Depends(get_session),
    provider: IdentityProvider = Depends(get_provider),
    cache: MembershipLookupCache = Depends(get_membership_cache),
) -> MembershipState:
    return await load_membership_state(identity, session, provider, cache)


@dataclass(frozen=True)
class ShopAccess:
    """Container for an identity with confirmed shop access."""

    identity: ProviderIdentity
    context: UnifiedMembershipContext

    @property
    def shop_id(self) -> str:
        return self.context.shop_id

    @property
    def role(self) -> Optional[Role]:
        return self.context.role


def check_shop_access(identity: ProviderIdentity, context: UnifiedMembershipContext) -> ShopAccess:
    if context.state != ResolutionState.RESOLVED:
        raise HTTPException(
            status_code=503,
            detail="Checking shop access",
            headers={"Retry-After": RETRY_AFTER_SECONDS},
        )
    if not context.has_shop:
        raise HTTPException(status_code=403, detail="Shop membership required")
    return ShopAccess(identity=identity, context=context)


# ---------------------------------------------------------------------------
# Authorization dependencies (role checks)
# ---------------------------------------------------------------------------

async def require_shop_member(
    identity: ProviderIdentity = Depends(get_identity),
    state: MembershipState = Depends(get_membership_state),
) -> ShopAccess:
    """Any member of a shop can access this endpoint."""
    access = check_shop_access(identity, state.context)
    if not has_role_permission(access.role, Role.MEMBER):
        raise HTTPException(status_code=403, detail="Shop membership required")
    return access


async def require_shop_admin(
    access: ShopAccess = Depends(require_shop_member),
) -> ShopAccess:
    """Requires the admin role in the current shop."""
    if not has_role_permission(access.role, Role.ADMIN):
        log.info("auth.admin_denied", shop_id=access.shop_id, role=access.role)
        raise HTTPException(status_code=403, detail="Admin privileges required")
    return access
