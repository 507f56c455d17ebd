"""
Membership API endpoints.

GET    /api/v1/membership        Unified membership context + sync status
GET    /api/v1/membership/check  Database membership lookup for the caller
POST   /api/v1/membership/sync   Refresh: re-link database state from the provider
POST   /api/v1/membership/fix    Repair the caller's user-shop linking
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    ProviderIdentity,
    get_identity,
    get_membership_cache,
    get_membership_state,
)
from app.core.database import get_session
from app.core.provider import IdentityProvider, get_provider
from app.services import sync as sync_service
from app.services.membership_cache import MembershipLookupCache
from app.services.memberships import MembershipState, get_cached_lookup
from tcgshop_shared.schemas.membership import (
    FixOutcome,
    MembershipLookup,
    MembershipResponse,
    SyncOutcome,
)

log = structlog.get_logger()

router = APIRouter()


@router.get("", response_model=MembershipResponse)
async def get_membership(state: MembershipState = Depends(get_membership_state)):
    """Which shop the caller belongs to, and whether provider and database agree."""
    return MembershipResponse(context=state.context, sync_status=state.sync_status)


@router.get("/check", response_model=MembershipLookup)
async def check_membership(
    identity: ProviderIdentity = Depends(get_identity),
    session: AsyncSession = Depends(get_session),
    cache: MembershipLookupCache = Depends(get_membership_cache),
):
    """Database-side membership for the caller (session cached)."""
    return await get_cached_lookup(identity, session, cache)


@router.post("/sync", response_model=SyncOutcome)
async def sync_membership(
    identity: ProviderIdentity = Depends(get_identity),
    session: AsyncSession = Depends(get_session),
    provider: IdentityProvider = Depends(get_provider),
    cache: MembershipLookupCache = Depends(get_membership_cache),
):
    """Manual sync. A ``needs_invitation`` result means the user must accept an email invite."""
    outcome = await sync_service.refresh_organization_sync(identity, session, provider, cache)
    await session.commit()
    await cache.invalidate(identity.session_id)
    return outcome


@router.post("/fix", response_model=FixOutcome)
async def fix_membership(
    identity: ProviderIdentity = Depends(get_identity),
    session: AsyncSession = Depends(get_session),
    provider: IdentityProvider = Depends(get_provider),
    cache: MembershipLookupCache = Depends(get_membership_cache),
):
    """Repair missing or broken links between the caller and their shop."""
    outcome = await sync_service.fix_user_shop_linking(identity, session, provider, cache)
    await session.commit()
    await cache.invalidate(identity.session_id)
    return outcome
