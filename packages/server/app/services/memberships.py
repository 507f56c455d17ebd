"""
Membership service: the database membership lookup and signal gathering.

Fetching is the only I/O on the reconciliation path. Each signal is fetched
independently and a failure is recorded in that signal instead of raised, so
one broken source never turns into a confident "no shop" answer.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import redis.asyncio as redis
import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.provider import IdentityProvider, ProviderError
from app.models.shop import Shop
from app.models.shop_member import ShopMember
from app.models.user import User
from app.services.membership_cache import MembershipLookupCache
from app.services.reconciliation import (
    MembershipSignals,
    evaluate_sync_status,
    matched_rule,
    resolve_membership,
)
from tcgshop_shared.schemas.membership import (
    MembershipLookup,
    ProviderSnapshot,
    ShopRef,
    SyncStatus,
    UnifiedMembershipContext,
)

if TYPE_CHECKING:
    from app.core.auth import ProviderIdentity

log = structlog.get_logger()
settings = get_settings()


@dataclass(frozen=True)
class MembershipState:
    signals: MembershipSignals
    context: UnifiedMembershipContext
    sync_status: SyncStatus


# ---------------------------------------------------------------------------
# Database lookups
# ---------------------------------------------------------------------------

async def get_user_by_subject(subject: str, session: AsyncSession) -> Optional[User]:
    result = await session.execute(select(User).where(User.provider_subject == subject))
    return result.scalar_one_or_none()


async def list_user_shops(
    user_id: uuid.UUID, session: AsyncSession
) -> list[tuple[ShopMember, Shop]]:
    """All shop memberships of a user with their shop, oldest first."""
    result = await session.execute(
        select(ShopMember, Shop)
        .join(Shop, Shop.id == ShopMember.shop_id)
        .where(ShopMember.user_id == user_id)
        .order_by(ShopMember.created_at)
    )
    return list(result.all())


async def lookup_database_membership(subject: str, session: AsyncSession) -> MembershipLookup:
    """Is this identity linked to a shop in the database?"""
    user = await get_user_by_subject(subject, session)
    if not user:
        return MembershipLookup(has_shop=False, message="User not found in database")

    rows = await list_user_shops(user.id, session)
    if not rows:
        return MembershipLookup(has_shop=False, message="User not linked to any shop")

    member, shop = rows[0]
    return MembershipLookup(
        has_shop=True,
        shop=ShopRef(id=shop.id, name=shop.name, slug=shop.slug, role=member.role),
        message="User is linked to a shop",
    )


async def get_cached_lookup(
    identity: "ProviderIdentity",
    session: AsyncSession,
    cache: MembershipLookupCache,
) -> MembershipLookup:
    """Database lookup through the session cache. Never raises."""
    try:
        cached = await cache.get(identity.session_id, identity.subject)
    except redis.RedisError as exc:
        log.warning("membership_cache.read_failed", error=str(exc))
        cached = None
    if cached is not None:
        return cached

    try:
        lookup = await lookup_database_membership(identity.subject, session)
    except SQLAlchemyError as exc:
        log.error("membership.lookup_failed", subject=identity.subject, error=str(exc))
        return MembershipLookup.failed("Failed to check membership")

    try:
        await cache.set(identity.session_id, identity.subject, lookup)
    except redis.RedisError as exc:
        log.warning("membership_cache.write_failed", error=str(exc))
    return lookup


# ---------------------------------------------------------------------------
# Provider signals
# ---------------------------------------------------------------------------

async def fetch_provider_snapshot(
    identity: "ProviderIdentity", provider: IdentityProvider
) -> ProviderSnapshot:
    """Current organization (from the session) plus the membership list. Never raises."""
    try:
        memberships = await provider.list_memberships(identity.subject)
    except ProviderError as exc:
        log.warning("membership.provider_fetch_failed", subject=identity.subject, error=exc.message)
        return ProviderSnapshot(
            organization=identity.current_organization,
            organization_role=identity.organization_role,
            error=exc.message,
        )
    return ProviderSnapshot(
        organization=identity.current_organization,
        organization_role=identity.organization_role,
        memberships=tuple(memberships),
    )


async def gather_signals(
    identity: "ProviderIdentity",
    session: AsyncSession,
    provider: IdentityProvider,
    cache: MembershipLookupCache,
) -> MembershipSignals:
    snapshot, lookup = await asyncio.gather(
        fetch_provider_snapshot(identity, provider),
        get_cached_lookup(identity, session, cache),
    )
    return MembershipSignals(provider=snapshot, lookup=lookup)


async def load_membership_state(
    identity: "ProviderIdentity",
    session: AsyncSession,
    provider: IdentityProvider,
    cache: MembershipLookupCache,
) -> MembershipState:
    signals = await gather_signals(identity, session, provider, cache)
    context = resolve_membership(signals, settings.provider_name)
    sync_status = evaluate_sync_status(signals, settings.provider_name)
    log.info(
        "membership.resolved",
        rule=matched_rule(signals),
        sync_case=sync_status.case.value,
        shop_id=context.shop_id,
        source=context.source.value if context.source else None,
        state=context.state.value,
    )
    return MembershipState(signals=signals, context=context, sync_status=sync_status)
