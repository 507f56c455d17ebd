"""
Remediation actions for provider/database membership drift.

- ``refresh_organization_sync``: re-links database state from the provider.
  Provider memberships missing locally are mirrored into the database; a
  database membership the provider does not know about cannot be repaired
  here and is reported as needing an invitation.
- ``fix_user_shop_linking``: repairs the caller's own records (missing user
  row, memberships pointing at deleted shops, memberships without a role)
  and then links from the provider like a refresh.

Both invalidate the caller's cached membership lookup before reading. The
routers invalidate again once the transaction has committed, so a concurrent
read cannot re-cache the pre-write state. Provider failures propagate as
``ProviderError``; there is no automatic retry.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.provider import IdentityProvider
from app.models.shop import Shop
from app.models.shop_member import ShopMember
from app.models.user import User
from app.services.membership_cache import MembershipLookupCache
from app.services.memberships import get_user_by_subject, list_user_shops
from tcgshop_shared.roles import get_effective_role, get_normalized_role, normalize_role
from tcgshop_shared.schemas.membership import (
    FixOutcome,
    ProviderMembership,
    SyncOutcome,
)

if TYPE_CHECKING:
    from app.core.auth import ProviderIdentity

log = structlog.get_logger()


async def ensure_user(identity: "ProviderIdentity", session: AsyncSession) -> tuple[User, bool]:
    """Find or create the local user for an identity. Returns (user, created).

    A user pre-registered by email (invited, never signed in) is claimed by
    attaching the provider subject.
    """
    user = await get_user_by_subject(identity.subject, session)
    if user:
        return user, False

    if identity.email:
        result = await session.execute(
            select(User).where(User.email == identity.email, User.provider_subject.is_(None))
        )
        user = result.scalar_one_or_none()
        if user:
            user.provider_subject = identity.subject
            session.add(user)
            await session.flush()
            log.info("user.claimed", user_id=str(user.id), subject=identity.subject)
            return user, False

    user = User(
        provider_subject=identity.subject,
        email=identity.email or f"{identity.subject}@users.invalid",
        name=identity.name,
    )
    session.add(user)
    await session.flush()
    log.info("user.created", user_id=str(user.id), subject=identity.subject)
    return user, True


async def _mirror_shop(membership: ProviderMembership, session: AsyncSession) -> Shop:
    """Get the local shop for a provider organization, creating it if needed."""
    org = membership.organization
    shop = await session.get(Shop, org.id)
    if shop:
        return shop
    shop = Shop(id=org.id, name=org.name or org.id, slug=org.slug or org.id.lower())
    session.add(shop)
    await session.flush()
    log.info("shop.mirrored", shop_id=shop.id, name=shop.name)
    return shop


async def _link_from_provider(
    user: User,
    display_name: str,
    memberships: list[ProviderMembership],
    session: AsyncSession,
) -> list[Shop]:
    """Create local memberships for provider memberships the user lacks."""
    existing = {member.shop_id for member, _shop in await list_user_shops(user.id, session)}
    linked: list[Shop] = []
    for membership in memberships:
        if membership.organization.id in existing:
            continue
        shop = await _mirror_shop(membership, session)
        session.add(
            ShopMember(
                user_id=user.id,
                shop_id=shop.id,
                role=get_normalized_role(membership.role).value,
                display_name=display_name,
            )
        )
        linked.append(shop)
    if linked:
        await session.flush()
    return linked


def _display_name(identity: "ProviderIdentity", user: User) -> str:
    return identity.name or user.name or user.email.split("@")[0]


async def refresh_organization_sync(
    identity: "ProviderIdentity",
    session: AsyncSession,
    provider: IdentityProvider,
    cache: MembershipLookupCache,
) -> SyncOutcome:
    await cache.invalidate(identity.session_id)
    log.info("sync.refresh_started", subject=identity.subject)

    memberships = await provider.list_memberships(identity.subject)
    user, _created = await ensure_user(identity, session)
    rows = await list_user_shops(user.id, session)

    if rows:
        _member, shop = rows[0]
        if any(m.organization.id == shop.id for m in memberships):
            log.info("sync.already_synced", shop_id=shop.id)
            return SyncOutcome(
                success=True,
                message="Already synced",
                shop_id=shop.id,
                shop_name=shop.name,
            )
        log.warning("sync.needs_invitation", shop_id=shop.id, subject=identity.subject)
        return SyncOutcome(
            success=False,
            needs_invitation=True,
            message="User needs to accept organization invitation",
            shop_id=shop.id,
            shop_name=shop.name,
        )

    if not memberships:
        return SyncOutcome(success=False, message="No shop membership found")

    linked = await _link_from_provider(user, _display_name(identity, user), memberships, session)
    shop = linked[0]
    log.info("sync.refresh_linked", shop_ids=[s.id for s in linked], subject=identity.subject)
    return SyncOutcome(
        success=True,
        message="Linked to shop",
        shop_id=shop.id,
        shop_name=shop.name,
    )


async def fix_user_shop_linking(
    identity: "ProviderIdentity",
    session: AsyncSession,
    provider: IdentityProvider,
    cache: MembershipLookupCache,
) -> FixOutcome:
    await cache.invalidate(identity.session_id)
    repairs: list[str] = []

    memberships = await provider.list_memberships(identity.subject)
    provider_roles = {m.organization.id: m.role for m in memberships}

    user, created = await ensure_user(identity, session)
    if created:
        repairs.append("created user record")

    result = await session.execute(select(ShopMember).where(ShopMember.user_id == user.id))
    for member in result.scalars().all():
        if await session.get(Shop, member.shop_id) is None:
            await session.delete(member)
            repairs.append(f"removed membership for missing shop {member.shop_id}")
            continue
        if normalize_role(member.role) is None:
            member.role = get_effective_role(None, provider_roles.get(member.shop_id)).value
            session.add(member)
            repairs.append(f"assigned role {member.role} in shop {member.shop_id}")
    await session.flush()

    linked = await _link_from_provider(user, _display_name(identity, user), memberships, session)
    repairs.extend(f"linked to shop {shop.id}" for shop in linked)

    rows = await list_user_shops(user.id, session)
    shop_id: Optional[str] = rows[0][1].id if rows else None

    log.info("sync.fix_completed", subject=identity.subject, repairs=repairs)
    if shop_id is None:
        return FixOutcome(
            success=False,
            message="User is not linked to any shop; create a shop or accept an invitation",
            repairs=repairs,
        )
    return FixOutcome(
        success=True,
        message="User-shop linking repaired" if repairs else "No repairs needed",
        repairs=repairs,
        shop_id=shop_id,
    )
