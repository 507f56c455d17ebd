"""
Shop service: shop creation and lookup.

A shop is created in the identity provider first (as an organization) and
then mirrored locally under the same id, with the creator as admin.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.provider import IdentityProvider
from app.models.shop import Shop
from app.models.shop_member import ShopMember
from app.services.sync import ensure_user
from tcgshop_shared.roles import Role
from tcgshop_shared.schemas.shops import ShopCreateRequest

if TYPE_CHECKING:
    from app.core.auth import ProviderIdentity

log = structlog.get_logger()


async def create_shop(
    req: ShopCreateRequest,
    identity: "ProviderIdentity",
    session: AsyncSession,
    provider: IdentityProvider,
) -> Shop:
    """Create a shop and make the creator an admin."""
    existing = await session.execute(select(Shop).where(Shop.slug == req.slug))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Shop slug already taken")

    user, _created = await ensure_user(identity, session)
    org = await provider.create_organization(req.name, req.slug, identity.subject)

    shop = Shop(id=org.id, name=req.name, slug=req.slug)
    session.add(shop)
    await session.flush()

    membership = ShopMember(
        user_id=user.id,
        shop_id=shop.id,
        role=Role.ADMIN.value,
        display_name=identity.name or user.email.split("@")[0],
    )
    session.add(membership)
    await session.flush()

    log.info("shop.created", shop_id=shop.id, slug=req.slug, creator=identity.subject)
    return shop


async def get_shop(shop_id: str, session: AsyncSession) -> Shop:
    shop = await session.get(Shop, shop_id)
    if not shop:
        raise HTTPException(status_code=404, detail="Shop not found")
    return shop
