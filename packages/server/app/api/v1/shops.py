"""
Shop API endpoints.

POST   /api/v1/shops          Create a shop (creator becomes admin)
GET    /api/v1/shops/current  The caller's current shop
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    ProviderIdentity,
    ShopAccess,
    get_identity,
    get_membership_cache,
    require_shop_member,
)
from app.core.database import get_session
from app.core.provider import IdentityProvider, get_provider
from app.services import shops as shop_service
from app.services.membership_cache import MembershipLookupCache
from tcgshop_shared.roles import Role
from tcgshop_shared.schemas.shops import ShopCreateRequest, ShopResponse

router = APIRouter()


@router.post("", response_model=ShopResponse, status_code=201)
async def create_shop(
    body: ShopCreateRequest,
    identity: ProviderIdentity = Depends(get_identity),
    session: AsyncSession = Depends(get_session),
    provider: IdentityProvider = Depends(get_provider),
    cache: MembershipLookupCache = Depends(get_membership_cache),
):
    """Create a new shop. The creator becomes its admin."""
    shop = await shop_service.create_shop(body, identity, session, provider)
    await session.commit()
    await cache.invalidate(identity.session_id)
    return ShopResponse(
        id=shop.id,
        name=shop.name,
        slug=shop.slug,
        created_at=shop.created_at,
        updated_at=shop.updated_at,
        role=Role.ADMIN,
    )


@router.get("/current", response_model=ShopResponse)
async def get_current_shop(
    access: ShopAccess = Depends(require_shop_member),
    session: AsyncSession = Depends(get_session),
):
    """The shop the caller's membership resolves to."""
    shop = await shop_service.get_shop(access.shop_id, session)
    return ShopResponse(
        id=shop.id,
        name=shop.name,
        slug=shop.slug,
        created_at=shop.created_at,
        updated_at=shop.updated_at,
        role=access.role,
    )
