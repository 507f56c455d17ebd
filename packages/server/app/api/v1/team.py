"""
Team API endpoints (scoped to the caller's shop).

GET    /api/v1/team/members            List members
GET    /api/v1/team/me                 Caller's role and permissions
POST   /api/v1/team/invitations        Invite a member (Admin)
GET    /api/v1/team/invitations        Pending invitations (Admin)
PATCH  /api/v1/team/members/{subject}  Change a member's role (Admin)
DELETE /api/v1/team/members/{subject}  Remove a member (Admin)
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    ShopAccess,
    get_membership_cache,
    require_shop_admin,
    require_shop_member,
)
from app.core.database import get_session
from app.core.provider import IdentityProvider, get_provider
from app.services import team as team_service
from app.services.membership_cache import MembershipLookupCache
from tcgshop_shared.roles import Role, get_normalized_role, role_permissions
from tcgshop_shared.schemas.team import (
    CurrentRoleResponse,
    InvitationListResponse,
    InvitationResponse,
    InviteMemberRequest,
    MemberChangeResponse,
    MemberListResponse,
    MemberRoleUpdateRequest,
)

router = APIRouter()


@router.get("/members", response_model=MemberListResponse)
async def list_members(
    search: Optional[str] = Query(None, max_length=100),
    role: Optional[Role] = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    access: ShopAccess = Depends(require_shop_member),
    session: AsyncSession = Depends(get_session),
):
    members, total = await team_service.list_members(
        access.shop_id, session, search=search, role=role, limit=limit, offset=offset
    )
    return MemberListResponse(data=members, total=total, has_more=offset + limit < total)


@router.get("/me", response_model=CurrentRoleResponse)
async def get_current_role(access: ShopAccess = Depends(require_shop_member)):
    role = get_normalized_role(access.role)
    return CurrentRoleResponse(
        role=role,
        display_role=access.context.display_role,
        permissions=role_permissions(role),
    )


@router.post("/invitations", response_model=InvitationResponse, status_code=201)
async def invite_member(
    body: InviteMemberRequest,
    access: ShopAccess = Depends(require_shop_admin),
    session: AsyncSession = Depends(get_session),
    provider: IdentityProvider = Depends(get_provider),
):
    return await team_service.invite_member(
        access.shop_id, body, access.identity.subject, session, provider
    )


@router.get("/invitations", response_model=InvitationListResponse)
async def list_invitations(
    access: ShopAccess = Depends(require_shop_admin),
    provider: IdentityProvider = Depends(get_provider),
):
    return InvitationListResponse(
        data=await team_service.list_invitations(access.shop_id, provider)
    )


@router.patch("/members/{subject}", response_model=MemberChangeResponse)
async def update_member_role(
    subject: str,
    body: MemberRoleUpdateRequest,
    access: ShopAccess = Depends(require_shop_admin),
    session: AsyncSession = Depends(get_session),
    provider: IdentityProvider = Depends(get_provider),
    cache: MembershipLookupCache = Depends(get_membership_cache),
):
    result = await team_service.update_member_role(
        access.shop_id, subject, body.role, access.identity.subject, session, provider
    )
    await session.commit()
    await cache.invalidate_subject(subject)
    return result


@router.delete("/members/{subject}", response_model=MemberChangeResponse)
async def remove_member(
    subject: str,
    access: ShopAccess = Depends(require_shop_admin),
    session: AsyncSession = Depends(get_session),
    provider: IdentityProvider = Depends(get_provider),
    cache: MembershipLookupCache = Depends(get_membership_cache),
):
    result = await team_service.remove_member(
        access.shop_id, subject, access.identity.subject, session, provider
    )
    await session.commit()
    await cache.invalidate_subject(subject)
    return result
