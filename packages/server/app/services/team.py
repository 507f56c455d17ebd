"""
Team service: members, roles and invitations within one shop.

Role changes and removals go to the identity provider first and are then
mirrored into the database on a best-effort basis: a failed mirror write is
logged and reported, never undone on the provider side. Callers commit and
then drop the member's cached membership lookups.
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from fastapi import HTTPException
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.provider import IdentityProvider
from app.models.shop_member import ShopMember
from app.models.user import User
from tcgshop_shared.roles import Role, normalize_role, to_provider_role
from tcgshop_shared.schemas.team import (
    InvitationResponse,
    InviteMemberRequest,
    MemberChangeResponse,
    MemberResponse,
)

log = structlog.get_logger()


def _member_response(user: User, member: ShopMember) -> MemberResponse:
    return MemberResponse(
        subject=user.provider_subject,
        user_id=str(user.id),
        email=user.email,
        name=user.name,
        display_name=member.display_name,
        role=normalize_role(member.role),
        joined_at=member.created_at,
    )


async def list_members(
    shop_id: str,
    session: AsyncSession,
    *,
    search: Optional[str] = None,
    role: Optional[Role] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[MemberResponse], int]:
    """List shop members ordered by name. Returns (page, total)."""
    conditions = [ShopMember.shop_id == shop_id]
    if search:
        pattern = f"%{search.lower()}%"
        conditions.append(
            or_(
                func.lower(User.name).like(pattern),
                func.lower(User.email).like(pattern),
                func.lower(ShopMember.display_name).like(pattern),
            )
        )
    if role is not None:
        conditions.append(ShopMember.role == role.value)

    total = (
        await session.execute(
            select(func.count())
            .select_from(ShopMember)
            .join(User, User.id == ShopMember.user_id)
            .where(*conditions)
        )
    ).scalar_one()

    result = await session.execute(
        select(User, ShopMember)
        .join(ShopMember, ShopMember.user_id == User.id)
        .where(*conditions)
        .order_by(ShopMember.display_name)
        .limit(limit)
        .offset(offset)
    )
    return [_member_response(user, member) for user, member in result.all()], total


async def _get_member(
    shop_id: str, subject: str, session: AsyncSession
) -> tuple[User, ShopMember]:
    result = await session.execute(
        select(User, ShopMember)
        .join(ShopMember, ShopMember.user_id == User.id)
        .where(ShopMember.shop_id == shop_id, User.provider_subject == subject)
    )
    row = result.one_or_none()
    if not row:
        raise HTTPException(status_code=404, detail="Member not found in this shop")
    return row


async def invite_member(
    shop_id: str,
    req: InviteMemberRequest,
    inviter_subject: str,
    session: AsyncSession,
    provider: IdentityProvider,
) -> InvitationResponse:
    """Send a provider invitation. Admins promote members after they join."""
    if req.role != Role.MEMBER:
        raise HTTPException(
            status_code=422, detail="Invite as member; promote after the invitation is accepted"
        )

    result = await session.execute(
        select(ShopMember)
        .join(User, User.id == ShopMember.user_id)
        .where(ShopMember.shop_id == shop_id, User.email == req.email)
    )
    if result.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="User is already a member of this shop")

    invitation = await provider.create_invitation(
        shop_id, req.email, to_provider_role(req.role), inviter_subject
    )
    log.info("team.invited", shop_id=shop_id, email=req.email, inviter=inviter_subject)
    return _invitation_response(invitation)


async def list_invitations(
    shop_id: str, provider: IdentityProvider
) -> list[InvitationResponse]:
    return [_invitation_response(item) for item in await provider.list_invitations(shop_id)]


def _invitation_response(payload: dict[str, Any]) -> InvitationResponse:
    return InvitationResponse(
        id=payload["id"],
        email=payload.get("email_address") or payload.get("email", ""),
        role=normalize_role(payload.get("role")),
        status=payload.get("status", "pending"),
    )


async def update_member_role(
    shop_id: str,
    target_subject: str,
    role: Role,
    actor_subject: str,
    session: AsyncSession,
    provider: IdentityProvider,
) -> MemberChangeResponse:
    """Change a member's role in the provider, then mirror it locally."""
    if target_subject == actor_subject and role != Role.ADMIN:
        raise HTTPException(status_code=403, detail="You cannot remove your own admin role")

    _user, member = await _get_member(shop_id, target_subject, session)
    await provider.update_membership_role(shop_id, target_subject, to_provider_role(role))

    mirrored = True
    member.role = role.value
    session.add(member)
    try:
        await session.flush()
    except SQLAlchemyError as exc:
        await session.rollback()
        mirrored = False
        log.warning(
            "team.role_mirror_failed",
            shop_id=shop_id,
            subject=target_subject,
            error=str(exc),
        )

    log.info("team.role_updated", shop_id=shop_id, subject=target_subject, role=role.value)
    return MemberChangeResponse(success=True, message="Role updated", mirrored=mirrored)


async def remove_member(
    shop_id: str,
    target_subject: str,
    actor_subject: str,
    session: AsyncSession,
    provider: IdentityProvider,
) -> MemberChangeResponse:
    """Revoke a membership in the provider, then delete the local record."""
    if target_subject == actor_subject:
        raise HTTPException(status_code=403, detail="You cannot remove yourself from the team")

    _user, member = await _get_member(shop_id, target_subject, session)
    await provider.delete_membership(shop_id, target_subject)

    mirrored = True
    try:
        await session.delete(member)
        await session.flush()
    except SQLAlchemyError as exc:
        await session.rollback()
        mirrored = False
        log.warning(
            "team.removal_mirror_failed",
            shop_id=shop_id,
            subject=target_subject,
            error=str(exc),
        )

    log.info("team.member_removed", shop_id=shop_id, subject=target_subject)
    return MemberChangeResponse(success=True, message="Member removed", mirrored=mirrored)
