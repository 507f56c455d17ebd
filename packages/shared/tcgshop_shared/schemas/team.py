"""Team management schemas: members, roles and invitations."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from ..roles import Role


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class InviteMemberRequest(BaseModel):
    """Invite someone to the shop. New members always join as members."""
    email: EmailStr
    name: Optional[str] = Field(default=None, max_length=200)
    role: Role = Role.MEMBER


class MemberRoleUpdateRequest(BaseModel):
    role: Role


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class MemberResponse(BaseModel):
    subject: Optional[str] = None
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    display_name: str
    role: Optional[Role] = None
    joined_at: datetime


class MemberListResponse(BaseModel):
    data: List[MemberResponse]
    total: int
    has_more: bool = False


class CurrentRoleResponse(BaseModel):
    role: Role
    display_role: Optional[Role] = None
    permissions: dict[str, bool]


class InvitationResponse(BaseModel):
    id: str
    email: str
    role: Optional[Role] = None
    status: str = "pending"


class InvitationListResponse(BaseModel):
    data: List[InvitationResponse]


class MemberChangeResponse(BaseModel):
    """Result of a role update or removal.

    ``mirrored`` is False when the provider accepted the change but the local
    database copy could not be written.
    """
    success: bool
    message: str
    mirrored: bool = True
