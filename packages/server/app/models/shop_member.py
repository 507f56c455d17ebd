"""User-Shop membership (join table). System of record for in-app authorization."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin


class ShopMember(CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "shop_members"

    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True)
    shop_id: str = Field(foreign_key="shops.id", primary_key=True, max_length=64)
    role: Optional[str] = Field(default="member")  # admin | member, NULL for legacy rows
    display_name: str = Field(nullable=False)
