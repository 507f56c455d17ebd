"""User model, mirrored from the identity provider."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class User(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "users"

    # Empty until an invited user signs in for the first time
    provider_subject: Optional[str] = Field(default=None, unique=True, index=True)
    email: str = Field(unique=True, index=True, nullable=False)
    name: Optional[str] = None
