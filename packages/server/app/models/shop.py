"""Shop model. ``id`` is the identity provider's organization id."""

from sqlmodel import Field, SQLModel

from .base import TimestampMixin


class Shop(TimestampMixin, SQLModel, table=True):
    __tablename__ = "shops"

    id: str = Field(primary_key=True, max_length=64)
    name: str = Field(nullable=False, index=True)
    slug: str = Field(unique=True, nullable=False, index=True)
