# SQLModel definitions, imported here to ensure metadata is populated for Alembic.
from .base import CreatedAtMixin, TimestampMixin, UUIDMixin  # noqa: F401
from .shop import Shop  # noqa: F401
from .user import User  # noqa: F401
from .shop_member import ShopMember  # noqa: F401
