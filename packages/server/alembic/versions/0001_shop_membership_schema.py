"""Users, shops and shop memberships.

Revision ID: 0001_shop_membership
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_shop_membership"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # shops: id is the identity provider's organization id
    op.create_table(
        "shops",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_shops_name", "shops", ["name"])
    op.create_index("ix_shops_slug", "shops", ["slug"], unique=True)

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("provider_subject", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_provider_subject", "users", ["provider_subject"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # shop_members: role is the unprefixed role name, NULL only for legacy rows
    op.create_table(
        "shop_members",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("shop_id", sa.String(64), sa.ForeignKey("shops.id"), primary_key=True),
        sa.Column("role", sa.Text(), nullable=True, server_default="member"),
        sa.Column("display_name", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("role IN ('admin', 'member')", name="ck_shop_members_role"),
    )
    op.create_index("ix_shop_members_shop_id", "shop_members", ["shop_id"])


def downgrade() -> None:
    op.drop_index("ix_shop_members_shop_id", table_name="shop_members")
    op.drop_table("shop_members")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_provider_subject", table_name="users")
    op.drop_index("ix_users_id", table_name="users")
    op.drop_table("users")
    op.drop_index("ix_shops_slug", table_name="shops")
    op.drop_index("ix_shops_name", table_name="shops")
    op.drop_table("shops")
