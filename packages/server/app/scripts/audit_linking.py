"""
Report user-shop linking problems.

Run with: python -m app.scripts.audit_linking

Finds users with no shop, memberships with no (or an unknown) role, and
memberships whose shop row no longer exists. Read-only; the per-user repair
is POST /api/v1/membership/fix.
"""

import asyncio
from dataclasses import dataclass, field

from sqlmodel import select

from app.core.config import get_settings
from app.core.database import async_session_factory, get_session_context
from app.core.logging import configure_logging
from app.models.shop import Shop
from app.models.shop_member import ShopMember
from app.models.user import User
from tcgshop_shared.roles import normalize_role

settings = get_settings()


@dataclass
class LinkingAudit:
    users_without_shop: list[str] = field(default_factory=list)
    members_without_role: list[tuple[str, str]] = field(default_factory=list)
    orphaned_members: list[tuple[str, str]] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not (self.users_without_shop or self.members_without_role or self.orphaned_members)


async def audit_linking(factory=async_session_factory) -> LinkingAudit:
    audit = LinkingAudit()
    async with get_session_context(factory) as session:
        result = await session.execute(
            select(User, ShopMember, Shop)
            .outerjoin(ShopMember, ShopMember.user_id == User.id)
            .outerjoin(Shop, Shop.id == ShopMember.shop_id)
            .order_by(User.email)
        )
        for user, member, shop in result.all():
            if member is None:
                audit.users_without_shop.append(user.email)
            elif shop is None:
                audit.orphaned_members.append((user.email, member.shop_id))
            elif normalize_role(member.role) is None:
                audit.members_without_role.append((user.email, shop.name))
    return audit


def print_report(audit: LinkingAudit) -> None:
    print(f"Users without a shop: {len(audit.users_without_shop)}")
    for email in audit.users_without_shop:
        print(f"  - {email}")
    print(f"Memberships without a role: {len(audit.members_without_role)}")
    for email, shop_name in audit.members_without_role:
        print(f"  - {email} (shop: {shop_name})")
    print(f"Memberships of missing shops: {len(audit.orphaned_members)}")
    for email, shop_id in audit.orphaned_members:
        print(f"  - {email} (shop id: {shop_id})")

    if audit.clean:
        print("All users are linked to shops with roles.")
        return
    print("\nRecommendations:")
    if audit.users_without_shop:
        print("  - Users without a shop should create one or accept an invitation.")
    if audit.members_without_role:
        print("  - Run the role sync script, or have the user run a membership fix.")
    if audit.orphaned_members:
        print("  - Memberships of missing shops are removed by a membership fix.")


if __name__ == "__main__":
    configure_logging(settings.log_level, "console")
    print_report(asyncio.run(audit_linking()))
