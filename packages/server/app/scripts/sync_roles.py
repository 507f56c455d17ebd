"""
Mirror provider roles into the database for every linked shop member.

Run with: python -m app.scripts.sync_roles [--dry-run]

The provider is only read. Members without a provider subject, or whose
provider membership for the shop is missing or carries an unknown role, are
skipped and counted.
"""

import argparse
import asyncio
from dataclasses import dataclass

import structlog
from sqlmodel import select

from app.core.config import get_settings
from app.core.database import async_session_factory, get_session_context
from app.core.logging import configure_logging
from app.core.provider import HttpIdentityProvider, IdentityProvider, ProviderError
from app.models.shop_member import ShopMember
from app.models.user import User
from tcgshop_shared.roles import normalize_role

settings = get_settings()
log = structlog.get_logger()


@dataclass
class RoleSyncReport:
    synced: int = 0
    skipped: int = 0
    errors: int = 0


async def sync_roles(
    provider: IdentityProvider, factory=async_session_factory, *, dry_run: bool = False
) -> RoleSyncReport:
    report = RoleSyncReport()
    async with get_session_context(factory) as session:
        result = await session.execute(
            select(User, ShopMember).join(ShopMember, ShopMember.user_id == User.id)
        )
        rows = result.all()
        log.info("role_sync.started", members=len(rows), dry_run=dry_run)

        for user, member in rows:
            if not user.provider_subject:
                report.skipped += 1
                continue
            try:
                memberships = await provider.list_memberships(user.provider_subject)
            except ProviderError as exc:
                log.warning("role_sync.fetch_failed", email=user.email, error=exc.message)
                report.errors += 1
                continue

            match = next((m for m in memberships if m.organization.id == member.shop_id), None)
            provider_role = normalize_role(match.role) if match else None
            if provider_role is None:
                report.skipped += 1
                continue
            if member.role == provider_role.value:
                report.skipped += 1
                continue

            log.info(
                "role_sync.updated",
                email=user.email,
                shop_id=member.shop_id,
                old=member.role,
                new=provider_role.value,
            )
            if not dry_run:
                member.role = provider_role.value
                session.add(member)
            report.synced += 1

    log.info("role_sync.finished", **report.__dict__)
    return report


async def main(dry_run: bool) -> None:
    provider = HttpIdentityProvider(
        settings.provider_api_url,
        settings.provider_secret_key,
        request_timeout=settings.provider_timeout_seconds,
    )
    try:
        report = await sync_roles(provider, dry_run=dry_run)
    finally:
        await provider.close()
    print(f"Synced: {report.synced}  Skipped: {report.skipped}  Errors: {report.errors}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Mirror provider roles into the database.")
    parser.add_argument("--dry-run", action="store_true", help="Report changes without writing")
    args = parser.parse_args()

    configure_logging(settings.log_level, "console")
    if not settings.provider_secret_key:
        raise SystemExit("TCG_PROVIDER_SECRET_KEY is not set")
    asyncio.run(main(args.dry_run))
