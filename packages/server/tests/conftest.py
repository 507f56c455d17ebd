"""
Shared fixtures: in-memory SQLite, an in-process Redis stand-in, a mocked
identity provider and signed provider session tokens.
"""

from __future__ import annotations

import os

os.environ.setdefault("TCG_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TCG_SESSION_TOKEN_KEY", "test-session-key-with-enough-bytes-for-hs256")
os.environ.setdefault("TCG_LOG_FORMAT", "console")

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import jwt
import pytest
import redis.asyncio as redis
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update

from app.core.auth import get_membership_cache
from app.core.config import get_settings
from app.core.database import build_engine, build_session_factory, get_session, init_db
from app.core.provider import get_provider
from app.main import app
from app.models.shop import Shop
from app.models.shop_member import ShopMember
from app.models.user import User
from app.services.membership_cache import MembershipLookupCache


class FakeRedis:
    """The subset of redis.asyncio.Redis the membership cache uses."""

    def __init__(self):
        self.values: dict[str, str] = {}
        self.sets: dict[str, set[str]] = {}

    async def get(self, key):
        return self.values.get(key)

    async def setex(self, key, ttl, value):
        self.values[key] = value
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.values.pop(key, None) is not None or self.sets.pop(key, None) is not None:
                removed += 1
        return removed

    async def sadd(self, key, *members):
        self.sets.setdefault(key, set()).update(members)
        return len(members)

    async def smembers(self, key):
        return set(self.sets.get(key, set()))

    async def expire(self, key, ttl):
        return True

    async def ping(self):
        return True


class UnreachableRedis:
    """A Redis client whose every command fails as if the server were down."""

    def __getattr__(self, name):
        async def _fail(*args, **kwargs):
            raise redis.ConnectionError("Error 111 connecting to localhost:6379. Connection refused.")

        return _fail


def make_token(subject: str = "user_owner", session_id: str = "sess_1", **claims) -> str:
    """Sign a provider session token the way the provider would."""
    settings = get_settings()
    payload = {
        "sub": subject,
        "sid": session_id,
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
        **claims,
    }
    return jwt.encode(payload, settings.session_token_key, algorithm=settings.session_token_algorithm)


def bearer(subject: str = "user_owner", session_id: str = "sess_1", **claims) -> dict:
    return {"Authorization": f"Bearer {make_token(subject, session_id, **claims)}"}


@pytest.fixture
async def db_engine():
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    return MembershipLookupCache(fake_redis, max_age_seconds=3600)


@pytest.fixture
def unreachable_cache():
    return MembershipLookupCache(UnreachableRedis(), max_age_seconds=3600)


@pytest.fixture
def provider():
    mock = AsyncMock()
    mock.list_memberships.return_value = []
    mock.list_invitations.return_value = []
    return mock


@pytest.fixture
def seed(session_factory):
    """Insert a user linked to a shop. Returns the user."""

    async def _seed(
        subject: str,
        email: str,
        shop_id: str = "org_1",
        shop_name: str = "Shop A",
        role: str | None = "admin",
        *,
        linked: bool = True,
    ) -> User:
        async with session_factory() as s:
            user = User(provider_subject=subject, email=email, name=email.split("@")[0])
            s.add(user)
            if linked:
                if await s.get(Shop, shop_id) is None:
                    s.add(Shop(id=shop_id, name=shop_name, slug=shop_id.replace("_", "-")))
                await s.flush()
                s.add(
                    ShopMember(
                        user_id=user.id,
                        shop_id=shop_id,
                        role=role,
                        display_name=email.split("@")[0],
                    )
                )
                if role is None:
                    # A None attribute falls back to the column default; write a real NULL
                    await s.flush()
                    await s.execute(
                        update(ShopMember)
                        .where(ShopMember.user_id == user.id, ShopMember.shop_id == shop_id)
                        .values(role=None)
                    )
            await s.commit()
            return user

    return _seed


@pytest.fixture
async def client(session_factory, provider, cache):
    async def _session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_provider] = lambda: provider
    app.dependency_overrides[get_membership_cache] = lambda: cache
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
