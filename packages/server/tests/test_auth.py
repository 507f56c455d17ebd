"""
Tests for authentication and shop access control.

Covers:
- Provider session token decoding and identity mapping
- CSRF middleware
- Security headers and request context middleware
- Shop access guards (resolved / loading / indeterminate, member / admin)
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from app.core.auth import (
    ProviderIdentity,
    ShopAccess,
    check_shop_access,
    decode_session_token,
    identity_from_claims,
    require_shop_admin,
    require_shop_member,
)
from app.core.config import get_settings
from app.core.middleware import (
    CSRF_COOKIE,
    SECURITY_HEADERS,
    CSRFMiddleware,
    RequestContextMiddleware,
    SecurityHeadersMiddleware,
)
from app.services.memberships import MembershipState
from conftest import make_token
from tcgshop_shared.roles import Role
from tcgshop_shared.schemas.membership import (
    MembershipSource,
    ResolutionState,
    SyncStatus,
    UnifiedMembershipContext,
)

settings = get_settings()
SESSION_COOKIE = settings.session_cookie_name


# ---------------------------------------------------------------------------
# Unit Tests: Session tokens
# ---------------------------------------------------------------------------

class TestSessionToken:
    def test_decode_and_map_identity(self):
        token = make_token(
            "user_a",
            "sess_9",
            email="a@example.com",
            name="Alice",
            org_id="org_1",
            org_name="Shop A",
            org_slug="shop-a",
            org_role="org:admin",
        )
        identity = identity_from_claims(decode_session_token(token))
        assert identity.subject == "user_a"
        assert identity.session_id == "sess_9"
        assert identity.email == "a@example.com"
        assert identity.organization_role == "org:admin"
        assert identity.current_organization.id == "org_1"
        assert identity.current_organization.slug == "shop-a"

    def test_no_current_organization(self):
        identity = identity_from_claims(decode_session_token(make_token()))
        assert identity.current_organization is None

    def test_expired_token_raises(self):
        token = make_token(exp=datetime.now(timezone.utc) - timedelta(minutes=1))
        with pytest.raises(jwt.ExpiredSignatureError):
            decode_session_token(token)

    def test_wrong_key_raises(self):
        token = jwt.encode(
            {
                "sub": "user_a",
                "sid": "sess_1",
                "exp": datetime.now(timezone.utc) + timedelta(hours=1),
            },
            "a-different-key-that-is-long-enough-too",
            algorithm="HS256",
        )
        with pytest.raises(jwt.InvalidSignatureError):
            decode_session_token(token)

    def test_missing_session_id_raises(self):
        token = jwt.encode(
            {"sub": "user_a", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            settings.session_token_key,
            algorithm=settings.session_token_algorithm,
        )
        with pytest.raises(jwt.MissingRequiredClaimError):
            decode_session_token(token)


# ---------------------------------------------------------------------------
# Integration Tests: Middleware
# ---------------------------------------------------------------------------

class TestSecurityHeadersMiddleware:
    def test_headers_present(self):
        app = FastAPI()
        app.add_middleware(SecurityHeadersMiddleware)

        @app.get("/test")
        async def test_endpoint():
            return {"ok": True}

        client = TestClient(app)
        resp = client.get("/test")
        assert resp.status_code == 200
        for header, value in SECURITY_HEADERS.items():
            assert resp.headers.get(header) == value


class TestRequestContextMiddleware:
    def _make_app(self) -> FastAPI:
        app = FastAPI()
        app.add_middleware(RequestContextMiddleware)

        @app.get("/test")
        async def test_endpoint():
            return {"ok": True}

        return app

    def test_generates_request_id(self):
        resp = TestClient(self._make_app()).get("/test")
        assert len(resp.headers["X-Request-ID"]) == 32

    def test_echoes_incoming_request_id(self):
        resp = TestClient(self._make_app()).get("/test", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"


class TestCSRFMiddleware:
    def _make_app(self) -> FastAPI:
        app = FastAPI()
        app.add_middleware(CSRFMiddleware)

        @app.get("/test")
        async def get_test():
            return {"ok": True}

        @app.post("/test")
        async def post_test():
            return {"ok": True}

        return app

    def test_get_passes_without_csrf(self):
        client = TestClient(self._make_app())
        resp = client.get("/test")
        assert resp.status_code == 200

    def test_post_with_bearer_skips_csrf(self):
        client = TestClient(self._make_app())
        resp = client.post("/test", headers={"Authorization": "Bearer some-token"})
        assert resp.status_code == 200

    def test_post_without_session_cookie_passes(self):
        """No session cookie = not a browser request, skip CSRF."""
        client = TestClient(self._make_app())
        resp = client.post("/test")
        assert resp.status_code == 200

    def test_post_with_session_but_no_csrf_fails(self):
        client = TestClient(self._make_app(), cookies={SESSION_COOKIE: "some-jwt"})
        resp = client.post("/test")
        assert resp.status_code == 403
        assert "CSRF" in resp.json()["error"]["code"]

    def test_post_with_matching_csrf_passes(self):
        csrf_token = "test-csrf-token"
        client = TestClient(
            self._make_app(),
            cookies={SESSION_COOKIE: "some-jwt", CSRF_COOKIE: csrf_token},
        )
        resp = client.post("/test", headers={"X-CSRF-Token": csrf_token})
        assert resp.status_code == 200

    def test_post_with_mismatched_csrf_fails(self):
        client = TestClient(
            self._make_app(),
            cookies={SESSION_COOKIE: "some-jwt", CSRF_COOKIE: "token-a"},
        )
        resp = client.post("/test", headers={"X-CSRF-Token": "token-b"})
        assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Unit Tests: Shop access guards
# ---------------------------------------------------------------------------

IDENTITY = ProviderIdentity(subject="user_a", session_id="sess_1")


def _context(role=Role.MEMBER, **overrides) -> UnifiedMembershipContext:
    values = dict(
        shop_id="org_1",
        shop_name="Shop A",
        has_shop=True,
        source=MembershipSource.PROVIDER,
        is_verified=True,
        role=role,
        display_role=role,
    )
    values.update(overrides)
    return UnifiedMembershipContext(**values)


def _state(context: UnifiedMembershipContext) -> MembershipState:
    return MembershipState(signals=None, context=context, sync_status=SyncStatus())


class TestShopAccessGuards:
    @pytest.mark.parametrize(
        "state", [ResolutionState.LOADING, ResolutionState.INDETERMINATE]
    )
    def test_undecided_membership_is_503(self, state):
        with pytest.raises(HTTPException) as exc_info:
            check_shop_access(IDENTITY, UnifiedMembershipContext(state=state))
        assert exc_info.value.status_code == 503
        assert exc_info.value.headers["Retry-After"] == "2"

    def test_no_shop_is_403(self):
        with pytest.raises(HTTPException) as exc_info:
            check_shop_access(IDENTITY, UnifiedMembershipContext())
        assert exc_info.value.status_code == 403

    def test_access_carries_shop_and_role(self):
        access = check_shop_access(IDENTITY, _context(Role.ADMIN))
        assert access.shop_id == "org_1"
        assert access.role == Role.ADMIN

    async def test_member_guard_allows_member(self):
        access = await require_shop_member(IDENTITY, _state(_context(Role.MEMBER)))
        assert access.role == Role.MEMBER

    async def test_member_guard_rejects_missing_role(self):
        with pytest.raises(HTTPException) as exc_info:
            await require_shop_member(IDENTITY, _state(_context(role=None)))
        assert exc_info.value.status_code == 403

    async def test_admin_guard_allows_admin(self):
        access = ShopAccess(identity=IDENTITY, context=_context(Role.ADMIN))
        assert await require_shop_admin(access) is access

    async def test_admin_guard_rejects_member(self):
        access = ShopAccess(identity=IDENTITY, context=_context(Role.MEMBER))
        with pytest.raises(HTTPException) as exc_info:
            await require_shop_admin(access)
        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == "Admin privileges required"
