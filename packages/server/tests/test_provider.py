"""
Tests for the HTTP identity-provider client, against httpx.MockTransport.
"""

import json

import httpx
import pytest

from app.core.provider import HttpIdentityProvider, ProviderError


def make_provider(handler) -> HttpIdentityProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpIdentityProvider("https://idp.test/v1/", "sk_test", client=client)


class TestHttpIdentityProvider:
    async def test_list_memberships(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/users/user_a/organization_memberships"
            return httpx.Response(
                200,
                json={
                    "data": [
                        {
                            "role": "org:admin",
                            "organization": {"id": "org_1", "name": "Shop A", "slug": "shop-a"},
                        },
                        {"role": "org:member", "organization": None},
                    ]
                },
            )

        provider = make_provider(handler)
        memberships = await provider.list_memberships("user_a")
        await provider.close()

        assert len(memberships) == 1
        assert memberships[0].organization.id == "org_1"
        assert memberships[0].role == "org:admin"

    async def test_create_invitation_payload(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "inv_1", "email_address": "n@example.com"})

        provider = make_provider(handler)
        result = await provider.create_invitation("org_1", "n@example.com", "org:member", "user_a")

        assert result["id"] == "inv_1"
        assert seen["path"] == "/v1/organizations/org_1/invitations"
        assert seen["body"] == {
            "email_address": "n@example.com",
            "role": "org:member",
            "inviter_user_id": "user_a",
        }

    async def test_delete_membership_no_content(self):
        provider = make_provider(lambda request: httpx.Response(204))
        assert await provider.delete_membership("org_1", "user_a") is None

    async def test_http_error_carries_provider_message(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                422,
                json={"errors": [{"message": "bad", "long_message": "Role is not allowed"}]},
            )

        provider = make_provider(handler)
        with pytest.raises(ProviderError) as exc_info:
            await provider.update_membership_role("org_1", "user_a", "org:owner")
        assert exc_info.value.message == "Role is not allowed"
        assert exc_info.value.status_code == 422

    async def test_transport_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        provider = make_provider(handler)
        with pytest.raises(ProviderError) as exc_info:
            await provider.list_invitations("org_1")
        assert exc_info.value.message == "Identity provider unreachable"
        assert exc_info.value.status_code is None
