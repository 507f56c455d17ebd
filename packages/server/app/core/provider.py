"""
Identity provider client.

The provider owns identities, organizations, invitations and provider-side
memberships. The application only needs a handful of capabilities, captured
by ``IdentityProvider``; ``HttpIdentityProvider`` implements them over the
provider's backend REST API.

Every transport or HTTP failure is raised as ``ProviderError`` so callers can
treat the provider as a single failure domain.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol

import httpx
import structlog

from app.core.config import get_settings
from tcgshop_shared.schemas.membership import ProviderMembership, ProviderOrganization

log = structlog.get_logger()


class ProviderError(Exception):
    """The identity provider could not complete a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class IdentityProvider(Protocol):
    async def list_memberships(self, subject: str) -> list[ProviderMembership]: ...

    async def create_organization(
        self, name: str, slug: str, creator_subject: str
    ) -> ProviderOrganization: ...

    async def create_invitation(
        self, organization_id: str, email: str, role: str, inviter_subject: str
    ) -> dict[str, Any]: ...

    async def list_invitations(self, organization_id: str) -> list[dict[str, Any]]: ...

    async def update_membership_role(
        self, organization_id: str, subject: str, role: str
    ) -> None: ...

    async def delete_membership(self, organization_id: str, subject: str) -> None: ...


class HttpIdentityProvider:
    """``IdentityProvider`` backed by the provider's REST API."""

    def __init__(
        self,
        api_url: str,
        secret_key: str,
        request_timeout: int = 10,
        client: httpx.AsyncClient | None = None,
    ):
        self._api_url = api_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(request_timeout),
            headers={"Authorization": f"Bearer {secret_key}"},
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self._api_url}{path}"
        try:
            resp = await self._client.request(method, url, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            log.error(
                "provider.http_error",
                method=method,
                path=path,
                status=exc.response.status_code,
            )
            raise ProviderError(
                _error_message(exc.response), status_code=exc.response.status_code
            ) from exc
        except httpx.HTTPError as exc:
            log.error("provider.unreachable", method=method, path=path, error=str(exc))
            raise ProviderError("Identity provider unreachable") from exc
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    async def list_memberships(self, subject: str) -> list[ProviderMembership]:
        payload = await self._request(
            "GET", f"/users/{subject}/organization_memberships", params={"limit": 100}
        )
        return [
            ProviderMembership(
                organization=ProviderOrganization(
                    id=item["organization"]["id"],
                    name=item["organization"].get("name", ""),
                    slug=item["organization"].get("slug"),
                ),
                role=item.get("role"),
            )
            for item in (payload or {}).get("data", [])
            if item.get("organization")
        ]

    async def create_organization(
        self, name: str, slug: str, creator_subject: str
    ) -> ProviderOrganization:
        payload = await self._request(
            "POST",
            "/organizations",
            json={"name": name, "slug": slug, "created_by": creator_subject},
        )
        return ProviderOrganization(id=payload["id"], name=payload["name"], slug=payload.get("slug"))

    async def create_invitation(
        self, organization_id: str, email: str, role: str, inviter_subject: str
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/organizations/{organization_id}/invitations",
            json={
                "email_address": email,
                "role": role,
                "inviter_user_id": inviter_subject,
            },
        )

    async def list_invitations(self, organization_id: str) -> list[dict[str, Any]]:
        payload = await self._request(
            "GET",
            f"/organizations/{organization_id}/invitations",
            params={"status": "pending"},
        )
        return (payload or {}).get("data", [])

    async def update_membership_role(
        self, organization_id: str, subject: str, role: str
    ) -> None:
        await self._request(
            "PATCH",
            f"/organizations/{organization_id}/memberships/{subject}",
            json={"role": role},
        )

    async def delete_membership(self, organization_id: str, subject: str) -> None:
        await self._request(
            "DELETE", f"/organizations/{organization_id}/memberships/{subject}"
        )


def _error_message(response: httpx.Response) -> str:
    """Pull the provider's human-readable error out of a failed response."""
    try:
        body = response.json()
    except ValueError:
        return f"Identity provider returned {response.status_code}"
    errors = body.get("errors") if isinstance(body, dict) else None
    if errors:
        first = errors[0]
        return first.get("long_message") or first.get("message") or str(first)
    return f"Identity provider returned {response.status_code}"


_provider: HttpIdentityProvider | None = None


def get_provider() -> IdentityProvider:
    """FastAPI dependency returning the shared provider client."""
    global _provider
    if _provider is None:
        settings = get_settings()
        _provider = HttpIdentityProvider(
            settings.provider_api_url,
            settings.provider_secret_key,
            request_timeout=settings.provider_timeout_seconds,
        )
    return _provider


async def close_provider() -> None:
    global _provider
    if _provider is not None:
        await _provider.close()
        _provider = None
