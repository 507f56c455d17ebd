"""
Membership signal and derived-view schemas.

Covers: provider-side organization memberships, the database membership
lookup, the unified membership context and the sync status derived from them.
The derived views are recomputed on every read and never persisted.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..roles import Role


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class MembershipSource(str, Enum):
    PROVIDER = "provider"
    DATABASE = "database"


class LookupStatus(str, Enum):
    OK = "ok"
    PENDING = "pending"
    ERROR = "error"


class ResolutionState(str, Enum):
    RESOLVED = "resolved"
    LOADING = "loading"
    INDETERMINATE = "indeterminate"


class SyncAction(str, Enum):
    NONE = "none"
    INVITATION = "invitation"
    REFRESH = "refresh"
    MANUAL = "manual"


class SyncCase(str, Enum):
    LOADING = "loading"
    INDETERMINATE = "indeterminate"
    PROVIDER_TRUSTED = "provider_trusted"
    MATCHED_MEMBERSHIP = "matched_membership"
    ORPHANED_DATABASE = "orphaned_database"
    ORPHANED_PROVIDER = "orphaned_provider"
    NO_MEMBERSHIP = "no_membership"
    DEFAULT = "default"


# ---------------------------------------------------------------------------
# Provider-side signals
# ---------------------------------------------------------------------------

class ProviderOrganization(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    slug: Optional[str] = None


class ProviderMembership(BaseModel):
    """An organization membership as reported by the identity provider."""

    model_config = ConfigDict(frozen=True)

    organization: ProviderOrganization
    role: Optional[str] = None  # provider-formatted, e.g. "org:admin"


class ProviderSnapshot(BaseModel):
    """Current organization plus the full membership list for one identity."""

    model_config = ConfigDict(frozen=True)

    loaded: bool = True
    organization: Optional[ProviderOrganization] = None
    organization_role: Optional[str] = None
    memberships: tuple[ProviderMembership, ...] = ()
    error: Optional[str] = None

    def find_membership(self, organization_id: str) -> Optional[ProviderMembership]:
        for membership in self.memberships:
            if membership.organization.id == organization_id:
                return membership
        return None


# ---------------------------------------------------------------------------
# Database-side signal
# ---------------------------------------------------------------------------

class ShopRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    slug: Optional[str] = None
    role: Optional[str] = None  # unprefixed database role, may be missing


class MembershipLookup(BaseModel):
    """Result of the database membership check for the current identity."""

    model_config = ConfigDict(frozen=True)

    status: LookupStatus = LookupStatus.OK
    has_shop: bool = False
    shop: Optional[ShopRef] = None
    message: Optional[str] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def _shop_present_when_found(self) -> "MembershipLookup":
        if self.status == LookupStatus.OK and self.has_shop and self.shop is None:
            raise ValueError("a lookup reporting a shop must carry the shop")
        return self

    @classmethod
    def pending(cls) -> "MembershipLookup":
        return cls(status=LookupStatus.PENDING)

    @classmethod
    def failed(cls, error: str) -> "MembershipLookup":
        return cls(status=LookupStatus.ERROR, error=error)

    @property
    def found_shop(self) -> Optional[ShopRef]:
        """The shop, only when the lookup definitively reported one."""
        if self.status == LookupStatus.OK and self.has_shop and self.shop:
            return self.shop
        return None


# ---------------------------------------------------------------------------
# Derived views
# ---------------------------------------------------------------------------

class UnifiedMembershipContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    shop_id: Optional[str] = None
    shop_name: Optional[str] = None
    has_shop: bool = False
    source: Optional[MembershipSource] = None
    is_verified: bool = False
    needs_sync: bool = False
    state: ResolutionState = ResolutionState.RESOLVED
    role: Optional[Role] = None
    display_role: Optional[Role] = None

    @property
    def is_loaded(self) -> bool:
        return self.state == ResolutionState.RESOLVED


class SyncStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    needs_sync: bool = False
    sync_reason: Optional[str] = None
    can_auto_sync: bool = False
    sync_action: SyncAction = SyncAction.NONE
    case: SyncCase = SyncCase.DEFAULT


class MembershipResponse(BaseModel):
    context: UnifiedMembershipContext
    sync_status: SyncStatus


# ---------------------------------------------------------------------------
# Remediation results
# ---------------------------------------------------------------------------

class SyncOutcome(BaseModel):
    success: bool
    message: str
    needs_invitation: bool = False
    shop_id: Optional[str] = None
    shop_name: Optional[str] = None


class FixOutcome(BaseModel):
    success: bool
    message: str
    repairs: list[str] = Field(default_factory=list)
    shop_id: Optional[str] = None
