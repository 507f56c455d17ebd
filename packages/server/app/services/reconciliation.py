"""
Membership reconciliation between the identity provider and the database.

Two pure classifiers over the same three signals (the provider's current
organization, the provider's membership list and the database membership
lookup):

- ``resolve_membership`` answers the access-control question: which shop, from
  which source, verified or not.
- ``evaluate_sync_status`` answers the remediation question: do the two
  sources disagree, and what should the user do about it.

Both are ordered rule tables evaluated top to bottom; the first matching rule
wins. Neither performs I/O, so results depend only on the inputs.

Role precedence when both sources carry a role: the database role is used for
authorization, the provider role for display.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from tcgshop_shared.roles import get_display_role, get_effective_role
from tcgshop_shared.schemas.membership import (
    LookupStatus,
    MembershipLookup,
    MembershipSource,
    ProviderMembership,
    ProviderSnapshot,
    ResolutionState,
    ShopRef,
    SyncAction,
    SyncCase,
    SyncStatus,
    UnifiedMembershipContext,
)

DEFAULT_PROVIDER_NAME = "Clerk"


@dataclass(frozen=True)
class MembershipSignals:
    provider: ProviderSnapshot
    lookup: MembershipLookup

    # -- derived facts shared by both rule tables ---------------------------

    @property
    def provider_loading(self) -> bool:
        return not self.provider.loaded

    @property
    def lookup_pending(self) -> bool:
        return self.lookup.status == LookupStatus.PENDING

    @property
    def failed(self) -> bool:
        return self.provider.error is not None or self.lookup.status == LookupStatus.ERROR

    @property
    def has_current_org(self) -> bool:
        return self.provider.loaded and self.provider.organization is not None

    @property
    def has_provider_memberships(self) -> bool:
        return len(self.provider.memberships) > 0

    @property
    def database_shop(self) -> Optional[ShopRef]:
        return self.lookup.found_shop

    @property
    def matching_membership(self) -> Optional[ProviderMembership]:
        shop = self.database_shop
        if shop is None:
            return None
        return self.provider.find_membership(shop.id)


# ---------------------------------------------------------------------------
# Sync-State Evaluator
# ---------------------------------------------------------------------------

def _sync(case: SyncCase, action: SyncAction = SyncAction.NONE, reason: Optional[str] = None) -> SyncStatus:
    return SyncStatus(
        needs_sync=action != SyncAction.NONE,
        sync_reason=reason,
        can_auto_sync=action == SyncAction.REFRESH,
        sync_action=action,
        case=case,
    )


SyncRule = tuple[SyncCase, Callable[[MembershipSignals], bool]]

SYNC_RULES: list[SyncRule] = [
    (SyncCase.LOADING, lambda s: s.provider_loading or s.lookup_pending),
    (SyncCase.PROVIDER_TRUSTED, lambda s: s.has_current_org),
    # A failed fetch never leads to a remediation action
    (SyncCase.INDETERMINATE, lambda s: s.failed),
    (SyncCase.MATCHED_MEMBERSHIP, lambda s: s.matching_membership is not None),
    (
        SyncCase.ORPHANED_DATABASE,
        lambda s: s.database_shop is not None and not s.has_provider_memberships,
    ),
    (
        SyncCase.ORPHANED_PROVIDER,
        lambda s: s.has_provider_memberships and not s.lookup.has_shop,
    ),
    (
        SyncCase.NO_MEMBERSHIP,
        lambda s: not s.lookup.has_shop and not s.has_provider_memberships,
    ),
]


def classify_sync_case(signals: MembershipSignals) -> SyncCase:
    for case, predicate in SYNC_RULES:
        if predicate(signals):
            return case
    return SyncCase.DEFAULT


def evaluate_sync_status(
    signals: MembershipSignals, provider_name: str = DEFAULT_PROVIDER_NAME
) -> SyncStatus:
    """Classify the provider/database relationship and recommend an action."""
    case = classify_sync_case(signals)
    if case == SyncCase.ORPHANED_DATABASE:
        return _sync(
            case,
            SyncAction.INVITATION,
            f"Database membership found but no {provider_name} organization detected",
        )
    if case == SyncCase.ORPHANED_PROVIDER:
        return _sync(
            case,
            SyncAction.REFRESH,
            f"{provider_name} organization memberships found but no database membership",
        )
    return _sync(case)


# ---------------------------------------------------------------------------
# Membership Resolver
# ---------------------------------------------------------------------------

def _from_current_org(s: MembershipSignals, provider_name: str) -> UnifiedMembershipContext:
    org = s.provider.organization
    database_role = None
    shop = s.database_shop
    if shop is not None and shop.id == org.id:
        database_role = shop.role
    return UnifiedMembershipContext(
        shop_id=org.id,
        shop_name=org.name,
        has_shop=True,
        source=MembershipSource.PROVIDER,
        is_verified=True,
        needs_sync=False,
        role=get_effective_role(database_role, s.provider.organization_role),
        display_role=get_display_role(database_role, s.provider.organization_role),
    )


def _from_matching_membership(s: MembershipSignals, provider_name: str) -> UnifiedMembershipContext:
    membership = s.matching_membership
    database_role = s.database_shop.role
    return UnifiedMembershipContext(
        shop_id=membership.organization.id,
        shop_name=membership.organization.name,
        has_shop=True,
        source=MembershipSource.PROVIDER,
        is_verified=True,
        needs_sync=False,
        role=get_effective_role(database_role, membership.role),
        display_role=get_display_role(database_role, membership.role),
    )


def _from_database(s: MembershipSignals, provider_name: str) -> UnifiedMembershipContext:
    shop = s.database_shop
    return UnifiedMembershipContext(
        shop_id=shop.id,
        shop_name=shop.name,
        has_shop=True,
        source=MembershipSource.DATABASE,
        is_verified=False,
        needs_sync=evaluate_sync_status(s, provider_name).needs_sync,
        role=get_effective_role(shop.role, None),
        display_role=get_display_role(shop.role, None),
    )


def _not_loaded(state: ResolutionState):
    def build(s: MembershipSignals, provider_name: str) -> UnifiedMembershipContext:
        return UnifiedMembershipContext(state=state)
    return build


def _no_shop(s: MembershipSignals, provider_name: str) -> UnifiedMembershipContext:
    return UnifiedMembershipContext()


ResolveRule = tuple[
    str,
    Callable[[MembershipSignals], bool],
    Callable[[MembershipSignals, str], UnifiedMembershipContext],
]

RESOLVE_RULES: list[ResolveRule] = [
    ("provider_current_org", lambda s: s.has_current_org, _from_current_org),
    ("matched_membership", lambda s: s.matching_membership is not None, _from_matching_membership),
    ("database_only", lambda s: s.database_shop is not None, _from_database),
    (
        "loading",
        lambda s: s.provider_loading or s.lookup_pending,
        _not_loaded(ResolutionState.LOADING),
    ),
    ("indeterminate", lambda s: s.failed, _not_loaded(ResolutionState.INDETERMINATE)),
    ("no_shop", lambda s: True, _no_shop),
]


def resolve_membership(
    signals: MembershipSignals, provider_name: str = DEFAULT_PROVIDER_NAME
) -> UnifiedMembershipContext:
    """Combine provider and database signals into one membership answer.

    A "no shop" answer is only returned once every signal is definitive;
    otherwise the context is LOADING or INDETERMINATE.
    """
    _name, build = _first_rule(signals)
    return build(signals, provider_name)


def matched_rule(signals: MembershipSignals) -> str:
    """Name of the resolver rule that fires for ``signals`` (for logging)."""
    return _first_rule(signals)[0]


def _first_rule(signals: MembershipSignals):
    for name, predicate, build in RESOLVE_RULES:
        if predicate(signals):
            return name, build
    return "no_shop", _no_shop
