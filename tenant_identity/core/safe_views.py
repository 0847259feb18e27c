"""Redacted projections of identity entities.

Nothing that leaves the store goes out as a raw StoredApiKey or UserAccount:
encryption material, lookup hashes and password hashes are dropped here, and
provider token costs are nulled when the audience should not see them
(mask_costs=True, e.g. tenant-facing billing views).
"""

from __future__ import annotations

from tenant_identity.schemas.identity import (
    KeySet,
    Member,
    Organization,
    StoredApiKey,
    UsageEntry,
    UserAccount,
)
from tenant_identity.schemas.safe import (
    SafeKey,
    SafeKeySet,
    SafeMember,
    SafeOrganization,
    SafeUsageEntry,
    SafeUser,
)


def mask_key(last_four: str) -> str:
    return f"**** **** **** {last_four}"


def to_safe_usage_entry(entry: UsageEntry, *, mask_costs: bool = False) -> SafeUsageEntry:
    return SafeUsageEntry(
        timestamp=entry.timestamp,
        action=entry.action,
        token_cost=None if mask_costs else entry.token_cost,
        billed_cost=entry.billed_cost,
        requests=entry.requests,
        question=entry.question,
        metadata=entry.metadata.model_copy(deep=True) if entry.metadata is not None else None,
    )


def _safe_usage(entries: list[UsageEntry], mask_costs: bool) -> list[SafeUsageEntry]:
    return [to_safe_usage_entry(e, mask_costs=mask_costs) for e in entries]


def to_safe_key(key: StoredApiKey, *, mask_costs: bool = False) -> SafeKey:
    return SafeKey(
        id=key.id,
        masked_key=mask_key(key.last_four),
        last_four=key.last_four,
        last_rotated=key.last_rotated,
        last_accessed=key.last_accessed,
        usage=_safe_usage(key.usage, mask_costs),
        created_at=key.created_at,
        created_by=key.created_by,
    )


def to_safe_key_set(key_set: KeySet, *, mask_costs: bool = False) -> SafeKeySet:
    return SafeKeySet(
        id=key_set.id,
        name=key_set.name,
        description=key_set.description,
        created_at=key_set.created_at,
        created_by=key_set.created_by,
        keys=[to_safe_key(k, mask_costs=mask_costs) for k in key_set.keys],
    )


def _to_safe_member(member: Member, mask_costs: bool) -> SafeMember:
    return SafeMember(
        user_id=member.user_id,
        roles=list(member.roles),
        invited_at=member.invited_at,
        joined_at=member.joined_at,
        status=member.status,
        usage=_safe_usage(member.usage, mask_costs),
        last_accessed=member.last_accessed,
    )


def to_safe_organization(org: Organization, *, mask_costs: bool = False) -> SafeOrganization:
    return SafeOrganization(
        id=org.id,
        name=org.name,
        slug=org.slug,
        credits=org.credits,
        is_master=org.is_master,
        usage=_safe_usage(org.usage, mask_costs),
        key_sets=[to_safe_key_set(ks, mask_costs=mask_costs) for ks in org.key_sets],
        billing_profile=org.billing_profile.model_copy(),
        members=[_to_safe_member(m, mask_costs) for m in org.members],
        created_at=org.created_at,
        created_by=org.created_by,
    )


def to_safe_user(user: UserAccount) -> SafeUser:
    return SafeUser(
        id=user.id,
        email=user.email,
        name=user.name,
        global_roles=list(user.global_roles),
        organizations=[link.model_copy(deep=True) for link in user.organizations],
        created_at=user.created_at,
        last_login_at=user.last_login_at,
        status=user.status,
    )
