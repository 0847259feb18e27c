from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

from tenant_identity.core.safe_views import to_safe_organization
from tenant_identity.schemas.identity import Organization, UsageEntry
from tenant_identity.schemas.usage import (
    PlatformOrganizationSummary,
    PlatformOverview,
    PlatformTotals,
    TopUpTotals,
    UsageTotals,
)

if TYPE_CHECKING:
    from tenant_identity.db.store import IdentityStore


def summarize_usage_entries(entries: Iterable[UsageEntry]) -> UsageTotals:
    totals = UsageTotals()
    for entry in entries:
        if entry.is_top_up:
            continue
        totals.total_token_cost += entry.token_cost or 0.0
        totals.total_billed += entry.billed_cost
        totals.total_requests += entry.requests
    totals.net_revenue = totals.total_billed - totals.total_token_cost
    return totals


def summarize_top_ups(entries: Iterable[UsageEntry]) -> TopUpTotals:
    totals = TopUpTotals()
    for entry in entries:
        if not entry.is_top_up:
            continue
        # Top-ups are stored as negative billed cost; the magnitude is the credit.
        totals.total_top_ups += abs(entry.billed_cost)
        totals.count += 1
        # ISO-8601 UTC strings compare chronologically.
        if totals.last_top_up_at is None or entry.timestamp > totals.last_top_up_at:
            totals.last_top_up_at = entry.timestamp
    return totals


def summarize_organization(org: Organization, *, is_internal: bool = False) -> PlatformOrganizationSummary:
    return PlatformOrganizationSummary(
        organization=to_safe_organization(org),
        usage=summarize_usage_entries(org.usage),
        top_ups=summarize_top_ups(org.usage),
        active_member_count=sum(1 for m in org.members if m.status == "active"),
        api_key_count=sum(len(ks.keys) for ks in org.key_sets),
        is_internal=is_internal,
    )


def get_platform_overview(store: IdentityStore) -> PlatformOverview:
    """
    Operator view: per-organization usage and top-up summaries folded into
    platform totals. Full scan of the document on every call.
    """
    doc = store.load()
    internal = store.internal_org_ids()
    summaries = [
        summarize_organization(org, is_internal=org.id in internal)
        for org in doc.organizations.values()
    ]

    totals = PlatformTotals()
    for s in summaries:
        totals.total_token_cost += s.usage.total_token_cost
        totals.total_billed += s.usage.total_billed
        totals.total_requests += s.usage.total_requests
        totals.net_revenue += s.usage.net_revenue
        totals.total_top_ups += s.top_ups.total_top_ups
        totals.total_credits += s.organization.credits
        totals.organization_count += 1
        totals.active_member_count += s.active_member_count
        totals.api_key_count += s.api_key_count
    return PlatformOverview(organizations=summaries, totals=totals)
