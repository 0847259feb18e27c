from __future__ import annotations

from typing import Optional

from pydantic import Field

from tenant_identity.schemas.common import CamelModel
from tenant_identity.schemas.safe import SafeOrganization


class UsageTotals(CamelModel):
    total_token_cost: float = 0.0
    total_billed: float = 0.0
    total_requests: int = 0
    net_revenue: float = 0.0


class TopUpTotals(CamelModel):
    total_top_ups: float = 0.0
    last_top_up_at: Optional[str] = None
    count: int = 0


class PlatformOrganizationSummary(CamelModel):
    organization: SafeOrganization
    usage: UsageTotals
    top_ups: TopUpTotals
    active_member_count: int
    api_key_count: int
    is_internal: bool = False


class PlatformTotals(UsageTotals):
    total_top_ups: float = 0.0
    total_credits: float = 0.0
    organization_count: int = 0
    active_member_count: int = 0
    api_key_count: int = 0


class PlatformOverview(CamelModel):
    organizations: list[PlatformOrganizationSummary] = Field(default_factory=list)
    totals: PlatformTotals = Field(default_factory=PlatformTotals)
