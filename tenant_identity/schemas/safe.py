from __future__ import annotations

from typing import Optional

from pydantic import Field

from tenant_identity.schemas.common import CamelModel
from tenant_identity.schemas.identity import (
    BillingProfile,
    GlobalRole,
    OrgRole,
    UsageMetadata,
    UserOrganizationLink,
)


class SafeUsageEntry(CamelModel):
    timestamp: str
    action: str
    # None when costs are masked for the audience.
    token_cost: Optional[float] = None
    billed_cost: float
    requests: int
    question: Optional[str] = None
    metadata: Optional[UsageMetadata] = None


class SafeKey(CamelModel):
    id: str
    masked_key: str
    last_four: str
    last_rotated: str
    last_accessed: Optional[str] = None
    usage: list[SafeUsageEntry] = Field(default_factory=list)
    created_at: str
    created_by: str


class SafeKeySet(CamelModel):
    id: str
    name: str
    description: str
    created_at: str
    created_by: str
    keys: list[SafeKey] = Field(default_factory=list)


class SafeMember(CamelModel):
    user_id: str
    roles: list[OrgRole]
    invited_at: str
    joined_at: str
    status: str
    usage: list[SafeUsageEntry] = Field(default_factory=list)
    last_accessed: Optional[str] = None


class SafeOrganization(CamelModel):
    id: str
    name: str
    slug: str
    credits: float
    is_master: bool
    usage: list[SafeUsageEntry] = Field(default_factory=list)
    key_sets: list[SafeKeySet] = Field(default_factory=list)
    billing_profile: BillingProfile
    members: list[SafeMember] = Field(default_factory=list)
    created_at: str
    created_by: str


class SafeUser(CamelModel):
    id: str
    email: str
    name: str
    global_roles: list[GlobalRole]
    organizations: list[UserOrganizationLink]
    created_at: str
    last_login_at: Optional[str] = None
    status: str
