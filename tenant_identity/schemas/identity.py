from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import Discriminator, Field, Tag, model_validator

from tenant_identity.schemas.common import CamelModel


TOPUP_ACTION = "topup"


class OrgRole(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    BILLING = "BILLING"
    MEMBER = "MEMBER"


class GlobalRole(str, Enum):
    SYSADMIN = "SYSADMIN"  # platform operator
    MASTER_ADMIN = "MASTER_ADMIN"


OWNER_ROLES = [OrgRole.OWNER, OrgRole.ADMIN, OrgRole.BILLING]


# Usage metadata is a closed set of variants keyed on `source`; any mapping
# that is not a ui/api source is kept as opaque "other" data.
class UiUsageSource(CamelModel):
    source: Literal["ui"] = "ui"
    user_id: Optional[str] = None
    user_email: Optional[str] = None


class ApiUsageSource(CamelModel):
    source: Literal["api"] = "api"
    key_id: Optional[str] = None
    key_set_id: Optional[str] = None


class OtherUsageSource(CamelModel):
    source: str = "other"
    data: dict = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _wrap_opaque(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        source = value.get("source")
        if not isinstance(source, str) or not source:
            source = "other"
        if set(value) <= {"source", "data"} and isinstance(value.get("data", {}), dict):
            return {"source": source, "data": value.get("data", {})}
        data = {k: v for k, v in value.items() if k != "source"}
        return {"source": source, "data": data}


def _usage_source_tag(value: Any) -> str:
    if isinstance(value, dict):
        source = value.get("source")
    else:
        source = getattr(value, "source", None)
    return source if source in ("ui", "api") else "other"


UsageMetadata = Annotated[
    Union[
        Annotated[UiUsageSource, Tag("ui")],
        Annotated[ApiUsageSource, Tag("api")],
        Annotated[OtherUsageSource, Tag("other")],
    ],
    Discriminator(_usage_source_tag),
]


class UsageEntry(CamelModel):
    timestamp: str
    action: str
    # Cost charged by the upstream compute provider.
    token_cost: Optional[float] = 0.0
    # Amount charged to the tenant; negative for top-ups.
    billed_cost: float = 0.0
    requests: int = 0
    question: Optional[str] = None
    metadata: Optional[UsageMetadata] = None

    @property
    def is_top_up(self) -> bool:
        return self.action == TOPUP_ACTION


class StoredApiKey(CamelModel):
    id: str
    encrypted_key: str
    encryption_iv: str
    encryption_auth_tag: str
    key_hash: str
    last_four: str
    last_rotated: str
    last_accessed: Optional[str] = None
    usage: list[UsageEntry] = Field(default_factory=list)
    created_by: str
    created_at: str


class KeySet(CamelModel):
    id: str
    name: str
    description: str = ""
    keys: list[StoredApiKey] = Field(default_factory=list)
    created_by: str
    created_at: str


class BillingProfile(CamelModel):
    contact_email: str
    contact_name: Optional[str] = None
    external_billing_id: Optional[str] = None
    notes: Optional[str] = None


class Member(CamelModel):
    user_id: str
    roles: list[OrgRole] = Field(default_factory=list)
    invited_at: str
    joined_at: str
    status: Literal["active", "invited", "suspended"] = "active"
    usage: list[UsageEntry] = Field(default_factory=list)
    last_accessed: Optional[str] = None


class Organization(CamelModel):
    id: str
    name: str
    slug: str
    credits: float = 0.0
    usage: list[UsageEntry] = Field(default_factory=list)
    key_sets: list[KeySet] = Field(default_factory=list)
    members: list[Member] = Field(default_factory=list)
    billing_profile: BillingProfile
    created_at: str
    created_by: str
    is_master: bool = False

    def find_member(self, user_id: str) -> Optional[Member]:
        return next((m for m in self.members if m.user_id == user_id), None)

    def find_key_set(self, set_id: str) -> Optional[KeySet]:
        return next((ks for ks in self.key_sets if ks.id == set_id), None)


class UserOrganizationLink(CamelModel):
    org_id: str
    roles: list[OrgRole] = Field(default_factory=list)


class UserAccount(CamelModel):
    id: str
    email: str
    name: str
    password_hash: str
    global_roles: list[GlobalRole] = Field(default_factory=list)
    organizations: list[UserOrganizationLink] = Field(default_factory=list)
    created_at: str
    last_login_at: Optional[str] = None
    status: Literal["active", "disabled"] = "active"

    def find_link(self, org_id: str) -> Optional[UserOrganizationLink]:
        return next((link for link in self.organizations if link.org_id == org_id), None)

    @property
    def is_operator(self) -> bool:
        return any(r in (GlobalRole.SYSADMIN, GlobalRole.MASTER_ADMIN) for r in self.global_roles)


class AuditLogEntry(CamelModel):
    id: str
    timestamp: str
    actor_id: str
    action: str
    details: Optional[dict] = None


class IdentityMetadata(CamelModel):
    bootstrap_completed_at: Optional[str] = None


class IdentityDocument(CamelModel):
    users: dict[str, UserAccount] = Field(default_factory=dict)
    organizations: dict[str, Organization] = Field(default_factory=dict)
    audit_log: list[AuditLogEntry] = Field(default_factory=list)
    metadata: IdentityMetadata = Field(default_factory=IdentityMetadata)

    def find_user_by_email(self, email: str) -> Optional[UserAccount]:
        needle = (email or "").strip().lower()
        return next((u for u in self.users.values() if u.email.lower() == needle), None)
