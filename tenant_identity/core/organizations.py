from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Optional, Union

import structlog
from pydantic import ValidationError

from tenant_identity.core.bootstrap import slugify
from tenant_identity.core.errors import ConflictError, InvalidArgumentError, NotFoundError
from tenant_identity.core.keys import create_default_key_set, reveal_stored_key
from tenant_identity.core.users import new_user_account, apply_membership
from tenant_identity.schemas.identity import (
    OWNER_ROLES,
    TOPUP_ACTION,
    BillingProfile,
    IdentityDocument,
    Organization,
    OrgRole,
    UsageEntry,
    UsageMetadata,
    UserAccount,
)
from tenant_identity.utils.clock import now_iso

if TYPE_CHECKING:
    from tenant_identity.db.store import IdentityStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class OrganizationCreated:
    organization: Organization
    owner: UserAccount
    # Plaintext keys of the default key set, only ever returned here.
    api_keys: list[str]


def get_organizations(store: IdentityStore) -> list[Organization]:
    return list(store.load().organizations.values())


def get_organization(store: IdentityStore, org_id: str) -> Optional[Organization]:
    return store.load().organizations.get(org_id)


def require_organization(doc: IdentityDocument, org_id: str) -> Organization:
    org = doc.organizations.get(org_id)
    if org is None:
        raise NotFoundError("organization not found")
    return org


def create_organization_with_owner(
    store: IdentityStore,
    organization_name: str,
    owner_email: str,
    owner_name: str,
    owner_password: str,
    billing_email: Optional[str] = None,
    *,
    is_master: bool = False,
    owner_global_roles: Iterable = (),
    mark_bootstrap_complete: bool = False,
) -> OrganizationCreated:
    with store.transaction() as doc:
        if doc.find_user_by_email(owner_email) is not None:
            raise ConflictError("user with this email already exists")

        owner = new_user_account(owner_email, owner_name, owner_password, owner_global_roles)
        created = now_iso()
        organization = Organization(
            id=str(uuid.uuid4()),
            name=organization_name,
            slug=slugify(organization_name),
            credits=0,
            key_sets=[create_default_key_set(owner.id)],
            billing_profile=BillingProfile(
                contact_email=billing_email or owner_email,
                contact_name=owner_name,
            ),
            created_at=created,
            created_by=owner.id,
            is_master=is_master,
        )
        apply_membership(owner, organization, list(OWNER_ROLES))

        doc.users[owner.id] = owner
        doc.organizations[organization.id] = organization
        if mark_bootstrap_complete:
            doc.metadata.bootstrap_completed_at = now_iso()

    logger.info(
        "organization_created",
        org_id=organization.id,
        owner_id=owner.id,
        is_master=is_master,
    )
    api_keys = [reveal_stored_key(k) for k in organization.key_sets[0].keys]
    return OrganizationCreated(organization=organization, owner=owner, api_keys=api_keys)


def set_organization_master_status(store: IdentityStore, org_id: str, is_master: bool) -> Organization:
    with store.transaction() as doc:
        org = require_organization(doc, org_id)
        org.is_master = bool(is_master)
    logger.info("organization_master_status_set", org_id=org_id, is_master=org.is_master)
    return org


def user_has_master_org_access(store: IdentityStore, user_id: str) -> bool:
    doc = store.load()
    for org in doc.organizations.values():
        if not org.is_master:
            continue
        member = org.find_member(user_id)
        if member is not None and member.status == "active" and OrgRole.OWNER in member.roles:
            return True
    return False


def top_up_organization(store: IdentityStore, org_id: str, amount: float) -> Organization:
    if not math.isfinite(amount) or amount <= 0:
        raise InvalidArgumentError("top-up amount must be a positive number")
    with store.transaction() as doc:
        org = require_organization(doc, org_id)
        org.credits += amount
        # Credits are recorded as negative billed cost.
        org.usage.append(
            UsageEntry(
                timestamp=now_iso(),
                action=TOPUP_ACTION,
                token_cost=0,
                billed_cost=-amount,
                requests=0,
            )
        )
    logger.info("organization_topped_up", org_id=org_id, amount=amount, credits=org.credits)
    return org


def record_usage(
    store: IdentityStore,
    org_id: str,
    action: str,
    token_cost: Optional[float],
    billed_cost: float,
    requests: int = 0,
    key_set_id: Optional[str] = None,
    key_id: Optional[str] = None,
    user_id: Optional[str] = None,
    question: Optional[str] = None,
    metadata: Union[UsageMetadata, dict, None] = None,
) -> UsageEntry:
    """
    Append a usage entry to the organization ledger and debit its credits.

    The same entry also lands on the member's ledger when user_id is a member,
    and on the key's ledger when key_set_id/key_id resolve; both get their
    lastAccessed stamped. Unresolved member or key ids are ignored.
    """
    with store.transaction() as doc:
        org = require_organization(doc, org_id)
        try:
            entry = UsageEntry(
                timestamp=now_iso(),
                action=action,
                token_cost=token_cost,
                billed_cost=billed_cost,
                requests=requests or 0,
                question=question,
                metadata=metadata,
            )
        except ValidationError as e:
            raise InvalidArgumentError(f"invalid usage entry: {e}") from e
        org.credits -= billed_cost
        org.usage.append(entry)

        if user_id:
            member = org.find_member(user_id)
            if member is not None:
                member.usage.append(entry)
                member.last_accessed = entry.timestamp

        if key_set_id and key_id:
            key_set = org.find_key_set(key_set_id)
            key = next((k for k in key_set.keys if k.id == key_id), None) if key_set else None
            if key is not None:
                key.usage.append(entry)
                key.last_accessed = entry.timestamp

    logger.info(
        "usage_recorded",
        org_id=org_id,
        action=action,
        billed_cost=billed_cost,
        requests=entry.requests,
    )
    return entry
