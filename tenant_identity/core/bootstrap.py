from __future__ import annotations

import re
import uuid

from tenant_identity.core.keys import create_default_key_set
from tenant_identity.schemas.identity import (
    OWNER_ROLES,
    BillingProfile,
    GlobalRole,
    IdentityDocument,
    Member,
    Organization,
    UserAccount,
    UserOrganizationLink,
)
from tenant_identity.utils.clock import now_iso
from tenant_identity.utils.crypto import create_password_hash


DEFAULT_ORGANIZATION_NAME = "Default Organization"


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (name or "").lower()).strip("-")


def create_bootstrap_identity() -> IdentityDocument:
    """
    First-run document: a default organization with its owner, a platform
    operator (SYSADMIN) with no memberships, and one default key set.
    """
    org_id = str(uuid.uuid4())
    owner_id = str(uuid.uuid4())
    operator_id = str(uuid.uuid4())
    created = now_iso()

    owner = UserAccount(
        id=owner_id,
        email="owner@example.com",
        name="Default Org Owner",
        password_hash=create_password_hash("owner"),
        global_roles=[],
        organizations=[UserOrganizationLink(org_id=org_id, roles=list(OWNER_ROLES))],
        created_at=created,
        status="active",
    )

    operator = UserAccount(
        id=operator_id,
        email="sysadmin@example.com",
        name="Platform SysAdmin",
        password_hash=create_password_hash("sysadmin"),
        global_roles=[GlobalRole.SYSADMIN],
        organizations=[],
        created_at=created,
        status="active",
    )

    organization = Organization(
        id=org_id,
        name=DEFAULT_ORGANIZATION_NAME,
        slug=slugify(DEFAULT_ORGANIZATION_NAME),
        credits=0,
        usage=[],
        key_sets=[create_default_key_set(owner_id)],
        members=[
            Member(
                user_id=owner_id,
                roles=list(OWNER_ROLES),
                invited_at=created,
                joined_at=created,
                status="active",
            )
        ],
        billing_profile=BillingProfile(
            contact_email="billing@example.com",
            contact_name="Default Billing Contact",
        ),
        created_at=created,
        created_by=owner_id,
    )

    return IdentityDocument(
        users={owner_id: owner, operator_id: operator},
        organizations={org_id: organization},
        audit_log=[],
    )
