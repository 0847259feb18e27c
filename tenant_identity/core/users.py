from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Optional

import structlog

from tenant_identity.core.errors import ConflictError, InvalidArgumentError, NotFoundError
from tenant_identity.schemas.identity import (
    GlobalRole,
    IdentityDocument,
    Member,
    Organization,
    OrgRole,
    UserAccount,
    UserOrganizationLink,
)
from tenant_identity.utils.clock import now_iso
from tenant_identity.utils.crypto import create_password_hash

if TYPE_CHECKING:
    from tenant_identity.db.store import IdentityStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class OrgUserResult:
    user: UserAccount
    is_new_user: bool
    # Set only when a password was generated for a new user; shown once.
    generated_password: Optional[str] = None


def normalize_roles(roles: Iterable) -> list[OrgRole]:
    try:
        return list(dict.fromkeys(OrgRole(r) for r in roles))
    except ValueError as e:
        raise InvalidArgumentError(f"unknown organization role: {e}") from e


def get_users_for_organization(store: IdentityStore, org_id: str) -> list[UserAccount]:
    doc = store.load()
    org = doc.organizations.get(org_id)
    if org is None:
        return []
    return [doc.users[m.user_id] for m in org.members if m.user_id in doc.users]


def get_user(store: IdentityStore, user_id: str) -> Optional[UserAccount]:
    return store.load().users.get(user_id)


def get_user_by_email(store: IdentityStore, email: str) -> Optional[UserAccount]:
    return store.load().find_user_by_email(email)


def new_user_account(email: str, name: str, password: str, global_roles: Iterable = ()) -> UserAccount:
    try:
        roles = [GlobalRole(r) for r in global_roles]
    except ValueError as e:
        raise InvalidArgumentError(f"unknown global role: {e}") from e
    return UserAccount(
        id=str(uuid.uuid4()),
        email=email.strip(),
        name=name,
        password_hash=create_password_hash(password),
        global_roles=roles,
        organizations=[],
        created_at=now_iso(),
        status="active",
    )


def create_user_account(
    store: IdentityStore,
    email: str,
    name: str,
    password: str,
    global_roles: Optional[list] = None,
) -> UserAccount:
    with store.transaction() as doc:
        if doc.find_user_by_email(email) is not None:
            raise ConflictError("user with this email already exists")
        user = new_user_account(email, name, password, global_roles or [])
        doc.users[user.id] = user
    logger.info("user_created", user_id=user.id)
    return user


def update_user_last_login(store: IdentityStore, user_id: str) -> None:
    with store.lock:
        doc = store.load()
        user = doc.users.get(user_id)
        if user is None:
            return
        user.last_login_at = now_iso()
        store.save(doc)


def apply_membership(user: UserAccount, org: Organization, roles: list[OrgRole]) -> None:
    """
    Set the user's roles in the organization on both sides of the link.
    Exactly one link and one member record exist afterwards.
    """
    link = user.find_link(org.id)
    if link is None:
        user.organizations.append(UserOrganizationLink(org_id=org.id, roles=list(roles)))
    else:
        link.roles = list(roles)

    member = org.find_member(user.id)
    if member is None:
        ts = now_iso()
        org.members.append(
            Member(user_id=user.id, roles=list(roles), invited_at=ts, joined_at=ts, status="active")
        )
    else:
        member.roles = list(roles)
        member.status = "active"


def _require_user_and_org(doc: IdentityDocument, user_id: str, org_id: str) -> tuple[UserAccount, Organization]:
    user = doc.users.get(user_id)
    org = doc.organizations.get(org_id)
    if user is None or org is None:
        raise NotFoundError("user or organization not found")
    return user, org


def attach_user_to_organization(store: IdentityStore, user_id: str, org_id: str, roles: list) -> None:
    roles = normalize_roles(roles)
    with store.transaction() as doc:
        user, org = _require_user_and_org(doc, user_id, org_id)
        apply_membership(user, org, roles)
    logger.info("membership_updated", user_id=user_id, org_id=org_id, roles=[r.value for r in roles])


def create_or_update_org_user(
    store: IdentityStore,
    org_id: str,
    email: str,
    name: str,
    roles: list,
    password: Optional[str] = None,
) -> OrgUserResult:
    roles = normalize_roles(roles)
    generated_password = None
    with store.transaction() as doc:
        org = doc.organizations.get(org_id)
        if org is None:
            raise NotFoundError("organization not found")

        user = doc.find_user_by_email(email)
        is_new_user = user is None
        if user is None:
            if not password:
                generated_password = secrets.token_hex(8)
            user = new_user_account(email, name, password or generated_password)
            doc.users[user.id] = user
        else:
            user.name = name
            if password:
                user.password_hash = create_password_hash(password)

        apply_membership(user, org, roles)

    logger.info(
        "org_user_upserted",
        user_id=user.id,
        org_id=org_id,
        is_new_user=is_new_user,
        generated_password=generated_password is not None,
    )
    return OrgUserResult(user=user, is_new_user=is_new_user, generated_password=generated_password)
