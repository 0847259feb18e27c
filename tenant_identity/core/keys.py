from __future__ import annotations

import hmac
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import structlog

from tenant_identity.core.errors import InvalidArgumentError, NotFoundError
from tenant_identity.core.safe_views import to_safe_key, to_safe_key_set
from tenant_identity.schemas.identity import IdentityDocument, KeySet, Organization, StoredApiKey
from tenant_identity.schemas.safe import SafeKey, SafeKeySet
from tenant_identity.utils.clock import now_iso
from tenant_identity.utils.crypto import decrypt_value, encrypt_value
from tenant_identity.utils.hashing import generate_plain_api_key, hash_api_key, last_four

if TYPE_CHECKING:
    from tenant_identity.db.store import IdentityStore

logger = structlog.get_logger()

KEYS_PER_SET = 2


@dataclass(frozen=True)
class KeySetCreated:
    key_set: SafeKeySet
    # Plaintext keys, only ever returned here.
    revealed_keys: list[str]


@dataclass(frozen=True)
class RotatedKey:
    plaintext: str
    safe_key: SafeKey


@dataclass(frozen=True)
class ApiKeyMatch:
    organization: Organization
    key_set: KeySet
    key: StoredApiKey


def create_stored_key_from_plain(plain: str, actor_id: str) -> StoredApiKey:
    sealed = encrypt_value(plain)
    ts = now_iso()
    return StoredApiKey(
        id=str(uuid.uuid4()),
        encrypted_key=sealed.ciphertext,
        encryption_iv=sealed.iv,
        encryption_auth_tag=sealed.auth_tag,
        key_hash=hash_api_key(plain),
        last_four=last_four(plain),
        last_rotated=ts,
        last_accessed=None,
        usage=[],
        created_by=actor_id,
        created_at=ts,
    )


def _new_key_set(actor_id: str, name: str, description: str) -> tuple[KeySet, list[str]]:
    plains = [generate_plain_api_key() for _ in range(KEYS_PER_SET)]
    key_set = KeySet(
        id=str(uuid.uuid4()),
        name=name,
        description=description,
        keys=[create_stored_key_from_plain(p, actor_id) for p in plains],
        created_by=actor_id,
        created_at=now_iso(),
    )
    return key_set, plains


def create_default_key_set(actor_id: str) -> KeySet:
    key_set, _ = _new_key_set(actor_id, "Default", "Initial key set")
    return key_set


def reveal_stored_key(key: StoredApiKey) -> str:
    return decrypt_value(key.encrypted_key, key.encryption_iv, key.encryption_auth_tag)


def _require_org(doc: IdentityDocument, org_id: str) -> Organization:
    org = doc.organizations.get(org_id)
    if org is None:
        raise NotFoundError("organization not found")
    return org


def add_key_set(
    store: IdentityStore,
    org_id: str,
    actor_id: str,
    name: str,
    description: str,
    *,
    mask_costs: bool = False,
) -> KeySetCreated:
    with store.transaction() as doc:
        org = _require_org(doc, org_id)
        key_set, plains = _new_key_set(actor_id, name, description)
        org.key_sets.append(key_set)
    logger.info("key_set_added", org_id=org_id, key_set_id=key_set.id, actor_id=actor_id)
    return KeySetCreated(key_set=to_safe_key_set(key_set, mask_costs=mask_costs), revealed_keys=plains)


def remove_key_set(store: IdentityStore, org_id: str, set_id: str) -> None:
    with store.transaction() as doc:
        org = _require_org(doc, org_id)
        before = len(org.key_sets)
        org.key_sets = [ks for ks in org.key_sets if ks.id != set_id]
    if len(org.key_sets) != before:
        logger.info("key_set_removed", org_id=org_id, key_set_id=set_id)


def rotate_api_key(
    store: IdentityStore,
    org_id: str,
    set_id: str,
    index: int,
    actor_id: str,
    *,
    mask_costs: bool = False,
) -> RotatedKey:
    with store.transaction() as doc:
        org = _require_org(doc, org_id)
        key_set = org.find_key_set(set_id)
        if key_set is None:
            raise NotFoundError("key set not found")
        if index < 0 or index >= len(key_set.keys):
            raise InvalidArgumentError("invalid key index")
        plain = generate_plain_api_key()
        stored = create_stored_key_from_plain(plain, actor_id)
        # Same slot: the previous ciphertext and hash are gone after save.
        key_set.keys[index] = stored
    logger.info(
        "api_key_rotated",
        org_id=org_id,
        key_set_id=set_id,
        index=index,
        last_four=stored.last_four,
        actor_id=actor_id,
    )
    return RotatedKey(plaintext=plain, safe_key=to_safe_key(stored, mask_costs=mask_costs))


def _match_api_key(doc: IdentityDocument, presented_hash: str) -> Optional[ApiKeyMatch]:
    found = None
    # Full scan with constant-time compares; no early exit on a hit.
    for org in doc.organizations.values():
        for key_set in org.key_sets:
            for key in key_set.keys:
                if hmac.compare_digest(key.key_hash, presented_hash) and found is None:
                    found = ApiKeyMatch(organization=org, key_set=key_set, key=key)
    return found


def find_org_by_api_key(
    store: IdentityStore,
    presented_key: str,
    *,
    record_access: bool = False,
) -> Optional[ApiKeyMatch]:
    presented_hash = hash_api_key(presented_key)
    with store.lock:
        doc = store.load()
        match = _match_api_key(doc, presented_hash)
        if match is None:
            return None
        if record_access:
            match.key.last_accessed = now_iso()
            store.save(doc)
    return match
