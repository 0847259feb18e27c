from __future__ import annotations

import pytest

from tenant_identity.core.errors import InvalidArgumentError, NotFoundError
from tenant_identity.core.keys import (
    add_key_set,
    create_stored_key_from_plain,
    find_org_by_api_key,
    remove_key_set,
    reveal_stored_key,
    rotate_api_key,
)
from tenant_identity.utils.hashing import generate_plain_api_key, hash_api_key


def test_stored_key_keeps_no_plaintext():
    plain = generate_plain_api_key()
    stored = create_stored_key_from_plain(plain, "actor-1")
    dumped = stored.model_dump_json(by_alias=True)
    assert plain not in dumped
    assert stored.key_hash == hash_api_key(plain)
    assert stored.last_four == plain[-4:]
    assert stored.last_accessed is None
    assert stored.created_by == "actor-1"
    assert reveal_stored_key(stored) == plain


def test_add_key_set_reveals_two_working_keys(store, default_org, owner):
    created = add_key_set(store, default_org.id, owner.id, "CI", "keys for CI")
    assert len(created.revealed_keys) == 2
    assert created.key_set.name == "CI"
    assert [k.last_four for k in created.key_set.keys] == [p[-4:] for p in created.revealed_keys]

    for plain in created.revealed_keys:
        match = find_org_by_api_key(store, plain)
        assert match is not None
        assert match.organization.id == default_org.id
        assert match.key_set.id == created.key_set.id

    org = store.load().organizations[default_org.id]
    assert [ks.name for ks in org.key_sets] == ["Default", "CI"]


def test_add_key_set_unknown_org(store):
    store.load()
    with pytest.raises(NotFoundError):
        add_key_set(store, "missing", "actor", "x", "y")


def test_remove_key_set(store, default_org, owner):
    created = add_key_set(store, default_org.id, owner.id, "temp", "")
    remove_key_set(store, default_org.id, created.key_set.id)
    assert find_org_by_api_key(store, created.revealed_keys[0]) is None
    assert len(store.load().organizations[default_org.id].key_sets) == 1

    # Already gone: no-op.
    remove_key_set(store, default_org.id, created.key_set.id)
    with pytest.raises(NotFoundError):
        remove_key_set(store, "missing", created.key_set.id)


def test_rotation_invalidates_previous_key(store, default_org, owner):
    created = add_key_set(store, default_org.id, owner.id, "rotating", "")
    old_plain = created.revealed_keys[1]
    untouched = created.revealed_keys[0]

    rotated = rotate_api_key(store, default_org.id, created.key_set.id, 1, owner.id)
    assert rotated.plaintext != old_plain
    assert rotated.safe_key.last_four == rotated.plaintext[-4:]

    assert find_org_by_api_key(store, old_plain) is None
    match = find_org_by_api_key(store, rotated.plaintext)
    assert match.organization.id == default_org.id
    assert match.key_set.id == created.key_set.id
    assert find_org_by_api_key(store, untouched) is not None

    key_set = store.load().organizations[default_org.id].find_key_set(created.key_set.id)
    assert len(key_set.keys) == 2
    assert key_set.keys[1].id == rotated.safe_key.id


@pytest.mark.parametrize("index", [-1, 2, 99])
def test_rotation_rejects_out_of_range_index(store, default_org, owner, index):
    set_id = default_org.key_sets[0].id
    before = store.load()
    with pytest.raises(InvalidArgumentError):
        rotate_api_key(store, default_org.id, set_id, index, owner.id)
    assert store.load() == before


def test_rotation_unknown_org_or_set(store, default_org, owner):
    with pytest.raises(NotFoundError):
        rotate_api_key(store, "missing", default_org.key_sets[0].id, 0, owner.id)
    with pytest.raises(NotFoundError):
        rotate_api_key(store, default_org.id, "missing", 0, owner.id)


def test_find_unknown_key_returns_none(store):
    store.load()
    assert find_org_by_api_key(store, "wr_" + "0" * 48) is None
    assert find_org_by_api_key(store, "") is None


def test_find_records_access_only_when_asked(store, default_org):
    plain = reveal_stored_key(default_org.key_sets[0].keys[0])

    match = find_org_by_api_key(store, plain)
    assert match.key.last_accessed is None
    assert store.load().organizations[default_org.id].key_sets[0].keys[0].last_accessed is None

    match = find_org_by_api_key(store, plain, record_access=True)
    assert match.key.last_accessed is not None
    stored = store.load().organizations[default_org.id].key_sets[0].keys[0]
    assert stored.last_accessed == match.key.last_accessed
