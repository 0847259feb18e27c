from __future__ import annotations

from tenant_identity.core.keys import reveal_stored_key
from tenant_identity.core.organizations import create_organization_with_owner
from tenant_identity.core.users import create_user_account
from tenant_identity.schemas.identity import GlobalRole


def _first_key(org) -> str:
    return reveal_stored_key(org.key_sets[0].keys[0])


def test_whoami_with_api_key(client, store, default_org):
    r = client.get("/auth/whoami", headers={"X-API-Key": _first_key(default_org)})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["org_id"] == default_org.id
    assert body["auth_type"] == "api_key"
    assert body["usage_source"] == "api"
    assert body["key_set_id"] == default_org.key_sets[0].id
    assert body["key_id"] == default_org.key_sets[0].keys[0].id

    key = store.load().organizations[default_org.id].key_sets[0].keys[0]
    assert key.last_accessed is not None


def test_missing_credentials(client):
    r = client.get("/auth/whoami")
    assert r.status_code == 401


def test_invalid_api_key(client, store):
    store.load()
    r = client.get("/auth/whoami", headers={"X-API-Key": "wr_" + "f" * 48})
    assert r.status_code == 401


def test_session_uses_first_linked_org(client, sessions, default_org, owner):
    token = sessions.issue(owner.id)
    r = client.get("/auth/whoami", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["org_id"] == default_org.id
    assert body["auth_type"] == "session"
    assert body["usage_source"] == "ui"
    assert body["user_id"] == owner.id
    assert body["is_operator"] is False


def test_bearer_takes_precedence_over_api_key(client, store, sessions, default_org, owner):
    other = create_organization_with_owner(store, "Other", "other@example.com", "Other", "pw")
    token = sessions.issue(owner.id)
    r = client.get(
        "/auth/whoami",
        headers={"Authorization": f"Bearer {token}", "X-API-Key": other.api_keys[0]},
    )
    assert r.status_code == 200
    assert r.json()["org_id"] == default_org.id


def test_session_rejects_foreign_org(client, store, sessions, owner):
    other = create_organization_with_owner(store, "Other", "other@example.com", "Other", "pw")
    token = sessions.issue(owner.id)
    r = client.get(
        "/auth/whoami",
        headers={"Authorization": f"Bearer {token}", "X-Org-Id": other.organization.id},
    )
    assert r.status_code == 403


def test_operator_may_select_any_org(client, store, sessions, default_org):
    operator = next(u for u in store.load().users.values() if GlobalRole.SYSADMIN in u.global_roles)
    token = sessions.issue(operator.id)

    r = client.get("/auth/whoami", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 400

    r = client.get(
        "/auth/whoami",
        headers={"Authorization": f"Bearer {token}", "X-Org-Id": default_org.id},
    )
    assert r.status_code == 200
    assert r.json()["is_operator"] is True

    r = client.get(
        "/auth/whoami",
        headers={"Authorization": f"Bearer {token}", "X-Org-Id": "missing"},
    )
    assert r.status_code == 404


def test_disabled_user_is_forbidden(client, store, sessions, default_org):
    user = create_user_account(store, "gone@example.com", "Gone", "pw")
    with store.transaction() as doc:
        doc.users[user.id].status = "disabled"
    token = sessions.issue(user.id)
    r = client.get(
        "/auth/whoami",
        headers={"Authorization": f"Bearer {token}", "X-Org-Id": default_org.id},
    )
    assert r.status_code == 403


def test_revoked_or_unknown_token(client, sessions, owner):
    token = sessions.issue(owner.id)
    sessions.revoke(token)
    assert client.get("/auth/whoami", headers={"Authorization": f"Bearer {token}"}).status_code == 401
    assert client.get("/auth/whoami", headers={"Authorization": "Bearer dev.bogus"}).status_code == 401
