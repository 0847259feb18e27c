from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request

from tenant_identity.core.keys import find_org_by_api_key
from tenant_identity.core.sessions import SessionStore
from tenant_identity.db.store import IdentityStore, get_identity_store
from tenant_identity.schemas.identity import ApiUsageSource, UiUsageSource, UsageMetadata


@dataclass(frozen=True)
class AuthContext:
    org_id: str
    auth_type: str  # api_key|session
    usage_source: str  # api|ui
    # api key metadata
    key_set_id: Optional[str] = None
    key_id: Optional[str] = None
    # session user
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    is_operator: bool = False

    def usage_metadata(self) -> UsageMetadata:
        """
        Metadata to attach to usage recorded on behalf of this caller.
        """
        if self.auth_type == "api_key":
            return ApiUsageSource(key_id=self.key_id, key_set_id=self.key_set_id)
        return UiUsageSource(user_id=self.user_id, user_email=self.user_email)


def get_store() -> IdentityStore:
    return get_identity_store()


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def _bearer_token(request: Request) -> Optional[str]:
    h = request.headers.get("Authorization") or ""
    if not h:
        return None
    if not h.lower().startswith("bearer "):
        return None
    return h[7:].strip()


def _validate_api_key(store: IdentityStore, api_key: str) -> AuthContext:
    match = find_org_by_api_key(store, api_key, record_access=True)
    if match is None:
        raise HTTPException(status_code=401, detail="invalid API key")
    return AuthContext(
        org_id=match.organization.id,
        auth_type="api_key",
        usage_source="api",
        key_set_id=match.key_set.id,
        key_id=match.key.id,
    )


def _validate_session(
    store: IdentityStore,
    sessions: SessionStore,
    token: str,
    org_header: Optional[str],
) -> AuthContext:
    session = sessions.verify(token)
    if session is None:
        raise HTTPException(status_code=401, detail="invalid or expired token")

    doc = store.load()
    user = doc.users.get(session.user_id)
    if user is None or user.status != "active":
        raise HTTPException(status_code=403, detail="user account disabled")

    org_id = org_header or (user.organizations[0].org_id if user.organizations else None)
    if not org_id:
        raise HTTPException(status_code=400, detail="no organization selected")
    org = doc.organizations.get(org_id)
    if org is None:
        raise HTTPException(status_code=404, detail="organization not found")

    member = org.find_member(user.id)
    is_member = member is not None and member.status == "active"
    # Platform operators may act in any organization.
    if not is_member and not user.is_operator:
        raise HTTPException(status_code=403, detail="user does not belong to this organization")

    return AuthContext(
        org_id=org.id,
        auth_type="session",
        usage_source="ui",
        user_id=user.id,
        user_email=user.email,
        is_operator=user.is_operator,
    )


def get_auth_context_optional(
    request: Request,
    store: IdentityStore = Depends(get_store),
    sessions: SessionStore = Depends(get_session_store),
) -> Optional[AuthContext]:
    token = _bearer_token(request)
    if token:
        return _validate_session(store, sessions, token, request.headers.get("X-Org-Id"))
    api_key = request.headers.get("X-API-Key")
    if api_key:
        return _validate_api_key(store, api_key)
    return None


def require_auth_context(
    ctx: Optional[AuthContext] = Depends(get_auth_context_optional),
) -> AuthContext:
    if ctx is None:
        raise HTTPException(status_code=401, detail="missing API key")
    return ctx


def require_api_key(
    ctx: AuthContext = Depends(require_auth_context),
) -> AuthContext:
    if ctx.auth_type != "api_key":
        raise HTTPException(status_code=403, detail="API key required")
    return ctx
