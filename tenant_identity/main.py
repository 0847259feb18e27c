from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from tenant_identity.api.routes.auth import router as auth_router
from tenant_identity.core.auth import get_store
from tenant_identity.core.sessions import SessionStore
from tenant_identity.db.store import IdentityStore


def create_app(
    store: Optional[IdentityStore] = None,
    sessions: Optional[SessionStore] = None,
) -> FastAPI:
    app = FastAPI(title="Tenant Identity Store", version="0.1.0")
    app.state.session_store = sessions or SessionStore()
    if store is not None:
        app.dependency_overrides[get_store] = lambda: store
    app.include_router(auth_router)
    return app


app = create_app()
