from __future__ import annotations

import os
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from tenant_identity.config import get_database_url


def create_identity_engine(url: Optional[str] = None) -> Engine:
    url = url or get_database_url()
    _disable_pool = os.getenv("DB_DISABLE_SQLALCHEMY_POOL", "").strip().lower() in {"1", "true", "yes"}
    # Poolers (PgBouncer) often work best with client-side pooling disabled.
    if _disable_pool:
        return create_engine(url, future=True, poolclass=NullPool)
    return create_engine(url, future=True)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
