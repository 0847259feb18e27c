from __future__ import annotations

import os
import sys
from logging.config import fileConfig

from alembic import context

# env.py lives at: <repo>/tenant_identity/db/migrations/env.py
# Add <repo> to sys.path so `tenant_identity` resolves when Alembic runs from anywhere.
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", "..")))

from tenant_identity.config import get_database_url  # noqa: E402
from tenant_identity.db.models import Base  # noqa: E402
from tenant_identity.db.session import create_identity_engine  # noqa: E402

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=get_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    # Same engine construction as the running store (honours DB_DISABLE_SQLALCHEMY_POOL).
    connectable = create_identity_engine()

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
