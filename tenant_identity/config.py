import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from urllib.parse import quote_plus

from dotenv import load_dotenv

from tenant_identity.core.errors import ConfigurationError


DEFAULT_KEY_SECRET = "local-dev-secret"
IDENTITY_BACKENDS = frozenset({"file", "sql"})


@dataclass(frozen=True)
class Settings:
    key_secret: str
    hash_secret: str
    identity_file: Path
    identity_backend: str  # file|sql
    internal_org_ids: frozenset


def _internal_org_ids() -> frozenset:
    raw = os.getenv("INTERNAL_ORG_IDS") or os.getenv("INTERNAL_ORG_ID") or ""
    return frozenset(v.strip() for v in raw.split(",") if v.strip())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Override any exported env vars (common when experimenting in shells)
    load_dotenv(override=True)

    key_secret = os.getenv("API_KEY_SECRET", "").strip()
    if not key_secret:
        # Dev-friendly fallback; production MUST set API_KEY_SECRET.
        key_secret = DEFAULT_KEY_SECRET
    hash_secret = os.getenv("API_KEY_HASH_SECRET", "").strip() or key_secret

    identity_file = Path(os.getenv("IDENTITY_FILE_PATH") or "data/identity.json").resolve()

    backend = (os.getenv("IDENTITY_BACKEND") or "file").strip().lower()
    if backend not in IDENTITY_BACKENDS:
        raise ConfigurationError(
            f"IDENTITY_BACKEND must be one of {sorted(IDENTITY_BACKENDS)}, got {backend!r}"
        )

    return Settings(
        key_secret=key_secret,
        hash_secret=hash_secret,
        identity_file=identity_file,
        identity_backend=backend,
        internal_org_ids=_internal_org_ids(),
    )


def reset_settings() -> None:
    """
    Drop the cached settings so the next get_settings() re-reads the environment.
    Only tests should need this.
    """
    get_settings.cache_clear()


def get_database_url() -> str:
    load_dotenv(override=True)

    # Parts win over DATABASE_URL; quoting them here avoids URL-encoding mistakes in passwords.
    host = os.getenv("DB_HOST")
    user = os.getenv("DB_USER", "postgres")
    password = os.getenv("DB_PASSWORD")
    port = os.getenv("DB_PORT", "5432")
    name = os.getenv("DB_NAME", "postgres")
    sslmode = os.getenv("DB_SSLMODE", "require")

    if host and password:
        user_enc = quote_plus(user)
        pass_enc = quote_plus(password)
        return (
            f"postgresql+psycopg2://{user_enc}:{pass_enc}@{host}:{port}/{name}"
            f"?sslmode={sslmode}"
        )

    # Otherwise a full URL.
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    # Fallback to local SQLite for dev/tests.
    return "sqlite:///./identity.db"
