"""Load/save of the whole identity document.

Every mutation goes through IdentityStore.transaction(): the document is read,
changed in memory and written back in full while the store's lock is held.
The lock only serialises writers inside one process; separate processes
sharing a file or database row still race (last write wins).
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator, Optional, Protocol

import structlog
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from tenant_identity.config import get_settings
from tenant_identity.core.bootstrap import create_bootstrap_identity
from tenant_identity.core.errors import PersistenceError
from tenant_identity.db.models import Base, IdentityDocumentRow
from tenant_identity.db.session import create_identity_engine, make_session_factory
from tenant_identity.schemas.identity import IdentityDocument

logger = structlog.get_logger()

DEFAULT_DOCUMENT_ID = "identity"


class DocumentBackend(Protocol):
    def read(self) -> Optional[dict]:
        """Return the stored body, or None when nothing has been stored yet."""

    def write(self, body: dict) -> None: ...


class FileBackend:
    def __init__(self, path: Path):
        self.path = Path(path)

    def read(self) -> Optional[dict]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceError(f"cannot read identity file {self.path}: {e}") from e
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"identity file {self.path} is not valid JSON: {e}") from e

    def write(self, body: dict) -> None:
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Write beside the target then rename, so readers never see a partial file.
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as fh:
                tmp_name = fh.name
                json.dump(body, fh, indent=2)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(f"cannot write identity file {self.path}: {e}") from e


class SqlBackend:
    def __init__(self, session_factory: sessionmaker, document_id: str = DEFAULT_DOCUMENT_ID):
        self._session_factory = session_factory
        self.document_id = document_id

    def read(self) -> Optional[dict]:
        try:
            with self._session_factory() as db:
                row = db.get(IdentityDocumentRow, self.document_id)
                return dict(row.body) if row is not None else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"cannot read identity document: {e}") from e

    def write(self, body: dict) -> None:
        try:
            with self._session_factory() as db:
                row = db.get(IdentityDocumentRow, self.document_id)
                if row is None:
                    db.add(
                        IdentityDocumentRow(
                            document_id=self.document_id,
                            body=body,
                            updated_at=datetime.now(timezone.utc),
                        )
                    )
                else:
                    row.body = body
                    row.updated_at = datetime.now(timezone.utc)
                db.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"cannot write identity document: {e}") from e


class IdentityStore:
    def __init__(
        self,
        backend: DocumentBackend,
        *,
        internal_org_ids: frozenset = frozenset(),
        bootstrap: Callable[[], IdentityDocument] = create_bootstrap_identity,
    ):
        self.backend = backend
        self._bootstrap = bootstrap
        self._configured_internal = frozenset(internal_org_ids)
        self._master_org_ids: frozenset = frozenset()
        self.lock = threading.RLock()

    def load(self) -> IdentityDocument:
        with self.lock:
            body = self.backend.read()
            if body is None:
                doc = self._bootstrap()
                logger.info(
                    "identity_bootstrapped",
                    organizations=len(doc.organizations),
                    users=len(doc.users),
                )
                self.save(doc)
                return doc
            try:
                doc = IdentityDocument.model_validate(body)
            except ValidationError as e:
                raise PersistenceError(f"identity document failed validation: {e}") from e
            self._sync_internal(doc)
            return doc

    def save(self, doc: IdentityDocument) -> None:
        with self.lock:
            self.backend.write(doc.to_json_dict())
            self._sync_internal(doc)

    @contextmanager
    def transaction(self) -> Iterator[IdentityDocument]:
        """
        Load, yield for mutation, save. Nothing is written if the body raises.
        """
        with self.lock:
            doc = self.load()
            yield doc
            self.save(doc)

    def _sync_internal(self, doc: IdentityDocument) -> None:
        self._master_org_ids = frozenset(org.id for org in doc.organizations.values() if org.is_master)

    def internal_org_ids(self) -> frozenset:
        return self._configured_internal | self._master_org_ids

    def is_internal_org(self, org_id: str) -> bool:
        return org_id in self.internal_org_ids()


def create_sql_store(session_factory: sessionmaker, **kwargs) -> IdentityStore:
    return IdentityStore(SqlBackend(session_factory), **kwargs)


def build_store_from_settings() -> IdentityStore:
    settings = get_settings()
    if settings.identity_backend == "sql":
        engine = create_identity_engine()
        Base.metadata.create_all(engine)
        return create_sql_store(
            make_session_factory(engine), internal_org_ids=settings.internal_org_ids
        )
    return IdentityStore(
        FileBackend(settings.identity_file), internal_org_ids=settings.internal_org_ids
    )


_default_store: Optional[IdentityStore] = None
_default_store_lock = threading.Lock()


def get_identity_store() -> IdentityStore:
    global _default_store
    with _default_store_lock:
        if _default_store is None:
            _default_store = build_store_from_settings()
        return _default_store


def reset_identity_store() -> None:
    global _default_store
    with _default_store_lock:
        _default_store = None


def load_identity(store: Optional[IdentityStore] = None) -> IdentityDocument:
    return (store or get_identity_store()).load()


def save_identity(doc: IdentityDocument, store: Optional[IdentityStore] = None) -> None:
    (store or get_identity_store()).save(doc)
