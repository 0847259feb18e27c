from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import JSON


def json_column():
    # Portable JSON type (JSONB on Postgres).
    return JSON().with_variant(JSONB, "postgresql")


class Base(DeclarativeBase):
    pass


class IdentityDocumentRow(Base):
    """
    The whole identity document stored as a single JSON row.
    """

    __tablename__ = "identity_documents"

    document_id: Mapped[str] = mapped_column(Text, primary_key=True)
    body: Mapped[dict] = mapped_column(json_column(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
