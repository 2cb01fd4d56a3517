from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from dublinbikes.core.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere.
DocumentType = JSON().with_variant(JSONB(), "postgresql")


class StationDocument(Base):
    """One station stored as a JSON document, partitioned by station number."""

    __tablename__ = "station_documents"

    id: Mapped[str] = mapped_column(String(16), primary_key=True)
    number: Mapped[int] = mapped_column(
        Integer, nullable=False, unique=True, index=True
    )
    document: Mapped[dict[str, Any]] = mapped_column(DocumentType, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"StationDocument(id={self.id!r}, number={self.number})"
