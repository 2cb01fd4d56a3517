from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dublinbikes.persistence import models
from dublinbikes.services.station_errors import StationConflictError


class StationDocumentRepository:
    """Persistence operations over the ``station_documents`` table.

    Documents are the snake_case station records; ``id`` is always the
    string form of ``number``.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_documents(self) -> list[dict[str, Any]]:
        """Return every document ordered by station number."""
        result = await self._session.execute(
            select(models.StationDocument.document).order_by(
                models.StationDocument.number
            )
        )
        return [dict(document) for document in result.scalars().all()]

    async def get_document(self, number: int) -> dict[str, Any] | None:
        result = await self._session.execute(
            select(models.StationDocument.document).where(
                models.StationDocument.number == number
            )
        )
        document = result.scalar_one_or_none()
        return dict(document) if document is not None else None

    async def insert_document(self, document: dict[str, Any]) -> None:
        """Insert a new document, raising StationConflictError on duplicates."""
        number = int(document["number"])
        self._session.add(
            models.StationDocument(id=str(number), number=number, document=document)
        )
        try:
            await self._session.commit()
        except IntegrityError as exc:
            await self._session.rollback()
            raise StationConflictError(number) from exc

    async def replace_document(self, number: int, document: dict[str, Any]) -> bool:
        """Replace an existing document; returns False when it does not exist."""
        result = await self._session.execute(
            update(models.StationDocument)
            .where(models.StationDocument.number == number)
            .values(document=document, updated_at=func.now())
        )
        await self._session.commit()
        return (result.rowcount or 0) > 0

    async def replace_documents(self, documents: Sequence[dict[str, Any]]) -> int:
        """Replace many existing documents in one transaction."""
        replaced = 0
        for document in documents:
            result = await self._session.execute(
                update(models.StationDocument)
                .where(models.StationDocument.number == int(document["number"]))
                .values(document=document, updated_at=func.now())
            )
            replaced += result.rowcount or 0
        await self._session.commit()
        return replaced

    async def delete_document(self, number: int) -> bool:
        result = await self._session.execute(
            delete(models.StationDocument).where(
                models.StationDocument.number == number
            )
        )
        await self._session.commit()
        return (result.rowcount or 0) > 0

    async def upsert_documents(self, documents: Sequence[dict[str, Any]]) -> int:
        """Insert or replace documents keyed by station number."""
        if not documents:
            return 0

        rows = [
            {
                "id": str(int(document["number"])),
                "number": int(document["number"]),
                "document": document,
            }
            for document in documents
        ]

        # asyncpg caps positional parameters at 32767, so chunk the bulk upsert.
        params_per_row = 3
        max_rows_per_batch = 32767 // params_per_row
        for start in range(0, len(rows), max_rows_per_batch):
            batch = rows[start : start + max_rows_per_batch]
            stmt = insert(models.StationDocument).values(batch)
            stmt = stmt.on_conflict_do_update(
                index_elements=[models.StationDocument.number],
                set_={
                    "document": stmt.excluded.document,
                    "updated_at": func.now(),
                },
            )
            await self._session.execute(stmt)

        await self._session.commit()
        return len(rows)

    async def count_documents(self) -> int:
        result = await self._session.execute(
            select(func.count()).select_from(models.StationDocument)
        )
        return int(result.scalar_one())
