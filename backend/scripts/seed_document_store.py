#!/usr/bin/env python3
"""
Seed the station document store from a JSON dataset.

The schema is managed by Alembic; run `alembic upgrade head` from backend/
first.

Usage: python -m scripts.seed_document_store [--data PATH] [--reset]
"""

import argparse
import asyncio

from sqlalchemy import text
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from dublinbikes.core.config import get_settings
from dublinbikes.persistence.repositories import StationDocumentRepository
from dublinbikes.services.station_store import load_stations_file
from dublinbikes.services.stations import station_to_record


async def seed_document_store(data_path: str, reset: bool = False) -> int:
    """Upsert every station from ``data_path`` into ``station_documents``."""
    settings = get_settings()
    engine = create_async_engine(settings.database_url, echo=False)

    try:
        if reset:
            async with engine.begin() as conn:
                await conn.execute(text("TRUNCATE TABLE station_documents"))
            print("✓ Cleared table: station_documents")

        stations = load_stations_file(data_path)
        session_factory = async_sessionmaker(engine, expire_on_commit=False)
        async with session_factory() as session:
            repository = StationDocumentRepository(session)
            written = await repository.upsert_documents(
                [station_to_record(station) for station in stations]
            )
            total = await repository.count_documents()

        print(f"✓ Seeded {written} stations ({total} documents in store)")
        return written
    finally:
        await engine.dispose()


async def main():
    """Main entry point."""
    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="Seed the station document store from a JSON dataset"
    )
    parser.add_argument(
        "--data",
        default=str(settings.stations_data_path),
        help="Path to the station JSON file (default: STATIONS_DATA_PATH)",
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Remove every stored document before seeding",
    )

    args = parser.parse_args()
    await seed_document_store(args.data, reset=args.reset)


if __name__ == "__main__":
    asyncio.run(main())
