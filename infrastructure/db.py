from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, MetaData, String, Table, Text, insert, select, update
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from infrastructure.config import DEFAULT_DB_DSN

metadata = MetaData()

state_blobs = Table(
    "state_blobs",
    metadata,
    Column("key", String, primary_key=True),
    Column("payload", Text, nullable=False),
    Column("updated_at", String, nullable=False),
)


def get_engine(dsn: Optional[str] = None) -> AsyncEngine:
    url = dsn or os.getenv("APP__DB_DSN") or DEFAULT_DB_DSN
    return create_async_engine(url, future=True)


async def create_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)


class BlobStore:
    """Named text blobs; a write replaces the whole value (last write wins)."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def get(self, key: str) -> Optional[str]:
        async with self.engine.connect() as conn:
            result = await conn.execute(select(state_blobs.c.payload).where(state_blobs.c.key == key))
            row = result.first()
        return row[0] if row else None

    async def put_many(self, blobs: dict[str, str]) -> None:
        """Write several blobs in one transaction."""
        now = datetime.now(timezone.utc).isoformat()
        async with self.engine.begin() as conn:
            for key, payload in blobs.items():
                result = await conn.execute(
                    update(state_blobs)
                    .where(state_blobs.c.key == key)
                    .values(payload=payload, updated_at=now)
                )
                if result.rowcount == 0:
                    await conn.execute(insert(state_blobs).values(key=key, payload=payload, updated_at=now))

    async def put(self, key: str, payload: str) -> None:
        await self.put_many({key: payload})
