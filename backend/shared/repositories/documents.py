"""Generic document store on top of a single JSONB ``documents`` table.

Every collection (``users``, ``cache``, ``api.current`` …) lives in the same
table, distinguished by the ``collection`` column. Filters are JSON
containment matches (``body @> filter``), updates deep-merge a patch into every
matching document and insert ``filter | patch`` when nothing matches.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import asyncpg

logger = logging.getLogger(__name__)

KV_COLLECTION = "kv"


def deep_merge(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *base* with *patch* merged in, recursing into dicts."""
    merged = dict(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class DocumentStore:
    """Key/value and document operations; no cross-call transactions."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    # ==================== Key / Value ====================

    async def get(self, key: str) -> Any:
        """Return the value stored under *key*, or ``None``."""
        doc = await self.find_one(KV_COLLECTION, {"key": key})
        return doc.get("value") if doc else None

    async def set(self, key: str, value: Any) -> None:
        await self.update(KV_COLLECTION, {"key": key}, {"value": value})

    # ==================== Documents ====================

    async def find(self, collection: str, filter: dict | None = None) -> list[dict]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT body FROM documents WHERE collection = $1 AND body @> $2::jsonb "
                "ORDER BY id",
                collection,
                json.dumps(filter or {}),
            )
            return [json.loads(row["body"]) for row in rows]

    async def find_one(self, collection: str, filter: dict) -> dict | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT body FROM documents WHERE collection = $1 AND body @> $2::jsonb "
                "ORDER BY id LIMIT 1",
                collection,
                json.dumps(filter),
            )
            return json.loads(row["body"]) if row else None

    async def insert(self, collection: str, body: dict) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                "INSERT INTO documents (collection, body) VALUES ($1, $2::jsonb)",
                collection,
                json.dumps(body),
            )

    async def update(self, collection: str, filter: dict, patch: dict) -> int:
        """Deep-merge *patch* into matching documents (upsert). Returns rows touched."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                rows = await conn.fetch(
                    "SELECT id, body FROM documents "
                    "WHERE collection = $1 AND body @> $2::jsonb FOR UPDATE",
                    collection,
                    json.dumps(filter),
                )
                if not rows:
                    await conn.execute(
                        "INSERT INTO documents (collection, body) VALUES ($1, $2::jsonb)",
                        collection,
                        json.dumps(deep_merge(filter, patch)),
                    )
                    return 1

                for row in rows:
                    merged = deep_merge(json.loads(row["body"]), patch)
                    await conn.execute(
                        "UPDATE documents SET body = $1::jsonb, updated_at = NOW() WHERE id = $2",
                        json.dumps(merged),
                        row["id"],
                    )
                return len(rows)

    async def remove(self, collection: str, filter: dict | None = None) -> int:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM documents WHERE collection = $1 AND body @> $2::jsonb",
                collection,
                json.dumps(filter or {}),
            )
        # asyncpg returns e.g. "DELETE 3"
        try:
            return int(result.split()[-1])
        except (IndexError, ValueError):
            logger.debug(f"Unexpected DELETE status: {result}")
            return 0
