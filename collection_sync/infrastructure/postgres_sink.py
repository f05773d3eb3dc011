from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone

from psycopg2.extras import execute_values

from collection_sync.domain.entities import CatalogRecord
from collection_sync.domain.interfaces import ICatalogSink

SCHEMA = """
CREATE TABLE IF NOT EXISTS catalog_records (
    location_key TEXT        NOT NULL,
    entity_ref   TEXT        NOT NULL,
    entity       JSONB       NOT NULL,
    updated_at   TIMESTAMPTZ NOT NULL,
    PRIMARY KEY (location_key, entity_ref)
)
"""

UPSERT = """
INSERT INTO catalog_records
    (location_key, entity_ref, entity, updated_at)
VALUES %s
ON CONFLICT (location_key, entity_ref) DO UPDATE SET
    entity     = EXCLUDED.entity,
    updated_at = EXCLUDED.updated_at
"""

DELETE_ABSENT = """
DELETE FROM catalog_records
WHERE location_key = %s
  AND NOT (entity_ref = ANY(%s::text[]))
"""


def record_ref(record: CatalogRecord) -> str:
    metadata = record["metadata"]
    return f"{record['kind'].lower()}:{metadata.get('namespace', 'default')}/{metadata['name']}"


class PostgresCatalogSink(ICatalogSink):
    """
    ICatalogSink backed by one PostgreSQL table.

    Receives an already-connected psycopg2 connection (injected) and the
    location key of the source it writes for. Every row is owned by exactly
    one location key, so a full submission only ever retires rows of its
    own source.

    psycopg2 blocks, so each operation runs in a worker thread.
    """

    def __init__(self, conn, location_key: str, logger: logging.Logger) -> None:
        self._conn         = conn
        self._location_key = location_key
        self._log          = logger

    @staticmethod
    def ensure_schema(conn) -> None:
        with conn.cursor() as cur:
            cur.execute(SCHEMA)
        conn.commit()

    def _rows(self, entities: list[CatalogRecord]) -> list[tuple]:
        now = datetime.now(tz=timezone.utc)
        # Keyed by ref: one statement may not touch the same row twice
        by_ref = {record_ref(e): e for e in entities}
        return [
            (self._location_key, ref, json.dumps(entity, sort_keys=True), now)
            for ref, entity in by_ref.items()
        ]

    def _upsert(self, cur, rows: list[tuple]) -> None:
        if rows:
            execute_values(cur, UPSERT, rows)

    def _apply_delta(self, added: list[CatalogRecord]) -> None:
        rows = self._rows(added)
        try:
            with self._conn.cursor() as cur:
                self._upsert(cur, rows)
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise
        self._log.debug("Upserted %d records for %s", len(rows), self._location_key)

    def _apply_full(self, entities: list[CatalogRecord]) -> None:
        rows = self._rows(entities)
        try:
            with self._conn.cursor() as cur:
                self._upsert(cur, rows)
                cur.execute(DELETE_ABSENT, (self._location_key, [row[1] for row in rows]))
                retired = cur.rowcount
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise
        self._log.info(
            "Reconciled %s | %d records kept | %d retired",
            self._location_key, len(rows), retired,
        )

    async def apply_delta(self, added: list[CatalogRecord]) -> None:
        await asyncio.to_thread(self._apply_delta, added)

    async def apply_full(self, entities: list[CatalogRecord]) -> None:
        await asyncio.to_thread(self._apply_full, entities)
