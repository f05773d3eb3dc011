from __future__ import annotations

import copy
import logging

from collection_sync.domain.entities import CatalogRecord
from collection_sync.domain.interfaces import ICatalogSink
from .postgres_sink import record_ref


class InMemoryCatalogSink(ICatalogSink):
    """
    ICatalogSink that keeps the catalog in a dict, for dry runs.

    `entities` mirrors what the PostgreSQL sink would hold for this location
    key; `mutations` records every call in order.
    """

    def __init__(self, location_key: str, logger: logging.Logger) -> None:
        self.location_key = location_key
        self.entities: dict[str, CatalogRecord] = {}
        self.mutations: list[tuple[str, list[CatalogRecord]]] = []
        self._log = logger

    async def apply_delta(self, added: list[CatalogRecord]) -> None:
        added = copy.deepcopy(added)
        self.mutations.append(("delta", added))
        for record in added:
            self.entities[record_ref(record)] = record
        self._log.debug("Delta for %s | +%d records", self.location_key, len(added))

    async def apply_full(self, entities: list[CatalogRecord]) -> None:
        entities = copy.deepcopy(entities)
        self.mutations.append(("full", entities))
        self.entities = {record_ref(e): e for e in entities}
        self._log.info("Full submission for %s | %d records", self.location_key, len(entities))
