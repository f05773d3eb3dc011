from __future__ import annotations

import logging

from collection_sync.domain.entities import (
    CollectionIdentity,
    DescriptorOccurrence,
    SourceConfig,
)


def collection_identity(occurrence: DescriptorOccurrence, source: SourceConfig) -> CollectionIdentity:
    metadata = occurrence.metadata
    return CollectionIdentity(
        provider     = source.provider,
        host_name    = source.host_name,
        organization = source.organization,
        namespace    = metadata.namespace,
        name         = metadata.name,
        version      = metadata.version,
    )


def identity_key(occurrence: DescriptorOccurrence, source: SourceConfig) -> str:
    return collection_identity(occurrence, source).key()


def dedupe(
    occurrences: list[DescriptorOccurrence],
    seen_keys: set[str],
    source: SourceConfig,
    logger: logging.Logger,
) -> list[DescriptorOccurrence]:
    """
    Keep the first occurrence of every collection identity, in input order.

    `seen_keys` is updated in place so it can be threaded through every
    batch of one run. Dropped duplicates are logged with their location.
    """
    unique: list[DescriptorOccurrence] = []
    duplicates: list[tuple[str, str]] = []

    for occurrence in occurrences:
        key = identity_key(occurrence, source)
        if key in seen_keys:
            duplicates.append((key, occurrence.location))
            continue
        seen_keys.add(key)
        unique.append(occurrence)

    if duplicates:
        logger.info("Skipped %d duplicate collections:", len(duplicates))
        for key, location in duplicates:
            logger.info("  - %s (found at %s)", key, location)

    return unique


class InMemoryDeduplicator:
    """
    Run-scoped set of collection identity keys.

    One instance lives for exactly one discovery run and is thrown away
    afterwards. Runs for one source never overlap, so no locking is needed.
    """

    def __init__(self, source: SourceConfig, logger: logging.Logger) -> None:
        self._source = source
        self._log    = logger
        self._seen: set[str] = set()

    def filter_fresh(self, occurrences: list[DescriptorOccurrence]) -> list[DescriptorOccurrence]:
        """Return only occurrences not seen before. Remembers what it has seen."""
        return dedupe(occurrences, self._seen, self._source, self._log)

    def total_seen(self) -> int:
        return len(self._seen)
