"""Selective sync filters over the configured source hierarchy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from collection_sync.domain.entities import SourceConfig
from collection_sync.domain.errors import InvalidSyncFilter


@dataclass(frozen=True)
class SyncFilter:
    """
    Selects sources by provider, host and organization.

    Absent fields are wildcards. A filter may only narrow down the hierarchy
    top to bottom: a host needs a provider and an organization needs a host.
    """
    provider:     str | None = None
    host:         str | None = None
    organization: str | None = None

    def validate(self) -> None:
        if self.organization and not self.host:
            raise InvalidSyncFilter("organization filter requires a host")
        if self.host and not self.provider:
            raise InvalidSyncFilter("host filter requires a provider")

    def describe(self) -> str:
        parts = []
        if self.provider:
            parts.append(f"provider={self.provider}")
        if self.host:
            parts.append(f"host={self.host}")
        if self.organization:
            parts.append(f"org={self.organization}")
        return "{" + ", ".join(parts) + "}" if parts else "all"


def matches(source: SourceConfig, sync_filter: SyncFilter) -> bool:
    if sync_filter.provider and source.provider != sync_filter.provider:
        return False
    if sync_filter.host and source.host_name != sync_filter.host:
        return False
    if sync_filter.organization and source.organization != sync_filter.organization:
        return False
    return True


def select_sources(sources: Iterable[SourceConfig], filters: list[SyncFilter]) -> list[SourceConfig]:
    """
    Sources matching any of `filters`, in configuration order.

    No filters selects every source. Raises InvalidSyncFilter before
    matching anything if one of the filters is malformed.
    """
    for sync_filter in filters:
        sync_filter.validate()

    sources = list(sources)
    if not filters:
        return sources
    return [s for s in sources if any(matches(s, f) for f in filters)]


def describe_filters(filters: list[SyncFilter]) -> str:
    if not filters:
        return "all sources"
    return "filters: [" + ", ".join(f.describe() for f in filters) + "]"


def build_sources_tree(sources: Iterable[SourceConfig]) -> dict[str, dict[str, list[str]]]:
    tree: dict[str, dict[str, list[str]]] = {}
    for source in sources:
        tree.setdefault(source.provider, {}).setdefault(source.host_name, []).append(source.organization)
    return tree
