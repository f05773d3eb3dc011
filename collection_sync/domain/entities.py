from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Literal

from .galaxy import GalaxyMetadata

Provider = Literal["github", "gitlab"]
RefType  = Literal["branch", "tag"]
EntryType = Literal["file", "dir"]

# A catalog record is a JSON-compatible entity document handed to the sink.
CatalogRecord = dict[str, Any]

DEFAULT_HOSTS: dict[str, str] = {
    "github": "github.com",
    "gitlab": "gitlab.com",
}


@dataclass(frozen=True)
class RepositoryInfo:
    """
    Immutable view of one repository inside a provider organization.

    Field names are ours, not the provider's. The translation happens
    in each provider client, not here.
    """
    name:           str
    full_path:      str
    default_branch: str
    url:            str | None = None
    description:    str | None = None


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    path: str
    type: EntryType


@dataclass(frozen=True)
class Schedule:
    """How often a source is crawled and how long one run may take."""
    frequency:     timedelta
    timeout:       timedelta
    initial_delay: timedelta = timedelta(0)


@dataclass(frozen=True)
class SourceConfig:
    """
    One configured (provider, host, organization) combination.

    Created once from configuration at startup and never mutated. Exactly
    one crawler and one orchestrator are bound to each instance.
    """
    provider:     Provider
    host_name:    str
    organization: str
    schedule:     Schedule
    env:          str = "default"
    host:         str | None = None
    enabled:      bool = True
    branches:     tuple[str, ...] = ()
    tag_patterns: tuple[str, ...] = ()
    path_filters: tuple[str, ...] = ()
    crawl_depth:  int = 5

    @property
    def resolved_host(self) -> str:
        return self.host or DEFAULT_HOSTS[self.provider]


@dataclass(frozen=True)
class DiscoveryOptions:
    branches:     tuple[str, ...] = ()
    tag_patterns: tuple[str, ...] = ()
    path_filters: tuple[str, ...] = ()
    crawl_depth:  int = 5

    @classmethod
    def from_source(cls, source: SourceConfig) -> DiscoveryOptions:
        return cls(
            branches     = source.branches,
            tag_patterns = source.tag_patterns,
            path_filters = source.path_filters,
            crawl_depth  = source.crawl_depth,
        )


@dataclass(frozen=True)
class DescriptorOccurrence:
    """
    One valid galaxy.yml found by the crawler.

    Transient: consumed by deduplication and entity synthesis within the
    same run and never persisted.
    """
    repository:  RepositoryInfo
    ref:         str
    ref_type:    RefType
    path:        str
    raw_content: str
    metadata:    GalaxyMetadata

    @property
    def location(self) -> str:
        return f"{self.repository.full_path}/{self.path}@{self.ref}"


@dataclass(frozen=True)
class CollectionIdentity:
    provider:     str
    host_name:    str
    organization: str
    namespace:    str
    name:         str
    version:      str

    def key(self) -> str:
        return (
            f"{self.provider}:{self.host_name}:{self.organization}:"
            f"{self.namespace}.{self.name}@{self.version}"
        )


@dataclass(frozen=True)
class SyncStatus:
    """
    Snapshot of the last discovery run for one source.

    The orchestrator replaces its snapshot as a whole after every run,
    so readers never observe a half-updated status.
    """
    source_id:             str
    enabled:               bool
    last_sync_time:        datetime | None = None
    collections_found:     int = 0
    new_collections_delta: int = 0
    repositories_found:    int = 0
    last_error:            str | None = None


@dataclass
class RepositoryTally:
    """Collections contributed by one repository during a run."""
    repository:   RepositoryInfo
    entity_names: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.entity_names)
