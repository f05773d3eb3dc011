"""
Domain Layer — Interfaces (Abstract Contracts)
-----------------------------------------------
Abstract definitions of what the infrastructure must provide. The
application layer depends on these, never on a concrete provider client,
sink or scheduler, so tests can hand in fakes for every one of them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Awaitable, Callable

from .entities import CatalogRecord, DirectoryEntry, RepositoryInfo


class IProviderClient(ABC):
    """
    Contract that every source-control provider client must fulfil.

    One instance is bound to one (provider, host, organization). Errors are
    raised as AuthError, UpstreamUnavailable or NotFound and are never
    retried at this layer.
    """

    provider: str

    @property
    @abstractmethod
    def host(self) -> str:
        ...

    @property
    @abstractmethod
    def organization(self) -> str:
        ...

    @abstractmethod
    async def list_repositories(self) -> list[RepositoryInfo]:
        """Every non-archived, non-empty repository of the organization."""
        ...

    @abstractmethod
    async def list_branches(self, repo: RepositoryInfo) -> list[str]:
        ...

    @abstractmethod
    async def list_tags(self, repo: RepositoryInfo) -> list[str]:
        ...

    @abstractmethod
    async def list_directory(self, repo: RepositoryInfo, ref: str, path: str) -> list[DirectoryEntry]:
        """List one directory at `ref`. An empty `path` is the repository root."""
        ...

    @abstractmethod
    async def read_file(self, repo: RepositoryInfo, ref: str, path: str) -> str:
        """Raw text of the file at `path`. Raises NotFound if it does not resolve."""
        ...

    @abstractmethod
    def build_source_location(self, repo: RepositoryInfo, ref: str, path: str) -> str:
        """Locator of the directory holding `path`, for display and provenance."""
        ...


class ICatalogSink(ABC):
    """
    Contract of the external catalog store, bound to one source.

    The engine only ever writes to the sink and never reads it back.
    """

    @abstractmethod
    async def apply_delta(self, added: list[CatalogRecord]) -> None:
        """Add or update records. Never removes anything."""
        ...

    @abstractmethod
    async def apply_full(self, entities: list[CatalogRecord]) -> None:
        """Replace everything attributed to this source with `entities`."""
        ...


class IScheduler(ABC):
    """Contract of the recurring task runner that triggers discovery runs."""

    @abstractmethod
    def schedule_recurring(
        self,
        task_id: str,
        frequency: timedelta,
        timeout: timedelta,
        fn: Callable[[], Awaitable[None]],
        initial_delay: timedelta = timedelta(0),
    ) -> None:
        ...
