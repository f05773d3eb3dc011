"""
In-memory stand-ins for the provider client, catalog sink and scheduler.

Each implements the matching interface, so the application layer can be
exercised end to end without network or database access.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Awaitable, Callable

from collection_sync.domain.entities import (
    CatalogRecord,
    DirectoryEntry,
    RepositoryInfo,
    Schedule,
    SourceConfig,
)
from collection_sync.domain.errors import NotFound
from collection_sync.domain.interfaces import ICatalogSink, IProviderClient, IScheduler


def make_repo(name: str, org: str = "acme", default_branch: str = "main") -> RepositoryInfo:
    return RepositoryInfo(
        name           = name,
        full_path      = f"{org}/{name}",
        default_branch = default_branch,
        url            = f"https://github.com/{org}/{name}",
    )


def make_source(**overrides) -> SourceConfig:
    values = dict(
        provider     = "github",
        host_name    = "github-public",
        organization = "acme",
        schedule     = Schedule(frequency=timedelta(minutes=30), timeout=timedelta(minutes=10)),
        env          = "test",
    )
    values.update(overrides)
    return SourceConfig(**values)


def galaxy_yaml(namespace: str, name: str, version: str | None = "1.0.0") -> str:
    lines = [f"namespace: {namespace}", f"name: {name}"]
    if version is not None:
        lines.append(f"version: {version}")
    return "\n".join(lines) + "\n"


class FakeProviderClient(IProviderClient):
    """
    Serves repositories from a dict of file trees.

    `files[(full_path, ref)]` maps file paths to contents; directories are
    derived from the paths. Set `repositories_error` to make listing fail,
    or put paths into `read_errors` to make single reads fail.
    """

    provider = "github"

    def __init__(self, repos: list[RepositoryInfo] | None = None) -> None:
        self.repos: list[RepositoryInfo] = list(repos or [])
        self.files: dict[tuple[str, str], dict[str, str]] = {}
        self.branches: dict[str, list[str]] = {}
        self.tags: dict[str, list[str]] = {}
        self.repositories_error: Exception | None = None
        self.directory_errors: dict[str, Exception] = {}
        self.read_errors: dict[str, Exception] = {}
        self.listed_directories: list[tuple[str, str, str]] = []

    def add_file(self, repo: RepositoryInfo, path: str, content: str, ref: str | None = None) -> None:
        self.files.setdefault((repo.full_path, ref or repo.default_branch), {})[path] = content

    @property
    def host(self) -> str:
        return "github.com"

    @property
    def organization(self) -> str:
        return "acme"

    async def list_repositories(self) -> list[RepositoryInfo]:
        if self.repositories_error is not None:
            raise self.repositories_error
        return list(self.repos)

    async def list_branches(self, repo: RepositoryInfo) -> list[str]:
        return self.branches.get(repo.full_path, [repo.default_branch])

    async def list_tags(self, repo: RepositoryInfo) -> list[str]:
        return self.tags.get(repo.full_path, [])

    async def list_directory(self, repo: RepositoryInfo, ref: str, path: str) -> list[DirectoryEntry]:
        self.listed_directories.append((repo.full_path, ref, path))
        if repo.full_path in self.directory_errors:
            raise self.directory_errors[repo.full_path]

        prefix  = f"{path}/" if path else ""
        entries: dict[str, DirectoryEntry] = {}
        for file_path in self.files.get((repo.full_path, ref), {}):
            if not file_path.startswith(prefix):
                continue
            head, sep, _ = file_path[len(prefix):].partition("/")
            if sep:
                entries[head] = DirectoryEntry(name=head, path=prefix + head, type="dir")
            else:
                entries[head] = DirectoryEntry(name=head, path=file_path, type="file")
        return list(entries.values())

    async def read_file(self, repo: RepositoryInfo, ref: str, path: str) -> str:
        if path in self.read_errors:
            raise self.read_errors[path]
        try:
            return self.files[(repo.full_path, ref)][path]
        except KeyError:
            raise NotFound(f"{repo.full_path}/{path}@{ref}", 404) from None

    def build_source_location(self, repo: RepositoryInfo, ref: str, path: str) -> str:
        directory = path.rsplit("/", 1)[0] if "/" in path else ""
        url = f"https://github.com/{repo.full_path}/tree/{ref}"
        return f"url:{url}/{directory}" if directory else f"url:{url}"


class RecordingSink(ICatalogSink):
    """Keeps every submission, in order, for assertions."""

    def __init__(self, fail_full: Exception | None = None, fail_delta: Exception | None = None) -> None:
        self.deltas: list[list[CatalogRecord]] = []
        self.fulls: list[list[CatalogRecord]] = []
        self.fail_full  = fail_full
        self.fail_delta = fail_delta

    async def apply_delta(self, added: list[CatalogRecord]) -> None:
        if self.fail_delta is not None:
            raise self.fail_delta
        self.deltas.append(added)

    async def apply_full(self, entities: list[CatalogRecord]) -> None:
        if self.fail_full is not None:
            raise self.fail_full
        self.fulls.append(entities)

    @property
    def last_full(self) -> list[CatalogRecord]:
        return self.fulls[-1]


class FakeScheduler(IScheduler):
    def __init__(self) -> None:
        self.tasks: dict[str, dict] = {}

    def schedule_recurring(
        self,
        task_id: str,
        frequency: timedelta,
        timeout: timedelta,
        fn: Callable[[], Awaitable[None]],
        initial_delay: timedelta = timedelta(0),
    ) -> None:
        self.tasks[task_id] = {
            "frequency":     frequency,
            "timeout":       timeout,
            "fn":            fn,
            "initial_delay": initial_delay,
        }

    async def fire(self, task_id: str) -> None:
        await self.tasks[task_id]["fn"]()
