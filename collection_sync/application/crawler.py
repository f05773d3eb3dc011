from __future__ import annotations

import logging
import re

from collection_sync.domain.entities import (
    DescriptorOccurrence,
    DiscoveryOptions,
    RefType,
    RepositoryInfo,
)
from collection_sync.domain.errors import DescriptorParseError, ProviderError
from collection_sync.domain.interfaces import IProviderClient
from .validator import parse_descriptor, validate_galaxy_content

GALAXY_FILE_NAMES = frozenset({"galaxy.yml", "galaxy.yaml"})

# Never descended into, compared case-insensitively
SKIP_DIRECTORIES = frozenset({
    "node_modules",
    ".git",
    ".github",
    ".gitlab",
    "__pycache__",
    ".tox",
    ".venv",
    "venv",
    ".cache",
    "dist",
    "build",
    "docs",
    "tests",
    "test",
})


def is_galaxy_file(filename: str) -> bool:
    return filename.lower() in GALAXY_FILE_NAMES


def should_skip_directory(name: str) -> bool:
    return name.lower() in SKIP_DIRECTORIES


def tag_pattern_to_regex(pattern: str) -> re.Pattern[str]:
    """
    Translate a tag glob into an anchored regex.

    `*` matches any run of characters and `?` exactly one. Everything else,
    including `[` and `]`, is matched literally.
    """
    parts = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts))


def matches_tag_pattern(tag: str, patterns: list[str] | tuple[str, ...]) -> bool:
    return any(tag_pattern_to_regex(p).fullmatch(tag) for p in patterns)


def filter_tags(tags: list[str], patterns: list[str] | tuple[str, ...]) -> list[str]:
    if not patterns:
        return []
    return [t for t in tags if matches_tag_pattern(t, patterns)]


class CollectionCrawler:
    """
    Walks repository trees of one source looking for galaxy.yml files.

    Provider differences live entirely in the injected client, so the same
    crawler serves GitHub and GitLab. Failures are contained per file and
    per repository: a broken descriptor or an unreachable repository never
    stops discovery anywhere else.
    """

    def __init__(self, client: IProviderClient, logger: logging.Logger) -> None:
        self._client = client
        self._log    = logger

    async def get_repositories(self) -> list[RepositoryInfo]:
        return await self._client.list_repositories()

    def build_source_location(self, repo: RepositoryInfo, ref: str, path: str) -> str:
        return self._client.build_source_location(repo, ref, path)

    async def discover(self, options: DiscoveryOptions) -> list[DescriptorOccurrence]:
        repos = await self.get_repositories()
        self._log.info("Starting galaxy.yml discovery in %d repositories", len(repos))
        return await self.discover_in_repos(repos, options)

    async def discover_in_repos(self, repos: list[RepositoryInfo], options: DiscoveryOptions) -> list[DescriptorOccurrence]:
        discovered: list[DescriptorOccurrence] = []
        skipped: list[tuple[str, str]] = []

        for repo in repos:
            try:
                found = 0
                for ref, ref_type in await self._refs_to_search(repo, options):
                    occurrences = await self._find_in_ref(repo, ref, ref_type, options)
                    found += len(occurrences)
                    discovered.extend(occurrences)

                if found == 0:
                    skipped.append((repo.full_path, "no valid galaxy.yml/yaml files found"))
            except Exception as exc:
                skipped.append((repo.full_path, f"error: {exc}"))
                self._log.warning(
                    "Error discovering collections in %s: %s",
                    repo.full_path,
                    exc,
                    exc_info=not isinstance(exc, ProviderError),
                )

        if skipped:
            self._log.info("Skipped %d repositories with no collections:", len(skipped))
            for full_path, reason in skipped:
                self._log.info("  - %s: %s", full_path, reason)

        self._log.info("Discovered %d galaxy files in %d repositories", len(discovered), len(repos))
        return discovered

    async def _refs_to_search(self, repo: RepositoryInfo, options: DiscoveryOptions) -> list[tuple[str, RefType]]:
        refs: list[tuple[str, RefType]] = [(repo.default_branch, "branch")]
        searched = {repo.default_branch}

        if options.branches:
            available = await self._client.list_branches(repo)
            self._log.debug("[%s] Available branches: %s", repo.full_path, ", ".join(available) or "none")
            for branch in available:
                if branch in options.branches and branch not in searched:
                    refs.append((branch, "branch"))
                    searched.add(branch)

        if options.tag_patterns:
            tags = await self._client.list_tags(repo)
            refs.extend((tag, "tag") for tag in filter_tags(tags, options.tag_patterns))

        self._log.debug("[%s] Refs to search: %s", repo.full_path, ", ".join(r for r, _ in refs))
        return refs

    async def _find_in_ref(self, repo: RepositoryInfo, ref: str, ref_type: RefType, options: DiscoveryOptions) -> list[DescriptorOccurrence]:
        base_paths = [p.strip("/") for p in options.path_filters] or [""]
        occurrences: list[DescriptorOccurrence] = []

        for base_path in base_paths:
            file_paths = await self._crawl_directory(repo, ref, base_path, options.crawl_depth)
            if not file_paths:
                self._log.debug("No galaxy files in %s/%s@%s", repo.full_path, base_path, ref)
            for file_path in file_paths:
                occurrence = await self._process_galaxy_file(repo, ref, ref_type, file_path)
                if occurrence is not None:
                    occurrences.append(occurrence)

        return occurrences

    async def _crawl_directory(self, repo: RepositoryInfo, ref: str, path: str, depth: int) -> list[str]:
        """
        Collect galaxy file paths under `path`.

        `depth` is the remaining budget: the directory itself is listed while
        the budget is positive and each level below costs one.
        """
        if depth <= 0:
            return []

        try:
            entries = await self._client.list_directory(repo, ref, path)
        except ProviderError as exc:
            if path == "":
                self._log.warning("Failed to fetch contents for %s@%s: %s", repo.full_path, ref, exc)
            else:
                self._log.debug("Error crawling %s/%s@%s: %s", repo.full_path, path, ref, exc)
            return []

        if path == "" and not entries:
            self._log.warning("Empty contents returned for %s@%s root directory", repo.full_path, ref)

        found: list[str] = []
        for entry in entries:
            if entry.type == "file" and is_galaxy_file(entry.name):
                self._log.info("Found galaxy file: %s/%s@%s", repo.full_path, entry.path, ref)
                found.append(entry.path)
            elif entry.type == "dir" and not should_skip_directory(entry.name):
                found.extend(await self._crawl_directory(repo, ref, entry.path, depth - 1))
        return found

    async def _process_galaxy_file(self, repo: RepositoryInfo, ref: str, ref_type: RefType, path: str) -> DescriptorOccurrence | None:
        location = f"{repo.full_path}/{path}@{ref}"
        try:
            content = await self._client.read_file(repo, ref, path)
        except ProviderError as exc:
            self._log.warning("Could not read %s: %s", location, exc)
            return None

        try:
            parsed = parse_descriptor(content)
        except DescriptorParseError as exc:
            self._log.warning("Skipping %s: %s", location, exc)
            return None

        result = validate_galaxy_content(parsed)
        if not result.success:
            self._log.warning(
                "Skipping invalid galaxy file %s: %s",
                location,
                ", ".join(str(e) for e in result.errors),
            )
            return None

        return DescriptorOccurrence(
            repository  = repo,
            ref         = ref,
            ref_type    = ref_type,
            path        = path,
            raw_content = content,
            metadata    = result.data,
        )
