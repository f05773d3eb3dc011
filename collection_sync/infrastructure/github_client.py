from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from collection_sync.domain.entities import DEFAULT_HOSTS, DirectoryEntry, RepositoryInfo
from collection_sync.domain.errors import NotFound, ProviderError, UpstreamUnavailable
from collection_sync.domain.interfaces import IProviderClient
from .http_errors import (
    REQUEST_TIMEOUT,
    decode_json,
    malformed_response,
    raise_for_provider_status,
    transport_error,
)

PAGE_SIZE   = 100
API_VERSION = "2022-11-28"

GRAPHQL_QUERY = """
query OrganizationRepos($org: String!, $first: Int!, $after: String) {
  organization(login: $org) {
    repositories(first: $first, after: $after) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        name
        nameWithOwner
        defaultBranchRef { name }
        url
        description
        isArchived
        isEmpty
      }
    }
  }
}
"""


class GitHubClient(IProviderClient):
    """
    IProviderClient for GitHub and GitHub Enterprise.

    The organization's repositories come from the GraphQL API; branches,
    tags, directory listings and file contents come from REST v3.

    The constructor receives an httpx.AsyncClient (injected) rather than
    creating one internally, so callers own the client lifecycle and tests
    can hand in a client backed by httpx.MockTransport.
    """

    provider = "github"

    def __init__(
        self,
        token: str,
        organization: str,
        client: httpx.AsyncClient,
        logger: logging.Logger,
        host: str | None = None,
    ) -> None:
        self._client       = client
        self._log          = logger
        self._organization = organization
        self._host         = host or DEFAULT_HOSTS["github"]

        if self._host == DEFAULT_HOSTS["github"]:
            self._api_url     = "https://api.github.com"
            self._graphql_url = "https://api.github.com/graphql"
        else:
            self._api_url     = f"https://{self._host}/api/v3"
            self._graphql_url = f"https://{self._host}/api/graphql"

        self._headers = {
            "Authorization":        f"Bearer {token}",
            "Accept":               "application/vnd.github.v3+json",
            "X-GitHub-Api-Version": API_VERSION,
        }

    @property
    def host(self) -> str:
        return self._host

    @property
    def organization(self) -> str:
        return self._organization

    # Anti-Corruption Layer
    def _parse_node(self, node: dict) -> RepositoryInfo | None:
        """
        Translate one GraphQL repository node into RepositoryInfo.

        Archived and empty repositories are dropped here. A repository
        without a default branch ref falls back to "main".
        """
        if node.get("isArchived") or node.get("isEmpty"):
            return None
        try:
            return RepositoryInfo(
                name           = node["name"],
                full_path      = node["nameWithOwner"],
                default_branch = (node.get("defaultBranchRef") or {}).get("name") or "main",
                url            = node.get("url"),
                description    = node.get("description") or None,
            )
        except (KeyError, TypeError) as exc:
            self._log.debug("Skipping malformed repository node %s: %s", node.get("nameWithOwner"), exc)
            return None

    async def _request(self, url: str, params: dict | None = None, headers: dict | None = None) -> httpx.Response:
        try:
            response = await self._client.get(
                url,
                params  = params,
                headers = {**self._headers, **(headers or {})},
                timeout = REQUEST_TIMEOUT,
            )
        except httpx.RequestError as exc:
            raise transport_error(exc, "GitHub") from exc
        raise_for_provider_status(response, "GitHub")
        return response

    async def _graphql(self, variables: dict[str, Any]) -> dict:
        try:
            response = await self._client.post(
                self._graphql_url,
                headers = {**self._headers, "Content-Type": "application/json"},
                json    = {"query": GRAPHQL_QUERY, "variables": variables},
                timeout = REQUEST_TIMEOUT,
            )
        except httpx.RequestError as exc:
            raise transport_error(exc, "GitHub") from exc
        raise_for_provider_status(response, "GitHub")
        data = decode_json(response, "GitHub")
        if not isinstance(data, dict):
            raise malformed_response(TypeError(f"expected an object, got {type(data).__name__}"), "GitHub")

        # GraphQL-level errors arrive with HTTP 200
        errors = data.get("errors") or []
        for err in errors:
            if err.get("type") == "RATE_LIMITED":
                raise UpstreamUnavailable("GitHub GraphQL rate limited")
            if err.get("type") == "NOT_FOUND":
                raise NotFound(f"GitHub GraphQL: {err.get('message')}")
        if errors:
            raise ProviderError(f"GitHub GraphQL errors: {errors}")
        return data.get("data") or {}

    async def _paginate_names(self, url: str) -> list[str]:
        names: list[str] = []
        page = 1
        while True:
            response = await self._request(url, params={"per_page": PAGE_SIZE, "page": page})
            data = decode_json(response, "GitHub")
            try:
                names.extend(item["name"] for item in data)
            except (KeyError, TypeError) as exc:
                raise malformed_response(exc, "GitHub") from exc
            if len(data) < PAGE_SIZE:
                return names
            page += 1

    async def list_repositories(self) -> list[RepositoryInfo]:
        repos: list[RepositoryInfo] = []
        cursor = None

        while True:
            data = await self._graphql({"org": self._organization, "first": PAGE_SIZE, "after": cursor})
            organization = data.get("organization")
            if organization is None:
                raise NotFound(f"GitHub organization not found: {self._organization}")

            try:
                page = organization["repositories"]
                repos.extend(parsed for node in page["nodes"] if (parsed := self._parse_node(node)) is not None)
                has_next, cursor = page["pageInfo"]["hasNextPage"], page["pageInfo"]["endCursor"]
            except (KeyError, TypeError) as exc:
                raise malformed_response(exc, "GitHub") from exc

            if not has_next:
                break

        self._log.info("Found %d repositories in GitHub organization %s", len(repos), self._organization)
        return repos

    async def list_branches(self, repo: RepositoryInfo) -> list[str]:
        return await self._paginate_names(f"{self._api_url}/repos/{repo.full_path}/branches")

    async def list_tags(self, repo: RepositoryInfo) -> list[str]:
        return await self._paginate_names(f"{self._api_url}/repos/{repo.full_path}/tags")

    async def list_directory(self, repo: RepositoryInfo, ref: str, path: str) -> list[DirectoryEntry]:
        url = f"{self._api_url}/repos/{repo.full_path}/contents"
        if path:
            url = f"{url}/{quote(path)}"
        response = await self._request(url, params={"ref": ref})
        data = decode_json(response, "GitHub")

        # A file path returns a single object instead of a listing
        if not isinstance(data, list):
            return []
        try:
            return [
                DirectoryEntry(
                    name = item["name"],
                    path = item["path"],
                    type = "dir" if item.get("type") == "dir" else "file",
                )
                for item in data
            ]
        except (KeyError, TypeError, AttributeError) as exc:
            raise malformed_response(exc, "GitHub") from exc

    async def read_file(self, repo: RepositoryInfo, ref: str, path: str) -> str:
        response = await self._request(
            f"{self._api_url}/repos/{repo.full_path}/contents/{quote(path)}",
            params  = {"ref": ref},
            headers = {"Accept": "application/vnd.github.v3.raw"},
        )
        return response.text

    def build_url(self, repo: RepositoryInfo, ref: str, path: str, is_file: bool = False) -> str:
        kind = "blob" if is_file else "tree"
        base = f"https://{self._host}/{repo.full_path}/{kind}/{ref}"
        return f"{base}/{path}" if path else base

    def build_source_location(self, repo: RepositoryInfo, ref: str, path: str) -> str:
        directory = path.rsplit("/", 1)[0] if "/" in path else ""
        return f"url:{self.build_url(repo, ref, directory)}"
