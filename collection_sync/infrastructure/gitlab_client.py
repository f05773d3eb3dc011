from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from collection_sync.domain.entities import DEFAULT_HOSTS, DirectoryEntry, RepositoryInfo
from collection_sync.domain.interfaces import IProviderClient
from .http_errors import (
    REQUEST_TIMEOUT,
    decode_json,
    malformed_response,
    raise_for_provider_status,
    transport_error,
)

PAGE_SIZE = 100


def _encode(value: str) -> str:
    return quote(value, safe="")


class GitLabClient(IProviderClient):
    """
    IProviderClient for gitlab.com and self-managed GitLab, over REST v4.

    The configured organization is a group; its projects are listed
    including every subgroup. Every listing is paginated by page number.
    """

    provider = "gitlab"

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
        self._host         = host or DEFAULT_HOSTS["gitlab"]
        self._api_url      = f"https://{self._host}/api/v4"
        self._headers      = {"PRIVATE-TOKEN": token}

    @property
    def host(self) -> str:
        return self._host

    @property
    def organization(self) -> str:
        return self._organization

    async def _request(self, endpoint: str, params: dict | None = None) -> httpx.Response:
        try:
            response = await self._client.get(
                f"{self._api_url}{endpoint}",
                params  = params,
                headers = self._headers,
                timeout = REQUEST_TIMEOUT,
            )
        except httpx.RequestError as exc:
            raise transport_error(exc, "GitLab") from exc
        raise_for_provider_status(response, "GitLab")
        return response

    async def _paginate(self, endpoint: str, params: dict | None = None) -> list[dict]:
        items: list[dict] = []
        page = 1
        while True:
            response = await self._request(endpoint, {**(params or {}), "per_page": PAGE_SIZE, "page": page})
            data = decode_json(response, "GitLab")
            if not isinstance(data, list):
                raise malformed_response(TypeError(f"expected a list, got {type(data).__name__}"), "GitLab")
            items.extend(data)
            if len(data) < PAGE_SIZE:
                return items
            page += 1

    # Anti-Corruption Layer
    def _parse_project(self, project: dict) -> RepositoryInfo | None:
        if project.get("archived"):
            self._log.debug("Skipping archived project: %s", project.get("path_with_namespace"))
            return None
        if project.get("empty_repo"):
            self._log.debug("Skipping empty project: %s", project.get("path_with_namespace"))
            return None
        return RepositoryInfo(
            name           = project["name"],
            full_path      = project["path_with_namespace"],
            default_branch = project.get("default_branch") or "main",
            url            = project.get("web_url"),
            description    = project.get("description") or None,
        )

    async def list_repositories(self) -> list[RepositoryInfo]:
        projects = await self._paginate(
            f"/groups/{_encode(self._organization)}/projects",
            {"include_subgroups": "true"},
        )
        try:
            repos = [parsed for p in projects if (parsed := self._parse_project(p)) is not None]
        except (KeyError, TypeError, AttributeError) as exc:
            raise malformed_response(exc, "GitLab") from exc
        self._log.info("Found %d projects in GitLab group %s", len(repos), self._organization)
        return repos

    async def list_branches(self, repo: RepositoryInfo) -> list[str]:
        return self._names(await self._paginate(f"/projects/{_encode(repo.full_path)}/repository/branches"))

    async def list_tags(self, repo: RepositoryInfo) -> list[str]:
        return self._names(await self._paginate(f"/projects/{_encode(repo.full_path)}/repository/tags"))

    @staticmethod
    def _names(items: list[dict]) -> list[str]:
        try:
            return [item["name"] for item in items]
        except (KeyError, TypeError) as exc:
            raise malformed_response(exc, "GitLab") from exc

    async def list_directory(self, repo: RepositoryInfo, ref: str, path: str) -> list[DirectoryEntry]:
        params = {"ref": ref}
        if path:
            params["path"] = path
        data = await self._paginate(f"/projects/{_encode(repo.full_path)}/repository/tree", params)
        try:
            return [
                DirectoryEntry(
                    name = item["name"],
                    path = item["path"],
                    type = "dir" if item.get("type") == "tree" else "file",
                )
                for item in data
            ]
        except (KeyError, TypeError, AttributeError) as exc:
            raise malformed_response(exc, "GitLab") from exc

    async def read_file(self, repo: RepositoryInfo, ref: str, path: str) -> str:
        response = await self._request(
            f"/projects/{_encode(repo.full_path)}/repository/files/{_encode(path)}/raw",
            {"ref": ref},
        )
        return response.text

    def build_url(self, repo: RepositoryInfo, ref: str, path: str, is_file: bool = False) -> str:
        kind = "blob" if is_file else "tree"
        base = f"https://{self._host}/{repo.full_path}/-/{kind}/{ref}"
        return f"{base}/{path}" if path else base

    def build_source_location(self, repo: RepositoryInfo, ref: str, path: str) -> str:
        directory = path.rsplit("/", 1)[0] if "/" in path else ""
        return f"url:{self.build_url(repo, ref, directory)}"
