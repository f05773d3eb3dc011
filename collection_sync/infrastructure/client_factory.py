from __future__ import annotations

import logging

import httpx

from collection_sync.domain.entities import SourceConfig
from collection_sync.domain.errors import ConfigError
from collection_sync.domain.interfaces import IProviderClient
from .config_reader import TOKEN_ENV_VARS, Integrations
from .github_client import GitHubClient
from .gitlab_client import GitLabClient

_CLIENTS: dict[str, type[GitHubClient] | type[GitLabClient]] = {
    "github": GitHubClient,
    "gitlab": GitLabClient,
}


def create_provider_client(
    source: SourceConfig,
    integrations: Integrations,
    http_client: httpx.AsyncClient,
    logger: logging.Logger,
) -> IProviderClient:
    """Pick the client variant for `source` and bind it to its host and organization."""
    client_cls = _CLIENTS.get(source.provider)
    if client_cls is None:
        raise ConfigError(f"Unsupported provider: {source.provider}")

    host  = source.resolved_host
    token = integrations.token_for(source.provider, host)
    if not token:
        raise ConfigError(
            f"No token configured for {source.provider} host {host}: add it under "
            f"integrations.{source.provider} or set {TOKEN_ENV_VARS[source.provider]}"
        )

    logger.debug("Using %s integration for host %s", source.provider, host)
    return client_cls(
        token        = token,
        organization = source.organization,
        client       = http_client,
        logger       = logger,
        host         = host,
    )
