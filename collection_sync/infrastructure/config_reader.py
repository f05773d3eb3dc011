"""
Reading of the YAML configuration file.

Sources are declared under ``collection_sync.environments``:

    collection_sync:
      environments:
        production:
          schedule:
            frequency: {minutes: 30}
            timeout: {minutes: 10}
          providers:
            github:
              - name: github-public
                host: github.com
                orgs:
                  - name: ansible-collections
                    branches: [main, devel]
                    tags: ["v*"]
                    galaxy_file_paths: [collections]
                    crawl_depth: 3

Schedules are inherited organization → host entry → environment. Provider
tokens live under ``integrations``, as a list of ``{host, token}`` entries
per provider.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping

import yaml

from collection_sync.domain.entities import DEFAULT_HOSTS, Schedule, SourceConfig
from collection_sync.domain.errors import ConfigError

SUPPORTED_PROVIDERS = ("github", "gitlab")
DEFAULT_CRAWL_DEPTH = 5

TOKEN_ENV_VARS = {
    "github": "GITHUB_TOKEN",
    "gitlab": "GITLAB_TOKEN",
}


def load_config_file(path: str | Path) -> dict:
    """Read and parse the YAML config file. Raises ConfigError on any failure."""
    try:
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in config file {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")
    return data


def _read_duration(value: Any, key: str) -> timedelta:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return timedelta(seconds=value)
    if isinstance(value, dict):
        try:
            return timedelta(**value)
        except TypeError as exc:
            raise ConfigError(f"Invalid duration for {key}: {value!r}") from exc
    raise ConfigError(f"Invalid duration for {key}: {value!r}")


def read_schedule(raw: Any) -> Schedule:
    if not isinstance(raw, dict):
        raise ConfigError(f"schedule must be a mapping, got {raw!r}")
    for key in ("frequency", "timeout"):
        if key not in raw:
            raise ConfigError(f"schedule.{key} is required")
    return Schedule(
        frequency     = _read_duration(raw["frequency"], "schedule.frequency"),
        timeout       = _read_duration(raw["timeout"], "schedule.timeout"),
        initial_delay = _read_duration(raw.get("initial_delay", 0), "schedule.initial_delay"),
    )


def _string_tuple(raw: Any, key: str) -> tuple[str, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigError(f"{key} must be a list")
    return tuple(str(item) for item in raw)


def _read_org(
    org: Any,
    env: str,
    provider: str,
    host_entry: dict,
    inherited_schedule: Any,
) -> SourceConfig:
    if not isinstance(org, dict) or not org.get("name"):
        raise ConfigError(f"organization entry without a name under {env}/{provider}/{host_entry.get('name')}")

    raw_schedule = org.get("schedule") or inherited_schedule
    if raw_schedule is None:
        raise ConfigError(
            f"No schedule for organization {org['name']} in {env}/{provider}/{host_entry['name']}: "
            "set one on the organization, its host entry or the environment"
        )

    crawl_depth = org.get("crawl_depth", DEFAULT_CRAWL_DEPTH)
    if not isinstance(crawl_depth, int) or isinstance(crawl_depth, bool):
        raise ConfigError(f"crawl_depth must be an integer, got {crawl_depth!r}")
    if crawl_depth < 1:
        raise ConfigError(f"crawl_depth must be a positive integer, got {crawl_depth}")

    return SourceConfig(
        provider     = provider,
        host_name    = host_entry["name"],
        organization = str(org["name"]),
        schedule     = read_schedule(raw_schedule),
        env          = env,
        host         = host_entry.get("host") or DEFAULT_HOSTS[provider],
        enabled      = bool(org.get("enabled", True)),
        branches     = _string_tuple(org.get("branches"), "branches"),
        tag_patterns = _string_tuple(org.get("tags"), "tags"),
        path_filters = _string_tuple(org.get("galaxy_file_paths"), "galaxy_file_paths"),
        crawl_depth  = crawl_depth,
    )


def read_source_configs(config: Mapping[str, Any], logger: logging.Logger) -> list[SourceConfig]:
    """
    Flatten the environment → provider → host → organization tree.

    A broken organization entry is logged and left out; every other
    organization is still returned. Disabled organizations are returned
    too; they get no client or schedule and are only listed in status.
    """
    environments = (config.get("collection_sync") or {}).get("environments") or {}
    if not environments:
        logger.warning("No collection_sync.environments configured")
        return []

    sources: list[SourceConfig] = []
    for env, env_config in environments.items():
        env_config = env_config or {}
        providers  = env_config.get("providers") or {}

        for provider, host_entries in providers.items():
            if provider not in SUPPORTED_PROVIDERS:
                logger.error("Unsupported provider %r in environment %s, skipping", provider, env)
                continue

            for host_entry in host_entries or []:
                if not isinstance(host_entry, dict) or not host_entry.get("name"):
                    logger.error("Host entry without a name under %s/%s, skipping", env, provider)
                    continue

                inherited = host_entry.get("schedule") or env_config.get("schedule")
                for org in host_entry.get("orgs") or []:
                    try:
                        sources.append(_read_org(org, env, provider, host_entry, inherited))
                    except ConfigError as exc:
                        logger.error("Skipping organization: %s", exc)

    logger.info("Loaded %d collection sources from %d environments", len(sources), len(environments))
    return sources


@dataclass
class Integrations:
    """Provider tokens per host, with one environment fallback per provider."""
    tokens:    dict[str, dict[str, str]] = field(default_factory=dict)
    fallbacks: dict[str, str] = field(default_factory=dict)

    def token_for(self, provider: str, host: str) -> str | None:
        return self.tokens.get(provider, {}).get(host) or self.fallbacks.get(provider)


def read_integrations(config: Mapping[str, Any], environ: Mapping[str, str] = os.environ) -> Integrations:
    integrations = Integrations()
    section = config.get("integrations") or {}

    for provider in SUPPORTED_PROVIDERS:
        for entry in section.get(provider) or []:
            if not isinstance(entry, dict) or not entry.get("token"):
                continue
            host = entry.get("host") or DEFAULT_HOSTS[provider]
            integrations.tokens.setdefault(provider, {})[host] = entry["token"]

        fallback = environ.get(TOKEN_ENV_VARS[provider])
        if fallback:
            integrations.fallbacks[provider] = fallback

    return integrations
