"""
Catalog record synthesis.

Turns deduplicated descriptor occurrences and per-repository tallies into
catalog entity documents. Every function here is pure: the full set of
records is re-synthesized and re-submitted on every run, so identical input
must always produce identical output.
"""

from __future__ import annotations

import re
from typing import Any

from collection_sync.domain.entities import (
    CatalogRecord,
    DescriptorOccurrence,
    RepositoryInfo,
    SourceConfig,
)
from collection_sync.domain.galaxy import README_PLACEHOLDER

API_VERSION       = "backstage.io/v1alpha1"
ENTITY_NAMESPACE  = "default"
MAX_NAME_LENGTH   = 63
COLLECTION_TYPE   = "ansible-collection"
REPOSITORY_TYPE   = "git-repository"

_INVALID_NAME_CHARS = re.compile(r"[^a-z0-9-]")
_HYPHEN_RUNS        = re.compile(r"-+")


def sanitize_entity_name(value: str) -> str:
    value = _INVALID_NAME_CHARS.sub("-", value.lower())
    value = _HYPHEN_RUNS.sub("-", value).strip("-")
    return value[:MAX_NAME_LENGTH]


def generate_source_id(source: SourceConfig) -> str:
    raw = f"{source.env}-{source.provider}-{source.host_name}-{source.organization}"
    return _INVALID_NAME_CHARS.sub("-", raw.lower())


def collection_entity_name(occurrence: DescriptorOccurrence, source: SourceConfig) -> str:
    metadata = occurrence.metadata
    return sanitize_entity_name(
        f"{metadata.namespace}-{metadata.name}-{metadata.version}-{source.provider}-{source.host_name}"
    )


def repository_entity_name(repository: RepositoryInfo, source: SourceConfig) -> str:
    return sanitize_entity_name(f"{repository.full_path}-{source.provider}-{source.host_name}")


def entity_ref(name: str) -> str:
    return f"component:{ENTITY_NAMESPACE}/{name}"


def build_file_url(provider: str, host: str, repo_path: str, ref: str, file_path: str) -> str:
    if provider == "gitlab":
        return f"https://{host}/{repo_path}/-/blob/{ref}/{file_path}"
    return f"https://{host}/{repo_path}/blob/{ref}/{file_path}"


def directory_of(file_path: str) -> str:
    head, sep, _ = file_path.rpartition("/")
    return head if sep and head else ""


def _sanitize_tag(tag: str) -> str:
    return _INVALID_NAME_CHARS.sub("-", tag.lower())


def _collection_links(occurrence: DescriptorOccurrence) -> list[dict[str, str]]:
    metadata = occurrence.metadata
    candidates = [
        (metadata.repository,    "Repository",    "github"),
        (metadata.documentation, "Documentation", "docs"),
        (metadata.homepage,      "Homepage",      "web"),
        (metadata.issues,        "Issues",        "bug"),
    ]
    return [{"url": url, "title": title, "icon": icon} for url, title, icon in candidates if url]


def build_collection_entity(occurrence: DescriptorOccurrence, source: SourceConfig, source_location: str) -> CatalogRecord:
    """Catalog record for one collection found at one repository/ref/path."""
    metadata   = occurrence.metadata
    repository = occurrence.repository
    host       = source.resolved_host
    file_url   = build_file_url(source.provider, host, repository.full_path, occurrence.ref, occurrence.path)

    tags = [_sanitize_tag(t) for t in metadata.tags]
    tags += [source.provider, COLLECTION_TYPE]

    title = metadata.full_name
    if metadata.has_version:
        title = f"{title} v{metadata.version}"

    entity_metadata: dict[str, Any] = {
        "name":        collection_entity_name(occurrence, source),
        "namespace":   ENTITY_NAMESPACE,
        "title":       title,
        "description": metadata.description or f"Ansible Collection: {metadata.full_name}",
        "annotations": {
            "backstage.io/source-location":            source_location,
            "backstage.io/view-url":                   file_url,
            "backstage.io/managed-by-location":        f"url:{file_url}",
            "backstage.io/managed-by-origin-location": f"url:{file_url}",
            "ansible.io/scm-provider":                 source.provider,
            "ansible.io/scm-host":                     host,
            "ansible.io/scm-host-name":                source.host_name,
            "ansible.io/scm-organization":             source.organization,
            "ansible.io/scm-repository":               repository.full_path,
            "ansible.io/ref":                          occurrence.ref,
            "ansible.io/ref-type":                     occurrence.ref_type,
            "ansible.io/galaxy-file-path":             occurrence.path,
            "ansible.io/discovery-source-id":          generate_source_id(source),
        },
        "tags": list(dict.fromkeys(tags)),
    }
    links = _collection_links(occurrence)
    if links:
        entity_metadata["links"] = links

    spec: dict[str, Any] = {
        "type":                 COLLECTION_TYPE,
        "lifecycle":            "production" if occurrence.ref_type == "tag" else "development",
        "owner":                metadata.namespace,
        "system":               f"{metadata.namespace}-collections",
        "subcomponentOf":       entity_ref(repository_entity_name(repository, source)),
        "collection_namespace": metadata.namespace,
        "collection_name":      metadata.name,
        "collection_version":   metadata.version,
        "collection_full_name": metadata.full_name,
        "collection_authors":   list(metadata.authors),
    }
    if metadata.dependencies:
        spec["collection_dependencies"] = dict(metadata.dependencies)
    if metadata.license:
        license_value = metadata.license
        spec["collection_license"] = license_value if isinstance(license_value, str) else ", ".join(license_value)

    if metadata.readme != README_PLACEHOLDER:
        readme_dir  = directory_of(occurrence.path)
        readme_path = f"{readme_dir}/{metadata.readme}" if readme_dir else metadata.readme
        spec["collection_readme_url"] = build_file_url(
            source.provider, host, repository.full_path, occurrence.ref, readme_path
        )

    return {
        "apiVersion": API_VERSION,
        "kind":       "Component",
        "metadata":   entity_metadata,
        "spec":       spec,
    }


def build_repository_entity(
    repository: RepositoryInfo,
    source: SourceConfig,
    collection_count: int,
    collection_entity_names: list[str],
) -> CatalogRecord:
    """Aggregate record for a repository that produced collections this run."""
    host     = source.resolved_host
    repo_url = repository.url or f"https://{host}/{repository.full_path}"

    spec: dict[str, Any] = {
        "type":                        REPOSITORY_TYPE,
        "lifecycle":                   "production",
        "owner":                       source.organization,
        "system":                      f"{source.organization}-repositories",
        "repository_name":             repository.name,
        "repository_default_branch":   repository.default_branch,
        "repository_collection_count": collection_count,
    }
    if collection_entity_names:
        spec["repository_collections"] = list(collection_entity_names)
        spec["dependsOn"] = [entity_ref(name) for name in collection_entity_names]

    return {
        "apiVersion": API_VERSION,
        "kind":       "Component",
        "metadata": {
            "name":        repository_entity_name(repository, source),
            "namespace":   ENTITY_NAMESPACE,
            "title":       repository.full_path,
            "description": repository.description
                           or f"Git repository containing Ansible collections: {repository.full_path}",
            "annotations": {
                "backstage.io/source-location":            f"url:{repo_url}",
                "backstage.io/view-url":                   repo_url,
                "backstage.io/managed-by-location":        f"url:{repo_url}",
                "backstage.io/managed-by-origin-location": f"url:{repo_url}",
                "ansible.io/scm-provider":                 source.provider,
                "ansible.io/scm-host":                     host,
                "ansible.io/scm-host-name":                source.host_name,
                "ansible.io/scm-organization":             source.organization,
                "ansible.io/scm-repository":               repository.full_path,
                "ansible.io/discovery-source-id":          generate_source_id(source),
            },
            "tags": [REPOSITORY_TYPE, source.provider, "ansible-collections-source"],
            "links": [{
                "url":   repo_url,
                "title": "Repository",
                "icon":  "gitlab" if source.provider == "gitlab" else "github",
            }],
        },
        "spec": spec,
    }
