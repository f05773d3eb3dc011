"""Parsing and validation of galaxy.yml descriptor files."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import yaml
from pydantic import ValidationError

from collection_sync.domain.errors import DescriptorParseError
from collection_sync.domain.galaxy import NAME_RULE, GalaxyMetadata


@dataclass(frozen=True)
class ValidationIssue:
    path:    str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


@dataclass(frozen=True)
class ValidationResult:
    success: bool
    data:    GalaxyMetadata | None = None
    errors:  list[ValidationIssue] = field(default_factory=list)


def parse_descriptor(content: str) -> Any:
    """Parse descriptor text as YAML. Raises DescriptorParseError on bad syntax."""
    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise DescriptorParseError(f"Invalid YAML syntax: {exc}") from exc


def _issue_message(field_path: str, err: dict[str, Any]) -> str:
    error_type = err["type"]
    if error_type == "missing":
        return f"{field_path} is required"
    if error_type == "string_too_short" and field_path in ("namespace", "name"):
        return f"{field_path} is required"
    if error_type == "string_pattern_mismatch":
        return f"{field_path} {NAME_RULE}"
    return err["msg"]


def validate_galaxy_content(content: Any) -> ValidationResult:
    """
    Validate a parsed galaxy.yml document.

    Returns a successful result carrying normalised GalaxyMetadata, or a
    failed one listing every offending field by dotted path. Pure: the same
    input always gives the same result.
    """
    if not isinstance(content, dict):
        return ValidationResult(
            success=False,
            errors=[ValidationIssue("", "galaxy.yml content is empty or not a valid object")],
        )
    if not content:
        return ValidationResult(
            success=False,
            errors=[ValidationIssue("", "galaxy.yml content is empty")],
        )

    try:
        metadata = GalaxyMetadata.model_validate(content)
    except ValidationError as exc:
        issues = []
        for err in exc.errors():
            field_path = ".".join(str(loc) for loc in err["loc"])
            issues.append(ValidationIssue(field_path, _issue_message(field_path, err)))
        return ValidationResult(success=False, errors=issues)

    return ValidationResult(success=True, data=metadata)
