"""
Schema of a galaxy.yml collection descriptor.

Only `namespace` and `name` are strictly required. Every other field is
normalised to a documented default so downstream code never has to
special-case a missing value.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

NAME_PATTERN       = r"^[a-zA-Z][a-zA-Z0-9]*([_.][a-zA-Z0-9]+)*$"
NAME_RULE          = (
    "must start with a letter, contain only alphanumeric characters, "
    "underscores, and dots, and cannot have consecutive underscores or dots"
)
UNKNOWN_VERSION    = "unknown"
UNKNOWN_AUTHOR     = "unknown"
README_PLACEHOLDER = "Not Available."


def _scalar_to_str(value: Any) -> Any:
    # YAML reads `version: 1.0` as a float and `version: 2` as an int
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class GalaxyMetadata(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    namespace:     str = Field(min_length=1, pattern=NAME_PATTERN)
    name:          str = Field(min_length=1, pattern=NAME_PATTERN)
    version:       str = UNKNOWN_VERSION
    readme:        str = README_PLACEHOLDER
    authors:       list[str] = Field(default_factory=lambda: [UNKNOWN_AUTHOR])
    description:   str | None = None
    license:       str | list[str] | None = None
    license_file:  str | None = None
    tags:          list[str] = Field(default_factory=list)
    dependencies:  dict[str, str] = Field(default_factory=dict)
    repository:    str | None = None
    documentation: str | None = None
    homepage:      str | None = None
    issues:        str | None = None
    build_ignore:  list[str] = Field(default_factory=list)

    @field_validator("version", mode="before")
    @classmethod
    def _default_version(cls, value: Any) -> Any:
        if value is None:
            return UNKNOWN_VERSION
        return _scalar_to_str(value)

    @field_validator("readme", mode="before")
    @classmethod
    def _default_readme(cls, value: Any) -> Any:
        return README_PLACEHOLDER if value is None else value

    @field_validator("authors", mode="before")
    @classmethod
    def _default_authors(cls, value: Any) -> Any:
        if value is None:
            return [UNKNOWN_AUTHOR]
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("tags", "build_ignore", mode="before")
    @classmethod
    def _default_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("dependencies", mode="before")
    @classmethod
    def _default_dependencies(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {key: _scalar_to_str(spec) for key, spec in value.items()}
        return value

    @property
    def full_name(self) -> str:
        return f"{self.namespace}.{self.name}"

    @property
    def has_version(self) -> bool:
        return self.version != UNKNOWN_VERSION
