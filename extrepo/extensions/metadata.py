"""Extension metadata model.

This module defines the immutable identity record for one extension and
the coordinate tuple used to fetch its package from an artifact store.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, NamedTuple, Optional

import pydantic
from pydantic import ConfigDict, model_validator

from extrepo.extensions.parser import (
    ARTIFACT_ID_PATH,
    CATEGORY_PATH,
    DESCRIPTION_PATH,
    GROUP_ID_PATH,
    NAME_PATH,
    PACKAGING_PATH,
    VERSION_PATH,
)

REQUIRED_FIELDS = ("category", "group_id", "artifact_id", "version", "packaging")


class ArtifactCoordinate(NamedTuple):
    """Coordinate of a packaged artifact: (namespace, name, packaging, version)."""

    group_id: str
    artifact_id: str
    packaging: str
    version: str

    def __str__(self) -> str:
        return f"{self.group_id}:{self.artifact_id}:{self.packaging}:{self.version}"


class ExtensionMetadata(pydantic.BaseModel):
    """Identity fields for one extension.

    All required fields must be non-empty. ``name`` defaults to the
    artifact id and ``description`` to ``group_id.artifact_id``; both
    defaults are applied at construction.

    Attributes:
        category: Kind of extension, e.g. "processor" or "template"
        group_id: G of GAV
        artifact_id: A of GAV
        version: V of GAV
        packaging: Packaging format of the package file, e.g. "nar"
        name: Human-readable name
        description: Brief description suitable for listings
        locator_info: Repository-specific hint for resolving the package
    """

    model_config = ConfigDict(frozen=True)

    category: str
    group_id: str
    artifact_id: str
    version: str
    packaging: str
    name: str = ""
    description: str = ""
    locator_info: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def apply_defaults(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data

        missing = [field for field in REQUIRED_FIELDS if not data.get(field)]
        if missing:
            raise ValueError(
                f"Null or empty value for required metadata field(s): {', '.join(missing)}"
            )

        data = dict(data)
        if not data.get("name"):
            data["name"] = data["artifact_id"]
        if not data.get("description"):
            data["description"] = f"{data['group_id']}.{data['artifact_id']}"
        return data

    @classmethod
    def from_fields(
            cls,
            fields: Mapping[str, Optional[str]],
            category: Optional[str] = None,
            category_path: str = CATEGORY_PATH,
            locator_info: Optional[str] = None
    ) -> ExtensionMetadata:
        """Build metadata from a parsed field set.

        Args:
            fields: Result of :meth:`MetadataParser.parse`
            category: Category to use instead of the parsed one
            category_path: Field path holding the category
            locator_info: Repository-specific locator hint

        Returns:
            ExtensionMetadata instance

        Raises:
            pydantic.ValidationError: If a required field is missing
        """
        return cls(
            category=category or fields.get(category_path),
            group_id=fields.get(GROUP_ID_PATH),
            artifact_id=fields.get(ARTIFACT_ID_PATH),
            version=fields.get(VERSION_PATH),
            packaging=fields.get(PACKAGING_PATH),
            name=fields.get(NAME_PATH),
            description=fields.get(DESCRIPTION_PATH),
            locator_info=locator_info,
        )

    @property
    def gav(self) -> str:
        """The ``group:artifact:version`` triple."""
        return f"{self.group_id}:{self.artifact_id}:{self.version}"

    @property
    def coordinate(self) -> ArtifactCoordinate:
        """The fetch coordinate for the package file."""
        return ArtifactCoordinate(self.group_id, self.artifact_id, self.packaging, self.version)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a dictionary.

        Returns:
            Dictionary representation of the metadata
        """
        return self.model_dump()
