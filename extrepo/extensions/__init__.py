"""Extension metadata, descriptor parsing and extension specs."""

from __future__ import annotations

from extrepo.extensions.metadata import ArtifactCoordinate, ExtensionMetadata
from extrepo.extensions.parser import MetadataParser, ParseFieldSet, new_field_set
from extrepo.extensions.spec import ExtensionLoader, ExtensionSpec

__all__ = [
    "ArtifactCoordinate",
    "ExtensionLoader",
    "ExtensionMetadata",
    "ExtensionSpec",
    "MetadataParser",
    "ParseFieldSet",
    "new_field_set",
]
