"""Well-known extension categories and packagings.

Category-specific behavior is a lookup in :data:`SUPPORTED_PACKAGINGS`
rather than a subclass per category. Categories not listed there are
accepted with any packaging.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, FrozenSet, Optional, Union, TYPE_CHECKING

from extrepo.extensions.metadata import ExtensionMetadata
from extrepo.extensions.spec import ExtensionSpec

if TYPE_CHECKING:
    from extrepo.repository.base import ExtensionRepository

PROCESSOR = "processor"
CONTROLLER_SERVICE = "controllerservice"
REPORTING_TASK = "reportingtask"
TEMPLATE = "template"
EXTERNAL_REPOSITORY = "externalrepository"

NAR = "nar"
XML = "xml"

SUPPORTED_PACKAGINGS: Dict[str, FrozenSet[str]] = {
    PROCESSOR: frozenset({NAR}),
    CONTROLLER_SERVICE: frozenset({NAR}),
    REPORTING_TASK: frozenset({NAR}),
    TEMPLATE: frozenset({XML}),
    # New repository kinds are side-loaded as NAR extensions themselves
    EXTERNAL_REPOSITORY: frozenset({NAR}),
}


def is_supported(category: str, packaging: str) -> bool:
    """Check whether ``packaging`` is acceptable for ``category``."""
    supported = SUPPORTED_PACKAGINGS.get(category)
    return supported is None or packaging in supported


def make_spec(
        metadata: ExtensionMetadata,
        repository: ExtensionRepository,
        descriptor: Optional[str] = None,
        package: Optional[Union[str, Path]] = None
) -> ExtensionSpec:
    """Create an extension spec after checking its category/packaging pair.

    Args:
        metadata: Identity fields of the extension
        repository: Repository that lists the extension
        descriptor: Already resolved descriptor locator
        package: Already resolved package file (bypasses verification)

    Returns:
        ExtensionSpec instance

    Raises:
        ValueError: If a well-known category does not support the packaging
    """
    if not is_supported(metadata.category, metadata.packaging):
        supported = ", ".join(sorted(SUPPORTED_PACKAGINGS[metadata.category]))
        raise ValueError(
            f"Category {metadata.category!r} does not support packaging "
            f"{metadata.packaging!r} (supported: {supported})"
        )
    return ExtensionSpec(metadata, repository, descriptor=descriptor, package=package)


def processor_spec(
        group_id: str,
        artifact_id: str,
        version: str,
        repository: ExtensionRepository,
        name: Optional[str] = None,
        description: Optional[str] = None,
        locator_info: Optional[str] = None,
        descriptor: Optional[str] = None,
        package: Optional[Union[str, Path]] = None
) -> ExtensionSpec:
    """Create a spec for a NAR-packaged processor."""
    metadata = ExtensionMetadata(
        category=PROCESSOR,
        group_id=group_id,
        artifact_id=artifact_id,
        version=version,
        packaging=NAR,
        name=name,
        description=description,
        locator_info=locator_info,
    )
    return make_spec(metadata, repository, descriptor=descriptor, package=package)


def external_repository_spec(
        group_id: str,
        artifact_id: str,
        version: str,
        repository: ExtensionRepository,
        name: Optional[str] = None,
        description: Optional[str] = None,
        locator_info: Optional[str] = None,
        descriptor: Optional[str] = None,
        package: Optional[Union[str, Path]] = None
) -> ExtensionSpec:
    """Create a spec for a NAR-packaged repository implementation."""
    metadata = ExtensionMetadata(
        category=EXTERNAL_REPOSITORY,
        group_id=group_id,
        artifact_id=artifact_id,
        version=version,
        packaging=NAR,
        name=name,
        description=description,
        locator_info=locator_info,
    )
    return make_spec(metadata, repository, descriptor=descriptor, package=package)
