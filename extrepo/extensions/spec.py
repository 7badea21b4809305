"""Extension specifications.

An :class:`ExtensionSpec` binds one :class:`ExtensionMetadata` to the
repository that listed it and memoizes the resolution of its package file
and descriptor document.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol, Union, runtime_checkable

from extrepo.extensions.metadata import ArtifactCoordinate, ExtensionMetadata

if TYPE_CHECKING:
    from extrepo.repository.base import ExtensionRepository

UNRESOLVED = "UNRESOLVED"


def _as_path(value: Union[str, Path]) -> Path:
    return value if isinstance(value, Path) else Path(value)


@runtime_checkable
class ExtensionLoader(Protocol):
    """Loads a resolved extension package into the host."""

    def load(self, spec: ExtensionSpec, package_path: Path) -> bool:
        """Load the package for ``spec``.

        Returns:
            True if the extension was loaded
        """
        ...


class ExtensionSpec:
    """A listed extension and its lazily resolved package file.

    ``get_package()`` calls back into the owning repository at most once
    per instance; concurrent callers on an unresolved spec wait for the
    first one and share its result. A failed resolution leaves the spec
    unresolved so that a later call can try again.

    Passing ``package`` at construction skips the repository entirely,
    including its verification step. That path exists for tests and local
    development and must not be used for packages from untrusted sources.

    Attributes:
        metadata: Identity fields of the extension
        repository: Repository that listed the extension
    """

    def __init__(
            self,
            metadata: ExtensionMetadata,
            repository: ExtensionRepository,
            descriptor: Optional[str] = None,
            package: Optional[Union[str, Path]] = None
    ) -> None:
        """Initialize an extension spec.

        Args:
            metadata: Identity fields of the extension
            repository: Repository that listed the extension
            descriptor: Already resolved descriptor locator
            package: Already resolved package file (bypasses verification)

        Raises:
            ValueError: If ``repository`` is None
        """
        if repository is None:
            raise ValueError("An extension spec requires a repository")

        self.metadata = metadata
        self.repository = repository
        self._package: Optional[Path] = _as_path(package) if package is not None else None
        self._descriptor: Optional[str] = descriptor
        self._package_lock = threading.Lock()
        self._descriptor_lock = threading.Lock()

    @property
    def category(self) -> str:
        return self.metadata.category

    @property
    def group_id(self) -> str:
        return self.metadata.group_id

    @property
    def artifact_id(self) -> str:
        return self.metadata.artifact_id

    @property
    def version(self) -> str:
        return self.metadata.version

    @property
    def packaging(self) -> str:
        return self.metadata.packaging

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def description(self) -> str:
        return self.metadata.description

    @property
    def locator_info(self) -> Optional[str]:
        return self.metadata.locator_info

    @property
    def coordinate(self) -> ArtifactCoordinate:
        return self.metadata.coordinate

    @property
    def resolved_package(self) -> Optional[Path]:
        """The cached package path, without triggering resolution."""
        return self._package

    @property
    def resolved_descriptor(self) -> Optional[str]:
        """The cached descriptor locator, without triggering resolution."""
        return self._descriptor

    @property
    def is_resolved(self) -> bool:
        return self._package is not None

    def get_package(self) -> Path:
        """Resolve the package file and return a local path to it.

        Returns:
            Path from which the extension can be loaded

        Raises:
            ResolutionError: If the repository fails to resolve the package
        """
        package = self._package
        if package is not None:
            return package

        with self._package_lock:
            if self._package is None:
                self._package = _as_path(self.repository.resolve_package(self))
            return self._package

    def get_descriptor(self) -> Optional[str]:
        """Resolve the descriptor document locator.

        Returns:
            Locator of the descriptor, or None if the repository has none
        """
        descriptor = self._descriptor
        if descriptor is not None:
            return descriptor

        with self._descriptor_lock:
            if self._descriptor is None:
                self._descriptor = self.repository.resolve_descriptor(self)
            return self._descriptor

    def load(self, loader: ExtensionLoader) -> bool:
        """Resolve the package and hand it to ``loader``.

        Args:
            loader: Host-side loader for this category and packaging

        Returns:
            Whatever the loader reports
        """
        return loader.load(self, self.get_package())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a dictionary.

        Returns:
            Dictionary representation of the spec
        """
        data = self.metadata.to_dict()
        data.update({
            "repository": self.repository.repo_id,
            "package": str(self._package) if self._package is not None else None,
            "descriptor": self._descriptor,
        })
        return data

    def __str__(self) -> str:
        package = str(self._package) if self._package is not None else UNRESOLVED
        return (
            f"{self.group_id}.{self.artifact_id}-{self.version} "
            f"({self.category} {self.packaging}) {self.name} "
            f"URI:{package} DESCRIPTION: {self.description}"
        )

    def __repr__(self) -> str:
        return f"ExtensionSpec({self.metadata.gav!r}, repository={self.repository.repo_id!r})"
