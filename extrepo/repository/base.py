"""Repository abstraction for extension packages.

This module defines the capability set every backing store offers and
implements the listing cache shared by all of them: listings are scanned
once, served from an immutable snapshot, and replaced wholesale by
``refresh_listing()``.
"""

from __future__ import annotations

import abc
import enum
import logging
import re
import threading
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Tuple

import pydantic
from packaging.version import InvalidVersion, Version
from pydantic import ConfigDict

from extrepo.extensions.metadata import ExtensionMetadata
from extrepo.extensions.parser import NAME_PATH, DocumentLocator, MetadataParser
from extrepo.extensions.spec import ExtensionSpec
from extrepo.extensions import kinds
from extrepo.repository.verification import PackageVerifier
from extrepo.utils.exceptions import DescriptorError, ResolutionError

Listing = Mapping[str, Mapping[str, ExtensionSpec]]
ScanResult = MutableMapping[str, MutableMapping[str, ExtensionSpec]]

SNAPSHOT_QUALIFIER = re.compile(r"[-.]SNAPSHOT$", re.IGNORECASE)
RELEASE_QUALIFIER = re.compile(r"[-.](FINAL|GA|RELEASE)$", re.IGNORECASE)
UNREADABLE_VERSION = Version("0")


class RepositoryType(str, enum.Enum):
    """Kind of backing store behind a repository."""

    FILESYSTEM = "file"
    REMOTE_ARTIFACT = "maven"


class RepositoryDescriptor(pydantic.BaseModel):
    """Identity of a repository, fixed at construction.

    Attributes:
        id: Unique name of the repository
        type: Kind of backing store
        base_locator: Base directory, or URI plus group namespace
        authenticated: The base locator is a known repository
        authorized: The repository is approved as an extension source
    """

    model_config = ConfigDict(frozen=True)

    id: str
    type: RepositoryType
    base_locator: str
    authenticated: bool = False
    authorized: bool = False


def version_key(version: str) -> Tuple[int, Version, str]:
    """Sort key for artifact versions.

    Versions compare as PEP 440 versions, so ``1.10`` sorts above ``1.9``
    and pre-releases such as ``2.0.0-beta`` sort below their release. Maven's
    ``-SNAPSHOT`` qualifier is read as a development release and its
    ``.Final``/``-GA`` qualifiers as the plain release. Versions that cannot
    be read sort below every readable one; ties fall back to the raw string.
    """
    candidate = RELEASE_QUALIFIER.sub("", version.strip())
    candidate = SNAPSHOT_QUALIFIER.sub(".dev0", candidate)
    try:
        return 1, Version(candidate), version
    except InvalidVersion:
        return 0, UNREADABLE_VERSION, version


class ExtensionRepository(abc.ABC):
    """Base class for extension repositories.

    Subclasses implement ``_scan()`` to build a fresh listing from the
    backing store and ``_fetch_package()`` to produce a local package file.

    Attributes:
        descriptor: Repository identity
        parser: Parser for descriptor documents
        verifier: Optional check run on every resolved package
    """

    def __init__(
            self,
            repo_id: str,
            repo_type: RepositoryType,
            base_locator: str,
            authenticated: bool = False,
            authorized: bool = False,
            parser: Optional[MetadataParser] = None,
            verifier: Optional[PackageVerifier] = None
    ) -> None:
        """Initialize a repository.

        Args:
            repo_id: Unique name of the repository
            repo_type: Kind of backing store
            base_locator: Base directory, or URI plus group namespace
            authenticated: The base locator is a known repository
            authorized: The repository is approved as an extension source
            parser: Parser for descriptor documents
            verifier: Check run on every package this repository resolves
        """
        self.descriptor = RepositoryDescriptor(
            id=repo_id,
            type=repo_type,
            base_locator=base_locator,
            authenticated=authenticated,
            authorized=authorized,
        )
        self.parser = parser or MetadataParser()
        self.verifier = verifier
        self._listing: Optional[Listing] = None
        self._refresh_lock = threading.RLock()
        self._logger = logging.getLogger(f"{__name__}.{repo_id}")

    @property
    def repo_id(self) -> str:
        return self.descriptor.id

    @property
    def repo_type(self) -> RepositoryType:
        return self.descriptor.type

    @property
    def base_locator(self) -> str:
        return self.descriptor.base_locator

    @property
    def authenticated(self) -> bool:
        return self.descriptor.authenticated

    @property
    def authorized(self) -> bool:
        return self.descriptor.authorized

    @property
    def identity(self) -> str:
        """String identifying the backing store of this repository."""
        return self.descriptor.base_locator

    # Listing

    def list_categories(self) -> List[str]:
        """List the extension categories this repository offers.

        Returns:
            Category names; empty if the repository offers none
        """
        return list(self._snapshot().keys())

    def list_extensions(self, category: Optional[str] = None) -> Dict[str, ExtensionSpec]:
        """List the extensions of one category, or of all categories.

        With ``category=None`` every category's listing is merged into one
        mapping; when two categories share a key the later category wins.

        Args:
            category: Category to list, or None for all

        Returns:
            Mapping of listing key to extension spec; empty for an unknown category
        """
        listing = self._snapshot()
        if category is not None:
            return dict(listing.get(category, {}))

        result: Dict[str, ExtensionSpec] = {}
        for entries in listing.values():
            result.update(entries)
        return result

    def refresh_listing(self) -> None:
        """Rescan the backing store and publish the new listing.

        Readers keep seeing the previous listing until the scan completes;
        if the scan fails the previous listing stays in place.

        Raises:
            RepositoryError: If the backing store cannot be scanned
        """
        with self._refresh_lock:
            self._publish(self._scan())

    def _snapshot(self) -> Listing:
        listing = self._listing
        if listing is None:
            with self._refresh_lock:
                if self._listing is None:
                    self._publish(self._scan())
                listing = self._listing
        return listing

    def _publish(self, scanned: ScanResult) -> None:
        self._listing = MappingProxyType({
            category: MappingProxyType(dict(entries))
            for category, entries in scanned.items()
        })
        self._logger.info(
            f"Published listing for repository {self.repo_id}: "
            f"{sum(len(e) for e in scanned.values())} extensions in {len(scanned)} categories"
        )

    @abc.abstractmethod
    def _scan(self) -> ScanResult:
        """Build a complete listing from the backing store.

        Returns:
            Mapping of category to a mapping of listing key to spec
        """
        pass

    def _read_descriptor(
            self,
            document: DocumentLocator,
            locator_info: Optional[str] = None
    ) -> Optional[Tuple[str, ExtensionSpec]]:
        """Parse one descriptor into a listing entry.

        Unreadable or incomplete descriptors are logged and skipped.

        Returns:
            (listing key, spec) or None if the descriptor was skipped
        """
        try:
            fields = self.parser.parse(self.parser.new_field_set(), document)
            metadata = ExtensionMetadata.from_fields(
                fields,
                category_path=self.parser.category_path,
                locator_info=locator_info,
            )
            spec = kinds.make_spec(metadata, self, descriptor=str(document))
        except DescriptorError as e:
            self._logger.warning(f"Skipping unreadable descriptor: {e}")
            return None
        except ValueError as e:
            self._logger.warning(f"Skipping descriptor {document}: {e}")
            return None

        return self.listing_key(metadata, fields.get(NAME_PATH)), spec

    @staticmethod
    def listing_key(metadata: ExtensionMetadata, declared_name: Optional[str] = None) -> str:
        """Key under which an extension is listed.

        The descriptor's own name when it declares one, else ``group_id.artifact_id``.
        """
        return declared_name or f"{metadata.group_id}.{metadata.artifact_id}"

    @staticmethod
    def _add_entry(listing: ScanResult, key: str, spec: ExtensionSpec) -> None:
        """Add ``spec`` to a listing being built, keeping the highest version per key."""
        entries = listing.setdefault(spec.category, {})
        current = entries.get(key)
        if current is None or version_key(spec.version) >= version_key(current.version):
            entries[key] = spec

    # Resolution

    def resolve_package(self, spec: ExtensionSpec) -> Path:
        """Produce a local package file for ``spec``.

        A spec that already carries a package path is returned unchanged.
        Otherwise the package is fetched from the backing store and passed
        through the verifier.

        Args:
            spec: Extension to resolve

        Returns:
            Path from which the extension can be loaded

        Raises:
            ResolutionError: If the package cannot be fetched or fails verification
        """
        if spec.resolved_package is not None:
            return spec.resolved_package

        coordinate = str(spec.coordinate)
        self._logger.debug(f"Resolving {coordinate} from repository {self.repo_id}")
        try:
            path = self._fetch_package(spec)
            if self.verifier is not None:
                self.verifier.verify(spec, path)
        except ResolutionError as e:
            self._logger.error(f"Failed to resolve {coordinate}: {e}")
            raise
        except Exception as e:
            self._logger.error(f"Failed to resolve {coordinate}: {e}")
            raise ResolutionError(
                f"Failed to resolve extension package: {e}",
                coordinate=coordinate,
                repo_id=self.repo_id
            ) from e

        self._logger.info(f"Resolved {coordinate} to {path}")
        return path

    @abc.abstractmethod
    def _fetch_package(self, spec: ExtensionSpec) -> Path:
        """Locate or download the package file for ``spec``."""
        pass

    def resolve_descriptor(self, spec: ExtensionSpec) -> Optional[str]:
        """Locator of the descriptor document for ``spec``.

        Returns:
            Descriptor locator, or None if the repository cannot provide one
        """
        if spec.resolved_descriptor is not None:
            return spec.resolved_descriptor
        return self._locate_descriptor(spec)

    def _locate_descriptor(self, spec: ExtensionSpec) -> Optional[str]:
        return None

    def status(self) -> Dict[str, Any]:
        """Get the status of the repository.

        Listing counts are reported only once a listing has been published.

        Returns:
            Dictionary containing status information
        """
        status: Dict[str, Any] = {
            "id": self.repo_id,
            "type": self.repo_type.value,
            "identity": self.identity,
            "authenticated": self.authenticated,
            "authorized": self.authorized,
            "listed": self._listing is not None,
        }
        listing = self._listing
        if listing is not None:
            status["categories"] = {category: len(entries) for category, entries in listing.items()}
        return status

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.repo_id!r}, {self.identity!r})"
