"""Filesystem-based extension repository.

The base directory may be local or on a shared filesystem, so the
repository is not presumed to be authenticated or authorized. Every
``*.pom`` file below the base directory is a descriptor; its package file
sits next to it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from extrepo.extensions.parser import MetadataParser
from extrepo.extensions.spec import ExtensionSpec
from extrepo.repository.base import ExtensionRepository, RepositoryType, ScanResult
from extrepo.repository.verification import PackageVerifier
from extrepo.utils.exceptions import RepositoryError, ResolutionError

DESCRIPTOR_SUFFIX = ".pom"


class FilesystemRepository(ExtensionRepository):
    """Repository backed by a directory tree of descriptors and packages.

    For a descriptor ``dir/foo.pom`` the package is ``dir/foo.<packaging>``
    or, failing that, ``dir/<artifactId>-<version>.<packaging>`` as laid
    out by Maven.
    """

    def __init__(
            self,
            repo_id: str,
            base_dir: Union[str, Path],
            authenticated: bool = False,
            authorized: bool = False,
            parser: Optional[MetadataParser] = None,
            verifier: Optional[PackageVerifier] = None
    ) -> None:
        """Initialize a filesystem repository.

        Args:
            repo_id: Unique name of the repository
            base_dir: Base directory of the repository
            authenticated: The base directory is a known repository
            authorized: The repository is approved as an extension source
            parser: Parser for descriptor documents
            verifier: Check run on every package this repository resolves
        """
        self.base_dir = Path(base_dir).expanduser()
        super().__init__(
            repo_id,
            RepositoryType.FILESYSTEM,
            str(self.base_dir),
            authenticated=authenticated,
            authorized=authorized,
            parser=parser,
            verifier=verifier,
        )

    def _scan(self) -> ScanResult:
        if not self.base_dir.is_dir():
            raise RepositoryError(
                f"Repository directory not found: {self.base_dir}",
                repo_id=self.repo_id
            )

        listing: ScanResult = {}
        for pom in sorted(self.base_dir.rglob(f"*{DESCRIPTOR_SUFFIX}")):
            entry = self._read_descriptor(
                pom.resolve().as_uri(),
                locator_info=pom.relative_to(self.base_dir).as_posix(),
            )
            if entry is not None:
                self._add_entry(listing, *entry)
        return listing

    def _fetch_package(self, spec: ExtensionSpec) -> Path:
        for candidate in self._package_candidates(spec):
            if candidate.is_file():
                return candidate

        raise ResolutionError(
            f"Package file not found in {self.base_dir}",
            coordinate=str(spec.coordinate),
            repo_id=self.repo_id
        )

    def _package_candidates(self, spec: ExtensionSpec):
        if spec.locator_info:
            pom = self.base_dir / spec.locator_info
            directory = pom.parent
            yield pom.with_suffix(f".{spec.packaging}")
        else:
            directory = (
                self.base_dir.joinpath(*spec.group_id.split("."))
                / spec.artifact_id / spec.version
            )
        yield directory / f"{spec.artifact_id}-{spec.version}.{spec.packaging}"

    def _locate_descriptor(self, spec: ExtensionSpec) -> Optional[str]:
        if spec.locator_info:
            pom = self.base_dir / spec.locator_info
        else:
            pom = (
                self.base_dir.joinpath(*spec.group_id.split("."))
                / spec.artifact_id / spec.version
                / f"{spec.artifact_id}-{spec.version}{DESCRIPTOR_SUFFIX}"
            )
        return pom.resolve().as_uri() if pom.is_file() else None
