"""Extension repositories and the package resolution pipeline."""

from __future__ import annotations

from extrepo.repository.base import (
    ExtensionRepository,
    Listing,
    RepositoryDescriptor,
    RepositoryType,
    version_key,
)
from extrepo.repository.fetch import ArtifactFetcher, HttpArtifactFetcher, LocalArtifactFetcher
from extrepo.repository.filesystem import FilesystemRepository
from extrepo.repository.remote import RemoteArtifactRepository
from extrepo.repository.verification import ChecksumVerifier, PackageVerifier

__all__ = [
    "ArtifactFetcher",
    "ChecksumVerifier",
    "ExtensionRepository",
    "FilesystemRepository",
    "HttpArtifactFetcher",
    "Listing",
    "LocalArtifactFetcher",
    "PackageVerifier",
    "RemoteArtifactRepository",
    "RepositoryDescriptor",
    "RepositoryType",
    "version_key",
]
