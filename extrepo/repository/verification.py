"""Package verification hooks.

Every package a repository resolves passes through a
:class:`PackageVerifier` before it is handed out. Signature checking
belongs to the host; :class:`ChecksumVerifier` covers the integrity
sidecars that Maven-style stores publish next to each artifact.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, Tuple, runtime_checkable

from extrepo.utils.exceptions import VerificationError

if TYPE_CHECKING:
    from extrepo.extensions.spec import ExtensionSpec

logger = logging.getLogger(__name__)

# Strongest first
CHECKSUM_ALGORITHMS: Tuple[str, ...] = ("sha512", "sha256", "sha1")


@runtime_checkable
class PackageVerifier(Protocol):
    """Checks a resolved package before it is handed out."""

    def verify(self, spec: ExtensionSpec, path: Path) -> None:
        """Raise :class:`VerificationError` if ``path`` is not acceptable for ``spec``."""
        ...


def calculate_file_hash(path: Path, algorithm: str = "sha256") -> str:
    """Calculate a hash of a file.

    Args:
        path: Path to the file
        algorithm: Name of a hashlib algorithm

    Returns:
        Hex digest of the file hash
    """
    hasher = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(4096), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


class ChecksumVerifier:
    """Compares a package with its checksum sidecar file.

    The sidecar is ``<package>.<algorithm>`` and holds the hex digest,
    optionally followed by the file name (``sha256sum`` output format).

    Attributes:
        require_checksum: Treat a missing sidecar as a failure
    """

    def __init__(self, require_checksum: bool = False) -> None:
        self.require_checksum = require_checksum

    def verify(self, spec: ExtensionSpec, path: Path) -> None:
        if not path.is_file():
            raise VerificationError(
                f"Package file not found: {path}",
                coordinate=str(spec.coordinate),
                repo_id=spec.repository.repo_id
            )

        for algorithm in CHECKSUM_ALGORITHMS:
            sidecar = path.with_name(f"{path.name}.{algorithm}")
            if not sidecar.is_file():
                continue

            content = sidecar.read_text(encoding="utf-8").split()
            expected = content[0].lower() if content else ""
            actual = calculate_file_hash(path, algorithm)
            if actual != expected:
                raise VerificationError(
                    f"Hash verification failed for {path.name}. Expected {expected}, got {actual}",
                    coordinate=str(spec.coordinate),
                    repo_id=spec.repository.repo_id
                )
            logger.debug(f"Verified {algorithm} checksum of {path}")
            return

        if self.require_checksum:
            raise VerificationError(
                f"No checksum file found for {path.name}",
                coordinate=str(spec.coordinate),
                repo_id=spec.repository.repo_id
            )
        logger.debug(f"No checksum file for {path}, skipping verification")
