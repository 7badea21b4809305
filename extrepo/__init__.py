"""extrepo: discovery, description and resolution of extension packages."""

from extrepo.__version__ import __version__
from extrepo.extensions import ExtensionMetadata, ExtensionSpec, MetadataParser
from extrepo.repository import (
    ExtensionRepository,
    FilesystemRepository,
    RemoteArtifactRepository,
    RepositoryType,
)
from extrepo.utils.exceptions import (
    DescriptorError,
    ExtrepoError,
    RepositoryError,
    ResolutionError,
    VerificationError,
)
