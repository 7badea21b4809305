"""Artifact fetching for Maven-style artifact stores.

An :class:`ArtifactFetcher` turns an artifact coordinate into a local
file. :class:`HttpArtifactFetcher` downloads into a local cache laid out
like a Maven repository and retries transient failures with exponential
backoff; :class:`LocalArtifactFetcher` serves files from a repository that
is already on disk.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol, Union, runtime_checkable

import httpx
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from extrepo.__version__ import __version__
from extrepo.extensions.metadata import ArtifactCoordinate
from extrepo.utils.exceptions import ResolutionError

logger = logging.getLogger(__name__)

CHECKSUM_EXTENSIONS = ("sha256", "sha1")


@runtime_checkable
class ArtifactFetcher(Protocol):
    """Produces a local file for an artifact coordinate."""

    def fetch(self, coordinate: ArtifactCoordinate) -> Path:
        """Return a local path to the artifact, or raise :class:`ResolutionError`."""
        ...


def artifact_path(coordinate: ArtifactCoordinate, packaging: Optional[str] = None) -> str:
    """Repository-relative path of an artifact in the Maven layout.

    Args:
        coordinate: Artifact coordinate
        packaging: Extension to use instead of the coordinate's packaging

    Returns:
        ``group/path/artifact/version/artifact-version.packaging``
    """
    group_path = coordinate.group_id.replace(".", "/")
    file_name = f"{coordinate.artifact_id}-{coordinate.version}.{packaging or coordinate.packaging}"
    return f"{group_path}/{coordinate.artifact_id}/{coordinate.version}/{file_name}"


def _is_transient(error: BaseException) -> bool:
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    return False


class LocalArtifactFetcher:
    """Fetcher for a Maven-layout repository on a local or shared filesystem."""

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root).expanduser()

    def fetch(self, coordinate: ArtifactCoordinate) -> Path:
        path = self.root / artifact_path(coordinate)
        if not path.is_file():
            raise ResolutionError(
                f"Artifact not found in {self.root}",
                coordinate=str(coordinate)
            )
        return path


class HttpArtifactFetcher:
    """Downloads artifacts over HTTP into a local cache.

    A file already present in the cache is returned without a request.

    Attributes:
        base_url: Repository URL
        cache_dir: Root of the local Maven-layout cache
        timeout: Request timeout in seconds
        max_retries: Maximum number of attempts per download
        retry_delay: Initial delay between retries in seconds
        retry_max_delay: Maximum delay between retries in seconds
    """

    def __init__(
            self,
            base_url: str,
            cache_dir: Union[str, Path] = "~/.extrepo/cache",
            timeout: float = 30.0,
            max_retries: int = 3,
            retry_delay: float = 1.0,
            retry_max_delay: float = 10.0,
            headers: Optional[Dict[str, str]] = None,
            client: Optional[httpx.Client] = None
    ) -> None:
        """Initialize an HTTP artifact fetcher.

        Args:
            base_url: Repository URL
            cache_dir: Root of the local Maven-layout cache
            timeout: Request timeout in seconds
            max_retries: Maximum number of attempts per download
            retry_delay: Initial delay between retries in seconds
            retry_max_delay: Maximum delay between retries in seconds
            headers: Extra HTTP headers for every request
            client: HTTP client to use instead of a new one
        """
        self.base_url = base_url.rstrip("/")
        self.cache_dir = Path(cache_dir).expanduser()
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.retry_max_delay = retry_max_delay
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            headers=self._get_headers(headers),
        )

    @staticmethod
    def _get_headers(extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"User-Agent": f"extrepo/{__version__}"}
        if extra:
            headers.update(extra)
        return headers

    def _retrying(self) -> Retrying:
        return Retrying(
            retry=retry_if_exception(_is_transient),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(
                multiplier=self.retry_delay,
                min=self.retry_delay,
                max=self.retry_max_delay
            ),
            reraise=True,
        )

    def fetch(self, coordinate: ArtifactCoordinate) -> Path:
        """Download an artifact unless it is already cached.

        Args:
            coordinate: Artifact coordinate

        Returns:
            Path of the artifact in the local cache

        Raises:
            ResolutionError: If the download fails after all retries
        """
        relative = artifact_path(coordinate)
        target = self.cache_dir / relative
        if target.is_file():
            logger.debug(f"Using cached artifact {target}")
            return target

        url = f"{self.base_url}/{relative}"
        try:
            self._retrying()(self._download, url, target)
        except httpx.HTTPStatusError as e:
            raise ResolutionError(
                f"Repository returned error: {e.response.status_code} for {url}",
                coordinate=str(coordinate)
            ) from e
        except httpx.HTTPError as e:
            raise ResolutionError(
                f"Failed to connect to repository: {e}",
                coordinate=str(coordinate)
            ) from e

        self._fetch_checksums(url, target)
        return target

    def _download(self, url: str, target: Path) -> None:
        logger.debug(f"Downloading {url}")
        target.parent.mkdir(parents=True, exist_ok=True)

        # Write next to the target and rename, so a partial download is never cached
        fd, temp_name = tempfile.mkstemp(dir=target.parent, suffix=".part")
        try:
            with os.fdopen(fd, "wb") as f:
                with self._client.stream("GET", url) as response:
                    response.raise_for_status()
                    for chunk in response.iter_bytes(chunk_size=8192):
                        f.write(chunk)
            os.replace(temp_name, target)
        except BaseException:
            if os.path.exists(temp_name):
                os.unlink(temp_name)
            raise

    def _fetch_checksums(self, url: str, target: Path) -> None:
        for extension in CHECKSUM_EXTENSIONS:
            sidecar = target.with_name(f"{target.name}.{extension}")
            try:
                response = self._client.get(f"{url}.{extension}")
            except httpx.HTTPError as e:
                logger.debug(f"No {extension} checksum for {url}: {e}")
                continue
            if response.is_success:
                sidecar.write_bytes(response.content)

    def get(self, url: str) -> httpx.Response:
        """GET ``url`` with the fetcher's retry policy.

        Raises:
            httpx.HTTPError: If the request fails after all retries
        """
        def _get() -> httpx.Response:
            response = self._client.get(url)
            response.raise_for_status()
            return response

        return self._retrying()(_get)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HttpArtifactFetcher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
