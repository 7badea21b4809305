"""Maven-style artifact repository.

The base locator is ``"<url>,<group namespace>"``: the repository URL (an
``http(s)://`` URL, a ``file://`` URI or a plain directory) and the group
whose artifacts the repository offers. Listing walks the group directory,
reads each artifact's ``maven-metadata.xml`` for its versions and parses
the POM of every listed version.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from html.parser import HTMLParser
from pathlib import Path
from typing import List, Optional, Tuple, Union
from urllib.parse import urljoin, urlparse
from urllib.request import url2pathname

import httpx

from extrepo.extensions.parser import MetadataParser
from extrepo.extensions.spec import ExtensionSpec
from extrepo.repository.base import ExtensionRepository, RepositoryType, ScanResult, version_key
from extrepo.repository.fetch import (
    ArtifactFetcher,
    HttpArtifactFetcher,
    LocalArtifactFetcher,
    artifact_path,
)
from extrepo.repository.verification import PackageVerifier
from extrepo.utils.exceptions import RepositoryError, ResolutionError

logger = logging.getLogger(__name__)

METADATA_FILE = "maven-metadata.xml"


def split_base_locator(base_locator: str) -> Tuple[str, str]:
    """Split ``"<url>,<group namespace>"`` into its two parts.

    Raises:
        ValueError: If either part is missing
    """
    url, _, group_id = base_locator.partition(",")
    url, group_id = url.strip(), group_id.strip()
    if not url or not group_id:
        raise ValueError(
            f"Repository base must be '<url>,<group namespace>', got {base_locator!r}"
        )
    return url.rstrip("/"), group_id


def _local_root(url: str) -> Optional[Path]:
    parsed = urlparse(url)
    if parsed.scheme in ("http", "https"):
        return None
    if parsed.scheme == "file":
        return Path(url2pathname(parsed.path))
    return Path(url).expanduser()


class _LinkCollector(HTMLParser):
    """Collects the subdirectories linked from a repository directory index page.

    Links are resolved against the page URL; only direct children count.
    """

    def __init__(self, page_url: str) -> None:
        super().__init__()
        self.page_url = page_url if page_url.endswith("/") else page_url + "/"
        self.links: List[str] = []

    def handle_starttag(self, tag: str, attrs: List[Tuple[str, Optional[str]]]) -> None:
        if tag != "a":
            return
        href = dict(attrs).get("href")
        if not href or not href.endswith("/"):
            return
        target = urljoin(self.page_url, href)
        if not target.startswith(self.page_url):
            return
        name = target[len(self.page_url):].rstrip("/")
        if name and "/" not in name and name not in self.links:
            self.links.append(name)


def parse_version_metadata(content: bytes) -> Tuple[Optional[str], List[str]]:
    """Read the preferred version and all versions from ``maven-metadata.xml``.

    Returns:
        (release or latest version, all versions in document order)

    Raises:
        ET.ParseError: If the document is not well-formed
    """
    root = ET.fromstring(content)
    for element in root.iter():
        if isinstance(element.tag, str) and element.tag.startswith("{"):
            element.tag = element.tag.split("}", 1)[1]

    versions = [
        (element.text or "").strip()
        for element in root.findall("versioning/versions/version")
    ]
    versions = [v for v in versions if v]
    preferred = (
        root.findtext("versioning/release")
        or root.findtext("versioning/latest")
        or root.findtext("version")
    )
    preferred = preferred.strip() if preferred else None
    if not preferred and versions:
        preferred = max(versions, key=version_key)
    return preferred, versions


class RemoteArtifactRepository(ExtensionRepository):
    """Repository over one group namespace of a Maven-style artifact store.

    Only the release (or latest) version of each artifact is listed unless
    ``all_versions`` is set. Packages are produced by an
    :class:`ArtifactFetcher`; by default an :class:`HttpArtifactFetcher`
    for HTTP stores and a :class:`LocalArtifactFetcher` for stores on disk.
    """

    def __init__(
            self,
            repo_id: str,
            base_locator: str,
            authenticated: bool = False,
            authorized: bool = False,
            parser: Optional[MetadataParser] = None,
            verifier: Optional[PackageVerifier] = None,
            fetcher: Optional[ArtifactFetcher] = None,
            all_versions: bool = False,
            client: Optional[httpx.Client] = None,
            cache_dir: Union[str, Path] = "~/.extrepo/cache",
            timeout: float = 30.0,
            max_retries: int = 3,
            retry_delay: float = 1.0,
            retry_max_delay: float = 10.0
    ) -> None:
        """Initialize a remote artifact repository.

        Args:
            repo_id: Unique name of the repository
            base_locator: ``"<url>,<group namespace>"``
            authenticated: The base locator is a known repository
            authorized: The repository is approved as an extension source
            parser: Parser for descriptor documents
            verifier: Check run on every package this repository resolves
            fetcher: Produces package files; built from the URL if omitted
            all_versions: List every version instead of the release only
            client: HTTP client shared by index reads, POM reads and downloads
            cache_dir: Local cache for downloaded packages
            timeout: Request timeout in seconds
            max_retries: Maximum number of attempts per request
            retry_delay: Initial delay between retries in seconds
            retry_max_delay: Maximum delay between retries in seconds

        Raises:
            ValueError: If ``base_locator`` is malformed
        """
        self.base_url, self.group_id = split_base_locator(base_locator)
        self.all_versions = all_versions
        self._local = _local_root(self.base_url)
        self._http: Optional[HttpArtifactFetcher] = None
        if self._local is None:
            self._http = HttpArtifactFetcher(
                self.base_url,
                cache_dir=cache_dir,
                timeout=timeout,
                max_retries=max_retries,
                retry_delay=retry_delay,
                retry_max_delay=retry_max_delay,
                client=client,
            )

        if parser is None:
            parser = MetadataParser(timeout=timeout)
        if self._http is not None:
            # Descriptors are read with the download client and its retry policy
            parser = parser.with_reader(self._read_url)

        super().__init__(
            repo_id,
            RepositoryType.REMOTE_ARTIFACT,
            base_locator,
            authenticated=authenticated,
            authorized=authorized,
            parser=parser,
            verifier=verifier,
        )
        self.fetcher: ArtifactFetcher = fetcher or self._http or LocalArtifactFetcher(self._local)

    @property
    def group_path(self) -> str:
        return self.group_id.replace(".", "/")

    def _url(self, relative: str) -> str:
        return f"{self.base_url}/{relative}"

    def _list_children(self, relative: str) -> List[str]:
        if self._local is not None:
            directory = self._local / relative
            return sorted(p.name for p in directory.iterdir() if p.is_dir())

        response = self._http.get(self._url(relative) + "/")
        collector = _LinkCollector(str(response.url))
        collector.feed(response.text)
        return collector.links

    def _read_url(self, url: str) -> bytes:
        return self._http.get(url).content

    def _read_bytes(self, relative: str) -> bytes:
        if self._local is not None:
            return (self._local / relative).read_bytes()
        return self._read_url(self._url(relative))

    def _descriptor_locator(self, relative: str) -> Union[str, Path]:
        if self._local is not None:
            return (self._local / relative).resolve().as_uri()
        return self._url(relative)

    def _scan(self) -> ScanResult:
        try:
            artifacts = self._list_children(self.group_path)
        except (OSError, httpx.HTTPError) as e:
            raise RepositoryError(
                f"Unable to read group {self.group_id} from {self.base_url}: {e}",
                repo_id=self.repo_id
            ) from e

        listing: ScanResult = {}
        for artifact_id in artifacts:
            for version in self._artifact_versions(artifact_id):
                pom = f"{self.group_path}/{artifact_id}/{version}/{artifact_id}-{version}.pom"
                entry = self._read_descriptor(self._descriptor_locator(pom), locator_info=pom)
                if entry is not None:
                    self._add_entry(listing, *entry)
        return listing

    def _artifact_versions(self, artifact_id: str) -> List[str]:
        """Versions of one artifact to list; empty if none can be determined."""
        relative = f"{self.group_path}/{artifact_id}"
        try:
            preferred, versions = parse_version_metadata(
                self._read_bytes(f"{relative}/{METADATA_FILE}")
            )
        except (OSError, httpx.HTTPError, ET.ParseError) as e:
            logger.debug(f"No usable {METADATA_FILE} for {relative}: {e}")
            try:
                versions = self._list_children(relative)
            except (OSError, httpx.HTTPError) as e:
                logger.warning(f"Skipping artifact {artifact_id}: {e}")
                return []
            preferred = max(versions, key=version_key) if versions else None

        if self.all_versions:
            return versions or ([preferred] if preferred else [])
        return [preferred] if preferred else []

    def _fetch_package(self, spec: ExtensionSpec) -> Path:
        try:
            return self.fetcher.fetch(spec.coordinate)
        except ResolutionError as e:
            if e.repo_id is None:
                e.repo_id = self.repo_id
                e.details["repo_id"] = self.repo_id
            raise

    def _locate_descriptor(self, spec: ExtensionSpec) -> Optional[str]:
        pom = artifact_path(spec.coordinate, packaging="pom")
        return str(self._descriptor_locator(pom))

    def close(self) -> None:
        if self._http is not None:
            self._http.close()
