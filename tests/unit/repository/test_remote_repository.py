"""Unit tests for the Maven-style artifact repository."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Callable, Dict, List, Tuple
from unittest.mock import MagicMock

import httpx
import pytest

from extrepo.extensions.metadata import ArtifactCoordinate
from extrepo.repository.remote import (
    RemoteArtifactRepository,
    parse_version_metadata,
    split_base_locator,
)
from extrepo.repository.verification import ChecksumVerifier
from extrepo.utils.exceptions import RepositoryError, ResolutionError, VerificationError

BASE_URL = "https://repo.example.org/maven2"
GROUP_URL = f"{BASE_URL}/org/example/ext"
BASE_LOCATOR = f"{BASE_URL},org.example.ext"

WIDGET_METADATA = b"""<?xml version="1.0" encoding="UTF-8"?>
<metadata>
  <groupId>org.example.ext</groupId>
  <artifactId>widget</artifactId>
  <versioning>
    <latest>1.1.0</latest>
    <release>1.1.0</release>
    <versions>
      <version>1.0.0</version>
      <version>1.1.0</version>
    </versions>
  </versioning>
</metadata>
"""


def _index(*links: str) -> bytes:
    anchors = "".join(f'<a href="{link}">{link}</a>\n' for link in links)
    return f"<html><body><pre>{anchors}</pre></body></html>".encode()


class FakeMavenServer:
    """In-memory artifact store served through an httpx mock transport."""

    def __init__(self, pom_text: Callable[..., str]) -> None:
        self.files: Dict[str, bytes] = {
            f"{GROUP_URL}/": _index(
                "../",
                "widget/",
                f"{GROUP_URL}/gadget/",
                "maven-metadata.xml",
                "https://elsewhere.example.org/other/",
            ),
            f"{GROUP_URL}/widget/maven-metadata.xml": WIDGET_METADATA,
            f"{GROUP_URL}/widget/1.0.0/widget-1.0.0.pom": pom_text(
                "org.example.ext", "widget", "1.0.0", name="Widget"
            ).encode(),
            f"{GROUP_URL}/widget/1.1.0/widget-1.1.0.pom": pom_text(
                "org.example.ext", "widget", "1.1.0", name="Widget"
            ).encode(),
            f"{GROUP_URL}/widget/1.1.0/widget-1.1.0.nar": b"widget package",
            f"{GROUP_URL}/gadget/": _index("../", "2.0/"),
            f"{GROUP_URL}/gadget/2.0/gadget-2.0.pom": pom_text(
                "org.example.ext", "gadget", "2.0", packaging="xml", category="template"
            ).encode(),
        }
        self.requests: List[str] = []
        self.failures: Dict[str, List[int]] = {}

    def fail(self, url: str, *statuses: int) -> None:
        """Answer the next requests for ``url`` with ``statuses``; 0 drops the connection."""
        self.failures.setdefault(url, []).extend(statuses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        pending = self.failures.get(url)
        if pending:
            status = pending.pop(0)
            if status == 0:
                raise httpx.ConnectError("connection reset", request=request)
            return httpx.Response(status)
        if url in self.files:
            return httpx.Response(200, content=self.files[url])
        return httpx.Response(404)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def server(pom_text: Callable[..., str]) -> FakeMavenServer:
    return FakeMavenServer(pom_text)


@pytest.fixture
def remote_repo(server: FakeMavenServer, tmp_path: Path) -> RemoteArtifactRepository:
    return RemoteArtifactRepository(
        "central",
        BASE_LOCATOR,
        client=server.client(),
        cache_dir=tmp_path / "cache",
        retry_delay=0.0,
        retry_max_delay=0.0,
    )


def test_split_base_locator() -> None:
    """Test parsing the URL and group namespace."""
    assert split_base_locator("https://repo/maven2/ , org.example") == ("https://repo/maven2", "org.example")

    with pytest.raises(ValueError):
        split_base_locator("https://repo/maven2")


def test_parse_version_metadata() -> None:
    """Test reading the release and version list."""
    preferred, versions = parse_version_metadata(WIDGET_METADATA)

    assert preferred == "1.1.0"
    assert versions == ["1.0.0", "1.1.0"]


def test_parse_version_metadata_without_release() -> None:
    """Test that the highest listed version is used when no release is named."""
    content = b"<metadata><versioning><versions><version>1.9</version><version>1.10</version></versions></versioning></metadata>"

    assert parse_version_metadata(content) == ("1.10", ["1.9", "1.10"])


def test_identity_is_base_locator(remote_repo: RemoteArtifactRepository) -> None:
    """Test that the comma-joined base locator identifies the repository."""
    assert remote_repo.identity == BASE_LOCATOR
    assert remote_repo.repo_type.value == "maven"
    assert remote_repo.group_id == "org.example.ext"


def test_lists_release_versions(remote_repo: RemoteArtifactRepository) -> None:
    """Test listing through the directory index, version metadata and POMs."""
    assert sorted(remote_repo.list_categories()) == ["processor", "template"]

    widget = remote_repo.list_extensions("processor")["Widget"]
    assert widget.version == "1.1.0"
    assert widget.locator_info == "org/example/ext/widget/1.1.0/widget-1.1.0.pom"

    gadget = remote_repo.list_extensions("template")["org.example.ext.gadget"]
    assert gadget.version == "2.0"
    assert gadget.packaging == "xml"


def test_all_versions(server: FakeMavenServer, tmp_path: Path) -> None:
    """Test that every version is scanned when requested; the newest keeps the key."""
    repo = RemoteArtifactRepository(
        "central", BASE_LOCATOR, client=server.client(), all_versions=True, cache_dir=tmp_path
    )

    repo.list_extensions()

    assert f"{GROUP_URL}/widget/1.0.0/widget-1.0.0.pom" in server.requests
    assert repo.list_extensions("processor")["Widget"].version == "1.1.0"


def test_unreadable_group_is_repository_error(tmp_path: Path) -> None:
    """Test that a missing group index fails the scan."""
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
    repo = RemoteArtifactRepository("central", BASE_LOCATOR, client=client, cache_dir=tmp_path)

    with pytest.raises(RepositoryError, match="Unable to read group"):
        repo.list_categories()


@pytest.mark.parametrize("failures", [(503,), (0,), (502, 0)])
def test_descriptor_read_is_retried(
        remote_repo: RemoteArtifactRepository,
        server: FakeMavenServer,
        failures: Tuple[int, ...]
) -> None:
    """Test that a POM read hitting transient failures is retried and still listed."""
    pom_url = f"{GROUP_URL}/widget/1.1.0/widget-1.1.0.pom"
    server.fail(pom_url, *failures)

    widget = remote_repo.list_extensions("processor")["Widget"]

    assert widget.version == "1.1.0"
    assert server.requests.count(pom_url) == len(failures) + 1


def test_descriptor_read_retries_are_bounded(
        remote_repo: RemoteArtifactRepository,
        server: FakeMavenServer
) -> None:
    """Test that a POM that keeps failing is skipped after the configured attempts."""
    pom_url = f"{GROUP_URL}/widget/1.1.0/widget-1.1.0.pom"
    server.fail(pom_url, 503, 503, 503, 503)

    listing = remote_repo.list_extensions()

    assert "Widget" not in listing
    assert "org.example.ext.gadget" in listing
    assert server.requests.count(pom_url) == 3


def test_descriptor_read_not_found_is_not_retried(
        remote_repo: RemoteArtifactRepository,
        server: FakeMavenServer
) -> None:
    """Test that a missing POM is skipped without retrying."""
    pom_url = f"{GROUP_URL}/widget/1.1.0/widget-1.1.0.pom"
    del server.files[pom_url]

    assert "Widget" not in remote_repo.list_extensions()
    assert server.requests.count(pom_url) == 1


def test_descriptor_reads_use_repository_fetcher(remote_repo: RemoteArtifactRepository) -> None:
    """Test that POM reads go through the repository fetcher rather than a bare request."""
    pom_url = f"{GROUP_URL}/widget/1.1.0/widget-1.1.0.pom"
    remote_repo._http.get = MagicMock(return_value=httpx.Response(200, content=b"<project/>"))

    remote_repo.parser.load(pom_url)

    remote_repo._http.get.assert_called_once_with(pom_url)


def test_resolve_downloads_into_cache(
        remote_repo: RemoteArtifactRepository,
        server: FakeMavenServer,
        tmp_path: Path
) -> None:
    """Test that resolution downloads the package into the Maven-layout cache."""
    widget = remote_repo.list_extensions("processor")["Widget"]

    package = widget.get_package()

    assert package == tmp_path / "cache" / "org" / "example" / "ext" / "widget" / "1.1.0" / "widget-1.1.0.nar"
    assert package.read_bytes() == b"widget package"
    assert widget.get_descriptor() == f"{GROUP_URL}/widget/1.1.0/widget-1.1.0.pom"


def test_resolve_missing_artifact(remote_repo: RemoteArtifactRepository, server: FakeMavenServer) -> None:
    """Test that a missing package is a resolution error naming the repository."""
    del server.files[f"{GROUP_URL}/widget/1.1.0/widget-1.1.0.nar"]
    widget = remote_repo.list_extensions("processor")["Widget"]

    with pytest.raises(ResolutionError) as exc_info:
        widget.get_package()

    assert exc_info.value.repo_id == "central"
    assert exc_info.value.coordinate == "org.example.ext:widget:nar:1.1.0"


def test_downloaded_checksum_is_verified(server: FakeMavenServer, tmp_path: Path) -> None:
    """Test that a checksum sidecar published by the store is checked."""
    package_url = f"{GROUP_URL}/widget/1.1.0/widget-1.1.0.nar"
    server.files[f"{package_url}.sha1"] = hashlib.sha1(b"tampered").hexdigest().encode()
    repo = RemoteArtifactRepository(
        "central", BASE_LOCATOR, client=server.client(), cache_dir=tmp_path, verifier=ChecksumVerifier()
    )

    with pytest.raises(VerificationError):
        repo.list_extensions("processor")["Widget"].get_package()


def test_custom_fetcher(server: FakeMavenServer, tmp_path: Path) -> None:
    """Test that resolution delegates to a supplied fetcher."""
    fetcher = MagicMock()
    fetcher.fetch.return_value = tmp_path / "widget.nar"
    repo = RemoteArtifactRepository("central", BASE_LOCATOR, client=server.client(), fetcher=fetcher)

    assert repo.list_extensions("processor")["Widget"].get_package() == tmp_path / "widget.nar"
    fetcher.fetch.assert_called_once_with(ArtifactCoordinate("org.example.ext", "widget", "nar", "1.1.0"))


def test_local_store(tmp_path: Path, pom_writer: Callable[..., Path]) -> None:
    """Test a store on disk, with and without version metadata."""
    pom_writer(tmp_path, "org.example", "widget", "1.0")
    pom_writer(tmp_path, "org.example", "widget", "1.2")
    pom_writer(tmp_path, "org.example", "gizmo", "3.0", package_content=None)

    repo = RemoteArtifactRepository("local", f"{tmp_path.as_uri()},org.example")

    listing = repo.list_extensions()
    assert sorted(listing) == ["org.example.gizmo", "org.example.widget"]
    assert listing["org.example.widget"].version == "1.2"
    assert listing["org.example.widget"].get_package() == (
        tmp_path / "org" / "example" / "widget" / "1.2" / "widget-1.2.nar"
    )

    with pytest.raises(ResolutionError):
        listing["org.example.gizmo"].get_package()


def test_local_store_metadata_release(tmp_path: Path, pom_writer: Callable[..., Path]) -> None:
    """Test that maven-metadata.xml selects the listed version on disk."""
    pom_writer(tmp_path, "org.example", "widget", "1.0")
    pom_writer(tmp_path, "org.example", "widget", "1.2")
    (tmp_path / "org" / "example" / "widget" / "maven-metadata.xml").write_text(
        "<metadata><versioning><release>1.0</release></versioning></metadata>"
    )

    repo = RemoteArtifactRepository("local", f"{tmp_path},org.example")

    assert repo.list_extensions()["org.example.widget"].version == "1.0"
