"""Descriptor document parsing.

Extracts identity fields from POM-like XML descriptor documents. Field
paths are "/"-separated and rooted under the document's top-level node,
so ``/groupId`` reads ``<project><groupId>`` and
``/properties/nifiExtensionType`` reads the category property.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Callable, Dict, Optional, Union
from urllib.parse import urlparse
from urllib.request import url2pathname

import httpx

from extrepo.utils.exceptions import DescriptorError

logger = logging.getLogger(__name__)

GROUP_ID_PATH = "/groupId"
ARTIFACT_ID_PATH = "/artifactId"
VERSION_PATH = "/version"
PACKAGING_PATH = "/packaging"
NAME_PATH = "/name"
DESCRIPTION_PATH = "/description"
CATEGORY_PATH = "/properties/nifiExtensionType"

BASIC_FIELD_PATHS = (
    GROUP_ID_PATH,
    ARTIFACT_ID_PATH,
    VERSION_PATH,
    PACKAGING_PATH,
    NAME_PATH,
    DESCRIPTION_PATH,
    CATEGORY_PATH,
)

ParseFieldSet = Dict[str, Optional[str]]
DocumentLocator = Union[str, Path]
UrlReader = Callable[[str], bytes]


def new_field_set(*extra_paths: str) -> ParseFieldSet:
    """Build a field set holding the basic field paths plus ``extra_paths``.

    Every value starts out as None.
    """
    return MetadataParser().new_field_set(*extra_paths)


class MetadataParser:
    """Reads field values out of descriptor documents.

    Attributes:
        root_tag: Expected top-level element, or None to accept any root
        category_path: Field path holding the extension category
        timeout: Timeout in seconds for descriptors fetched over HTTP
    """

    def __init__(
            self,
            root_tag: Optional[str] = "project",
            category_path: str = CATEGORY_PATH,
            timeout: float = 30.0,
            client: Optional[httpx.Client] = None,
            reader: Optional[UrlReader] = None
    ) -> None:
        """Initialize a metadata parser.

        Args:
            root_tag: Expected top-level element, or None to accept any root
            category_path: Field path holding the extension category
            timeout: Timeout in seconds for descriptors fetched over HTTP
            client: HTTP client to use for remote descriptors
            reader: Callable returning the bytes at an ``http(s)://`` URL;
                replaces the client, e.g. to apply a retry policy
        """
        self.root_tag = root_tag
        self.category_path = category_path
        self.timeout = timeout
        self._client = client
        self._reader = reader

    def with_reader(self, reader: UrlReader) -> MetadataParser:
        """Copy of this parser that reads remote documents through ``reader``."""
        return MetadataParser(
            root_tag=self.root_tag,
            category_path=self.category_path,
            timeout=self.timeout,
            reader=reader,
        )

    def new_field_set(self, *extra_paths: str) -> ParseFieldSet:
        """Build a request template for :meth:`parse`.

        Args:
            *extra_paths: Additional field paths to extract

        Returns:
            Mapping of the basic field paths and ``extra_paths`` to None;
            it always holds one entry per basic path plus one per extra path

        Raises:
            ValueError: If an extra path repeats a basic path or another extra path
        """
        paths = BASIC_FIELD_PATHS[:-1] + (self.category_path,) + extra_paths
        fields = dict.fromkeys(paths)
        if len(fields) != len(paths):
            duplicates = sorted({path for path in extra_paths if paths.count(path) > 1})
            raise ValueError(f"Duplicate field path(s): {', '.join(duplicates)}")
        return fields

    def parse(self, fields: ParseFieldSet, document: DocumentLocator) -> ParseFieldSet:
        """Fill ``fields`` with the values found in ``document``.

        Values present in ``fields`` on entry are overwritten. A field that
        is absent, empty or cannot be evaluated is set to None; a bad field
        path never aborts the parse.

        Args:
            fields: Field set whose keys name the paths to extract
            document: Path, ``file://`` URI or ``http(s)://`` URL of the document

        Returns:
            The same ``fields`` mapping, filled in

        Raises:
            DescriptorError: If the document cannot be read or is not well-formed
        """
        root = self.load(document)
        for path in fields:
            fields[path] = self._evaluate(root, path, document)
        return fields

    def load(self, document: DocumentLocator) -> ET.Element:
        """Read a descriptor document and return its root element.

        Namespaces are stripped from every tag.

        Raises:
            DescriptorError: If the document cannot be read or is not well-formed
        """
        locator = str(document)
        try:
            root = ET.fromstring(self._read(document))
        except (OSError, ET.ParseError, httpx.HTTPError) as e:
            raise DescriptorError(
                f"Unable to read descriptor document {locator}: {e}",
                document=locator
            ) from e

        for element in root.iter():
            if isinstance(element.tag, str) and element.tag.startswith("{"):
                element.tag = element.tag.split("}", 1)[1]

        if self.root_tag is not None and root.tag != self.root_tag:
            raise DescriptorError(
                f"Descriptor document {locator} has root element <{root.tag}>, "
                f"expected <{self.root_tag}>",
                document=locator
            )
        return root

    def _read(self, document: DocumentLocator) -> bytes:
        if isinstance(document, Path):
            return document.read_bytes()

        parsed = urlparse(document)
        if parsed.scheme in ("http", "https"):
            if self._reader is not None:
                return self._reader(document)
            if self._client is not None:
                response = self._client.get(document)
            else:
                response = httpx.get(document, timeout=self.timeout, follow_redirects=True)
            response.raise_for_status()
            return response.content
        if parsed.scheme == "file":
            return Path(url2pathname(parsed.path)).read_bytes()
        return Path(document).read_bytes()

    @staticmethod
    def _evaluate(root: ET.Element, path: str, document: DocumentLocator) -> Optional[str]:
        expression = path.strip().lstrip("/")
        try:
            if not expression:
                raise SyntaxError("empty field path")
            element = root.find(expression)
        except (SyntaxError, KeyError, ValueError, TypeError) as e:
            logger.warning(f"Cannot evaluate field path {path!r} in {document}: {e}")
            return None

        if element is None:
            return None
        value = "".join(element.itertext()).strip()
        return value or None
