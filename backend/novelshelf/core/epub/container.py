"""OCF container access: the ZIP wrapper around an EPUB."""

import io
import logging
import posixpath
import zlib
from urllib.parse import unquote
from zipfile import BadZipFile, ZipFile

from lxml import etree

from novelshelf.core.epub.errors import FileFormatError, ResourceError
from novelshelf.core.epub.models import ArchiveEntry

logger = logging.getLogger(__name__)

# ZIP local file header
ZIP_SIGNATURE = b"PK\x03\x04"

CONTAINER_PATH = "META-INF/container.xml"
CONTAINER_NS = "urn:oasis:names:tc:opendocument:xmlns:container"


def xml_parser(recover: bool = False) -> etree.XMLParser:
    """XML parser that never touches the network or expands entities."""
    return etree.XMLParser(
        recover=recover,
        resolve_entities=False,
        no_network=True,
        remove_blank_text=False,
    )


def has_zip_signature(data: bytes) -> bool:
    return data[:4] == ZIP_SIGNATURE


def resolve_href(base_dir: str, href: str) -> str:
    """Resolve an href relative to a directory inside the archive."""
    path = unquote(href.split("#", 1)[0])
    if base_dir:
        path = posixpath.join(base_dir, path)
    path = posixpath.normpath(path)
    # Never escape the archive root
    while path.startswith("../"):
        path = path[3:]
    if path in (".", ".."):
        return ""
    return path.lstrip("/")


class EpubContainer:
    """Read-only view of an EPUB archive held in memory.

    Usage:
        with EpubContainer(data) as container:
            opf = container.read(container.opf_path)
    """

    def __init__(self, data: bytes):
        if not has_zip_signature(data):
            raise FileFormatError("Upload is not a ZIP archive (missing PK signature)")

        try:
            self.zip_file = ZipFile(io.BytesIO(data))
        except (BadZipFile, ValueError) as e:
            raise FileFormatError(f"Upload is not a readable ZIP archive: {e}") from e

        try:
            self.opf_path = self._find_package_path()
        except FileFormatError:
            self.zip_file.close()
            raise

        self.opf_dir = posixpath.dirname(self.opf_path)
        logger.debug("Package document at %s", self.opf_path)

    def _find_package_path(self) -> str:
        """Follow META-INF/container.xml to the package document."""
        try:
            content = self.zip_file.read(CONTAINER_PATH)
        except KeyError:
            raise FileFormatError(f"Missing container descriptor {CONTAINER_PATH}") from None
        except (BadZipFile, zlib.error) as e:
            raise FileFormatError(f"Unreadable container descriptor: {e}") from e

        try:
            tree = etree.fromstring(content, xml_parser())
        except etree.XMLSyntaxError as e:
            raise FileFormatError(f"Malformed container descriptor: {e}") from e

        rootfile = tree.find(".//{%s}rootfile" % CONTAINER_NS)
        if rootfile is None:
            # Some generators drop the namespace
            rootfile = tree.find(".//rootfile")

        full_path = rootfile.get("full-path", "").strip() if rootfile is not None else ""
        if not full_path:
            raise FileFormatError("Container descriptor has no rootfile pointer")
        return resolve_href("", full_path)

    def resolve(self, href: str) -> str:
        """Resolve href relative to the package document directory."""
        return resolve_href(self.opf_dir, href)

    def read(self, path: str) -> bytes:
        """Return the bytes of an archive entry.

        Raises:
            ResourceError: entry is missing, encrypted or corrupt
        """
        try:
            return self.zip_file.read(path)
        except KeyError:
            raise ResourceError(f"Missing archive entry {path}", ref=path) from None
        except (BadZipFile, zlib.error, RuntimeError, NotImplementedError) as e:
            raise ResourceError(f"Unreadable archive entry {path}: {e}", ref=path) from e

    def entry(self, path: str) -> ArchiveEntry:
        return ArchiveEntry(path=path, data=self.read(path))

    def close(self):
        """Close the ZIP file."""
        self.zip_file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
