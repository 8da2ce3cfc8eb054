"""OPF package document parsing: metadata, manifest and spine."""

import logging
import mimetypes
import re
from dataclasses import replace
from typing import Optional

from lxml import etree

from novelshelf.core.epub.container import resolve_href, xml_parser
from novelshelf.core.epub.errors import PackageError, ResourceError
from novelshelf.core.epub.models import ImportIssue, ManifestItem, PackageDocument

logger = logging.getLogger(__name__)


# =============================================================================
# Standard XML Namespaces (EPUB specification - do not modify)
# =============================================================================

OPF_NS = "http://www.idpf.org/2007/opf"
DC_NS = "http://purl.org/dc/elements/1.1/"

NCX_MEDIA_TYPE = "application/x-dtbncx+xml"
COVER_IMAGE_PROPERTY = "cover-image"


def _find(parent: etree._Element, namespace: str, tag: str) -> Optional[etree._Element]:
    """Find a descendant with or without its namespace."""
    element = parent.find(".//{%s}%s" % (namespace, tag))
    if element is None:
        element = parent.find(".//%s" % tag)
    return element


def _findall(parent: etree._Element, namespace: str, tag: str) -> list[etree._Element]:
    return parent.findall(".//{%s}%s" % (namespace, tag)) or parent.findall(".//%s" % tag)


def _text(element: Optional[etree._Element]) -> Optional[str]:
    """Whitespace-normalized text content, or None when blank."""
    if element is None:
        return None
    text = re.sub(r"\s+", " ", "".join(element.itertext())).strip()
    return text or None


def _looks_like_image(media_type: str, path: str) -> bool:
    if media_type.startswith("image/"):
        return True
    guessed, _ = mimetypes.guess_type(path)
    return bool(guessed and guessed.startswith("image/"))


def parse_package(content: bytes, opf_dir: str = "") -> PackageDocument:
    """Parse package document bytes.

    Args:
        content: Raw OPF bytes
        opf_dir: Archive directory of the package document; manifest hrefs
            are resolved against it

    Returns:
        PackageDocument with recoverable problems listed in ``issues``

    Raises:
        PackageError: document is not XML, or title or spine is missing
    """
    try:
        tree = etree.fromstring(content, xml_parser())
    except etree.XMLSyntaxError as e:
        raise PackageError(f"Package document is not well-formed XML: {e}") from e

    issues: list[ImportIssue] = []

    # Metadata
    metadata = _find(tree, OPF_NS, "metadata")
    if metadata is None:
        raise PackageError("Package document has no metadata block")

    title = _text(_find(metadata, DC_NS, "title"))
    if not title:
        raise PackageError("Package document has no title")

    creators = [_text(c) for c in _findall(metadata, DC_NS, "creator")]
    creators = [c for c in creators if c]
    author = ", ".join(dict.fromkeys(creators)) or None
    description = _text(_find(metadata, DC_NS, "description"))
    language = _text(_find(metadata, DC_NS, "language"))

    # EPUB 2 cover cross-reference: <meta name="cover" content="item-id"/>
    cover_ref = None
    for meta in _findall(metadata, OPF_NS, "meta"):
        if meta.get("name") == "cover" and meta.get("content"):
            cover_ref = meta.get("content").strip()
            break

    # Manifest
    manifest: dict[str, ManifestItem] = {}
    for item in _findall(tree, OPF_NS, "item"):
        item_id = item.get("id")
        href = item.get("href")
        if not item_id or not href:
            continue
        properties = tuple((item.get("properties") or "").split())
        manifest[item_id] = ManifestItem(
            id=item_id,
            href=href,
            path=resolve_href(opf_dir, href),
            media_type=(item.get("media-type") or "").strip().lower(),
            properties=properties,
        )

    cover_id = _pick_cover(manifest, cover_ref)
    if cover_id is not None:
        manifest[cover_id] = replace(manifest[cover_id], is_cover_image=True)

    # Spine (reading order)
    spine_elem = _find(tree, OPF_NS, "spine")
    if spine_elem is None:
        raise PackageError("Package document has no spine")

    spine: list[str] = []
    for itemref in _findall(spine_elem, OPF_NS, "itemref"):
        idref = itemref.get("idref")
        if not idref:
            continue
        if idref not in manifest:
            error = ResourceError(f"Spine references unknown manifest id {idref}", ref=idref)
            issues.append(ImportIssue.from_error(error))
            logger.warning("%s", error.message)
            continue
        if idref in spine:
            issues.append(
                ImportIssue(kind="warning", message=f"Duplicate spine entry {idref} ignored", ref=idref)
            )
            continue
        spine.append(idref)

    if not spine:
        raise PackageError("Package spine is empty")

    return PackageDocument(
        title=title,
        author=author,
        description=description,
        language=language,
        manifest=manifest,
        spine=spine,
        issues=issues,
    )


def _pick_cover(manifest: dict[str, ManifestItem], cover_ref: Optional[str]) -> Optional[str]:
    """Choose the single cover image.

    Precedence: explicit ``cover-image`` manifest property, then the metadata
    cross-reference. Ties resolve in manifest document order.
    """
    for item_id, item in manifest.items():
        if COVER_IMAGE_PROPERTY in item.properties:
            return item_id

    if cover_ref and cover_ref in manifest:
        item = manifest[cover_ref]
        if _looks_like_image(item.media_type, item.path):
            return cover_ref
        logger.debug("Cover reference %s is not an image (%s)", cover_ref, item.media_type)

    return None
