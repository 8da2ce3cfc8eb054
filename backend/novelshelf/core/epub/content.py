"""Chapter extraction from spine documents.

Each spine document becomes one chapter. Titles come from the first heading
in the body; the content is either the body markup (for the reader) or its
plain text, depending on configuration. Resources are loaded concurrently
but chapters are always numbered and returned in spine order.
"""

import asyncio
import copy
import html
import logging
import mimetypes
import re
from dataclasses import dataclass, field
from html.entities import name2codepoint
from typing import Literal, Optional

from lxml import etree
from lxml import html as lxml_html

from novelshelf.core.epub.container import EpubContainer, xml_parser
from novelshelf.core.epub.errors import ResourceError
from novelshelf.core.epub.models import (
    ImportIssue,
    ManifestItem,
    PackageDocument,
    ParsedChapter,
)
from novelshelf.core.epub.package import NCX_MEDIA_TYPE

logger = logging.getLogger(__name__)

XHTML_NS = "http://www.w3.org/1999/xhtml"

DOCUMENT_MEDIA_TYPES = {
    "application/xhtml+xml",
    "text/html",
    "application/xml",
    "text/xml",
}

# Entities every XML parser knows without a DTD
XML_PREDEFINED_ENTITIES = {"amp", "lt", "gt", "quot", "apos"}

ENTITY_REF_RE = re.compile(rb"&([A-Za-z][A-Za-z0-9]*);")

HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")

# Tags whose end starts a new line in plain-text output
BLOCK_TAGS = {
    "p", "div", "section", "article", "aside", "header", "footer", "main",
    "blockquote", "pre", "li", "dt", "dd", "tr", "figcaption", "hr", "br",
    *HEADING_TAGS,
}


# =============================================================================
# Extractor Configuration
# =============================================================================

@dataclass
class ExtractorConfig:
    """Configuration options for chapter extraction."""

    # "html" keeps body markup for the reader, "text" keeps plain text only
    content_format: Literal["html", "text"] = "html"

    # Drop nav, NCX, non-document and cover-image spine entries before numbering
    skip_non_chapter_spine: bool = True

    # Maximum number of spine documents loaded at the same time
    concurrency: int = 8

    # Headings longer than this are treated as body text, not titles
    max_title_length: int = 300

    # Elements removed from content entirely
    stripped_tags: set[str] = field(default_factory=lambda: {"script", "style", "noscript"})

    @classmethod
    def from_settings(cls, settings) -> "ExtractorConfig":
        return cls(
            content_format=settings.content_format,
            skip_non_chapter_spine=settings.skip_non_chapter_spine,
            concurrency=max(1, settings.chapter_load_concurrency),
        )


DEFAULT_CONFIG = ExtractorConfig()


def fallback_title(number: int) -> str:
    return f"Chapter {number}"


def _is_document(item: ManifestItem) -> bool:
    if item.media_type:
        return item.media_type in DOCUMENT_MEDIA_TYPES
    guessed, _ = mimetypes.guess_type(item.path)
    return guessed in DOCUMENT_MEDIA_TYPES or item.path.lower().endswith((".xhtml", ".htm", ".html"))


def is_chapter_item(item: ManifestItem) -> bool:
    """Whether a spine entry counts as a chapter."""
    if item.is_nav or item.is_cover_image:
        return False
    if item.media_type == NCX_MEDIA_TYPE:
        return False
    return _is_document(item)


def _local_name(element: etree._Element) -> str:
    if not isinstance(element.tag, str):
        return ""
    return etree.QName(element).localname.lower()


def _normalize(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def resolve_html_entities(data: bytes) -> bytes:
    """Rewrite HTML named entities as numeric character references.

    XHTML chapters routinely use entities such as &nbsp; that only an external
    DTD defines. The XML parser never loads DTDs, so they are rewritten before
    parsing. The XML predefined entities and unknown names are left alone.
    """

    def replace(match: re.Match) -> bytes:
        name = match.group(1).decode("ascii")
        if name in XML_PREDEFINED_ENTITIES or name not in name2codepoint:
            return match.group(0)
        return b"&#%d;" % name2codepoint[name]

    return ENTITY_REF_RE.sub(replace, data)


def _drop_element(element: etree._Element) -> None:
    """Remove an element but keep its tail text in the document."""
    parent = element.getparent()
    if parent is None:
        return
    tail = element.tail or ""
    if tail:
        previous = element.getprevious()
        if previous is not None:
            previous.tail = (previous.tail or "") + tail
        else:
            parent.text = (parent.text or "") + tail
    parent.remove(element)


class ChapterExtractor:
    """Turn spine documents into numbered chapters.

    Usage:
        extractor = ChapterExtractor()
        chapters, issues = await extractor.extract_chapters(container, package)
    """

    def __init__(self, config: ExtractorConfig | None = None):
        self.config = config or DEFAULT_CONFIG

    def chapter_items(self, package: PackageDocument) -> list[ManifestItem]:
        """Spine items that will be numbered as chapters, in reading order."""
        items = package.spine_items()
        if not self.config.skip_non_chapter_spine:
            return items

        kept = []
        for item in items:
            if is_chapter_item(item):
                kept.append(item)
            else:
                logger.debug("Skipping non-chapter spine entry %s (%s)", item.id, item.media_type)
        return kept

    async def extract_chapters(
        self,
        container: EpubContainer,
        package: PackageDocument,
    ) -> tuple[list[ParsedChapter], list[ImportIssue]]:
        """Load and parse every chapter document.

        Returns:
            (chapters numbered 1..N in spine order, recoverable issues)
        """
        items = self.chapter_items(package)
        semaphore = asyncio.Semaphore(self.config.concurrency)
        loop = asyncio.get_running_loop()

        # Indexed by spine position; completion order does not matter
        slots: list[Optional[tuple[ParsedChapter, Optional[ImportIssue]]]] = [None] * len(items)

        async def load(index: int, item: ManifestItem) -> None:
            number = index + 1
            async with semaphore:
                slots[index] = await loop.run_in_executor(
                    None, self._load_chapter, container, item, number
                )

        await asyncio.gather(*(load(i, item) for i, item in enumerate(items)))

        chapters: list[ParsedChapter] = []
        issues: list[ImportIssue] = []
        for chapter, issue in slots:
            chapters.append(chapter)
            if issue is not None:
                issues.append(issue)

        logger.info("Extracted %d chapters (%d degraded)", len(chapters), len(issues))
        return chapters, issues

    def _load_chapter(
        self,
        container: EpubContainer,
        item: ManifestItem,
        number: int,
    ) -> tuple[ParsedChapter, Optional[ImportIssue]]:
        """Read and parse one chapter, degrading on resource errors."""
        try:
            entry = container.entry(item.path)
            return self.parse_chapter(entry.data, number, ref=item.id), None
        except ResourceError as e:
            logger.warning("Chapter %d (%s) degraded: %s", number, item.id, e.message)
            error = ResourceError(e.message, ref=item.id)
            return ParsedChapter(number, fallback_title(number), ""), ImportIssue.from_error(error)

    def parse_chapter(self, data: bytes, number: int, ref: Optional[str] = None) -> ParsedChapter:
        """Parse one chapter document.

        Raises:
            ResourceError: document cannot be parsed at all
        """
        root = self._parse_document(data, ref)

        body = root.find(".//{%s}body" % XHTML_NS)
        if body is None:
            body = root.find(".//body")
        if body is None:
            body = root

        body = copy.deepcopy(body)
        etree.strip_elements(body, etree.Comment, etree.ProcessingInstruction, with_tail=False)
        self._strip_namespaces(body)
        for element in list(body.iter(*self.config.stripped_tags)):
            _drop_element(element)

        title = fallback_title(number)
        heading = self._find_title_heading(body)
        if heading is not None:
            title = _normalize("".join(heading.itertext()))
            _drop_element(heading)

        if self.config.content_format == "text":
            content = self._plain_text(body)
        else:
            content = self._inner_html(body)

        return ParsedChapter(number=number, title=title, content=content)

    def _parse_document(self, data: bytes, ref: Optional[str]) -> etree._Element:
        """Parse XHTML with proper XML handling, falling back to HTML."""
        data = resolve_html_entities(data)
        root = None
        try:
            root = etree.fromstring(data, xml_parser(recover=True))
        except etree.XMLSyntaxError:
            root = None

        if root is None:
            try:
                root = lxml_html.fromstring(data)
            except (etree.ParserError, etree.XMLSyntaxError, ValueError) as e:
                raise ResourceError(f"Unparseable chapter document: {e}", ref=ref) from e
        return root

    @staticmethod
    def _strip_namespaces(root: etree._Element) -> None:
        for element in root.iter():
            if isinstance(element.tag, str) and element.tag.startswith("{"):
                element.tag = etree.QName(element).localname
        etree.cleanup_namespaces(root)

    def _find_title_heading(self, body: etree._Element) -> Optional[etree._Element]:
        """First non-empty heading in document order."""
        for element in body.iter(*HEADING_TAGS):
            text = _normalize("".join(element.itertext()))
            if text and len(text) <= self.config.max_title_length:
                return element
        return None

    @staticmethod
    def _inner_html(body: etree._Element) -> str:
        parts = [html.escape(body.text or "", quote=False)]
        for child in body:
            parts.append(etree.tostring(child, encoding="unicode", method="html", with_tail=True))
        return "".join(parts).strip()

    @staticmethod
    def _plain_text(body: etree._Element) -> str:
        for element in body.iter():
            if _local_name(element) in BLOCK_TAGS:
                element.text = "\n" + (element.text or "")
                element.tail = "\n" + (element.tail or "")
        lines = (_normalize(line) for line in "".join(body.itertext()).split("\n"))
        return "\n\n".join(line for line in lines if line)
