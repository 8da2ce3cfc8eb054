"""EPUB parser: container, package, chapters and cover in one call."""

import asyncio
import logging
from typing import Callable, Optional

from novelshelf.core.epub.container import EpubContainer, has_zip_signature
from novelshelf.core.epub.content import ChapterExtractor, ExtractorConfig
from novelshelf.core.epub.cover import resolve_cover
from novelshelf.core.epub.errors import FileFormatError, PackageError, ResourceError, StorageError
from novelshelf.core.epub.models import ImportIssue, ImportState, ParsedBook
from novelshelf.core.epub.package import parse_package

logger = logging.getLogger(__name__)

StateCallback = Callable[[ImportState], None]


def check_upload(data: bytes, filename: Optional[str] = None) -> list[ImportIssue]:
    """Validate an upload before parsing.

    The ZIP signature is authoritative; the file extension is advisory and
    only produces a warning.

    Raises:
        FileFormatError: upload is not a ZIP archive
    """
    if not has_zip_signature(data):
        raise FileFormatError("Upload is not a ZIP archive (missing PK signature)")

    issues = []
    if filename and not filename.lower().endswith(".epub"):
        logger.warning("Upload %s does not have an .epub extension", filename)
        issues.append(
            ImportIssue(kind="warning", message="File name does not end with .epub", ref=filename)
        )
    return issues


class EpubParser:
    """Parse EPUB bytes into a ParsedBook.

    Parsing has no side effects: the same bytes always produce an equal
    ParsedBook.

    Usage:
        parser = EpubParser()
        book = await parser.parse(data, filename="novel.epub")
    """

    def __init__(self, config: ExtractorConfig | None = None):
        self.extractor = ChapterExtractor(config)

    async def parse(
        self,
        data: bytes,
        filename: Optional[str] = None,
        on_state: Optional[StateCallback] = None,
    ) -> ParsedBook:
        """Parse an upload.

        Raises:
            FileFormatError: not a ZIP, or no container descriptor/rootfile
            PackageError: package document missing, malformed, untitled or
                without a spine
        """
        notify = on_state or (lambda state: None)

        notify(ImportState.PARSING)
        issues = check_upload(data, filename)

        with EpubContainer(data) as container:
            try:
                opf_content = container.read(container.opf_path)
            except ResourceError as e:
                raise PackageError(f"Package document not found: {container.opf_path}") from e

            package = parse_package(opf_content, container.opf_dir)
            issues.extend(package.issues)
            logger.info(
                "Parsed package '%s': %d manifest items, %d spine entries",
                package.title,
                len(package.manifest),
                len(package.spine),
            )

            notify(ImportState.EXTRACTING)
            (chapters, chapter_issues), (cover_data_uri, cover_issue) = await asyncio.gather(
                self.extractor.extract_chapters(container, package),
                self._extract_cover(container, package),
            )

        issues.extend(chapter_issues)
        if cover_issue is not None:
            issues.append(cover_issue)

        return ParsedBook(
            title=package.title,
            author=package.author,
            description=package.description,
            cover_data_uri=cover_data_uri,
            chapters=chapters,
            language=package.language,
            issues=issues,
        )

    async def _extract_cover(self, container, package) -> tuple[Optional[str], Optional[ImportIssue]]:
        """Resolve the cover, turning load failures into an issue."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, resolve_cover, container, package), None
        except StorageError as e:
            logger.warning("Cover skipped: %s", e.message)
            return None, ImportIssue.from_error(e)


async def parse_epub(
    data: bytes,
    filename: Optional[str] = None,
    config: ExtractorConfig | None = None,
) -> ParsedBook:
    """Convenience wrapper around EpubParser.parse."""
    return await EpubParser(config).parse(data, filename)
