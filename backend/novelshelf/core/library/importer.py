"""Import orchestration: parse an upload, store the cover, reconcile chapters.

Two entry points mirror the admin workflow:
- ``import_new``: create a novel from an EPUB in one language
- ``add_language``: merge an EPUB in another language into an existing novel

The novel header is written only after parsing has fully succeeded, so a
fatal parse error or a cancellation before reconciliation leaves the content
store untouched.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from novelshelf.core.epub.cover import decode_data_uri, image_extension
from novelshelf.core.epub.errors import FatalImportError, StorageError
from novelshelf.core.epub.models import ImportIssue, ImportState, ParsedBook
from novelshelf.core.epub.parser import EpubParser
from novelshelf.core.library.reconciler import (
    UNCHANGED,
    ReconciliationResult,
    apply_reconciliation,
    plan_reconciliation,
)
from novelshelf.core.library.store import ContentStore
from novelshelf.core.storage import ObjectStorage
from novelshelf.models.database.enums import Language

logger = logging.getLogger(__name__)


@dataclass
class ImportReport:
    """What an import did, including everything that degraded."""

    language: Language
    novel_id: Optional[str] = None
    title: Optional[str] = None
    chapter_count: int = 0
    cover_url: Optional[str] = None
    result: ReconciliationResult = field(default_factory=ReconciliationResult)
    issues: list[ImportIssue] = field(default_factory=list)
    states: list[ImportState] = field(default_factory=lambda: [ImportState.IDLE])

    @property
    def state(self) -> ImportState:
        return self.states[-1]

    def summary(self) -> str:
        """Short human-readable outcome."""
        text = f"Imported {self.chapter_count} chapters ({self.language.label})"
        error = self.result.error
        if error is not None:
            text += f"; {error.message}"
        warnings = len(self.issues) - (1 if error is not None else 0)
        if warnings:
            text += f"; {warnings} warnings"
        return text

    def to_dict(self) -> dict:
        return {
            "novel_id": self.novel_id,
            "title": self.title,
            "language": self.language.value,
            "total_chapters": self.chapter_count,
            "cover_url": self.cover_url,
            **self.result.to_dict(),
            "issues": [issue.to_dict() for issue in self.issues],
            "state": self.state.value,
            "summary": self.summary(),
        }


class NovelImporter:
    """Run EPUB imports against a content store and an object storage.

    Usage:
        importer = NovelImporter(SqlContentStore(db), LocalObjectStorage(path))
        report = await importer.import_new(data, "novel.epub", Language.EN)
    """

    def __init__(
        self,
        store: ContentStore,
        storage: ObjectStorage,
        parser: EpubParser | None = None,
        cover_prefix: str = "covers",
        max_retries: int = 3,
        retry_delay: float = 0.5,
    ):
        self.store = store
        self.storage = storage
        self.parser = parser or EpubParser()
        self.cover_prefix = cover_prefix.strip("/")
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay

    async def import_new(
        self,
        data: bytes,
        filename: Optional[str],
        language: Language | str,
        extra_fields: Optional[dict[str, Any]] = None,
    ) -> ImportReport:
        """Create a new novel from an EPUB.

        Raises:
            FileFormatError, PackageError: nothing has been persisted
        """
        report = ImportReport(language=Language(language))
        book = await self._parse(report, data, filename)

        if book.cover_data_uri:
            try:
                report.cover_url = await self.upload_cover(book.cover_data_uri)
            except StorageError as e:
                logger.warning("Cover upload failed, continuing without cover: %s", e.message)
                report.issues.append(ImportIssue.from_error(e))

        fields = {
            "title": book.title,
            "author": book.author,
            "description": book.description,
            "cover_url": report.cover_url,
            **(extra_fields or {}),
        }
        report.novel_id = await self.store.create_book(fields)

        await self._reconcile(report, book, existing=[])
        return report

    async def add_language(
        self,
        novel_id: str,
        data: bytes,
        filename: Optional[str],
        language: Language | str,
        epub_url: Optional[str] = UNCHANGED,
    ) -> ImportReport:
        """Merge an EPUB in ``language`` into an existing novel.

        Raises:
            FileFormatError, PackageError: nothing has been persisted
        """
        report = ImportReport(language=Language(language), novel_id=novel_id)
        book = await self._parse(report, data, filename)

        existing = await self.store.list_chapters_by_book(novel_id)
        await self._reconcile(report, book, existing, epub_url=epub_url)
        return report

    async def upload_cover(self, data_uri: str) -> str:
        """Upload a cover data URI and return its public URL.

        Raises:
            StorageError: the data URI is invalid or every upload attempt failed
        """
        try:
            mime_type, data = decode_data_uri(data_uri)
        except ValueError as e:
            raise StorageError(f"Invalid cover data: {e}") from e

        path = f"{self.cover_prefix}/{int(time.time() * 1000)}-cover.{image_extension(mime_type)}"
        return await self._upload_with_retry(path, data, mime_type)

    async def replace_cover(self, novel_id: str, data: bytes, mime_type: str) -> str:
        """Store a new cover image for a novel and point the novel at it.

        The blob path is derived from the novel id, so a later replacement
        overwrites the previous image.

        Raises:
            StorageError: every upload attempt failed
            LookupError: the novel does not exist
        """
        path = f"{self.cover_prefix}/{novel_id}-cover.{image_extension(mime_type)}"
        url = await self._upload_with_retry(path, data, mime_type)
        await self.store.update_book(novel_id, {"cover_url": url})
        logger.info("Replaced cover of novel %s with %s", novel_id, path)
        return url

    async def _upload_with_retry(self, path: str, data: bytes, mime_type: str) -> str:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                wait=wait_exponential(multiplier=self.retry_delay, max=10),
                reraise=True,
            ):
                with attempt:
                    return await self.storage.upload_blob(path, data, mime_type)
        except Exception as e:
            raise StorageError(f"Cover upload failed: {e}", ref=path) from e

    async def _parse(self, report: ImportReport, data: bytes, filename: Optional[str]) -> ParsedBook:
        def transition(state: ImportState) -> None:
            report.states.append(state)
            logger.debug("Import %s -> %s", report.states[-2].value, state.value)

        try:
            book = await self.parser.parse(data, filename, on_state=transition)
        except FatalImportError as e:
            transition(ImportState.FAILED)
            logger.warning("Import of %s failed (%s): %s", filename, e.kind, e.message)
            raise

        report.title = book.title
        report.chapter_count = len(book.chapters)
        report.issues.extend(book.issues)
        return book

    async def _reconcile(
        self,
        report: ImportReport,
        book: ParsedBook,
        existing: list,
        epub_url: Optional[str] = UNCHANGED,
    ) -> None:
        report.states.append(ImportState.RECONCILING)
        plan = plan_reconciliation(existing, book.chapters, report.language, epub_url=epub_url)
        report.result = await apply_reconciliation(self.store, report.novel_id, plan)

        error = report.result.error
        if error is not None:
            report.issues.append(ImportIssue.from_error(error))

        report.states.append(ImportState.DONE)
        logger.info("Import of '%s' finished: %s", report.title, report.summary())
