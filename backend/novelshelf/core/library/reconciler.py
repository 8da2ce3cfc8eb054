"""Merge a parsed chapter sequence into the chapters already stored for a novel.

Chapters are keyed by number. A chapter that already exists only gets the
imported language's columns written; a missing chapter is created with the
other languages left empty. Nothing here ever clears another language's
columns, so importing a second language never disturbs the first.

``plan_reconciliation`` is pure and needs no database. ``apply_reconciliation``
hands the plan to a ContentStore one chapter at a time.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from novelshelf.core.epub.errors import ReconciliationError
from novelshelf.core.epub.models import ParsedChapter
from novelshelf.core.library.store import ContentStore, NewChapter, StoredChapterLike
from novelshelf.models.database.enums import Language

logger = logging.getLogger(__name__)


class _Unchanged:
    def __repr__(self) -> str:
        return "UNCHANGED"


# Leave the language's EPUB URL column as it is
UNCHANGED: Any = _Unchanged()


@dataclass(frozen=True)
class ChapterUpdate:
    """Write ``fields`` onto an existing chapter row."""

    chapter_id: str
    number: int
    fields: dict[str, Optional[str]]


@dataclass
class ReconciliationPlan:
    """Instructions computed for one language import."""

    language: Language
    to_create: list[NewChapter] = field(default_factory=list)
    to_update: list[ChapterUpdate] = field(default_factory=list)

    def instructions(self) -> list[NewChapter | ChapterUpdate]:
        """All instructions in chapter-number order."""
        return sorted([*self.to_create, *self.to_update], key=lambda item: item.number)


@dataclass
class ReconciliationResult:
    """Outcome of applying a plan."""

    created: list[int] = field(default_factory=list)
    updated: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    errors: dict[int, str] = field(default_factory=dict)

    @property
    def error(self) -> Optional[ReconciliationError]:
        """Aggregate error for the failed chapters, if any."""
        if not self.failed:
            return None
        return ReconciliationError(self.failed, self.errors)

    def to_dict(self) -> dict:
        return {"created": self.created, "updated": self.updated, "failed": self.failed}


def plan_reconciliation(
    existing: Sequence[StoredChapterLike],
    parsed: Sequence[ParsedChapter],
    language: Language | str,
    epub_url: Optional[str] = UNCHANGED,
) -> ReconciliationPlan:
    """Compute create/update instructions for one language import.

    Args:
        existing: Stored chapters of the target novel
        parsed: Parsed chapters of the upload
        language: Language being imported
        epub_url: Value for the language's EPUB URL column. ``UNCHANGED``
            leaves it alone on updates, ``None`` clears it.

    Raises:
        ValueError: parsed chapters repeat a number
    """
    language = Language(language)
    by_number = {chapter.number: chapter for chapter in existing}

    seen: set[int] = set()
    plan = ReconciliationPlan(language=language)

    for chapter in parsed:
        if chapter.number in seen:
            raise ValueError(f"Duplicate parsed chapter number {chapter.number}")
        seen.add(chapter.number)

        stored = by_number.get(chapter.number)
        if stored is not None:
            fields = {language.content_field: chapter.content}
            if epub_url is not UNCHANGED:
                fields[language.url_field] = epub_url
            plan.to_update.append(ChapterUpdate(stored.id, chapter.number, fields))
        else:
            fields = {}
            for lang in Language:
                own = lang is language
                fields[lang.content_field] = chapter.content if own else None
                fields[lang.url_field] = epub_url if own and epub_url is not UNCHANGED else None
            plan.to_create.append(NewChapter(chapter.number, chapter.title, fields))

    logger.debug(
        "Reconciliation plan for %s: %d to create, %d to update",
        language.value,
        len(plan.to_create),
        len(plan.to_update),
    )
    return plan


async def apply_reconciliation(
    store: ContentStore,
    novel_id: str,
    plan: ReconciliationPlan,
) -> ReconciliationResult:
    """Apply a plan sequentially, continuing past failed chapters."""
    result = ReconciliationResult()

    for instruction in plan.instructions():
        number = instruction.number
        try:
            if isinstance(instruction, ChapterUpdate):
                await store.update_chapter(instruction.chapter_id, instruction.fields)
                result.updated.append(number)
            else:
                await store.create_chapters(novel_id, [instruction])
                result.created.append(number)
        except Exception as e:
            logger.warning("Chapter %d of novel %s failed to save: %s", number, novel_id, e)
            result.failed.append(number)
            result.errors[number] = str(e)

    logger.info(
        "Reconciled novel %s (%s): %d created, %d updated, %d failed",
        novel_id,
        plan.language.value,
        len(result.created),
        len(result.updated),
        len(result.failed),
    )
    return result
