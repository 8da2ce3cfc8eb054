"""Content store: persistence of novels and chapters.

The import pipeline only talks to the ``ContentStore`` protocol; the
SQLAlchemy implementation below is what the API wires in.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from novelshelf.models.database.chapter import Chapter
from novelshelf.models.database.enums import Language
from novelshelf.models.database.novel import Novel

logger = logging.getLogger(__name__)

# Chapter columns an update may touch
CHAPTER_UPDATE_FIELDS = {"title"} | {
    name for lang in Language for name in (lang.content_field, lang.url_field)
}

NOVEL_FIELDS = {
    "title", "author", "description", "cover_url", "genre",
    "status", "is_official", "is_must_read",
}


@dataclass(frozen=True)
class NewChapter:
    """A chapter row to be created."""

    number: int
    title: str
    fields: dict[str, Optional[str]] = field(default_factory=dict)


class StoredChapterLike(Protocol):
    id: str
    number: int


class ContentStore(Protocol):
    """Create/read/update operations the importer needs."""

    async def create_book(self, fields: dict[str, Any]) -> str: ...

    async def update_book(self, novel_id: str, fields: dict[str, Any]) -> Any: ...

    async def create_chapters(self, novel_id: str, chapters: Sequence[NewChapter]) -> list[Any]: ...

    async def update_chapter(self, chapter_id: str, fields: dict[str, Any]) -> Any: ...

    async def list_chapters_by_book(self, novel_id: str) -> list[Any]: ...


class SqlContentStore:
    """ContentStore backed by an AsyncSession.

    Chapter writes run inside a SAVEPOINT so one failed write is rolled back
    on its own; committing the session is left to the caller.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_book(self, fields: dict[str, Any]) -> str:
        unknown = set(fields) - NOVEL_FIELDS
        if unknown:
            raise ValueError(f"Unknown novel fields: {sorted(unknown)}")

        novel = Novel(**fields)
        self.session.add(novel)
        await self.session.flush()  # Get novel.id
        logger.info("Created novel %s ('%s')", novel.id, novel.title)
        return novel.id

    async def update_book(self, novel_id: str, fields: dict[str, Any]) -> Novel:
        """Set listing fields on a novel.

        Raises:
            LookupError: no novel with this id
        """
        unknown = set(fields) - NOVEL_FIELDS
        if unknown:
            raise ValueError(f"Unknown novel fields: {sorted(unknown)}")

        novel = await self.session.get(Novel, novel_id)
        if novel is None:
            raise LookupError(f"Novel {novel_id} not found")
        for name, value in fields.items():
            setattr(novel, name, value)
        await self.session.flush()
        logger.info("Updated novel %s: %s", novel_id, ", ".join(sorted(fields)))
        return novel

    async def delete_book(self, novel_id: str) -> None:
        """Delete a novel together with all of its chapters."""
        novel = await self.session.get(Novel, novel_id)
        if novel is None:
            raise LookupError(f"Novel {novel_id} not found")
        await self.session.delete(novel)  # Cascades to chapters
        await self.session.flush()
        logger.info("Deleted novel %s ('%s')", novel_id, novel.title)

    async def create_chapters(self, novel_id: str, chapters: Sequence[NewChapter]) -> list[Chapter]:
        rows = []
        async with self.session.begin_nested():
            for new in chapters:
                unknown = set(new.fields) - CHAPTER_UPDATE_FIELDS
                if unknown:
                    raise ValueError(f"Unknown chapter fields: {sorted(unknown)}")
                row = Chapter(novel_id=novel_id, number=new.number, title=new.title, **new.fields)
                self.session.add(row)
                rows.append(row)
            await self.session.flush()
        return rows

    async def update_chapter(self, chapter_id: str, fields: dict[str, Any]) -> Chapter:
        unknown = set(fields) - CHAPTER_UPDATE_FIELDS
        if unknown:
            raise ValueError(f"Unknown chapter fields: {sorted(unknown)}")

        async with self.session.begin_nested():
            chapter = await self.session.get(Chapter, chapter_id)
            if chapter is None:
                raise LookupError(f"Chapter {chapter_id} not found")
            for name, value in fields.items():
                setattr(chapter, name, value)
            await self.session.flush()
        return chapter

    async def list_chapters_by_book(self, novel_id: str) -> list[Chapter]:
        result = await self.session.execute(
            select(Chapter).where(Chapter.novel_id == novel_id).order_by(Chapter.number)
        )
        return list(result.scalars().all())
