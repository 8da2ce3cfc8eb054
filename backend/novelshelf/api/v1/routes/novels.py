"""Novel import and library API routes."""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from novelshelf.api.dependencies import RequireAuth, ValidatedNovel, get_importer
from novelshelf.api.uploads import import_failed, read_epub_upload, read_image_upload, storage_failed
from novelshelf.config import settings
from novelshelf.core.epub import FatalImportError, StorageError
from novelshelf.core.library import NovelImporter, SqlContentStore
from novelshelf.models.database import get_db, Chapter, Language, Novel
from novelshelf.models.schemas import ChapterUpdateRequest, NovelImportOptions, NovelUpdateRequest


router = APIRouter()


def _novel_to_dict(novel: Novel, total_chapters: Optional[int] = None) -> dict:
    return {
        "id": novel.id,
        "title": novel.title,
        "author": novel.author,
        "description": novel.description,
        "cover_url": novel.cover_url,
        "genre": novel.genre or [],
        "status": novel.status,
        "is_official": novel.is_official,
        "is_must_read": novel.is_must_read,
        "view_count": novel.view_count,
        "total_chapters": total_chapters,
        "created_at": novel.created_at.isoformat() if novel.created_at else None,
    }


def _chapter_to_dict(chapter: Chapter, include_content: bool = True) -> dict:
    data = {
        "id": chapter.id,
        "novel_id": chapter.novel_id,
        "number": chapter.number,
        "title": chapter.title,
        "languages": chapter.languages(),
    }
    for lang in Language:
        if include_content:
            data[lang.content_field] = chapter.content_for(lang)
        data[lang.url_field] = getattr(chapter, lang.url_field)
    return data


@router.post("/novels/import")
async def import_novel(
    _auth: RequireAuth,
    file: UploadFile = File(...),
    language: Language = Form(Language(settings.default_language)),
    options: Optional[str] = Form(None),
    importer: NovelImporter = Depends(get_importer),
    db: AsyncSession = Depends(get_db),
):
    """Upload an EPUB and create a new novel in the chosen language.

    ``options`` is an optional JSON object with listing fields
    (genre, status, is_official, is_must_read).
    """
    try:
        extra = NovelImportOptions.model_validate_json(options) if options else NovelImportOptions()
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid options: {e.errors()}")

    data = await read_epub_upload(file)

    try:
        report = await importer.import_new(data, file.filename, language, extra.to_fields())
    except FatalImportError as e:
        raise import_failed(e)

    await db.commit()
    return report.to_dict()


@router.post("/novels/{novel_id}/languages/{language}")
async def add_novel_language(
    _auth: RequireAuth,
    novel: ValidatedNovel,
    language: Language,
    file: UploadFile = File(...),
    epub_url: Optional[str] = Form(None),
    importer: NovelImporter = Depends(get_importer),
    db: AsyncSession = Depends(get_db),
):
    """Add another language track to an existing novel.

    Chapters are matched by number: existing chapters get only this
    language's content, missing chapters are created.
    """
    data = await read_epub_upload(file)

    kwargs = {"epub_url": epub_url} if epub_url is not None else {}
    try:
        report = await importer.add_language(novel.id, data, file.filename, language, **kwargs)
    except FatalImportError as e:
        raise import_failed(e)

    await db.commit()
    return report.to_dict()


@router.get("/novels")
async def list_novels(db: AsyncSession = Depends(get_db)):
    """List all novels, newest first, with chapter counts."""
    counts = (
        select(Chapter.novel_id, func.count(Chapter.id).label("total"))
        .group_by(Chapter.novel_id)
        .subquery()
    )
    result = await db.execute(
        select(Novel, counts.c.total)
        .outerjoin(counts, counts.c.novel_id == Novel.id)
        .order_by(Novel.created_at.desc())
    )
    return [_novel_to_dict(novel, total or 0) for novel, total in result.all()]


@router.get("/novels/{novel_id}")
async def get_novel(novel: ValidatedNovel, db: AsyncSession = Depends(get_db)):
    """Get novel details with its chapter list (without content)."""
    chapters = await SqlContentStore(db).list_chapters_by_book(novel.id)
    data = _novel_to_dict(novel, len(chapters))
    data["chapters"] = [_chapter_to_dict(c, include_content=False) for c in chapters]
    return data


@router.patch("/novels/{novel_id}")
async def update_novel(
    _auth: RequireAuth,
    novel: ValidatedNovel,
    request: NovelUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Edit a novel's listing fields (title, status, flags and so on)."""
    fields = request.to_fields()
    if not fields:
        raise HTTPException(status_code=400, detail="Nothing to update")

    store = SqlContentStore(db)
    novel = await store.update_book(novel.id, fields)
    chapters = await store.list_chapters_by_book(novel.id)
    await db.commit()
    return _novel_to_dict(novel, len(chapters))


@router.post("/novels/{novel_id}/cover")
async def replace_novel_cover(
    _auth: RequireAuth,
    novel: ValidatedNovel,
    file: UploadFile = File(...),
    importer: NovelImporter = Depends(get_importer),
    db: AsyncSession = Depends(get_db),
):
    """Upload a new cover image for a novel, replacing the current one."""
    data, mime_type = await read_image_upload(file)

    try:
        cover_url = await importer.replace_cover(novel.id, data, mime_type)
    except StorageError as e:
        raise storage_failed(e)

    await db.commit()
    return {"novel_id": novel.id, "cover_url": cover_url}


@router.delete("/novels/{novel_id}")
async def delete_novel(
    _auth: RequireAuth,
    novel: ValidatedNovel,
    db: AsyncSession = Depends(get_db),
):
    """Delete a novel and all of its chapters."""
    await SqlContentStore(db).delete_book(novel.id)
    await db.commit()
    return {"status": "deleted", "id": novel.id}


@router.get("/novels/{novel_id}/chapters")
async def list_novel_chapters(novel: ValidatedNovel, db: AsyncSession = Depends(get_db)):
    """Get all chapters of a novel ordered by number."""
    chapters = await SqlContentStore(db).list_chapters_by_book(novel.id)
    return [_chapter_to_dict(c) for c in chapters]


@router.patch("/chapters/{chapter_id}")
async def update_chapter(
    _auth: RequireAuth,
    chapter_id: str,
    request: ChapterUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Edit a chapter's title or one language's content."""
    fields = request.to_fields()
    if not fields:
        raise HTTPException(status_code=400, detail="Nothing to update")

    try:
        chapter = await SqlContentStore(db).update_chapter(chapter_id, fields)
    except LookupError:
        raise HTTPException(status_code=404, detail="Chapter not found")

    await db.commit()
    return _chapter_to_dict(chapter)
