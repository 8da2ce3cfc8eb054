"""EPUB preview API routes."""

from fastapi import APIRouter, Depends, File, UploadFile

from novelshelf.api.dependencies import get_epub_parser
from novelshelf.api.uploads import import_failed, read_epub_upload
from novelshelf.core.epub import EpubParser, FatalImportError

router = APIRouter()


@router.post("/epub/preview")
async def preview_epub(
    file: UploadFile = File(...),
    parser: EpubParser = Depends(get_epub_parser),
):
    """Parse an EPUB without storing anything.

    Returns the parsed book plus every recoverable issue met on the way, so
    an admin can check chapter numbering before importing.
    """
    data = await read_epub_upload(file)

    try:
        book = await parser.parse(data, file.filename)
    except FatalImportError as e:
        raise import_failed(e)

    result = book.to_dict()
    result["language"] = book.language
    result["issues"] = [issue.to_dict() for issue in book.issues]
    return result
