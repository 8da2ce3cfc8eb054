"""Upload reading and error translation shared by the routes."""

import asyncio
import mimetypes

from fastapi import HTTPException, UploadFile

from novelshelf.config import settings
from novelshelf.core.epub import FatalImportError, StorageError
from novelshelf.core.epub.cover import IMAGE_TYPE_ALIASES, IMAGE_TYPES


def _read_upload_with_limit(file_obj, max_size: int) -> bytes:
    """Read an uploaded file into memory with size limit validation.

    Reads the file in chunks and enforces max size during the read.
    This protects against clients that lie about Content-Length.
    """
    chunk_size = 1024 * 1024  # 1MB chunks
    chunks = []
    total_read = 0

    while True:
        chunk = file_obj.read(chunk_size)
        if not chunk:
            break
        total_read += len(chunk)
        if total_read > max_size:
            raise ValueError(f"File exceeds maximum size of {max_size // (1024*1024)}MB")
        chunks.append(chunk)

    return b"".join(chunks)


async def _read_upload(file: UploadFile) -> bytes:
    max_size = settings.max_upload_size_mb * 1024 * 1024  # Convert to bytes
    if file.size and file.size > max_size:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size is {settings.max_upload_size_mb}MB"
        )

    loop = asyncio.get_running_loop()
    try:
        data = await loop.run_in_executor(None, _read_upload_with_limit, file.file, max_size)
    except ValueError as e:
        raise HTTPException(status_code=413, detail=str(e))

    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    return data


async def read_epub_upload(file: UploadFile) -> bytes:
    """Validate and read an EPUB upload.

    The extension is not checked here; the parser treats it as advisory and
    relies on the ZIP signature instead.
    """
    return await _read_upload(file)


async def read_image_upload(file: UploadFile) -> tuple[bytes, str]:
    """Validate and read an image upload.

    Returns:
        (image bytes, normalized mime type)
    """
    mime_type = (file.content_type or "").split(";")[0].strip().lower()
    mime_type = IMAGE_TYPE_ALIASES.get(mime_type, mime_type)
    if mime_type not in IMAGE_TYPES:
        guessed, _ = mimetypes.guess_type(file.filename or "")
        if guessed not in IMAGE_TYPES:
            raise HTTPException(status_code=400, detail="Cover must be an image file")
        mime_type = guessed

    return await _read_upload(file), mime_type


def import_failed(e: FatalImportError) -> HTTPException:
    """422 response for a fatal import error."""
    return HTTPException(status_code=422, detail={"error": e.kind, "message": e.message})


def storage_failed(e: StorageError) -> HTTPException:
    """502 response when the object storage rejected a write."""
    return HTTPException(status_code=502, detail={"error": e.kind, "message": e.message})
