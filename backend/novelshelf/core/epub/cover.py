"""Cover image lookup and data URI encoding."""

import base64
import binascii
import logging
import mimetypes
import re
from typing import Optional

from novelshelf.core.epub.container import EpubContainer
from novelshelf.core.epub.errors import ResourceError, StorageError
from novelshelf.core.epub.models import PackageDocument

logger = logging.getLogger(__name__)

GENERIC_IMAGE_TYPE = "image/jpeg"

IMAGE_TYPES = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/svg+xml",
    "image/bmp",
    "image/avif",
}

# Non-standard media types seen in the wild
IMAGE_TYPE_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
    "image/x-png": "image/png",
    "image/svg": "image/svg+xml",
}

IMAGE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
    "image/bmp": "bmp",
    "image/avif": "avif",
}

DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<payload>.*)$", re.DOTALL)


def image_mime_type(media_type: str, path: str = "") -> str:
    """Normalize a manifest media type to a known image MIME type."""
    media_type = IMAGE_TYPE_ALIASES.get(media_type, media_type)
    if media_type in IMAGE_TYPES:
        return media_type
    guessed, _ = mimetypes.guess_type(path)
    if guessed in IMAGE_TYPES:
        return guessed
    return GENERIC_IMAGE_TYPE


def image_extension(mime_type: str) -> str:
    return IMAGE_EXTENSIONS.get(mime_type, "jpg")


def to_data_uri(data: bytes, mime_type: str) -> str:
    payload = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{payload}"


def decode_data_uri(uri: str) -> tuple[str, bytes]:
    """Split a base64 data URI into (mime type, bytes).

    Raises:
        ValueError: not a base64 data URI
    """
    match = DATA_URI_RE.match(uri)
    if not match:
        raise ValueError("Not a base64 data URI")
    try:
        data = base64.b64decode(match.group("payload"), validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e
    return match.group("mime"), data


def resolve_cover(container: EpubContainer, package: PackageDocument) -> Optional[str]:
    """Return the cover image as a data URI, or None if the book has no cover.

    Raises:
        StorageError: the cover is declared but its bytes cannot be loaded
    """
    item = package.cover_item()
    if item is None:
        logger.debug("No cover image declared")
        return None

    try:
        data = container.entry(item.path).data
    except ResourceError as e:
        raise StorageError(f"Cover image could not be loaded: {e.message}", ref=item.id) from e

    if not data:
        raise StorageError(f"Cover image {item.path} is empty", ref=item.id)

    return to_data_uri(data, image_mime_type(item.media_type, item.path))
