"""Object storage for binary assets such as cover images.

Blobs are addressed by a relative path (e.g. ``covers/1712345678901-cover.png``)
and served from ``{public_base_url}/{path}``:

{storage_dir}/
└── covers/               # Cover images extracted from EPUB uploads
"""

import asyncio
import logging
from pathlib import Path, PurePosixPath
from typing import Protocol

logger = logging.getLogger(__name__)


class ObjectStorage(Protocol):
    """Upload contract used by the importer."""

    async def upload_blob(self, path: str, data: bytes, mime_type: str) -> str: ...


def _write_file(dest_path: Path, data: bytes) -> None:
    """Write file (blocking, run in executor)."""
    dest_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = dest_path.with_name(dest_path.name + ".part")
    tmp_path.write_bytes(data)
    tmp_path.replace(dest_path)


class LocalObjectStorage:
    """Store blobs on the local filesystem."""

    def __init__(self, base_dir: Path | str, public_base_url: str = "/static"):
        self.base_dir = Path(base_dir)
        self.public_base_url = public_base_url.rstrip("/")

    def get_blob_path(self, path: str) -> Path:
        """Filesystem location of a blob.

        Raises:
            ValueError: path is absolute or escapes the storage root
        """
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts or not relative.parts:
            raise ValueError(f"Invalid blob path: {path!r}")
        return self.base_dir.joinpath(*relative.parts)

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}/{path}"

    async def upload_blob(self, path: str, data: bytes, mime_type: str) -> str:
        """Store ``data`` at ``path`` (overwriting) and return its public URL."""
        dest_path = self.get_blob_path(path)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, _write_file, dest_path, data)
        logger.info("Stored %s (%s, %d bytes)", path, mime_type, len(data))
        return self.public_url(path)
