"""API dependencies for novel validation, imports and authentication.

This module provides:
- Optional API key authentication for import endpoints
- Novel lookup with 404 handling
- Wiring of the content store, object storage and importer
"""

import logging
import secrets
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Path, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from novelshelf.config import settings
from novelshelf.core.epub import EpubParser, ExtractorConfig
from novelshelf.core.library import NovelImporter, SqlContentStore
from novelshelf.core.storage import LocalObjectStorage, ObjectStorage
from novelshelf.models.database.base import get_db
from novelshelf.models.database.novel import Novel

logger = logging.getLogger(__name__)


# =============================================================================
# Authentication Dependencies
# =============================================================================


async def verify_api_token(
    authorization: Annotated[Optional[str], Header()] = None,
    x_api_key: Annotated[Optional[str], Header(alias="X-API-Key")] = None,
) -> bool:
    """Verify API token for import endpoints.

    Supports two authentication methods:
    1. Authorization: Bearer <token>
    2. X-API-Key: <token>

    If API_AUTH_TOKEN is not set in environment, authentication is disabled
    (for local development).

    Raises:
        HTTPException: 401 if auth is required but token is invalid/missing
    """
    if not settings.api_auth_token:
        return True

    token = None
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:]
    elif x_api_key:
        token = x_api_key

    if not token:
        raise HTTPException(
            status_code=401,
            detail="Authentication required. Provide Authorization: Bearer <token> or X-API-Key header.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # Use constant-time comparison to prevent timing attacks
    if not secrets.compare_digest(token, settings.api_auth_token):
        raise HTTPException(
            status_code=401,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return True


RequireAuth = Annotated[bool, Depends(verify_api_token)]


# =============================================================================
# Novel Dependencies
# =============================================================================


async def get_validated_novel(
    novel_id: Annotated[str, Path(description="Novel ID")],
    db: AsyncSession = Depends(get_db),
) -> Novel:
    """Get a novel or fail with 404."""
    result = await db.execute(select(Novel).where(Novel.id == novel_id))
    novel = result.scalar_one_or_none()

    if not novel:
        raise HTTPException(status_code=404, detail="Novel not found")

    return novel


ValidatedNovel = Annotated[Novel, Depends(get_validated_novel)]


# =============================================================================
# Import Dependencies
# =============================================================================


def get_object_storage() -> ObjectStorage:
    return LocalObjectStorage(settings.storage_dir, settings.public_base_url)


def get_epub_parser() -> EpubParser:
    return EpubParser(ExtractorConfig.from_settings(settings))


async def get_importer(
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_object_storage),
    parser: EpubParser = Depends(get_epub_parser),
) -> NovelImporter:
    return NovelImporter(
        SqlContentStore(db),
        storage,
        parser=parser,
        cover_prefix=settings.cover_prefix,
        max_retries=settings.storage_max_retries,
        retry_delay=settings.storage_retry_delay,
    )
