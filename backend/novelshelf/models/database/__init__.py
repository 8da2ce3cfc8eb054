"""Database models package."""

from novelshelf.models.database.base import Base, get_db, init_db, async_session_maker
from novelshelf.models.database.novel import Novel
from novelshelf.models.database.chapter import Chapter
# Centralized enums
from novelshelf.models.database.enums import Language, NovelStatus

__all__ = [
    # Base
    "Base",
    "get_db",
    "init_db",
    "async_session_maker",
    # Models
    "Novel",
    "Chapter",
    # Enums
    "Language",
    "NovelStatus",
]
