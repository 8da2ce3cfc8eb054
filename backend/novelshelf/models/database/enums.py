"""Centralized enum definitions for database models.

All status and type enums should be defined here for consistency.
"""

from enum import Enum


# =============================================================================
# Language Enums
# =============================================================================


class Language(str, Enum):
    """Language tracks a chapter can carry.

    Every language owns one content column and one external EPUB URL column
    on the chapters table.
    """

    EN = "en"  # English
    ID = "id"  # Indonesian

    @property
    def content_field(self) -> str:
        return f"content_{self.value}"

    @property
    def url_field(self) -> str:
        return f"epub_{self.value}_url"

    @property
    def label(self) -> str:
        return {"en": "English", "id": "Indonesian"}[self.value]


# =============================================================================
# Novel Enums
# =============================================================================


class NovelStatus(str, Enum):
    """Publication status of a novel."""

    ONGOING = "ongoing"
    COMPLETED = "completed"
