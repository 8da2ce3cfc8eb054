"""Chapter database model."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Text, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from novelshelf.models.database.base import Base
from novelshelf.models.database.enums import Language

if TYPE_CHECKING:
    from novelshelf.models.database.novel import Novel


class Chapter(Base):
    """Chapter of a novel, one row per (novel, number).

    Each supported language has its own content and EPUB URL column; a
    later-language import fills its own columns and leaves the others alone.
    """

    __tablename__ = "chapters"
    __table_args__ = (
        UniqueConstraint("novel_id", "number", name="uq_chapters_novel_number"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    novel_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("novels.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Chapter info
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)

    # Per-language content
    content_en: Mapped[Optional[str]] = mapped_column(Text)
    content_id: Mapped[Optional[str]] = mapped_column(Text)
    epub_en_url: Mapped[Optional[str]] = mapped_column(String(1000))
    epub_id_url: Mapped[Optional[str]] = mapped_column(String(1000))

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    novel: Mapped["Novel"] = relationship("Novel", back_populates="chapters")

    def content_for(self, language: Language) -> Optional[str]:
        return getattr(self, language.content_field)

    def languages(self) -> list[str]:
        """Language codes that have content on this chapter."""
        return [lang.value for lang in Language if self.content_for(lang) is not None]
