"""Request schemas for novel and chapter endpoints."""

from typing import Optional

from pydantic import BaseModel, model_validator

from novelshelf.models.database.enums import Language, NovelStatus


class ChapterUpdateRequest(BaseModel):
    """Manual chapter edit.

    ``content`` is written to the column of ``language`` only; the other
    language's content is never touched.
    """

    title: Optional[str] = None
    language: Optional[Language] = None
    content: Optional[str] = None

    @model_validator(mode="after")
    def check_language(self) -> "ChapterUpdateRequest":
        if self.content is not None and self.language is None:
            raise ValueError("language is required when content is given")
        return self

    def to_fields(self) -> dict[str, Optional[str]]:
        fields: dict[str, Optional[str]] = {}
        if self.title is not None:
            fields["title"] = self.title
        if self.content is not None and self.language is not None:
            fields[self.language.content_field] = self.content
        return fields


class NovelImportOptions(BaseModel):
    """Optional listing fields supplied alongside a new-novel upload."""

    genre: list[str] = []
    status: NovelStatus = NovelStatus.ONGOING
    is_official: bool = False
    is_must_read: bool = False

    def to_fields(self) -> dict:
        return {
            "genre": self.genre,
            "status": self.status.value,
            "is_official": self.is_official,
            "is_must_read": self.is_must_read,
        }


class NovelUpdateRequest(BaseModel):
    """Partial edit of a novel's listing fields; only fields sent are written."""

    title: Optional[str] = None
    author: Optional[str] = None
    description: Optional[str] = None
    genre: Optional[list[str]] = None
    status: Optional[NovelStatus] = None
    is_official: Optional[bool] = None
    is_must_read: Optional[bool] = None

    @model_validator(mode="after")
    def check_required(self) -> "NovelUpdateRequest":
        for name in ("title", "status", "is_official", "is_must_read"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        if self.title is not None and not self.title.strip():
            raise ValueError("title cannot be empty")
        return self

    def to_fields(self) -> dict:
        fields = self.model_dump(mode="json", exclude_unset=True)
        if "genre" in fields:
            fields["genre"] = [g.strip() for g in fields["genre"] or [] if g.strip()]
        return fields
