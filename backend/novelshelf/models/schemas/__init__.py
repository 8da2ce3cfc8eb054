"""Shared Pydantic schemas for API requests and responses."""

from .novel import (
    ChapterUpdateRequest,
    NovelImportOptions,
    NovelUpdateRequest,
)

__all__ = [
    "ChapterUpdateRequest",
    "NovelImportOptions",
    "NovelUpdateRequest",
]
