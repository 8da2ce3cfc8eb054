"""Transient value types produced while parsing an EPUB."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from novelshelf.core.epub.errors import EpubImportError


class ImportState(str, Enum):
    """Stages of a single import.

    Idle -> Parsing -> ExtractingCover || ExtractingChapters -> Reconciling -> Done.
    FAILED is only reachable from PARSING.
    """

    IDLE = "idle"
    PARSING = "parsing"
    EXTRACTING = "extracting"  # cover and chapters, concurrently
    RECONCILING = "reconciling"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ArchiveEntry:
    """A single file inside the EPUB archive."""

    path: str
    data: bytes


@dataclass(frozen=True)
class ImportIssue:
    """A recoverable problem recorded during an import."""

    kind: str  # "resource" | "storage" | "reconciliation" | "warning"
    message: str
    ref: Optional[str] = None  # manifest id, archive path or chapter number

    @classmethod
    def from_error(cls, error: EpubImportError) -> "ImportIssue":
        return cls(kind=error.kind, message=error.message, ref=error.ref)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, "ref": self.ref}


@dataclass(frozen=True)
class ManifestItem:
    """Manifest entry resolved against the package document directory."""

    id: str
    href: str  # as written in the package document
    path: str  # archive path
    media_type: str
    properties: tuple[str, ...] = ()
    is_cover_image: bool = False

    @property
    def is_nav(self) -> bool:
        return "nav" in self.properties


@dataclass
class PackageDocument:
    """Parsed OPF package document."""

    title: str
    author: Optional[str] = None
    description: Optional[str] = None
    language: Optional[str] = None
    manifest: dict[str, ManifestItem] = field(default_factory=dict)
    spine: list[str] = field(default_factory=list)
    issues: list[ImportIssue] = field(default_factory=list)

    def spine_items(self) -> list[ManifestItem]:
        """Manifest items in reading order."""
        return [self.manifest[item_id] for item_id in self.spine]

    def cover_item(self) -> Optional[ManifestItem]:
        """First manifest item flagged as the cover image, if any."""
        for item in self.manifest.values():
            if item.is_cover_image:
                return item
        return None


@dataclass(frozen=True)
class ParsedChapter:
    """One chapter in reading order."""

    number: int
    title: str
    content: str

    def to_dict(self) -> dict:
        return {"number": self.number, "title": self.title, "content": self.content}


@dataclass
class ParsedBook:
    """Normalized result of parsing one EPUB upload."""

    title: str
    author: Optional[str]
    description: Optional[str]
    cover_data_uri: Optional[str]
    chapters: list[ParsedChapter] = field(default_factory=list)
    language: Optional[str] = None
    issues: list[ImportIssue] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Shape exposed to API clients."""
        return {
            "title": self.title,
            "author": self.author,
            "description": self.description,
            "coverDataUri": self.cover_data_uri,
            "chapters": [chapter.to_dict() for chapter in self.chapters],
        }
