"""EPUB processing package."""

from .container import EpubContainer
from .content import ChapterExtractor, ExtractorConfig, DEFAULT_CONFIG
from .cover import resolve_cover, decode_data_uri
from .errors import (
    EpubImportError,
    FatalImportError,
    FileFormatError,
    PackageError,
    ResourceError,
    StorageError,
    ReconciliationError,
)
from .models import (
    ImportIssue,
    ImportState,
    ManifestItem,
    PackageDocument,
    ParsedBook,
    ParsedChapter,
)
from .package import parse_package, OPF_NS, DC_NS
from .parser import EpubParser, parse_epub

__all__ = [
    "EpubContainer",
    "ChapterExtractor",
    "ExtractorConfig",
    "DEFAULT_CONFIG",
    "resolve_cover",
    "decode_data_uri",
    "EpubImportError",
    "FatalImportError",
    "FileFormatError",
    "PackageError",
    "ResourceError",
    "StorageError",
    "ReconciliationError",
    "ImportIssue",
    "ImportState",
    "ManifestItem",
    "PackageDocument",
    "ParsedBook",
    "ParsedChapter",
    "parse_package",
    "OPF_NS",
    "DC_NS",
    "EpubParser",
    "parse_epub",
]
