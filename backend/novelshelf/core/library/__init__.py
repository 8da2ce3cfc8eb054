"""Novel library: content store, chapter reconciliation and imports."""

from .importer import ImportReport, NovelImporter
from .reconciler import (
    UNCHANGED,
    ChapterUpdate,
    ReconciliationPlan,
    ReconciliationResult,
    apply_reconciliation,
    plan_reconciliation,
)
from .store import ContentStore, NewChapter, SqlContentStore

__all__ = [
    "ImportReport",
    "NovelImporter",
    "UNCHANGED",
    "ChapterUpdate",
    "ReconciliationPlan",
    "ReconciliationResult",
    "apply_reconciliation",
    "plan_reconciliation",
    "ContentStore",
    "NewChapter",
    "SqlContentStore",
]
