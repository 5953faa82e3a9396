"""Journal domain package."""

from .indexer import EntryIndexMaintainer
from .listing import EntryListingService
from .positions import EntryPositionResolver
from .service import JournalService
from .types import (
    DeleteAllResult,
    EntryPage,
    EntryPosition,
    FirstEntryPosition,
    MutationResult,
)

__all__ = [
    "DeleteAllResult",
    "EntryIndexMaintainer",
    "EntryListingService",
    "EntryPage",
    "EntryPosition",
    "EntryPositionResolver",
    "FirstEntryPosition",
    "JournalService",
    "MutationResult",
]
