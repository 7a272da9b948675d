"""
Vault Batch Plumbing — per-record results, run summaries and page traversal.

Engines process one record at a time and return a :class:`RecordResult`
instead of raising; summaries fold those results into counts.
"""
import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional

from ..store import DOCUMENT_ID, DocumentStore

logger = logging.getLogger("fieldvault.vault")


class Outcome(str, Enum):
    """Terminal state of one record."""

    ROTATED = "rotated"
    MIGRATED = "migrated"
    SKIPPED = "skipped"
    ERRORED = "errored"


class ErrorKind(str, Enum):
    """Why a record was skipped or failed."""

    DECRYPTION_FAILED = "decryption_failed"
    LEGACY_FORMAT = "legacy_format"
    MALFORMED_RECORD = "malformed_record"
    STORAGE_IO = "storage_io"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class RecordResult:
    document_id: str
    outcome: Outcome
    reason: str = ""
    error: Optional[ErrorKind] = None

    @classmethod
    def skipped(
        cls, document_id: str, reason: str, error: Optional[ErrorKind] = None
    ) -> "RecordResult":
        return cls(document_id, Outcome.SKIPPED, reason, error)

    @classmethod
    def errored(cls, document_id: str, error: ErrorKind, reason: str = "") -> "RecordResult":
        return cls(document_id, Outcome.ERRORED, reason, error)


@dataclass
class CollectionSummary:
    """Counts for one collection.

    ``succeeded`` counts records that reached the engine's success outcome
    (rotated or migrated); subclasses expose it under that name.
    """

    collection: str
    processed: int = 0
    succeeded: int = 0
    skipped: int = 0
    errors: int = 0
    legacy: int = 0
    interrupted: bool = False

    success_label: ClassVar[str] = "succeeded"

    def add(self, result: RecordResult) -> None:
        self.processed += 1
        if result.outcome is Outcome.ERRORED:
            self.errors += 1
        elif result.outcome is Outcome.SKIPPED:
            self.skipped += 1
            if result.error is ErrorKind.LEGACY_FORMAT:
                self.legacy += 1
        else:
            self.succeeded += 1

    def add_error(self) -> None:
        """Count a failure that is not tied to a record (e.g. a page read)."""
        self.errors += 1

    def as_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "processed": self.processed,
            self.success_label: self.succeeded,
            "skipped": self.skipped,
            "errors": self.errors,
        }


@dataclass
class RotationSummary(CollectionSummary):
    success_label: ClassVar[str] = "rotated"

    @property
    def rotated(self) -> int:
        return self.succeeded


@dataclass
class MigrationSummary(CollectionSummary):
    success_label: ClassVar[str] = "migrated"

    @property
    def migrated(self) -> int:
        return self.succeeded

    @property
    def encrypted(self) -> int:
        return self.succeeded


@dataclass
class RunReport:
    """Per-collection summaries of one run plus their aggregate."""

    summaries: list[CollectionSummary] = field(default_factory=list)
    dry_run: bool = False

    @property
    def interrupted(self) -> bool:
        return any(s.interrupted for s in self.summaries)

    @property
    def total(self) -> dict[str, int]:
        label = (
            self.summaries[0].success_label if self.summaries else "succeeded"
        )
        total = {"processed": 0, label: 0, "skipped": 0, "errors": 0}
        for summary in self.summaries:
            total["processed"] += summary.processed
            total[label] += summary.succeeded
            total["skipped"] += summary.skipped
            total["errors"] += summary.errors
        return total

    def __getitem__(self, collection: str) -> CollectionSummary:
        for summary in self.summaries:
            if summary.collection == collection:
                return summary
        raise KeyError(collection)


def document_id(document: dict[str, Any]) -> str:
    return str(document.get(DOCUMENT_ID, "<unknown>"))


async def iter_pages(
    store: DocumentStore,
    collection: str,
    batch_size: int,
    stop_event: Optional[asyncio.Event] = None,
) -> AsyncIterator[list[dict[str, Any]]]:
    """Yield pages of ``batch_size`` documents in store order.

    Advances the offset by the page length and stops on an empty or short
    page, or once ``stop_event`` is set (checked between pages only).
    A failed read propagates as :class:`StorageIOError`.
    """
    offset = 0
    while True:
        if stop_event is not None and stop_event.is_set():
            logger.warning(
                "Stop requested; leaving %s at offset %d", collection, offset
            )
            return
        page = await store.list_documents(collection, None, batch_size, offset)
        if not page:
            return
        logger.info(
            "Processing %s batch: %d to %d", collection, offset, offset + len(page)
        )
        yield page
        offset += len(page)
        if len(page) < batch_size:
            return
