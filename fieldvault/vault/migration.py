"""
Vault Migration — Encrypt legacy plaintext fields in place.

For every document of a collection whose encrypted field is still empty,
the plaintext field is encrypted, written to the encrypted field, stamped
with a "plaintext removed at" marker and cleared (set to ``None`` so the
store schema is kept).

The operation is idempotent and resumable: already-encrypted documents and
documents without plaintext are skipped, so a run can simply be repeated
after an interruption.

Security Note:
    Plaintext exists in memory only while its document is encrypted.
    Never log plaintext or ciphertext values.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import orjson

from ..exceptions import StorageIOError
from ..store import DocumentStore
from .batch import (
    ErrorKind,
    MigrationSummary,
    Outcome,
    RecordResult,
    RunReport,
    document_id,
    iter_pages,
)
from .codec import dumps_record, format_for_storage, is_encrypted
from .config import FieldMapping, MigrationConfig
from .crypto import SecretKey
from .envelope import encrypt_with_secret

logger = logging.getLogger("fieldvault.vault")


def plaintext_of(value: Any) -> Optional[str]:
    """Text to encrypt for a stored plaintext value, or None when there is none.

    Falsy values (``0`` and ``False`` included) and blank strings count as
    no plaintext. Structured values (e.g. session metadata dicts) are
    JSON-encoded.
    """
    if not value:
        return None
    if isinstance(value, str):
        return value if value.strip() else None
    return orjson.dumps(value).decode("utf-8")


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


async def migrate_document(
    store: DocumentStore,
    collection: str,
    document: dict[str, Any],
    mapping: FieldMapping,
    secret: SecretKey,
    timestamp: str,
    dry_run: bool = False,
    store_as_json: bool = False,
) -> RecordResult:
    """Encrypt the plaintext field of one document.

    Returns:
        RecordResult with outcome MIGRATED, SKIPPED or ERRORED.
    """
    doc_id = document_id(document)
    if is_encrypted(document.get(mapping.encrypted_field)):
        return RecordResult.skipped(doc_id, "already encrypted")

    plaintext = plaintext_of(document.get(mapping.plaintext_field))
    if plaintext is None:
        return RecordResult.skipped(doc_id, "no plaintext")

    payload = encrypt_with_secret(plaintext, secret)
    if dry_run:
        logger.info(
            "[DRY-RUN] Would encrypt doc %s (%d chars)", doc_id, len(plaintext)
        )
        return RecordResult(doc_id, Outcome.MIGRATED, "dry-run")

    update = {
        mapping.encrypted_field: (
            dumps_record(payload) if store_as_json else format_for_storage(payload)
        ),
        mapping.backup_field: timestamp,
        mapping.plaintext_field: None,
    }
    try:
        await store.update_document(collection, doc_id, update)
    except StorageIOError as err:
        logger.error("Error encrypting doc %s: %s", doc_id, err)
        return RecordResult.errored(doc_id, ErrorKind.STORAGE_IO, str(err))
    return RecordResult(doc_id, Outcome.MIGRATED)


async def migrate_collection(
    store: DocumentStore,
    collection: str,
    mapping: FieldMapping,
    secret: SecretKey,
    dry_run: bool = False,
    batch_size: int = 100,
    stop_event: Optional[asyncio.Event] = None,
    timestamp: Optional[str] = None,
    store_as_json: bool = False,
) -> MigrationSummary:
    """Encrypt every plaintext value of ``collection``.

    Args:
        store: document store handle.
        collection: collection name.
        mapping: plaintext/encrypted/backup field names of the collection.
        secret: master secret wrapping the new data keys.
        dry_run: encrypt (to surface errors) but write nothing.
        batch_size: documents fetched per page.
        stop_event: set it to stop at the next page boundary.
        timestamp: value for the backup marker; defaults to the run start.
        store_as_json: write the encrypted record as JSON text instead of an object.

    Returns:
        MigrationSummary with processed/migrated/skipped/errors counts.
    """
    timestamp = timestamp or utc_timestamp()
    summary = MigrationSummary(collection)
    logger.info(
        "Migrating %s: %s -> %s (batch_size=%d, dry_run=%s)",
        collection, mapping.plaintext_field, mapping.encrypted_field,
        batch_size, dry_run,
    )
    try:
        async for page in iter_pages(store, collection, batch_size, stop_event):
            for document in page:
                try:
                    result = await migrate_document(
                        store, collection, document, mapping, secret,
                        timestamp, dry_run, store_as_json,
                    )
                except Exception as err:
                    logger.error(
                        "Error encrypting doc %s: %s",
                        document_id(document), type(err).__name__,
                    )
                    result = RecordResult.errored(
                        document_id(document), ErrorKind.UNEXPECTED
                    )
                summary.add(result)
                if result.outcome is Outcome.MIGRATED and summary.migrated % 10 == 0:
                    logger.info("Encrypted %d documents in %s", summary.migrated, collection)
    except StorageIOError as err:
        logger.error(
            "Error reading %s at offset %d: %s",
            collection, summary.processed, err,
        )
        summary.add_error()
    summary.interrupted = stop_event is not None and stop_event.is_set()
    logger.info("Migration of %s complete: %s", collection, summary.as_dict())
    return summary


async def migrate_plaintext(
    store: DocumentStore,
    config: MigrationConfig,
    stop_event: Optional[asyncio.Event] = None,
) -> RunReport:
    """Migrate every configured collection (or the filtered one) in turn.

    All collections of one run share the same backup timestamp.

    Raises:
        ConfigurationError: if the collection filter is unknown.
    """
    collections = config.selected_collections()
    timestamp = utc_timestamp()
    report = RunReport(dry_run=config.dry_run)
    for collection, mapping in collections.items():
        if stop_event is not None and stop_event.is_set():
            break
        summary = await migrate_collection(
            store,
            collection,
            mapping,
            config.master_secret,
            dry_run=config.dry_run,
            batch_size=config.batch_size,
            stop_event=stop_event,
            timestamp=timestamp,
            store_as_json=config.store_as_json,
        )
        report.summaries.append(summary)
    logger.info("Migration finished: %s", report.total)
    return report
