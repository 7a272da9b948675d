"""
Vault Key Rotation — Batch re-wrapping of data keys under a new master secret.

Only the wrapped data key changes: ``k``, ``dkiv``, ``dktag`` and ``kid`` are
rewritten inside the encrypted field, while the payload ciphertext, nonce and
tag are left byte-identical. Payloads are never decrypted.

The run is idempotent: records whose key id already matches the new secret,
or whose data key already unwraps under it, are skipped. Legacy records
(no wrap nonce/tag) cannot be rotated and are skipped with a warning.

Security Note:
    Data keys exist in memory only while one record is re-wrapped.
    Running two rotations against one collection at the same time is unsafe
    and must be prevented by the operator.
"""
import asyncio
import logging
from typing import Any, Optional

import orjson

from ..exceptions import DecryptionFailed, MalformedRecordError, StorageIOError
from ..store import DocumentStore
from .batch import (
    ErrorKind,
    Outcome,
    RecordResult,
    RotationSummary,
    RunReport,
    document_id,
    iter_pages,
)
from .codec import (
    EncryptedPayload,
    RecordVariant,
    format_for_storage,
    is_encrypted,
    loads_record,
    parse_from_storage,
)
from .config import FieldMapping, RotationConfig
from .crypto import SecretKey, unwrap_data_key, wrap_data_key

logger = logging.getLogger("fieldvault.vault")


def _unwraps_with(payload: EncryptedPayload, secret: SecretKey) -> Optional[bytes]:
    wrap = payload.wrap_box()
    try:
        return unwrap_data_key(wrap.ciphertext, wrap.nonce, wrap.tag, secret)
    except DecryptionFailed:
        return None


async def rotate_document(
    store: DocumentStore,
    collection: str,
    document: dict[str, Any],
    mapping: FieldMapping,
    old_secret: SecretKey,
    new_secret: SecretKey,
    preview: bool = False,
) -> RecordResult:
    """Re-wrap the data key of one document.

    Returns:
        RecordResult with outcome ROTATED, SKIPPED or ERRORED.
    """
    doc_id = document_id(document)
    stored = document.get(mapping.encrypted_field)
    if not stored or not is_encrypted(stored):
        return RecordResult.skipped(doc_id, "not encrypted")
    try:
        payload = parse_from_storage(stored)
    except MalformedRecordError as err:
        logger.error("Doc %s in %s: %s", doc_id, collection, err)
        return RecordResult.errored(doc_id, ErrorKind.MALFORMED_RECORD, str(err))

    if payload.variant is RecordVariant.LEGACY:
        logger.warning(
            "Doc %s in %s: legacy format (no wrapped data key), cannot rotate; "
            "re-encrypt it first",
            doc_id, collection,
        )
        return RecordResult.skipped(
            doc_id, "legacy format", ErrorKind.LEGACY_FORMAT
        )

    if payload.key_id and payload.key_id == new_secret.key_id:
        return RecordResult.skipped(doc_id, "already rotated")

    try:
        data_key = _unwraps_with(payload, old_secret)
        if data_key is None:
            if _unwraps_with(payload, new_secret) is not None:
                return RecordResult.skipped(doc_id, "already rotated")
            logger.error(
                "Doc %s in %s: data key does not unwrap with the current secret",
                doc_id, collection,
            )
            return RecordResult.errored(doc_id, ErrorKind.DECRYPTION_FAILED)
        rotated = payload.rewrapped(
            wrap_data_key(data_key, new_secret), new_secret.key_id
        )
    except MalformedRecordError as err:
        logger.error("Doc %s in %s: %s", doc_id, collection, err)
        return RecordResult.errored(doc_id, ErrorKind.MALFORMED_RECORD, str(err))

    if preview:
        logger.info("[PREVIEW] Would rotate key for doc %s", doc_id)
        return RecordResult(doc_id, Outcome.ROTATED, "preview")

    # keys this codec does not know about are carried over
    if isinstance(stored, (str, bytes)):
        record = {**loads_record(stored), **format_for_storage(rotated)}
        value = orjson.dumps(record).decode("utf-8")
    else:
        value = {**stored, **format_for_storage(rotated)}
    try:
        await store.update_document(
            collection, doc_id, {mapping.encrypted_field: value}
        )
    except StorageIOError as err:
        logger.error("Error rotating key for doc %s: %s", doc_id, err)
        return RecordResult.errored(doc_id, ErrorKind.STORAGE_IO, str(err))
    return RecordResult(doc_id, Outcome.ROTATED)


async def rotate_collection(
    store: DocumentStore,
    collection: str,
    mapping: FieldMapping,
    old_secret: SecretKey,
    new_secret: SecretKey,
    preview: bool = False,
    batch_size: int = 100,
    stop_event: Optional[asyncio.Event] = None,
) -> RotationSummary:
    """Re-wrap every encrypted field of ``collection`` from old to new secret.

    Args:
        store: document store handle.
        collection: collection name.
        mapping: field mapping of the collection (``encrypted_field`` is used).
        old_secret: secret the data keys are currently wrapped with.
        new_secret: secret to wrap them with.
        preview: unwrap/re-wrap but do not write anything back.
        batch_size: documents fetched per page.
        stop_event: set it to stop at the next page boundary.

    Returns:
        RotationSummary with processed/rotated/skipped/errors counts.
    """
    summary = RotationSummary(collection)
    logger.info(
        "Rotating %s.%s from key %s to key %s (batch_size=%d, preview=%s)",
        collection, mapping.encrypted_field,
        old_secret.key_id, new_secret.key_id, batch_size, preview,
    )
    try:
        async for page in iter_pages(store, collection, batch_size, stop_event):
            for document in page:
                try:
                    result = await rotate_document(
                        store, collection, document, mapping,
                        old_secret, new_secret, preview,
                    )
                except Exception as err:
                    logger.error(
                        "Error rotating key for doc %s: %s",
                        document_id(document), type(err).__name__,
                    )
                    result = RecordResult.errored(
                        document_id(document), ErrorKind.UNEXPECTED
                    )
                summary.add(result)
                if result.outcome is Outcome.ROTATED and summary.rotated % 10 == 0:
                    logger.info("Rotated %d keys in %s", summary.rotated, collection)
    except StorageIOError as err:
        logger.error(
            "Error reading %s at offset %d: %s",
            collection, summary.processed, err,
        )
        summary.add_error()
    summary.interrupted = stop_event is not None and stop_event.is_set()
    logger.info("Key rotation of %s complete: %s", collection, summary.as_dict())
    return summary


async def rotate_master_key(
    store: DocumentStore,
    config: RotationConfig,
    stop_event: Optional[asyncio.Event] = None,
) -> RunReport:
    """Rotate every configured collection (or the filtered one) in turn.

    Raises:
        ConfigurationError: if the collection filter is unknown.
    """
    collections = config.selected_collections()
    report = RunReport(dry_run=config.preview)
    for collection, mapping in collections.items():
        if stop_event is not None and stop_event.is_set():
            break
        summary = await rotate_collection(
            store,
            collection,
            mapping,
            config.old_secret,
            config.new_secret,
            preview=config.preview,
            batch_size=config.batch_size,
            stop_event=stop_event,
        )
        report.summaries.append(summary)
    logger.info("Key rotation finished: %s", report.total)
    return report
