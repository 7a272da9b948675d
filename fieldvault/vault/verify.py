"""
Vault Verify — decrypt a sample of stored records to check the master secret.

Only document ids and plaintext lengths are logged.
"""
import logging
from dataclasses import dataclass, field
from typing import Any

from ..exceptions import DecryptionFailed, LegacyFormatError, MalformedRecordError, StorageIOError
from ..store import DocumentStore
from .batch import document_id
from .codec import is_encrypted, parse_from_storage
from .config import FieldMapping, VerifyConfig
from .crypto import SecretKey
from .envelope import decrypt_with_secret

logger = logging.getLogger("fieldvault.vault")


@dataclass
class VerifySummary:
    collection: str
    tested: int = 0
    succeeded: int = 0
    failed: int = 0
    legacy: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "tested": self.tested,
            "succeeded": self.succeeded,
            "failed": self.failed,
        }


@dataclass
class VerifyReport:
    summaries: list[VerifySummary] = field(default_factory=list)

    @property
    def total(self) -> dict[str, int]:
        return {
            "tested": sum(s.tested for s in self.summaries),
            "succeeded": sum(s.succeeded for s in self.summaries),
            "failed": sum(s.failed for s in self.summaries),
        }

    @property
    def ok(self) -> bool:
        total = self.total
        return total["tested"] > 0 and total["failed"] == 0


async def verify_collection(
    store: DocumentStore,
    collection: str,
    mapping: FieldMapping,
    secret: SecretKey,
    limit: int = 10,
) -> VerifySummary:
    """Decrypt the encrypted field of the first ``limit`` documents."""
    summary = VerifySummary(collection)
    try:
        documents = await store.list_documents(collection, None, limit, 0)
    except StorageIOError as err:
        logger.error("Error reading %s: %s", collection, err)
        summary.failed += 1
        return summary
    for document in documents:
        doc_id = document_id(document)
        stored = document.get(mapping.encrypted_field)
        if not is_encrypted(stored):
            logger.debug("Doc %s: not encrypted, skipping", doc_id)
            continue
        summary.tested += 1
        try:
            plaintext = decrypt_with_secret(parse_from_storage(stored), secret)
        except LegacyFormatError:
            logger.warning("Doc %s: legacy format, needs re-encryption", doc_id)
            summary.legacy += 1
            summary.failed += 1
        except (DecryptionFailed, MalformedRecordError) as err:
            logger.error("Doc %s: decryption failed (%s)", doc_id, type(err).__name__)
            summary.failed += 1
        else:
            logger.info("Doc %s: decrypted successfully (%d chars)", doc_id, len(plaintext))
            summary.succeeded += 1
    return summary


async def verify_sample(store: DocumentStore, config: VerifyConfig) -> VerifyReport:
    """Run :func:`verify_collection` over the configured collections."""
    report = VerifyReport()
    for collection, mapping in config.selected_collections().items():
        report.summaries.append(
            await verify_collection(
                store, collection, mapping, config.master_secret, config.limit
            )
        )
    logger.info("Verification finished: %s", report.total)
    return report
