"""
Tests for the plaintext -> encrypted migration.
"""
import asyncio
from datetime import datetime

import orjson
import pytest

from conftest import wrapped_record
from fieldvault import StorageIOError
from fieldvault.store import MemoryDocumentStore
from fieldvault.vault.batch import ErrorKind, Outcome
from fieldvault.vault.codec import is_encrypted, parse_from_storage
from fieldvault.vault.config import FieldMapping, MigrationConfig
from fieldvault.vault.envelope import decrypt_with_secret
from fieldvault.vault.migration import (
    migrate_collection,
    migrate_document,
    migrate_plaintext,
    plaintext_of,
    utc_timestamp,
)


class FailingWriteStore(MemoryDocumentStore):
    async def update_document(self, collection, document_id, fields):
        raise StorageIOError("write rejected")


def _fill(store, secret, plain=10, encrypted=5):
    for i in range(plain):
        store.add("messages", {"text": f"Plain message {i}", "encrypted": None})
    for i in range(encrypted):
        store.add("messages", {"text": None, "encrypted": wrapped_record(f"enc {i}", secret)})


# --- Test plaintext_of ---

class TestPlaintextOf:
    """What counts as plaintext to migrate."""

    @pytest.mark.parametrize("value", [None, "", "   ", {}, [], 0, False])
    def test_nothing(self, value):
        assert plaintext_of(value) is None

    def test_text(self):
        assert plaintext_of(" hi ") == " hi "

    def test_structured(self):
        assert orjson.loads(plaintext_of({"browser": "firefox"})) == {"browser": "firefox"}
        assert plaintext_of(7) == "7"

    def test_timestamp_format(self):
        stamp = utc_timestamp()
        assert datetime.fromisoformat(stamp).utcoffset().total_seconds() == 0


# --- Test migrate_collection ---

class TestMigrateCollection:
    """Encrypting a whole collection."""

    @pytest.mark.asyncio
    async def test_dry_run_counts_and_writes_nothing(
        self, store, messages_mapping, old_secret
    ):
        """10 plaintext + 5 encrypted in dry run: 10 migrated, 5 skipped, no writes."""
        _fill(store, old_secret)
        before = store.snapshot()
        summary = await migrate_collection(
            store, "messages", messages_mapping, old_secret, dry_run=True
        )
        assert (summary.processed, summary.migrated, summary.skipped, summary.errors) == (
            15, 10, 5, 0
        )
        assert store.snapshot() == before
        assert store.updates == []

    @pytest.mark.asyncio
    async def test_live_run_fields(self, store, messages_mapping, old_secret):
        store.add("messages", {"text": "Hello, this is a test message!"})
        summary = await migrate_collection(
            store, "messages", messages_mapping, old_secret,
            timestamp="2026-01-01T00:00:00.000+00:00",
        )
        assert summary.encrypted == 1
        doc = store.get("messages", "messages-1")
        assert doc["text"] is None
        assert doc["text_plain_removed_at"] == "2026-01-01T00:00:00.000+00:00"
        assert is_encrypted(doc["encrypted"])
        assert isinstance(doc["encrypted"], dict)
        payload = parse_from_storage(doc["encrypted"])
        assert payload.key_id == old_secret.key_id
        assert decrypt_with_secret(payload, old_secret) == "Hello, this is a test message!"

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, store, messages_mapping, old_secret):
        _fill(store, old_secret, plain=4, encrypted=2)
        first = await migrate_collection(store, "messages", messages_mapping, old_secret)
        migrated = store.snapshot()
        second = await migrate_collection(store, "messages", messages_mapping, old_secret)
        assert first.migrated == 4
        assert second.migrated == 0
        assert second.skipped == first.migrated + first.skipped
        assert store.snapshot() == migrated

    @pytest.mark.asyncio
    async def test_blank_text_skipped(self, store, messages_mapping, old_secret):
        store.add("messages", {"text": "   "})
        store.add("messages", {"text": ""})
        store.add("messages", {})
        store.add("messages", {"text": 0})
        store.add("messages", {"text": False})
        summary = await migrate_collection(store, "messages", messages_mapping, old_secret)
        assert (summary.processed, summary.skipped, summary.migrated) == (5, 5, 0)
        assert store.updates == []

    @pytest.mark.asyncio
    async def test_structured_plaintext(self, store, old_secret):
        mapping = FieldMapping(
            plaintext_field="userMeta",
            encrypted_field="encrypted_userMeta",
            backup_field="userMeta_plain_removed_at",
        )
        store.add("sessions", {"userMeta": {"browser": "firefox", "ip": "10.0.0.1"}})
        await migrate_collection(store, "sessions", mapping, old_secret)
        doc = store.get("sessions", "sessions-1")
        plaintext = decrypt_with_secret(
            parse_from_storage(doc["encrypted_userMeta"]), old_secret
        )
        assert orjson.loads(plaintext) == {"browser": "firefox", "ip": "10.0.0.1"}
        assert doc["userMeta"] is None

    @pytest.mark.asyncio
    async def test_store_as_json(self, store, messages_mapping, old_secret):
        store.add("messages", {"text": "as text"})
        await migrate_collection(
            store, "messages", messages_mapping, old_secret, store_as_json=True
        )
        stored = store.get("messages", "messages-1")["encrypted"]
        assert isinstance(stored, str)
        assert decrypt_with_secret(parse_from_storage(stored), old_secret) == "as text"

    @pytest.mark.asyncio
    async def test_write_failure_per_record(self, messages_mapping, old_secret):
        store = FailingWriteStore()
        _fill(store, old_secret, plain=3, encrypted=1)
        summary = await migrate_collection(store, "messages", messages_mapping, old_secret)
        assert (summary.processed, summary.migrated, summary.skipped, summary.errors) == (
            4, 0, 1, 3
        )

    @pytest.mark.asyncio
    async def test_paging(self, store, messages_mapping, old_secret):
        _fill(store, old_secret, plain=7, encrypted=0)
        summary = await migrate_collection(
            store, "messages", messages_mapping, old_secret, batch_size=2
        )
        assert (summary.processed, summary.migrated) == (7, 7)

    @pytest.mark.asyncio
    async def test_stop_before_start(self, store, messages_mapping, old_secret):
        _fill(store, old_secret)
        stop = asyncio.Event()
        stop.set()
        summary = await migrate_collection(
            store, "messages", messages_mapping, old_secret, stop_event=stop
        )
        assert summary.processed == 0
        assert summary.interrupted


# --- Test migrate_document ---

class TestMigrateDocument:
    """Single-record decisions."""

    @pytest.mark.asyncio
    async def test_already_encrypted(self, store, messages_mapping, old_secret):
        doc = store.add(
            "messages",
            {"text": "left over", "encrypted": wrapped_record("x", old_secret)},
        )
        result = await migrate_document(
            store, "messages", doc, messages_mapping, old_secret, utc_timestamp()
        )
        assert result.outcome is Outcome.SKIPPED
        assert result.reason == "already encrypted"

    @pytest.mark.asyncio
    async def test_write_error_kind(self, messages_mapping, old_secret):
        store = FailingWriteStore()
        doc = store.add("messages", {"text": "x"})
        result = await migrate_document(
            store, "messages", doc, messages_mapping, old_secret, utc_timestamp()
        )
        assert result.outcome is Outcome.ERRORED
        assert result.error is ErrorKind.STORAGE_IO


# --- Test migrate_plaintext ---

class TestMigratePlaintext:
    """Run over configured collections."""

    @pytest.mark.asyncio
    async def test_shared_timestamp(self, store, messages_mapping, old_secret):
        store.add("messages", {"text": "a"})
        store.add("notes", {"body": "b"})
        config = MigrationConfig(
            master_secret=old_secret,
            field_mappings={
                "messages": messages_mapping,
                "notes": {
                    "plaintext_field": "body",
                    "encrypted_field": "body_enc",
                    "backup_field": "body_removed_at",
                },
            },
        )
        report = await migrate_plaintext(store, config)
        assert report.total == {"processed": 2, "migrated": 2, "skipped": 0, "errors": 0}
        assert (
            store.get("messages", "messages-1")["text_plain_removed_at"]
            == store.get("notes", "notes-1")["body_removed_at"]
        )

    @pytest.mark.asyncio
    async def test_dry_run_flag(self, store, messages_mapping, old_secret):
        store.add("messages", {"text": "a"})
        config = MigrationConfig(
            master_secret=old_secret,
            dry_run=True,
            field_mappings={"messages": messages_mapping},
        )
        report = await migrate_plaintext(store, config)
        assert report.dry_run
        assert report["messages"].migrated == 1
        assert store.updates == []
