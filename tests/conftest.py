"""
Shared fixtures for FieldVault tests.
"""
import base64

import pytest

from fieldvault.store import MemoryDocumentStore
from fieldvault.vault.codec import WRAP_NONCE, WRAP_TAG, KEY_ID, format_for_storage
from fieldvault.vault.config import FieldMapping
from fieldvault.vault.crypto import SecretKey
from fieldvault.vault.envelope import encrypt_with_secret

# Fixed 32-byte test secret: 0x00..0x1f
TEST_SECRET_BYTES = bytes(range(32))
TEST_SECRET_B64 = base64.b64encode(TEST_SECRET_BYTES).decode("ascii")

_SECRET_ENV = (
    "MASTER_SECRET", "MASTER_KEY_BASE64",
    "NEW_MASTER_SECRET", "NEW_MASTER_KEY_BASE64",
    "FIELDVAULT_FIELD_MAPPINGS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep secrets from the developer environment out of the tests."""
    for name in _SECRET_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def master_b64() -> str:
    return TEST_SECRET_B64


@pytest.fixture
def old_secret() -> SecretKey:
    return SecretKey(TEST_SECRET_BYTES)


@pytest.fixture
def new_secret() -> SecretKey:
    return SecretKey(bytes(range(100, 132)))


@pytest.fixture
def messages_mapping() -> FieldMapping:
    return FieldMapping(
        plaintext_field="text",
        encrypted_field="encrypted",
        backup_field="text_plain_removed_at",
    )


def wrapped_record(plaintext: str, secret: SecretKey) -> dict:
    """Compact encrypted record, as persisted."""
    return format_for_storage(encrypt_with_secret(plaintext, secret))


def legacy_record(plaintext: str, secret: SecretKey) -> dict:
    """Compact record without wrap nonce/tag (pre-wrapping format)."""
    record = wrapped_record(plaintext, secret)
    for key in (WRAP_NONCE, WRAP_TAG, KEY_ID):
        record.pop(key, None)
    return record


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()
