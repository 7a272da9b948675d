"""FieldVault.

Envelope encryption for sensitive document-store fields, master-key
rotation without re-encrypting payloads, and plaintext migration.
"""
from .version import (
    __title__, __description__, __version__, __author__, __author_email__
)
from .exceptions import (
    VaultError,
    ConfigurationError,
    DecryptionFailed,
    AuthenticationError,
    LegacyFormatError,
    MalformedRecordError,
    StorageIOError,
)
from .redactor import PIIRedactor, redact_pii
from .store import DocumentStore, MemoryDocumentStore
from .vault import (
    EncryptedPayload,
    encrypt_payload,
    decrypt_payload,
    format_for_storage,
    parse_from_storage,
    rotate_master_key,
    migrate_plaintext,
)

__all__ = (
    "VaultError",
    "ConfigurationError",
    "DecryptionFailed",
    "AuthenticationError",
    "LegacyFormatError",
    "MalformedRecordError",
    "StorageIOError",
    "PIIRedactor",
    "redact_pii",
    "DocumentStore",
    "MemoryDocumentStore",
    "EncryptedPayload",
    "encrypt_payload",
    "decrypt_payload",
    "format_for_storage",
    "parse_from_storage",
    "rotate_master_key",
    "migrate_plaintext",
)
