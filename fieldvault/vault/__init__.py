"""Field Vault — Envelope encryption of document fields at rest.

Security Note (Threat Model):
    The master secret is held in process memory for the lifetime of a run
    and data keys while one record is processed. A memory dump of the
    process could expose them. This is an accepted limitation; mitigation
    requires KMS/HSM integration which is out of scope.
"""

from .codec import (
    EncryptedPayload,
    RecordVariant,
    format_for_storage,
    is_encrypted,
    parse_from_storage,
)
from .config import (
    FieldMapping,
    MigrationConfig,
    RotationConfig,
    VerifyConfig,
    generate_master_key,
    load_master_secret,
)
from .crypto import SecretKey
from .envelope import decrypt_payload, encrypt_payload
from .key_rotation import rotate_collection, rotate_master_key
from .migration import migrate_collection, migrate_plaintext
from .verify import verify_collection, verify_sample

__all__ = [
    "EncryptedPayload",
    "RecordVariant",
    "format_for_storage",
    "parse_from_storage",
    "is_encrypted",
    "FieldMapping",
    "MigrationConfig",
    "RotationConfig",
    "VerifyConfig",
    "generate_master_key",
    "load_master_secret",
    "SecretKey",
    "encrypt_payload",
    "decrypt_payload",
    "rotate_collection",
    "rotate_master_key",
    "migrate_collection",
    "migrate_plaintext",
    "verify_collection",
    "verify_sample",
]
