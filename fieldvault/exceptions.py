"""
FieldVault exceptions.

Messages raised from cryptographic paths are deliberately generic: they never
carry key material, plaintext, ciphertext or cipher internals.
"""


class VaultError(Exception):
    """Base exception for all FieldVault operations."""


class ConfigurationError(VaultError):
    """Master secret missing or invalid, or run configuration unusable.

    Fatal: raised before any cryptographic operation takes place.
    """


class DecryptionFailed(VaultError):
    """Authentication failed: tampered data, wrong secret or malformed input."""

    def __init__(self, message: str = "Decryption failed") -> None:
        super().__init__(message)


class AuthenticationError(DecryptionFailed):
    """AEAD tag verification failed at the cipher level."""


class LegacyFormatError(DecryptionFailed):
    """Record predates data-key wrapping (no wrap nonce/tag).

    Such records cannot be rotated or trusted for decryption and need
    manual re-encryption.
    """

    def __init__(
        self,
        message: str = "Record uses the legacy unwrapped format"
    ) -> None:
        super().__init__(message)


class MalformedRecordError(VaultError):
    """Stored record lacks the fields of an encrypted payload."""


class StorageIOError(VaultError):
    """Document store failure while listing or updating documents."""
