"""
Envelope API — encrypt and decrypt one field value.

``encrypt_payload`` / ``decrypt_payload`` take the master secret as base64
text; the ``*_with_secret`` variants take an already-validated
:class:`SecretKey` and are what the batch engines use.
"""
from ..exceptions import (
    DecryptionFailed,
    LegacyFormatError,
    MalformedRecordError,
)
from .codec import EncryptedPayload, b64encode
from .crypto import (
    SecretKey,
    decrypt,
    encrypt,
    generate_data_key,
    unwrap_data_key,
)


def encrypt_with_secret(plaintext: str, master: SecretKey) -> EncryptedPayload:
    """Encrypt ``plaintext`` under a fresh data key wrapped by ``master``."""
    if not isinstance(plaintext, str):
        raise TypeError("plaintext must be a string")
    data_key = generate_data_key(master)
    box = encrypt(plaintext, data_key.key)
    return EncryptedPayload(
        ciphertext=b64encode(box.ciphertext),
        wrapped_data_key=b64encode(data_key.wrapped),
        ciphertext_nonce=b64encode(box.nonce),
        ciphertext_tag=b64encode(box.tag),
        wrap_nonce=b64encode(data_key.wrap_nonce),
        wrap_tag=b64encode(data_key.wrap_tag),
        key_id=master.key_id,
    )


def decrypt_with_secret(payload: EncryptedPayload, master: SecretKey) -> str:
    """Decrypt a payload.

    Raises:
        LegacyFormatError: payload has no wrapped data key.
        DecryptionFailed: anything else went wrong (no detail is exposed).
    """
    if payload.is_legacy:
        raise LegacyFormatError()
    try:
        wrap = payload.wrap_box()
        data_key = unwrap_data_key(wrap.ciphertext, wrap.nonce, wrap.tag, master)
        box = payload.payload_box()
        return decrypt(box.ciphertext, box.nonce, box.tag, data_key)
    except (DecryptionFailed, MalformedRecordError):
        raise DecryptionFailed() from None


def encrypt_payload(plaintext: str, master_secret_b64: str) -> EncryptedPayload:
    """Encrypt ``plaintext`` with a base64-encoded master secret.

    Raises:
        ConfigurationError: if the secret is missing or not 32 bytes.
    """
    master = SecretKey.from_base64(master_secret_b64)
    return encrypt_with_secret(plaintext, master)


def decrypt_payload(payload: EncryptedPayload, master_secret_b64: str) -> str:
    """Decrypt ``payload`` with a base64-encoded master secret.

    Raises:
        ConfigurationError: if the secret is missing or not 32 bytes.
        DecryptionFailed: wrong secret, tampered or legacy payload.
    """
    master = SecretKey.from_base64(master_secret_b64)
    if not isinstance(payload, EncryptedPayload):
        raise DecryptionFailed()
    return decrypt_with_secret(payload, master)
