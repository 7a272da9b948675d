"""
Vault Crypto Core — Payload cipher, data-key management and key fingerprints.

Implements two-level envelope encryption:
- Payload layer: AES-256-GCM(data_key, aad="payload") → ciphertext + tag
- Key layer: AES-256-GCM(master_secret, aad="data-key") → wrapped data_key + tag

Each data key encrypts exactly one value. Nonces are random 128-bit values,
drawn fresh for every seal; the authentication tag (128-bit) is stored apart
from the ciphertext.

Security Note:
    Never log plaintext, ciphertext or key material.
    Only key fingerprints (see ``key_fingerprint``) are safe to log.
"""
import base64
import binascii
import hmac
import secrets
from dataclasses import dataclass
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..exceptions import AuthenticationError, ConfigurationError

KEY_LENGTH = 32  # AES-256
NONCE_SIZE = 16  # 128-bit nonce
TAG_SIZE = 16  # 128-bit GCM tag

PAYLOAD_CONTEXT = b"payload"
DATA_KEY_CONTEXT = b"data-key"
_FINGERPRINT_CONTEXT = b"fieldvault-key-id"
_FINGERPRINT_SIZE = 8


# ---------------------------------------------------------------------------
# Secret keys
# ---------------------------------------------------------------------------

class SecretKey:
    """Master secret wrapper.

    Holds exactly 32 raw bytes and never shows them in ``repr``.
    Python gives no guarantee of timely zeroization, so the buffer is
    cleared on deletion on a best-effort basis only.
    """

    __slots__ = ("_bytes",)

    def __init__(self, key_bytes: Union[bytes, bytearray]) -> None:
        if not isinstance(key_bytes, (bytes, bytearray)):
            raise ConfigurationError("Master secret must be bytes")
        if len(key_bytes) != KEY_LENGTH:
            raise ConfigurationError(
                f"Master secret must be exactly {KEY_LENGTH} bytes, "
                f"got {len(key_bytes)}"
            )
        self._bytes = bytearray(key_bytes)

    @classmethod
    def from_base64(cls, encoded: str, name: str = "master secret") -> "SecretKey":
        """Decode a base64 secret.

        Args:
            encoded: base64 text as supplied by configuration.
            name: label used in error messages (e.g. the env var name).

        Raises:
            ConfigurationError: if missing, not base64, or not 32 bytes.
        """
        if not encoded:
            raise ConfigurationError(f"{name} is required")
        try:
            raw = base64.b64decode(encoded.strip(), validate=True)
        except (binascii.Error, ValueError) as err:
            raise ConfigurationError(f"{name} is not valid base64") from err
        if len(raw) != KEY_LENGTH:
            raise ConfigurationError(
                f"{name} must decode to exactly {KEY_LENGTH} bytes, "
                f"got {len(raw)}"
            )
        return cls(raw)

    @classmethod
    def generate(cls) -> "SecretKey":
        return cls(secrets.token_bytes(KEY_LENGTH))

    def as_bytes(self) -> bytes:
        return bytes(self._bytes)

    def to_base64(self) -> str:
        return base64.b64encode(self.as_bytes()).decode("ascii")

    @property
    def key_id(self) -> str:
        return key_fingerprint(self)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SecretKey):
            return NotImplemented
        return hmac.compare_digest(self._bytes, other._bytes)

    def __hash__(self) -> int:
        return hash(self.key_id)

    def __repr__(self) -> str:
        return "SecretKey([REDACTED])"

    def __del__(self) -> None:
        if hasattr(self, "_bytes"):
            for i in range(len(self._bytes)):
                self._bytes[i] = 0


MasterKey = Union[SecretKey, bytes]


def _master_bytes(master: MasterKey) -> bytes:
    """Return raw master bytes, rejecting anything that is not 32 bytes."""
    if isinstance(master, SecretKey):
        return master.as_bytes()
    return SecretKey(master).as_bytes()


def key_fingerprint(master: MasterKey) -> str:
    """Derive a short, non-reversible identifier for a master secret.

    HKDF-SHA256 over the secret with a fixed context, truncated to 8 bytes.
    Stored next to wrapped keys so rotation can tell which secret wrapped them.

    Returns:
        16-character hex string.
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=_FINGERPRINT_SIZE,
        salt=None,
        info=_FINGERPRINT_CONTEXT,
    )
    return hkdf.derive(_master_bytes(master)).hex()


# ---------------------------------------------------------------------------
# AEAD primitives
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SealedBox:
    """AEAD output with the tag kept apart from the ciphertext."""

    ciphertext: bytes
    nonce: bytes
    tag: bytes


def seal(key: bytes, plaintext: bytes, context: bytes) -> SealedBox:
    """Encrypt ``plaintext`` under ``key`` with ``context`` as associated data.

    Args:
        key: 32-byte AES key.
        plaintext: data to encrypt (may be empty).
        context: associated data binding the ciphertext to its role.

    Returns:
        SealedBox with a fresh random nonce.
    """
    if len(key) != KEY_LENGTH:
        raise AuthenticationError()
    nonce = secrets.token_bytes(NONCE_SIZE)
    sealed = AESGCM(key).encrypt(nonce, plaintext, context)
    return SealedBox(
        ciphertext=sealed[:-TAG_SIZE],
        nonce=nonce,
        tag=sealed[-TAG_SIZE:],
    )


def unseal(box: SealedBox, key: bytes, context: bytes) -> bytes:
    """Authenticate and decrypt a SealedBox.

    Raises:
        AuthenticationError: on tag mismatch, wrong key, wrong context or
            malformed sizes. The message never describes which check failed.
    """
    if (
        len(key) != KEY_LENGTH
        or len(box.nonce) != NONCE_SIZE
        or len(box.tag) != TAG_SIZE
    ):
        raise AuthenticationError()
    try:
        return AESGCM(key).decrypt(box.nonce, box.ciphertext + box.tag, context)
    except InvalidTag:
        raise AuthenticationError() from None


# ---------------------------------------------------------------------------
# Payload cipher
# ---------------------------------------------------------------------------

def encrypt(plaintext: str, data_key: bytes) -> SealedBox:
    """Encrypt a text payload under a single-use data key."""
    return seal(data_key, plaintext.encode("utf-8"), PAYLOAD_CONTEXT)


def decrypt(ciphertext: bytes, nonce: bytes, tag: bytes, data_key: bytes) -> str:
    """Decrypt a text payload.

    Raises:
        AuthenticationError: if the payload does not authenticate.
    """
    raw = unseal(SealedBox(ciphertext, nonce, tag), data_key, PAYLOAD_CONTEXT)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        raise AuthenticationError() from None


# ---------------------------------------------------------------------------
# Data key manager
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DataKey:
    """A freshly generated data key together with its wrapped form."""

    key: bytes
    wrapped: bytes
    wrap_nonce: bytes
    wrap_tag: bytes

    def __repr__(self) -> str:
        return "DataKey(key=[REDACTED], wrapped=<%d bytes>)" % len(self.wrapped)


def wrap_data_key(data_key: bytes, master: MasterKey) -> SealedBox:
    """Wrap a data key under a master secret with a fresh nonce."""
    master_bytes = _master_bytes(master)
    return seal(master_bytes, data_key, DATA_KEY_CONTEXT)


def generate_data_key(master: MasterKey) -> DataKey:
    """Create a random 256-bit data key and wrap it under ``master``.

    Raises:
        ConfigurationError: if the master secret is not 32 bytes.
    """
    master_bytes = _master_bytes(master)
    key = secrets.token_bytes(KEY_LENGTH)
    box = seal(master_bytes, key, DATA_KEY_CONTEXT)
    return DataKey(
        key=key,
        wrapped=box.ciphertext,
        wrap_nonce=box.nonce,
        wrap_tag=box.tag,
    )


def unwrap_data_key(
    wrapped: bytes,
    wrap_nonce: bytes,
    wrap_tag: bytes,
    master: MasterKey,
) -> bytes:
    """Recover a data key wrapped under ``master``.

    Raises:
        ConfigurationError: if the master secret is not 32 bytes.
        AuthenticationError: on tamper or wrong secret.
    """
    master_bytes = _master_bytes(master)
    key = unseal(
        SealedBox(wrapped, wrap_nonce, wrap_tag), master_bytes, DATA_KEY_CONTEXT
    )
    if len(key) != KEY_LENGTH:
        raise AuthenticationError()
    return key
