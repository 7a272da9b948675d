"""
Vault Storage Codec — compact, persistence-ready record format.

Stored shape (short keys keep per-document overhead low)::

    {
        "c":     <ciphertext, base64>,
        "k":     <wrapped data key, base64>,
        "iv":    <payload nonce, base64>,
        "t":     <payload tag, base64>,
        "dkiv":  <wrap nonce, base64>,      # absent on legacy records
        "dktag": <wrap tag, base64>,        # absent on legacy records
        "kid":   <master key fingerprint>,  # optional
    }

The codec is pure and stateless: ``parse_from_storage(format_for_storage(p)) == p``.
"""
import base64
import binascii
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import orjson

from ..exceptions import MalformedRecordError
from .crypto import SealedBox

CIPHERTEXT = "c"
WRAPPED_KEY = "k"
NONCE = "iv"
TAG = "t"
WRAP_NONCE = "dkiv"
WRAP_TAG = "dktag"
KEY_ID = "kid"

_REQUIRED_KEYS = (CIPHERTEXT, WRAPPED_KEY, NONCE, TAG)


class RecordVariant(str, Enum):
    """Shape of a stored record, decided once when it is parsed."""

    WRAPPED = "wrapped"
    LEGACY = "legacy"  # predates data-key wrapping; no wrap nonce/tag


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64decode(data: str) -> bytes:
    """Strict base64 decode; malformed input raises MalformedRecordError."""
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError, TypeError) as err:
        raise MalformedRecordError("Record field is not valid base64") from err


@dataclass(frozen=True)
class EncryptedPayload:
    """In-memory encrypted value; every field except ``key_id`` is base64."""

    ciphertext: str
    wrapped_data_key: str
    ciphertext_nonce: str
    ciphertext_tag: str
    wrap_nonce: str = ""
    wrap_tag: str = ""
    key_id: str = ""

    @property
    def variant(self) -> RecordVariant:
        if self.wrap_nonce and self.wrap_tag:
            return RecordVariant.WRAPPED
        return RecordVariant.LEGACY

    @property
    def is_legacy(self) -> bool:
        return self.variant is RecordVariant.LEGACY

    def payload_box(self) -> SealedBox:
        """Decoded payload ciphertext/nonce/tag."""
        return SealedBox(
            ciphertext=b64decode(self.ciphertext),
            nonce=b64decode(self.ciphertext_nonce),
            tag=b64decode(self.ciphertext_tag),
        )

    def wrap_box(self) -> SealedBox:
        """Decoded wrapped data key with its nonce/tag."""
        return SealedBox(
            ciphertext=b64decode(self.wrapped_data_key),
            nonce=b64decode(self.wrap_nonce),
            tag=b64decode(self.wrap_tag),
        )

    def rewrapped(self, box: SealedBox, key_id: str) -> "EncryptedPayload":
        """Copy with a new wrapped key; payload fields are carried over as-is."""
        return EncryptedPayload(
            ciphertext=self.ciphertext,
            wrapped_data_key=b64encode(box.ciphertext),
            ciphertext_nonce=self.ciphertext_nonce,
            ciphertext_tag=self.ciphertext_tag,
            wrap_nonce=b64encode(box.nonce),
            wrap_tag=b64encode(box.tag),
            key_id=key_id,
        )


def format_for_storage(payload: EncryptedPayload) -> dict[str, str]:
    """Serialize to the compact storage shape. Empty optional fields are omitted."""
    stored = {
        CIPHERTEXT: payload.ciphertext,
        WRAPPED_KEY: payload.wrapped_data_key,
        NONCE: payload.ciphertext_nonce,
        TAG: payload.ciphertext_tag,
    }
    if payload.wrap_nonce:
        stored[WRAP_NONCE] = payload.wrap_nonce
    if payload.wrap_tag:
        stored[WRAP_TAG] = payload.wrap_tag
    if payload.key_id:
        stored[KEY_ID] = payload.key_id
    return stored


def parse_from_storage(stored: Any) -> EncryptedPayload:
    """Parse a compact record (mapping or its JSON text).

    Legacy records surface ``wrap_nonce``/``wrap_tag`` as empty strings so
    callers can branch on :attr:`EncryptedPayload.variant`.

    Raises:
        MalformedRecordError: if a core field is missing or not text.
    """
    record = loads_record(stored) if isinstance(stored, (str, bytes)) else stored
    if not isinstance(record, Mapping):
        raise MalformedRecordError("Encrypted record must be a mapping")
    for key in _REQUIRED_KEYS:
        if not isinstance(record.get(key), str):
            raise MalformedRecordError(f"Encrypted record is missing '{key}'")
    return EncryptedPayload(
        ciphertext=record[CIPHERTEXT],
        wrapped_data_key=record[WRAPPED_KEY],
        ciphertext_nonce=record[NONCE],
        ciphertext_tag=record[TAG],
        wrap_nonce=record.get(WRAP_NONCE) or "",
        wrap_tag=record.get(WRAP_TAG) or "",
        key_id=record.get(KEY_ID) or "",
    )


def is_encrypted(value: Any) -> bool:
    """True if ``value`` has the encrypted-record shape.

    ``c`` may be empty (an encrypted empty string); the key material
    fields must not be.
    """
    if isinstance(value, (str, bytes)):
        try:
            value = orjson.loads(value)
        except orjson.JSONDecodeError:
            return False
    if not isinstance(value, Mapping):
        return False
    if not isinstance(value.get(CIPHERTEXT), str):
        return False
    return all(
        isinstance(value.get(key), str) and value.get(key)
        for key in (WRAPPED_KEY, NONCE, TAG)
    )


def dumps_record(payload: EncryptedPayload) -> str:
    """Compact record as JSON text, for stores with string attributes."""
    return orjson.dumps(format_for_storage(payload)).decode("utf-8")


def loads_record(data: str | bytes) -> dict[str, Any]:
    try:
        return orjson.loads(data)
    except orjson.JSONDecodeError as err:
        raise MalformedRecordError("Encrypted record is not valid JSON") from err
