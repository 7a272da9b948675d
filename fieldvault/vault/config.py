"""
Vault Configuration — Master secret loading and validated run settings.

Reads master secrets from environment variables:
    MASTER_SECRET = <base64-encoded 32-byte key>
    NEW_MASTER_SECRET = <base64-encoded 32-byte key>   (rotation only)

``MASTER_KEY_BASE64`` / ``NEW_MASTER_KEY_BASE64`` are accepted as fallbacks.

Security Note:
    Never log key material. Only log key ids (fingerprints).
"""
import os
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

import orjson
from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .. import conf
from ..exceptions import ConfigurationError
from .crypto import SecretKey

logger = logging.getLogger("fieldvault.vault")


def load_master_secret(names: tuple[str, ...] = conf.MASTER_SECRET_ENV) -> SecretKey:
    """Load a master secret from the first set environment variable in ``names``.

    Raises:
        ConfigurationError: if none is set, or the value is not a base64
            encoding of exactly 32 bytes.
    """
    for name in names:
        value = os.environ.get(name)
        if value:
            secret = SecretKey.from_base64(value, name=name)
            logger.debug("Loaded %s (key id %s)", name, secret.key_id)
            return secret
    raise ConfigurationError(
        f"{names[0]} environment variable is required "
        f"(base64-encoded 32-byte key)"
    )


def generate_master_key() -> str:
    """Generate a random 32-byte master key and return as base64 string.

    This is a utility for operators to generate new keys.
    """
    return SecretKey.generate().to_base64()


class FieldMapping(BaseModel):
    """Which document fields hold plaintext, ciphertext and the cleared marker."""

    plaintext_field: str = Field(min_length=1)
    encrypted_field: str = Field(min_length=1)
    backup_field: str = Field(min_length=1)

    @model_validator(mode="after")
    def validate_distinct(self) -> "FieldMapping":
        names = {self.plaintext_field, self.encrypted_field, self.backup_field}
        if len(names) != 3:
            raise ValueError("plaintext, encrypted and backup fields must differ")
        return self


def load_field_mappings(path: Optional[str] = None) -> dict[str, FieldMapping]:
    """Load collection field mappings.

    Uses the JSON file at ``path`` (or the one named by
    ``FIELDVAULT_FIELD_MAPPINGS``), falling back to the built-in defaults.

    Raises:
        ConfigurationError: if the file cannot be read or parsed, or an
            entry is not a valid mapping.
    """
    path = path or os.environ.get(conf.FIELD_MAPPINGS_ENV)
    raw: Mapping[str, Any] = conf.DEFAULT_FIELD_MAPPINGS
    if path:
        try:
            raw = orjson.loads(Path(path).read_bytes())
        except (OSError, orjson.JSONDecodeError) as err:
            raise ConfigurationError(
                f"Cannot load field mappings from {path}: {err}"
            ) from err
        if not isinstance(raw, Mapping):
            raise ConfigurationError("Field mappings file must hold a JSON object")
    try:
        return {
            name: FieldMapping.model_validate(mapping)
            for name, mapping in raw.items()
        }
    except ValidationError as err:
        raise ConfigurationError(f"Invalid field mapping: {err}") from err


class RunConfig(BaseModel):
    """Settings shared by the batch engines."""

    batch_size: int = Field(default=conf.DEFAULT_BATCH_SIZE, ge=1, le=5000)
    collection_filter: Optional[str] = None
    field_mappings: dict[str, FieldMapping] = Field(
        default_factory=load_field_mappings
    )

    model_config = {"arbitrary_types_allowed": True}

    @field_validator("collection_filter")
    @classmethod
    def normalize_filter(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            v = v.strip() or None
        return v

    def selected_collections(self) -> dict[str, FieldMapping]:
        """Mappings for the collections this run touches, in declaration order.

        Raises:
            ConfigurationError: if the filter names an unknown collection.
        """
        if self.collection_filter is None:
            return dict(self.field_mappings)
        if self.collection_filter not in self.field_mappings:
            raise ConfigurationError(
                f"Unknown collection '{self.collection_filter}' "
                f"(available: {sorted(self.field_mappings)})"
            )
        return {
            self.collection_filter: self.field_mappings[self.collection_filter]
        }


class MigrationConfig(RunConfig):
    """Validated plaintext-migration configuration."""

    master_secret: SecretKey
    dry_run: bool = False
    store_as_json: bool = False

    @classmethod
    def from_env(cls, **kwargs) -> "MigrationConfig":
        """Create MigrationConfig with the master secret loaded from environment."""
        return cls(master_secret=load_master_secret(), **kwargs)


class RotationConfig(RunConfig):
    """Validated master-key rotation configuration."""

    old_secret: SecretKey
    new_secret: SecretKey
    preview: bool = False

    @model_validator(mode="after")
    def validate_distinct_secrets(self) -> "RotationConfig":
        """Old and new secrets must differ."""
        if self.old_secret == self.new_secret:
            raise ConfigurationError(
                "NEW_MASTER_SECRET must differ from MASTER_SECRET"
            )
        return self

    @classmethod
    def from_env(cls, **kwargs) -> "RotationConfig":
        """Create RotationConfig with both secrets loaded from environment."""
        return cls(
            old_secret=load_master_secret(conf.MASTER_SECRET_ENV),
            new_secret=load_master_secret(conf.NEW_MASTER_SECRET_ENV),
            **kwargs,
        )


class VerifyConfig(RunConfig):
    """Sample-decryption check configuration."""

    master_secret: SecretKey
    limit: int = Field(default=conf.DEFAULT_VERIFY_LIMIT, ge=1, le=5000)

    @classmethod
    def from_env(cls, **kwargs) -> "VerifyConfig":
        return cls(master_secret=load_master_secret(), **kwargs)
