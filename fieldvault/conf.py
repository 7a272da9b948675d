"""
FieldVault configuration defaults.

Values are read from the environment (and an optional ``.env`` file) once,
at import time. Secrets are *not* read here: they are loaded explicitly by
:mod:`fieldvault.vault.config` and injected into each component.
"""
import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


# PII redaction toggle (advisory hygiene, not a security boundary)
REDACT_PII: bool = _env_bool('REDACT_PII', False)

# Secret environment names (first match wins)
MASTER_SECRET_ENV = ('MASTER_SECRET', 'MASTER_KEY_BASE64')
NEW_MASTER_SECRET_ENV = ('NEW_MASTER_SECRET', 'NEW_MASTER_KEY_BASE64')

# Batch engines
DEFAULT_BATCH_SIZE: int = int(os.environ.get('FIELDVAULT_BATCH_SIZE', 100))
DEFAULT_VERIFY_LIMIT: int = 10
LIVE_RUN_DELAY: int = 5  # seconds before a live run starts

# JSON file overriding DEFAULT_FIELD_MAPPINGS
FIELD_MAPPINGS_ENV = 'FIELDVAULT_FIELD_MAPPINGS'

# collection -> plaintext / encrypted / backup-marker field names
DEFAULT_FIELD_MAPPINGS: dict[str, dict[str, str]] = {
    'messages': {
        'plaintext_field': 'text',
        'encrypted_field': 'encrypted',
        'backup_field': 'text_plain_removed_at',
    },
    'sessions': {
        'plaintext_field': 'userMeta',
        'encrypted_field': 'encrypted_userMeta',
        'backup_field': 'userMeta_plain_removed_at',
    },
    'users': {
        'plaintext_field': 'sensitiveNotes',
        'encrypted_field': 'encrypted_notes',
        'backup_field': 'notes_plain_removed_at',
    },
    'ai_accuracy': {
        'plaintext_field': 'aiText',
        'encrypted_field': 'encrypted_aiText',
        'backup_field': 'aiText_plain_removed_at',
    },
}

# Appwrite document store
APPWRITE_ENDPOINT = os.environ.get('APPWRITE_ENDPOINT')
APPWRITE_PROJECT_ID = os.environ.get('APPWRITE_PROJECT_ID')
APPWRITE_API_KEY = os.environ.get('APPWRITE_API_KEY')
APPWRITE_DATABASE_ID = os.environ.get('APPWRITE_DATABASE_ID')
APPWRITE_TIMEOUT: int = int(os.environ.get('APPWRITE_TIMEOUT', 30))
