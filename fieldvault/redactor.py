"""
PII Redactor — pattern-based scrubbing of emails, phone numbers and card numbers.

This is advisory hygiene for logs and exports, NOT a security boundary:
the patterns are deliberately simple (one US-style phone format, 16-digit
cards) and will miss PII in other shapes. It is independent of encryption
and can be applied to any plaintext.
"""
import re
from typing import Any, Optional

from . import conf

EMAIL_PLACEHOLDER = '[EMAIL_REDACTED]'
PHONE_PLACEHOLDER = '[PHONE_REDACTED]'
CARD_PLACEHOLDER = '[CARD_REDACTED]'

# applied in this order
_PATTERNS: tuple[tuple[re.Pattern, str], ...] = (
    (
        re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b'),
        EMAIL_PLACEHOLDER,
    ),
    (re.compile(r'\b\d{3}[-.]?\d{3}[-.]?\d{4}\b'), PHONE_PLACEHOLDER),
    (re.compile(r'\b\d{4}[- ]?\d{4}[- ]?\d{4}[- ]?\d{4}\b'), CARD_PLACEHOLDER),
)


class PIIRedactor:
    """Callable redactor with its own enabled flag."""

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled

    def __call__(self, text: Any) -> Any:
        return self.redact(text)

    def redact(self, text: Any) -> Any:
        """Return ``text`` with PII replaced by fixed placeholders.

        Non-string or empty input, or a disabled redactor, returns the input unchanged.
        """
        if not self.enabled or not text or not isinstance(text, str):
            return text
        for pattern, placeholder in _PATTERNS:
            text = pattern.sub(placeholder, text)
        return text


def redact_pii(text: Any, enabled: Optional[bool] = None) -> Any:
    """Redact PII, honouring the global ``REDACT_PII`` flag unless ``enabled`` is given."""
    if enabled is None:
        enabled = conf.REDACT_PII
    return PIIRedactor(enabled).redact(text)
