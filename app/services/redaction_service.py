"""Best-effort PII redaction for text sent to the completion provider.

These are rough regular expressions, not a PII detection guarantee. They will
miss some personal data and mask some harmless text (dates, long reference
numbers). Treat them as a convenience for teachers, not a security boundary.

Precedence: the phone pass runs before the ID pass. Any run of 9 or more
digit-like characters (digits plus spaces, dots, dashes, parentheses) becomes
``[PHONE]``; only a standalone run of exactly 8 digits is left for ``[ID]``.
"""

import re

EMAIL_MASK = "[EMAIL]"
PHONE_MASK = "[PHONE]"
ID_MASK = "[ID]"
NAME_MASK = "[NAME]"

EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
PHONE_RE = re.compile(r"\+?\d[\d\s().-]{7,}\d")
ID_RE = re.compile(r"\b\d{8,}\b")
NAME_RE = re.compile(r"\b[A-Z][a-z]+\b")


def redact(text: str) -> str:
    """Mask emails, phone-like digit runs and long numeric IDs."""
    if not text:
        return text
    text = EMAIL_RE.sub(EMAIL_MASK, text)
    text = PHONE_RE.sub(PHONE_MASK, text)
    text = ID_RE.sub(ID_MASK, text)
    return text


def mask_names(text: str) -> str:
    """Mask capitalized words as pseudo-names (``Maria`` -> ``[NAME]``)."""
    if not text:
        return text
    return NAME_RE.sub(NAME_MASK, text)


def prepare_outgoing(text: str, redact_pii: bool = True, allow_names: bool = False) -> str:
    """Apply the privacy toggles of a session to a user message."""
    prepared = redact(text) if redact_pii else text
    return prepared if allow_names else mask_names(prepared)
