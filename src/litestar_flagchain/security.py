"""Helpers that keep identities and secrets out of logs and analytics."""

from __future__ import annotations

import hashlib
import re
from collections.abc import Mapping
from typing import Any

__all__ = [
    "MAX_FLAG_KEY_LENGTH",
    "REDACTED",
    "SENSITIVE_FIELDS",
    "create_safe_log_context",
    "hash_identity",
    "is_sensitive_field",
    "sanitize_log_context",
    "validate_flag_key",
]

REDACTED = "[REDACTED]"
MAX_FLAG_KEY_LENGTH = 255

#: Field names whose values never reach logs verbatim.
SENSITIVE_FIELDS = frozenset(
    {
        "email",
        "password",
        "secret",
        "token",
        "api_key",
        "session_id",
        "user_id",
        "visitor_id",
        "identity",
        "ip_address",
        "cookie",
        "authorization",
    }
)

#: Identifier fields that are hashed rather than redacted, so logs can still
#: be correlated per user without revealing who the user is.
_HASHED_FIELDS = frozenset({"user_id", "visitor_id", "identity", "session_id"})

_SENSITIVE_PATTERNS = (
    re.compile(r".*_(token|secret|password)$"),
    re.compile(r".*_(api|private|secret|access|signing|encryption)_?key$"),
    re.compile(r"^(auth|secret|private)_.*"),
)

_FLAG_KEY_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_-]*$")


def hash_identity(identity: str | None, salt: str = "") -> str:
    """Return a short, stable, one-way digest of an identity.

    Args:
        identity: The identity to hash (user id, visitor id, or both).
        salt: Optional salt to make digests application specific.

    Returns:
        The first 12 hex characters of the SHA-256 digest, or ``""`` for an
        empty identity.

    """
    if not identity:
        return ""
    return hashlib.sha256(f"{salt}{identity}".encode()).hexdigest()[:12]


def is_sensitive_field(name: str) -> bool:
    """Check whether a field name should be redacted or hashed in logs."""
    if not name:
        return False
    lowered = name.lower()
    if lowered in SENSITIVE_FIELDS:
        return True
    return any(pattern.match(lowered) for pattern in _SENSITIVE_PATTERNS)


def sanitize_log_context(data: Mapping[str, Any], _parent: str = "") -> dict[str, Any]:
    """Return a copy of ``data`` safe to log.

    Identifier fields are hashed, other sensitive fields are redacted, nested
    mappings are sanitized recursively. ``id`` fields nested under ``user`` or
    ``visitor`` (as in a serialized context) count as identifiers.
    """
    sanitized: dict[str, Any] = {}
    for key, value in data.items():
        is_nested_id = key == "id" and _parent in {"user", "visitor"}
        if isinstance(value, Mapping):
            sanitized[key] = sanitize_log_context(value, key.lower())
        elif is_nested_id or key.lower() in _HASHED_FIELDS:
            sanitized[key] = hash_identity(str(value)) if value is not None else None
        elif is_sensitive_field(key):
            sanitized[key] = REDACTED
        else:
            sanitized[key] = value
    return sanitized


def validate_flag_key(key: str) -> bool:
    """Check that a flag key is usable, including as an override variable.

    Keys start with a letter, contain only letters, digits, ``-`` and ``_``,
    and are at most 255 characters long.
    """
    if not key or len(key) > MAX_FLAG_KEY_LENGTH:
        return False
    return bool(_FLAG_KEY_PATTERN.match(key))


def create_safe_log_context(flag_key: str, identity: str | None = None, **extra: Any) -> dict[str, Any]:
    """Build structured log fields for a flag event without leaking identities."""
    data: dict[str, Any] = {"flag_key": flag_key}
    if identity:
        data["identity_hash"] = hash_identity(identity)
    data.update(sanitize_log_context(extra))
    return data
