"""Encryption codec for shipping resolved flag values to untrusted clients.

The authenticated path is AES-256-GCM from ``cryptography``. The key is
derived from the flags secret with HKDF-SHA256 and every call uses a fresh
random 96-bit nonce. The wire format is::

    base64url( nonce (12 bytes) || ciphertext || tag (16 bytes) )

without padding.

When the AES-GCM primitive is unavailable, or the insecure mode is requested
explicitly, payloads are merely base64url-encoded JSON. That path is **not
confidential** and exists for local development only; every use logs a
warning.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import re
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from litestar_flagchain.exceptions import DecryptionError, InvalidSecretError
from litestar_flagchain.types import SecretIssue

try:
    from cryptography.exceptions import InvalidTag
    from cryptography.hazmat.primitives import hashes
    from cryptography.hazmat.primitives.ciphers.aead import AESGCM
    from cryptography.hazmat.primitives.kdf.hkdf import HKDF

    CRYPTOGRAPHY_AVAILABLE = True
except ImportError:  # pragma: no cover
    AESGCM = None  # type: ignore[assignment,misc]
    CRYPTOGRAPHY_AVAILABLE = False

__all__ = [
    "CRYPTOGRAPHY_AVAILABLE",
    "ENVELOPE_VERSION",
    "MIN_SECRET_LENGTH",
    "NONCE_SIZE",
    "TAG_SIZE",
    "EncryptionMode",
    "FlagCodec",
    "SafeEncryptionResult",
    "SecretValidation",
    "decrypt",
    "decrypt_flag_definitions",
    "decrypt_overrides",
    "default_mode",
    "encrypt",
    "encrypt_flag_definitions",
    "encrypt_overrides",
    "encryption_status",
    "generate_secret",
    "is_encryption_available",
    "require_valid_secret",
    "safe_encrypt",
    "validate_secret",
]

logger = logging.getLogger(__name__)

MIN_SECRET_LENGTH = 32
NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32
ENVELOPE_VERSION = "1"

_HKDF_INFO = b"litestar-flagchain/flag-payload/v1"
_BASE64URL_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_META_KEY = "__meta"
_DEFINITIONS_TYPE = "flag-definitions"
_OVERRIDES_TYPE = "flag-overrides"


class EncryptionMode(str, Enum):
    """How payloads are protected."""

    AES_256_GCM = "aes-256-gcm"
    #: Plain base64url JSON. Not confidential; development only.
    INSECURE_BASE64 = "insecure-base64"


def default_mode() -> EncryptionMode:
    """The authenticated mode when available, else the insecure development mode."""
    return EncryptionMode.AES_256_GCM if CRYPTOGRAPHY_AVAILABLE else EncryptionMode.INSECURE_BASE64


@dataclass(frozen=True, slots=True)
class SecretValidation:
    """Outcome of :func:`validate_secret`."""

    valid: bool
    issue: SecretIssue | None = None
    reason: str | None = None


def validate_secret(secret: str | None, *, strict: bool = False) -> SecretValidation:
    """Check a flags secret.

    Args:
        secret: The secret to check.
        strict: Also require the url-safe base64 alphabet (``A-Za-z0-9_-``),
            the format :func:`generate_secret` produces.

    Returns:
        The validation outcome, with a distinct issue for a secret that is
        empty, too short, or (in strict mode) uses a bad character set.

    """
    if not secret:
        return SecretValidation(False, SecretIssue.EMPTY, "Secret is empty")
    if len(secret) < MIN_SECRET_LENGTH:
        return SecretValidation(
            False,
            SecretIssue.TOO_SHORT,
            f"Secret is too short: must be at least {MIN_SECRET_LENGTH} characters",
        )
    if strict and not _BASE64URL_PATTERN.match(secret):
        return SecretValidation(
            False,
            SecretIssue.BAD_CHARSET,
            "Secret has a bad charset: use base64url characters only (A-Za-z0-9_-)",
        )
    return SecretValidation(True)


def require_valid_secret(secret: str | None, *, strict: bool = False) -> str:
    """Return ``secret`` if valid, else raise :class:`InvalidSecretError`."""
    result = validate_secret(secret, strict=strict)
    if not result.valid:
        raise InvalidSecretError(result.issue, result.reason or "Invalid secret")  # type: ignore[arg-type]
    return secret  # type: ignore[return-value]


def generate_secret() -> str:
    """Generate a random 256-bit secret in base64url form (43 characters)."""
    return secrets.token_urlsafe(KEY_SIZE)


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(encoded: str) -> bytes:
    if not isinstance(encoded, str) or not _BASE64URL_PATTERN.match(encoded):
        msg = "Encrypted payload is not base64url"
        raise DecryptionError(msg)
    padded = encoded + "=" * (-len(encoded) % 4)
    try:
        return base64.b64decode(padded, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as exc:
        msg = "Encrypted payload is not valid base64url"
        raise DecryptionError(msg) from exc


def _derive_key(secret: str) -> bytes:
    return HKDF(algorithm=hashes.SHA256(), length=KEY_SIZE, salt=None, info=_HKDF_INFO).derive(secret.encode())


def _loads(data: bytes) -> Any:
    try:
        return json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        msg = "Decrypted payload is not valid JSON"
        raise DecryptionError(msg) from exc


class FlagCodec:
    """Encrypts and decrypts JSON flag payloads with one secret.

    Args:
        secret: The flags secret, at least 32 characters.
        mode: Protection mode. Defaults to AES-256-GCM when available.
        strict: Validate the secret's character set as well as its length.

    Raises:
        InvalidSecretError: If the secret fails validation.

    Example:
        >>> codec = FlagCodec(generate_secret())
        >>> codec.decrypt(codec.encrypt({"beta": True}))
        {'beta': True}

    """

    __slots__ = ("_key", "mode", "secret")

    def __init__(self, secret: str, mode: EncryptionMode | None = None, *, strict: bool = False) -> None:
        self.secret = require_valid_secret(secret, strict=strict)
        self.mode = EncryptionMode(mode) if mode is not None else default_mode()
        if self.mode is EncryptionMode.AES_256_GCM and not CRYPTOGRAPHY_AVAILABLE:
            msg = "AES-256-GCM requires the 'cryptography' package"
            raise RuntimeError(msg)
        self._key = _derive_key(self.secret) if self.mode is EncryptionMode.AES_256_GCM else b""

    @property
    def is_secure(self) -> bool:
        return self.mode is EncryptionMode.AES_256_GCM

    def encrypt(self, payload: Any) -> str:
        """Encrypt a JSON-serializable payload.

        Raises:
            TypeError: If ``payload`` is not JSON-serializable.

        """
        data = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        if self.mode is EncryptionMode.INSECURE_BASE64:
            logger.warning("Flag payload encoded with insecure base64 fallback (development only, not encrypted)")
            return _b64url_encode(data)
        nonce = os.urandom(NONCE_SIZE)
        return _b64url_encode(nonce + AESGCM(self._key).encrypt(nonce, data, None))

    def decrypt(self, encoded: str) -> Any:
        """Decrypt and parse a payload produced by :meth:`encrypt`.

        Raises:
            DecryptionError: On malformed input, a short payload, a failed
                authentication check (tampering or wrong secret), or invalid
                JSON.

        """
        raw = _b64url_decode(encoded)
        if self.mode is EncryptionMode.INSECURE_BASE64:
            return _loads(raw)
        if len(raw) < NONCE_SIZE + TAG_SIZE:
            msg = f"Encrypted payload too short ({len(raw)} bytes)"
            raise DecryptionError(msg)
        nonce, ciphertext = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
        try:
            plaintext = AESGCM(self._key).decrypt(nonce, ciphertext, None)
        except InvalidTag as exc:
            msg = "Encrypted payload failed authentication (tampered or wrong secret)"
            raise DecryptionError(msg) from exc
        return _loads(plaintext)


def encrypt(payload: Any, secret: str, *, mode: EncryptionMode | None = None) -> str:
    """Encrypt ``payload`` with ``secret``. See :class:`FlagCodec`."""
    return FlagCodec(secret, mode).encrypt(payload)


def decrypt(encoded: str, secret: str, *, mode: EncryptionMode | None = None) -> Any:
    """Decrypt ``encoded`` with ``secret``. See :class:`FlagCodec`.

    Raises:
        DecryptionError: If the payload cannot be decrypted or parsed.
        InvalidSecretError: If the secret itself is invalid.

    """
    return FlagCodec(secret, mode).decrypt(encoded)


def is_encryption_available(secret: str | None) -> bool:
    """Whether authenticated encryption can be used with ``secret``."""
    return CRYPTOGRAPHY_AVAILABLE and validate_secret(secret).valid


def encryption_status(secret: str | None, environment: str | None = None) -> dict[str, Any]:
    """Describe the encryption setup for diagnostics (never includes the secret)."""
    available = is_encryption_available(secret)
    return {
        "available": available,
        "method": EncryptionMode.AES_256_GCM.value if available else "none",
        "environment": environment or os.environ.get("FLAGS_ENVIRONMENT", "development"),
    }


def _wrap(values: dict[str, Any], envelope_type: str) -> dict[str, Any]:
    return {
        **values,
        _META_KEY: {
            "type": envelope_type,
            "version": ENVELOPE_VERSION,
            "encrypted": True,
            "timestamp": datetime.now(UTC).isoformat(),
        },
    }


def _unwrap(payload: Any, envelope_type: str) -> dict[str, Any]:
    if not isinstance(payload, dict):
        msg = f"Expected a JSON object for {envelope_type}"
        raise DecryptionError(msg)
    meta = payload.get(_META_KEY)
    if meta is None:
        # Payloads written before the envelope existed.
        return payload
    if not isinstance(meta, dict) or meta.get("type") != envelope_type:
        found = meta.get("type") if isinstance(meta, dict) else meta
        msg = f"Expected a {envelope_type} payload, found {found!r}"
        raise DecryptionError(msg)
    values = {key: value for key, value in payload.items() if key != _META_KEY}
    logger.debug(
        "Decrypted %s",
        envelope_type,
        extra={"envelope_version": meta.get("version"), "entry_count": len(values)},
    )
    return values


def encrypt_flag_definitions(definitions: dict[str, Any], secret: str) -> str:
    """Encrypt flag definitions wrapped in a typed ``__meta`` envelope."""
    return encrypt(_wrap(definitions, _DEFINITIONS_TYPE), secret)


def decrypt_flag_definitions(encoded: str, secret: str) -> dict[str, Any]:
    """Decrypt definitions written by :func:`encrypt_flag_definitions`."""
    return _unwrap(decrypt(encoded, secret), _DEFINITIONS_TYPE)


def encrypt_overrides(overrides: dict[str, Any], secret: str) -> str:
    """Encrypt flag overrides wrapped in a typed ``__meta`` envelope."""
    return encrypt(_wrap(overrides, _OVERRIDES_TYPE), secret)


def decrypt_overrides(encoded: str, secret: str) -> dict[str, Any]:
    """Decrypt overrides written by :func:`encrypt_overrides`."""
    return _unwrap(decrypt(encoded, secret), _OVERRIDES_TYPE)


@dataclass(frozen=True, slots=True)
class SafeEncryptionResult:
    """Outcome of :func:`safe_encrypt`: exactly one field is set, or neither."""

    encrypted: str | None = None
    plaintext: dict[str, Any] | None = None


def safe_encrypt(
    values: dict[str, Any],
    secret: str | None,
    *,
    fallback_to_plaintext: bool = False,
    warn_on_missing_secret: bool = True,
) -> SafeEncryptionResult:
    """Encrypt ``values`` if a usable secret is configured.

    Args:
        values: Flag values to protect.
        secret: The flags secret, possibly unset.
        fallback_to_plaintext: Return the values unencrypted instead of
            nothing when encryption is unavailable or fails.
        warn_on_missing_secret: Log a warning when no usable secret is set.

    Returns:
        The encrypted payload, the plaintext fallback, or neither.

    """
    if not is_encryption_available(secret):
        if warn_on_missing_secret:
            logger.warning(
                "Flags secret unavailable; encryption skipped",
                extra={"fallback_to_plaintext": fallback_to_plaintext},
            )
        return SafeEncryptionResult(plaintext=values if fallback_to_plaintext else None)
    try:
        return SafeEncryptionResult(encrypted=encrypt(values, secret))  # type: ignore[arg-type]
    except TypeError:
        logger.exception("Flag values could not be encrypted")
        if fallback_to_plaintext:
            return SafeEncryptionResult(plaintext=values)
        raise
