"""Exceptions raised by litestar-flagchain."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from litestar_flagchain.types import ResolutionSource, SecretIssue

__all__ = [
    "AdapterFailure",
    "ConfigurationError",
    "DecryptionError",
    "FlagChainError",
    "InvalidSecretError",
    "OfflineEvaluationError",
]


class FlagChainError(Exception):
    """Base exception for all litestar-flagchain errors."""


class ConfigurationError(FlagChainError, ValueError):
    """Structurally invalid flag or codec configuration.

    Raised at definition or validation time. The offline evaluator also logs
    (but never raises) this error when it meets a broken policy at runtime.
    """


class InvalidSecretError(ConfigurationError):
    """The encryption secret failed validation.

    Attributes:
        issue: Which validation rule rejected the secret.

    """

    def __init__(self, issue: SecretIssue, reason: str) -> None:
        self.issue = issue
        super().__init__(reason)


class AdapterFailure(FlagChainError):
    """A remote adapter tier failed, timed out, or gave no answer.

    Never surfaced to callers of the resolver; it is recorded and the chain
    advances to the next tier.

    Attributes:
        flag_key: The flag being evaluated.
        source: The tier that failed.
        timed_out: Whether the failure was a timeout.

    """

    def __init__(
        self,
        flag_key: str,
        source: ResolutionSource,
        message: str,
        *,
        timed_out: bool = False,
    ) -> None:
        self.flag_key = flag_key
        self.source = source
        self.timed_out = timed_out
        super().__init__(f"{source.value} adapter failed for flag '{flag_key}': {message}")


class OfflineEvaluationError(FlagChainError):
    """A custom predicate or offline policy failed at evaluation time."""

    def __init__(self, flag_key: str, message: str) -> None:
        self.flag_key = flag_key
        super().__init__(f"Offline evaluation failed for flag '{flag_key}': {message}")


class DecryptionError(FlagChainError):
    """An encrypted payload could not be decoded, verified or parsed."""
