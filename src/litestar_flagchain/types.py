"""Type definitions and enums for litestar-flagchain."""

from __future__ import annotations

from enum import Enum

__all__ = [
    "OfflinePolicyType",
    "ResolutionSource",
    "ResolutionStage",
    "SecretIssue",
    "UserTier",
]


class OfflinePolicyType(str, Enum):
    """Policies the offline evaluator can apply.

    Attributes:
        BOOLEAN: On for ``percentage`` percent of identities (off when unset).
        PERCENTAGE: Hash-based percentage rollout.
        VARIANT: Hash-based bucketing into one of several variants.
        TIME_BASED: Wall-clock schedule gating.
        CUSTOM: Caller-supplied predicate over the context.

    """

    BOOLEAN = "boolean"
    PERCENTAGE = "percentage"
    VARIANT = "variant"
    TIME_BASED = "time-based"
    CUSTOM = "custom"


class ResolutionSource(str, Enum):
    """The tier that produced an evaluation result."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    OFFLINE = "offline"


class ResolutionStage(str, Enum):
    """States of the per-call resolution state machine."""

    TRY_PRIMARY = "try_primary"
    TRY_SECONDARY = "try_secondary"
    OFFLINE = "offline"
    DONE = "done"


class UserTier(str, Enum):
    """Subscription tiers derived during context extraction."""

    ANONYMOUS = "anonymous"
    FREE = "free"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


class SecretIssue(str, Enum):
    """Reasons a flags secret can be rejected."""

    EMPTY = "empty"
    TOO_SHORT = "too_short"
    BAD_CHARSET = "bad_charset"
