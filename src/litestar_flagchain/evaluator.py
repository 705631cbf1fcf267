"""Deterministic offline evaluator.

The last tier of every adapter chain. Given a flag key, an offline policy and
a context it always produces a value: operator overrides first, then the
policy, then the ultimate safe fallback when anything goes wrong. Apart from
time-based policies, which read the clock, the result depends only on the flag
key and the context identity.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from litestar_flagchain.context import UnifiedContext
from litestar_flagchain.exceptions import ConfigurationError, OfflineEvaluationError
from litestar_flagchain.hashing import bucket_for
from litestar_flagchain.overrides import EnvironmentOverrides
from litestar_flagchain.security import hash_identity
from litestar_flagchain.types import OfflinePolicyType

__all__ = [
    "OfflineEvaluator",
    "OfflineFallbackConfig",
    "Schedule",
    "ultimate_fallback",
]

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class Schedule:
    """A time window for ``time-based`` policies.

    Every constraint that is set must pass. Naive datetimes are interpreted in
    the schedule's timezone.

    Attributes:
        start: Earliest instant the flag is on (inclusive).
        end: Latest instant the flag is on (inclusive).
        days: Allowed days of week, 0=Sunday through 6=Saturday.
        hours: Allowed hours of day, 0-23.
        timezone: IANA timezone the days and hours are read in.

    """

    start: datetime | None = None
    end: datetime | None = None
    days: tuple[int, ...] | None = None
    hours: tuple[int, ...] | None = None
    timezone: str = "UTC"

    def __post_init__(self) -> None:
        if self.days is not None:
            object.__setattr__(self, "days", tuple(self.days))
        if self.hours is not None:
            object.__setattr__(self, "hours", tuple(self.hours))

    def validate(self) -> None:
        """Raise :class:`ConfigurationError` if the schedule is malformed."""
        if self.days is not None and any(not 0 <= day <= 6 for day in self.days):
            msg = f"Schedule days must be between 0 (Sunday) and 6 (Saturday), got {list(self.days)}"
            raise ConfigurationError(msg)
        if self.hours is not None and any(not 0 <= hour <= 23 for hour in self.hours):
            msg = f"Schedule hours must be between 0 and 23, got {list(self.hours)}"
            raise ConfigurationError(msg)
        tz = self.tzinfo()
        if self.start is not None and self.end is not None:
            if self._aware(self.start, tz) > self._aware(self.end, tz):
                msg = "Schedule start must not be after its end"
                raise ConfigurationError(msg)

    def tzinfo(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            msg = f"Unknown schedule timezone: {self.timezone}"
            raise ConfigurationError(msg) from exc

    @staticmethod
    def _aware(value: datetime, tz: ZoneInfo) -> datetime:
        return value.replace(tzinfo=tz) if value.tzinfo is None else value

    def is_active(self, now: datetime) -> bool:
        """Check whether ``now`` falls inside the schedule.

        Args:
            now: The instant to test. Naive values are taken as UTC.

        Returns:
            True only if every present constraint passes.

        """
        tz = self.tzinfo()
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        local_now = now.astimezone(tz)

        if self.start is not None and local_now < self._aware(self.start, tz):
            return False
        if self.end is not None and local_now > self._aware(self.end, tz):
            return False
        # datetime.weekday() is Monday=0; schedules use Sunday=0.
        if self.days is not None and (local_now.weekday() + 1) % 7 not in self.days:
            return False
        return not (self.hours is not None and local_now.hour not in self.hours)


@dataclass(frozen=True, slots=True)
class OfflineFallbackConfig:
    """The offline policy of an adapter chain.

    Construction only normalizes values; call :meth:`validate` (as
    :func:`~litestar_flagchain.definition.define` does) to reject broken
    configurations up front.

    Attributes:
        type: Which policy to apply.
        percentage: Rollout percentage for ``boolean`` and ``percentage``.
        variants: Candidate values for ``variant``. The first one is also the
            ultimate fallback for every policy.
        schedule: Window for ``time-based``.
        custom_logic: Predicate for ``custom``; receives the context.

    Example:
        >>> OfflineFallbackConfig(type="percentage", percentage=25)
        OfflineFallbackConfig(type=<OfflinePolicyType.PERCENTAGE: 'percentage'>, percentage=25, ...)

    """

    type: OfflinePolicyType
    percentage: float | None = None
    variants: tuple[Any, ...] = ()
    schedule: Schedule | None = None
    custom_logic: Callable[[UnifiedContext], Any] | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        try:
            policy = OfflinePolicyType(self.type)
        except ValueError as exc:
            valid = ", ".join(p.value for p in OfflinePolicyType)
            msg = f"Invalid offline policy type: {self.type!r} (expected one of {valid})"
            raise ConfigurationError(msg) from exc
        object.__setattr__(self, "type", policy)
        if not isinstance(self.variants, tuple):
            object.__setattr__(self, "variants", tuple(self.variants))

    def validate(self) -> None:
        """Raise :class:`ConfigurationError` if the policy cannot be evaluated."""
        if self.percentage is not None:
            if isinstance(self.percentage, bool) or not isinstance(self.percentage, int | float):
                msg = f"Offline percentage must be a number, got {self.percentage!r}"
                raise ConfigurationError(msg)
            if not 0 <= self.percentage <= 100:
                msg = f"Offline percentage must be between 0 and 100, got {self.percentage}"
                raise ConfigurationError(msg)

        if self.type is OfflinePolicyType.PERCENTAGE and self.percentage is None:
            msg = "A percentage policy requires 'percentage'"
            raise ConfigurationError(msg)
        if self.type is OfflinePolicyType.VARIANT and not self.variants:
            msg = "A variant policy requires at least one variant"
            raise ConfigurationError(msg)
        if self.type is OfflinePolicyType.TIME_BASED:
            if self.schedule is None:
                msg = "A time-based policy requires a 'schedule'"
                raise ConfigurationError(msg)
            self.schedule.validate()
        if self.type is OfflinePolicyType.CUSTOM and not callable(self.custom_logic):
            msg = "A custom policy requires a callable 'custom_logic'"
            raise ConfigurationError(msg)


def ultimate_fallback(config: OfflineFallbackConfig) -> Any:
    """The safe value used when offline evaluation fails: first variant or ``False``."""
    return config.variants[0] if config.variants else False


class OfflineEvaluator:
    """Pure, deterministic evaluation of offline policies.

    Args:
        overrides: Operator override lookup. Defaults to ``FLAG_*`` variables
            in ``os.environ``.
        clock: Returns the current time for ``time-based`` policies.

    """

    __slots__ = ("clock", "overrides")

    def __init__(self, overrides: EnvironmentOverrides | None = None, clock: Clock | None = None) -> None:
        self.overrides = overrides if overrides is not None else EnvironmentOverrides()
        self.clock: Clock = clock or _utc_now

    def evaluate(self, flag_key: str, config: OfflineFallbackConfig, context: UnifiedContext) -> Any:
        """Evaluate ``config`` for ``context``; never raises.

        Args:
            flag_key: The flag being evaluated.
            config: The offline policy.
            context: The evaluation context.

        Returns:
            The override if one is set, else the policy value, else the
            ultimate fallback.

        """
        try:
            override = self.overrides.get(flag_key)
            if override is not None:
                logger.debug("Environment override applied for flag '%s'", flag_key)
                return override
            return self._apply_policy(flag_key, config, context)
        except ConfigurationError as exc:
            logger.error(
                "Misconfigured offline policy for flag '%s'; serving fallback",
                flag_key,
                exc_info=exc,
                extra={"flag_key": flag_key, "policy": getattr(config.type, "value", config.type)},
            )
        except Exception as exc:
            if isinstance(exc, OfflineEvaluationError):
                error = exc
            else:
                error = OfflineEvaluationError(flag_key, f"{type(exc).__name__}: {exc}")
                error.__cause__ = exc
            logger.error(
                "Offline evaluation failed for flag '%s'; serving fallback",
                flag_key,
                exc_info=error,
                extra={"flag_key": flag_key, "identity_hash": hash_identity(context.identity)},
            )
        return ultimate_fallback(config)

    def _apply_policy(self, flag_key: str, config: OfflineFallbackConfig, context: UnifiedContext) -> Any:
        policy = config.type
        if policy in (OfflinePolicyType.BOOLEAN, OfflinePolicyType.PERCENTAGE):
            if config.percentage is None and policy is OfflinePolicyType.BOOLEAN:
                return False
            config.validate()
            return self._in_rollout(flag_key, context.identity, config.percentage)
        if policy is OfflinePolicyType.VARIANT:
            config.validate()
            return self._select_variant(flag_key, context.identity, config.variants)
        if policy is OfflinePolicyType.TIME_BASED:
            config.validate()
            return config.schedule.is_active(self.clock())  # type: ignore[union-attr]
        config.validate()
        return self._run_custom(flag_key, config, context)

    @staticmethod
    def _in_rollout(flag_key: str, identity: str, percentage: float | None) -> bool:
        """Check whether ``identity`` falls inside a percentage rollout."""
        if not percentage:
            return False
        return bucket_for(flag_key, identity) < percentage

    @staticmethod
    def _select_variant(flag_key: str, identity: str, variants: Sequence[Any]) -> Any:
        return variants[bucket_for(flag_key, identity, len(variants))]

    @staticmethod
    def _run_custom(flag_key: str, config: OfflineFallbackConfig, context: UnifiedContext) -> Any:
        value = config.custom_logic(context)  # type: ignore[misc]
        if inspect.isawaitable(value):
            if inspect.iscoroutine(value):
                value.close()
            msg = "custom_logic must be synchronous"
            raise OfflineEvaluationError(flag_key, msg)
        if value is None:
            msg = "custom_logic returned no value"
            raise OfflineEvaluationError(flag_key, msg)
        return value
