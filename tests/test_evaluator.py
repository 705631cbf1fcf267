"""Tests for the deterministic offline evaluator."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

import pytest

from litestar_flagchain.context import UnifiedContext
from litestar_flagchain.evaluator import OfflineEvaluator, OfflineFallbackConfig, Schedule, ultimate_fallback
from litestar_flagchain.exceptions import ConfigurationError, OfflineEvaluationError
from litestar_flagchain.hashing import bucket_for
from litestar_flagchain.overrides import EnvironmentOverrides
from litestar_flagchain.types import OfflinePolicyType

SUNDAY_3AM = datetime(2024, 1, 7, 3, 0, tzinfo=UTC)
MONDAY_3AM = datetime(2024, 1, 8, 3, 0, tzinfo=UTC)


def _config_error_records(caplog: pytest.LogCaptureFixture) -> list[logging.LogRecord]:
    return [r for r in caplog.records if r.exc_info and r.exc_info[0] is ConfigurationError]


def _evaluation_error_records(caplog: pytest.LogCaptureFixture) -> list[logging.LogRecord]:
    return [r for r in caplog.records if r.exc_info and r.exc_info[0] is OfflineEvaluationError]


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------
class TestOfflineFallbackConfig:
    """Tests for OfflineFallbackConfig construction and validation."""

    def test_type_coerced_from_string(self) -> None:
        """Test that string policy types become enum members."""
        config = OfflineFallbackConfig(type="time-based", schedule=Schedule())
        assert config.type is OfflinePolicyType.TIME_BASED

    def test_invalid_type(self) -> None:
        """Test that unknown policy types are rejected."""
        with pytest.raises(ConfigurationError, match="Invalid offline policy type"):
            OfflineFallbackConfig(type="random")  # type: ignore[arg-type]

    def test_variants_become_tuple(self) -> None:
        """Test that variant lists are frozen into tuples."""
        config = OfflineFallbackConfig(type="variant", variants=["a", "b"])  # type: ignore[arg-type]
        assert config.variants == ("a", "b")

    @pytest.mark.parametrize(
        ("kwargs", "message"),
        [
            ({"type": "percentage"}, "requires 'percentage'"),
            ({"type": "percentage", "percentage": 101}, "between 0 and 100"),
            ({"type": "boolean", "percentage": -1}, "between 0 and 100"),
            ({"type": "boolean", "percentage": "50"}, "must be a number"),
            ({"type": "variant"}, "at least one variant"),
            ({"type": "time-based"}, "requires a 'schedule'"),
            ({"type": "custom"}, "callable 'custom_logic'"),
        ],
    )
    def test_validate_rejects(self, kwargs: dict[str, object], message: str) -> None:
        """Test each structural configuration error."""
        config = OfflineFallbackConfig(**kwargs)  # type: ignore[arg-type]
        with pytest.raises(ConfigurationError, match=message):
            config.validate()

    def test_validate_accepts_boolean_without_percentage(self) -> None:
        """Test that a boolean policy may omit its percentage."""
        OfflineFallbackConfig(type="boolean").validate()  # type: ignore[arg-type]

    def test_ultimate_fallback(self) -> None:
        """Test the ultimate fallback values."""
        assert ultimate_fallback(OfflineFallbackConfig(type="variant", variants=("x", "y"))) == "x"  # type: ignore[arg-type]
        assert ultimate_fallback(OfflineFallbackConfig(type="boolean")) is False  # type: ignore[arg-type]


class TestSchedule:
    """Tests for Schedule."""

    def test_validate_days(self) -> None:
        """Test day-of-week bounds."""
        with pytest.raises(ConfigurationError, match="days"):
            Schedule(days=(7,)).validate()

    def test_validate_hours(self) -> None:
        """Test hour bounds."""
        with pytest.raises(ConfigurationError, match="hours"):
            Schedule(hours=(24,)).validate()

    def test_validate_range(self) -> None:
        """Test that start must not be after end."""
        with pytest.raises(ConfigurationError, match="start"):
            Schedule(start=MONDAY_3AM, end=SUNDAY_3AM).validate()

    def test_validate_timezone(self) -> None:
        """Test unknown timezones."""
        with pytest.raises(ConfigurationError, match="timezone"):
            Schedule(timezone="Mars/Olympus_Mons").validate()

    def test_sunday_is_zero(self) -> None:
        """Test the Sunday=0 day numbering."""
        schedule = Schedule(days=(0,))
        assert schedule.is_active(SUNDAY_3AM) is True
        assert schedule.is_active(MONDAY_3AM) is False

    def test_inclusive_range(self) -> None:
        """Test that start and end are inclusive."""
        schedule = Schedule(start=SUNDAY_3AM, end=MONDAY_3AM)
        assert schedule.is_active(SUNDAY_3AM)
        assert schedule.is_active(MONDAY_3AM)
        assert not schedule.is_active(datetime(2024, 1, 8, 3, 0, 1, tzinfo=UTC))

    def test_constraints_are_anded(self) -> None:
        """Test that all present constraints must pass."""
        schedule = Schedule(days=(0,), hours=(9, 10, 11))
        assert schedule.is_active(SUNDAY_3AM) is False
        assert schedule.is_active(datetime(2024, 1, 7, 10, 30, tzinfo=UTC)) is True

    def test_timezone(self) -> None:
        """Test that days and hours are read in the schedule timezone."""
        # 03:00 UTC on Monday is 22:00 on Sunday in New York.
        schedule = Schedule(days=(0,), hours=(22,), timezone="America/New_York")
        assert schedule.is_active(MONDAY_3AM) is True

    def test_naive_now_is_utc(self) -> None:
        """Test that naive instants are taken as UTC."""
        assert Schedule(days=(0,)).is_active(datetime(2024, 1, 7, 3, 0)) is True


# -----------------------------------------------------------------------------
# Evaluation
# -----------------------------------------------------------------------------
class TestPercentagePolicies:
    """Tests for boolean and percentage rollouts."""

    def test_deterministic(self, evaluator: OfflineEvaluator, context: UnifiedContext) -> None:
        """Test that repeated evaluation gives the same value."""
        config = OfflineFallbackConfig(type="percentage", percentage=50)  # type: ignore[arg-type]
        values = {evaluator.evaluate("beta-x", config, context) for _ in range(20)}
        assert len(values) == 1

    def test_matches_bucket(self, evaluator: OfflineEvaluator, context: UnifiedContext) -> None:
        """Test that the decision is ``bucket < percentage``."""
        bucket = bucket_for("beta-x", context.identity)
        at_bucket = OfflineFallbackConfig(type="percentage", percentage=bucket)  # type: ignore[arg-type]
        above_bucket = OfflineFallbackConfig(type="percentage", percentage=bucket + 1)  # type: ignore[arg-type]
        assert evaluator.evaluate("beta-x", at_bucket, context) is False
        assert evaluator.evaluate("beta-x", above_bucket, context) is True

    def test_bounds(self, evaluator: OfflineEvaluator, context: UnifiedContext) -> None:
        """Test that 0% is always off and 100% always on."""
        off = OfflineFallbackConfig(type="percentage", percentage=0)  # type: ignore[arg-type]
        on = OfflineFallbackConfig(type="boolean", percentage=100)  # type: ignore[arg-type]
        assert evaluator.evaluate("flag", off, context) is False
        assert evaluator.evaluate("flag", on, context) is True

    def test_boolean_without_percentage_is_off(self, evaluator: OfflineEvaluator, context: UnifiedContext) -> None:
        """Test the boolean policy default."""
        assert evaluator.evaluate("flag", OfflineFallbackConfig(type="boolean"), context) is False  # type: ignore[arg-type]

    def test_calibration(
        self, evaluator: OfflineEvaluator, make_context: Callable[..., UnifiedContext]
    ) -> None:
        """Test that a 50% rollout enables roughly half of 10,000 visitors."""
        config = OfflineFallbackConfig(type="percentage", percentage=50)  # type: ignore[arg-type]
        enabled = sum(
            evaluator.evaluate("rollout", config, make_context(visitor_id=f"visitor-{i}")) for i in range(10_000)
        )
        assert 4500 <= enabled <= 5500

    def test_out_of_range_logs_configuration_error(
        self, evaluator: OfflineEvaluator, context: UnifiedContext, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that an invalid percentage yields the fallback and a log record."""
        config = OfflineFallbackConfig(type="percentage", percentage=150)  # type: ignore[arg-type]
        assert evaluator.evaluate("flag", config, context) is False
        assert _config_error_records(caplog)


class TestVariantPolicy:
    """Tests for variant bucketing."""

    def test_stable_assignment(self, evaluator: OfflineEvaluator, context: UnifiedContext) -> None:
        """Test that a context always gets the same variant."""
        config = OfflineFallbackConfig(type="variant", variants=("control", "a", "b"))  # type: ignore[arg-type]
        first = evaluator.evaluate("experiment", config, context)
        assert first in config.variants
        assert all(evaluator.evaluate("experiment", config, context) == first for _ in range(10))

    def test_matches_bucket(self, evaluator: OfflineEvaluator, context: UnifiedContext) -> None:
        """Test that the variant is ``variants[hash % len]``."""
        variants = ("control", "a", "b")
        config = OfflineFallbackConfig(type="variant", variants=variants)  # type: ignore[arg-type]
        expected = variants[bucket_for("experiment", context.identity, len(variants))]
        assert evaluator.evaluate("experiment", config, context) == expected

    def test_all_variants_reachable(
        self, evaluator: OfflineEvaluator, make_context: Callable[..., UnifiedContext]
    ) -> None:
        """Test that every variant is served to some visitor."""
        config = OfflineFallbackConfig(type="variant", variants=("control", "a", "b"))  # type: ignore[arg-type]
        seen = {evaluator.evaluate("experiment", config, make_context(visitor_id=f"v-{i}")) for i in range(300)}
        assert seen == {"control", "a", "b"}

    def test_empty_variants_serve_false_and_log(
        self, evaluator: OfflineEvaluator, context: UnifiedContext, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that an empty variant list is logged as a configuration error."""
        config = OfflineFallbackConfig(type="variant", variants=())  # type: ignore[arg-type]
        assert evaluator.evaluate("experiment", config, context) is False
        records = _config_error_records(caplog)
        assert records
        assert records[0].levelno == logging.ERROR
        assert records[0].flag_key == "experiment"  # type: ignore[attr-defined]


class TestTimeBasedPolicy:
    """Tests for schedule gating."""

    def test_uses_injected_clock(self, context: UnifiedContext) -> None:
        """Test Sunday-only gating with a fixed clock."""
        config = OfflineFallbackConfig(type="time-based", schedule=Schedule(days=(0,)))  # type: ignore[arg-type]
        overrides = EnvironmentOverrides(source={})

        assert OfflineEvaluator(overrides, clock=lambda: SUNDAY_3AM).evaluate("weekend", config, context) is True
        assert OfflineEvaluator(overrides, clock=lambda: MONDAY_3AM).evaluate("weekend", config, context) is False

    def test_missing_schedule_logs(
        self, evaluator: OfflineEvaluator, context: UnifiedContext, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that a time-based policy without a schedule serves the fallback."""
        config = OfflineFallbackConfig(type="time-based")  # type: ignore[arg-type]
        assert evaluator.evaluate("weekend", config, context) is False
        assert _config_error_records(caplog)


class TestCustomPolicy:
    """Tests for custom predicates."""

    def test_predicate_result(self, evaluator: OfflineEvaluator, context: UnifiedContext) -> None:
        """Test that the predicate's value is returned."""
        config = OfflineFallbackConfig(
            type="custom",  # type: ignore[arg-type]
            custom_logic=lambda ctx: ctx.user.tier == "premium",
        )
        assert evaluator.evaluate("premium-only", config, context) is True

    def test_raising_predicate(
        self, evaluator: OfflineEvaluator, context: UnifiedContext, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that predicate errors are logged and serve the first variant."""

        def broken(ctx: UnifiedContext) -> str:
            msg = "bug"
            raise KeyError(msg)

        config = OfflineFallbackConfig(type="custom", variants=("safe", "risky"), custom_logic=broken)  # type: ignore[arg-type]
        assert evaluator.evaluate("custom-flag", config, context) == "safe"
        records = _evaluation_error_records(caplog)
        assert records
        assert "KeyError" in str(records[0].exc_info[1])  # type: ignore[index]
        assert "user-123" not in caplog.text

    def test_none_result_falls_back(self, evaluator: OfflineEvaluator, context: UnifiedContext) -> None:
        """Test that a None result serves the ultimate fallback."""
        config = OfflineFallbackConfig(type="custom", custom_logic=lambda ctx: None)  # type: ignore[arg-type]
        assert evaluator.evaluate("custom-flag", config, context) is False

    def test_async_predicate_is_rejected(
        self, evaluator: OfflineEvaluator, context: UnifiedContext, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that coroutine predicates are treated as errors."""

        async def predicate(ctx: UnifiedContext) -> bool:
            return True

        config = OfflineFallbackConfig(type="custom", custom_logic=predicate)  # type: ignore[arg-type]
        assert evaluator.evaluate("custom-flag", config, context) is False
        assert _evaluation_error_records(caplog)


class TestOverrides:
    """Tests for environment override precedence."""

    def test_override_beats_policy(
        self, evaluator: OfflineEvaluator, overrides: dict[str, str], context: UnifiedContext
    ) -> None:
        """Test that ``FLAG_BETA_X=true`` beats a 0% rollout."""
        overrides["FLAG_BETA_X"] = "true"
        config = OfflineFallbackConfig(type="percentage", percentage=0)  # type: ignore[arg-type]
        assert evaluator.evaluate("beta-x", config, context) is True

    def test_override_beats_broken_config(
        self, evaluator: OfflineEvaluator, overrides: dict[str, str], context: UnifiedContext
    ) -> None:
        """Test that an override is served even when the policy is misconfigured."""
        overrides["FLAG_EXPERIMENT"] = "treatment"
        config = OfflineFallbackConfig(type="variant")  # type: ignore[arg-type]
        assert evaluator.evaluate("experiment", config, context) == "treatment"

    def test_process_environment(self, monkeypatch: pytest.MonkeyPatch, context: UnifiedContext) -> None:
        """Test the default evaluator reading os.environ."""
        monkeypatch.setenv("FLAG_MAX_ITEMS", "25")
        config = OfflineFallbackConfig(type="boolean")  # type: ignore[arg-type]
        assert OfflineEvaluator().evaluate("max-items", config, context) == 25
