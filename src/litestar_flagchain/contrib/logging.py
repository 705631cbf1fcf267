"""Structured logging sink for flag evaluations.

Uses structlog when it is installed, the standard library otherwise::

    from litestar_flagchain.contrib.logging import LoggingSink

    plugin = FlagChainPlugin(sinks=[LoggingSink(evaluation_level="INFO")])

"""

from __future__ import annotations

import logging
from typing import Any

try:
    import structlog

    STRUCTLOG_AVAILABLE = True
except ImportError:  # pragma: no cover
    structlog = None  # type: ignore[assignment]
    STRUCTLOG_AVAILABLE = False

__all__ = ["STRUCTLOG_AVAILABLE", "LoggingSink"]

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class LoggingSink:
    """Analytics sink that writes one log record per evaluation.

    Values are not logged unless ``log_values`` is set, since flag values may
    carry user-specific data. Evaluations that needed a fallback (some remote
    tier failed) are logged at ``fallback_level``.

    Args:
        logger: Logger to use. Defaults to a structlog logger when available,
            else ``logging.getLogger("litestar_flagchain.evaluations")``.
        evaluation_level: Level for ordinary evaluations.
        fallback_level: Level for evaluations where a remote tier failed.
        log_values: Include the resolved value.
        include_context: Include non-identifying context attributes.

    """

    def __init__(
        self,
        logger: Any = None,
        *,
        evaluation_level: str = "DEBUG",
        fallback_level: str = "WARNING",
        log_values: bool = False,
        include_context: bool = True,
    ) -> None:
        self._use_structlog = STRUCTLOG_AVAILABLE and logger is None
        if logger is not None:
            self._logger = logger
        elif self._use_structlog:
            self._logger = structlog.get_logger("litestar_flagchain.evaluations")
        else:
            self._logger = logging.getLogger("litestar_flagchain.evaluations")
        self._evaluation_level = evaluation_level.upper()
        self._fallback_level = fallback_level.upper()
        self._log_values = log_values
        self._include_context = include_context

    @property
    def logger(self) -> Any:
        return self._logger

    def _get_log_method(self, level: str) -> Any:
        name = level.upper()
        if name not in _LEVELS:
            name = "DEBUG"
        return getattr(self._logger, name.lower())

    def _build_log_data(self, properties: dict[str, Any]) -> dict[str, Any]:
        data: dict[str, Any] = {
            "flag_key": properties.get("flag_key"),
            "source": properties.get("source"),
            "duration_ms": properties.get("evaluation_duration_ms"),
        }
        if properties.get("failures"):
            data["failed_tiers"] = list(properties["failures"])
        if properties.get("identity_hash"):
            data["identity_hash"] = properties["identity_hash"]
        if self._log_values:
            data["value"] = properties.get("value")
        if self._include_context:
            for key, value in (properties.get("context_attributes") or {}).items():
                data[f"context_{key}"] = value
        return data

    def _log_with_data(self, level: str, message: str, data: dict[str, Any]) -> None:
        method = self._get_log_method(level)
        if self._use_structlog:
            method(message, **data)
        else:
            method(message, extra=data)

    def track(self, event_name: str, properties: dict[str, Any]) -> None:
        """Log one evaluation event."""
        data = self._build_log_data(properties)
        flag_key = data["flag_key"]
        if data.get("failed_tiers"):
            self._log_with_data(self._fallback_level, f"Feature flag resolved after fallback: {flag_key}", data)
        else:
            self._log_with_data(self._evaluation_level, f"Feature flag {event_name}: {flag_key}", data)
