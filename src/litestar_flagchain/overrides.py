"""Operator overrides read from the environment.

An override bypasses every computed policy for a flag. The variable for flag
``new-feature`` is ``FLAG_NEW_FEATURE``; export ``FLAG_NEW_FEATURE=true`` to
force it on.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from typing import Any

__all__ = [
    "DEFAULT_OVERRIDE_PREFIX",
    "EnvironmentOverrides",
    "override_variable_name",
    "parse_override_value",
]

DEFAULT_OVERRIDE_PREFIX = "FLAG_"

_INT_PATTERN = re.compile(r"^[+-]?\d+$")
_FLOAT_PATTERN = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")


def override_variable_name(flag_key: str, prefix: str = DEFAULT_OVERRIDE_PREFIX) -> str:
    """Return the environment variable name that overrides ``flag_key``."""
    return f"{prefix}{flag_key.upper().replace('-', '_')}"


def parse_override_value(raw: str) -> bool | int | float | str:
    """Convert an override literal to a Python value.

    ``"true"`` and ``"false"`` become booleans, numeric strings become
    ``int`` or ``float``, anything else is returned unchanged.
    """
    if raw == "true":
        return True
    if raw == "false":
        return False
    stripped = raw.strip()
    if _INT_PATTERN.match(stripped):
        return int(stripped)
    if _FLOAT_PATTERN.match(stripped):
        return float(stripped)
    return raw


class EnvironmentOverrides:
    """Looks up operator overrides in a mapping of variables.

    Args:
        source: Variables to read. Defaults to ``os.environ``, read live so
            overrides exported after start-up are honoured.
        prefix: Variable name prefix.

    """

    __slots__ = ("_source", "prefix")

    def __init__(self, source: Mapping[str, str] | None = None, prefix: str = DEFAULT_OVERRIDE_PREFIX) -> None:
        self._source = source
        self.prefix = prefix

    @property
    def source(self) -> Mapping[str, str]:
        return os.environ if self._source is None else self._source

    def get(self, flag_key: str) -> Any | None:
        """Return the parsed override for ``flag_key``, or ``None`` if unset."""
        raw = self.source.get(override_variable_name(flag_key, self.prefix))
        if raw is None:
            return None
        return parse_override_value(raw)

    def __contains__(self, flag_key: object) -> bool:
        return isinstance(flag_key, str) and override_variable_name(flag_key, self.prefix) in self.source
