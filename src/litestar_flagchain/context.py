"""Evaluation context for flag resolution."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from litestar_flagchain.types import UserTier

__all__ = [
    "ANONYMOUS_USER_ID",
    "DEFAULT_COUNTRY",
    "UNKNOWN",
    "RequestContext",
    "UnifiedContext",
    "UserContext",
    "VisitorContext",
]

ANONYMOUS_USER_ID = "anonymous"
DEFAULT_COUNTRY = "US"
UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class UserContext:
    """The signed-in (or anonymous) user."""

    id: str = ANONYMOUS_USER_ID
    tier: str = UserTier.ANONYMOUS.value
    session_id: str | None = None

    @property
    def is_anonymous(self) -> bool:
        return self.id == ANONYMOUS_USER_ID


@dataclass(frozen=True, slots=True)
class VisitorContext:
    """The browser or device, identified by a long-lived cookie."""

    id: str


@dataclass(frozen=True, slots=True)
class RequestContext:
    """Attributes of the incoming request."""

    country: str = DEFAULT_COUNTRY
    user_agent: str = UNKNOWN
    environment: str = UNKNOWN
    deployment: str = UNKNOWN


@dataclass(frozen=True, slots=True)
class UnifiedContext:
    """Immutable context a flag is evaluated against.

    Built once per logical request by the context extractor and shared by
    every flag evaluated during that request.

    Attributes:
        user: The user making the request.
        visitor: The visitor (device) making the request.
        request: Request-level attributes such as country and environment.
        timestamp: When the context was built (timezone-aware, UTC).

    Example:
        >>> context = UnifiedContext(visitor=VisitorContext(id="v-1"))
        >>> context.identity
        'anonymousv-1'

    """

    visitor: VisitorContext
    user: UserContext = field(default_factory=UserContext)
    request: RequestContext = field(default_factory=RequestContext)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def identity(self) -> str:
        """The string the offline evaluator buckets on: user id then visitor id."""
        return f"{self.user.id}{self.visitor.id}"

    def with_user(self, **changes: Any) -> UnifiedContext:
        """Create a new context with user fields replaced.

        Args:
            **changes: Fields of :class:`UserContext` to replace.

        Returns:
            New UnifiedContext; the original is unchanged.

        """
        return replace(self, user=replace(self.user, **changes))

    def with_request(self, **changes: Any) -> UnifiedContext:
        """Create a new context with request fields replaced."""
        return replace(self, request=replace(self.request, **changes))

    def with_visitor_id(self, visitor_id: str) -> UnifiedContext:
        """Create a new context for a different visitor."""
        return replace(self, visitor=VisitorContext(id=visitor_id))

    def to_dict(self) -> dict[str, Any]:
        """Serialize the context to a JSON-compatible dictionary."""
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data
