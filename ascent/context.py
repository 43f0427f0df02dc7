"""Explicit call context for engine operations.

The engine never reads the current user or the clock from ambient state.
Callers resolve the authenticated actor upstream and pass an
``EngineContext`` into every operation.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from uuid import UUID

from ascent.repositories.exceptions import PermissionDeniedError
from ascent.shared.utils.datetime_utils import ensure_utc, utcnow


class Role(str, Enum):
    """Roles resolved by the identity provider."""

    ATHLETE = "athlete"
    PARENT = "parent"
    COACH = "coach"
    GYM_ADMIN = "gym_admin"
    SYSTEM_ADMIN = "system_admin"


@dataclass(frozen=True)
class Actor:
    """A pre-validated ``{user_id, role}`` pair."""

    user_id: UUID
    role: Role

    def has_role(self, roles: "frozenset[Role] | set[Role] | list[Role]") -> bool:
        return self.role in roles


@dataclass(frozen=True)
class EngineContext:
    """Who is acting and at what instant."""

    actor: Actor
    now: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        object.__setattr__(self, "now", ensure_utc(self.now))

    @property
    def today(self) -> date:
        return self.now.date()

    def log_context(self) -> dict[str, str]:
        return {"actor_id": str(self.actor.user_id), "actor_role": self.actor.role.value}


def require_role(ctx: EngineContext, roles: "frozenset[Role]", action: str) -> None:
    """Raise PermissionDeniedError unless the acting role is one of ``roles``."""
    if not ctx.actor.has_role(roles):
        raise PermissionDeniedError(action, ctx.actor.role.value)


__all__ = ["Actor", "EngineContext", "Role", "require_role"]
