# Overview: Explicit actor identity passed into every core call.

from __future__ import annotations

from dataclasses import dataclass

from ..permissions import Role, coerce_role


@dataclass(frozen=True)
class Actor:
    """
    Already-authenticated identity on whose behalf an operation runs.

    The core never loads or mutates users; callers build an Actor from their
    own session layer and pass it in explicitly.
    """
    user_id: int
    account_id: int
    role: Role

    def __post_init__(self) -> None:
        # Closed enumeration: unknown roles fail here, not deep in a check
        object.__setattr__(self, "role", coerce_role(self.role))

    @property
    def is_tech(self) -> bool:
        return self.role is Role.TECH
