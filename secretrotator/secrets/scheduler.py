"""Rotation due-time decisions."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from .rotation import RotationPolicy, RotationState


@dataclass(frozen=True)
class RotateNow:
    """The secret is due and must be rotated in this cycle."""


@dataclass(frozen=True)
class WaitFor:
    """The secret is not due yet."""

    delay: timedelta


Decision = Union[RotateNow, WaitFor]


class RotationScheduler:
    """Decides whether a rotation is due at a given instant."""

    def decide(self, policy: "RotationPolicy", state: "RotationState", now: datetime) -> Decision:
        """
        Decide whether to rotate now or how long to wait.

        The policy interval must already be known to be valid.

        Args:
            policy: Rotation policy
            state: Current rotation state
            now: Current time

        Returns:
            Decision: RotateNow, or WaitFor with the remaining delay
        """
        if state.last_rotated_time is None:
            return RotateNow()

        interval = policy.interval()
        elapsed = now - state.last_rotated_time
        if elapsed >= interval:
            return RotateNow()

        return WaitFor(interval - elapsed)

    def next_rotation_time(self, policy: "RotationPolicy", state: "RotationState") -> Optional[datetime]:
        """Return when the secret next falls due, or None if it never rotated."""
        if state.last_rotated_time is None:
            return None
        return state.last_rotated_time + policy.interval()
