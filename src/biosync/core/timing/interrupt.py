"""Debounced interrupt primitive shared by the gatekeeper and the sleep tracker.

Both components follow the same shape: an *anchor* moment (a plan item's
scheduled time, or the last proof of wakefulness), a quiet period after which
an interrupt becomes eligible, an optional expiry after which the window is
closed for good, and an optional confirmation delay that turns an armed,
unanswered interrupt into a confirmed outcome.

All times are epoch milliseconds.
"""

from __future__ import annotations

from dataclasses import dataclass

MS_PER_MINUTE = 60_000


@dataclass(frozen=True)
class InterruptPolicy:
    """Timing policy for a debounced interrupt.

    Attributes:
        arm_after_ms: Quiet period after the anchor before the window opens.
        expire_after_ms: Elapsed time (from the anchor) at which the window
            closes. ``None`` keeps the window open indefinitely.
        confirm_after_ms: Delay after arming before an unanswered interrupt
            is considered confirmed. ``None`` disables confirmation.
    """

    arm_after_ms: int = 0
    expire_after_ms: int | None = None
    confirm_after_ms: int | None = None

    @classmethod
    def from_minutes(
        cls,
        arm_after: float = 0,
        *,
        expire_after: float | None = None,
        confirm_after: float | None = None,
    ) -> InterruptPolicy:
        return cls(
            arm_after_ms=int(arm_after * MS_PER_MINUTE),
            expire_after_ms=None if expire_after is None else int(expire_after * MS_PER_MINUTE),
            confirm_after_ms=None if confirm_after is None else int(confirm_after * MS_PER_MINUTE),
        )


@dataclass
class DebouncedInterrupt:
    """A single interrupt tracked against an anchor moment.

    Usage::

        stillness = DebouncedInterrupt(policy, anchor_ms=last_motion_ms)
        if stillness.try_arm(now_ms):
            show_prompt()
        if stillness.confirmation_due(now_ms):
            stillness.confirm(now_ms)
    """

    policy: InterruptPolicy
    anchor_ms: int
    armed_at_ms: int | None = None
    confirmed_at_ms: int | None = None

    def elapsed_ms(self, now_ms: int) -> int:
        return now_ms - self.anchor_ms

    @property
    def armed(self) -> bool:
        return self.armed_at_ms is not None

    @property
    def confirmed(self) -> bool:
        return self.confirmed_at_ms is not None

    def window_open(self, now_ms: int) -> bool:
        """True while ``arm_after <= elapsed < expire_after``."""
        elapsed = self.elapsed_ms(now_ms)
        if elapsed < self.policy.arm_after_ms:
            return False
        if self.policy.expire_after_ms is not None and elapsed >= self.policy.expire_after_ms:
            return False
        return True

    def expired(self, now_ms: int) -> bool:
        """True once elapsed time is strictly past ``expire_after``."""
        if self.policy.expire_after_ms is None:
            return False
        return self.elapsed_ms(now_ms) > self.policy.expire_after_ms

    def try_arm(
        self,
        now_ms: int,
        *,
        suppressed: bool = False,
        override: bool = False,
    ) -> bool:
        """Arm the interrupt if its window is open.

        An interrupt arms at most once until ``reset``. ``suppressed`` holds
        it back unless ``override`` is set.

        Returns:
            True if this call armed the interrupt.
        """
        if self.armed or self.confirmed:
            return False
        if not self.window_open(now_ms):
            return False
        if suppressed and not override:
            return False
        self.armed_at_ms = now_ms
        return True

    def confirmation_due(self, now_ms: int) -> bool:
        if not self.armed or self.confirmed or self.policy.confirm_after_ms is None:
            return False
        return now_ms - self.armed_at_ms >= self.policy.confirm_after_ms  # type: ignore[operator]

    def confirm(self, now_ms: int) -> int:
        """Mark the interrupt confirmed; returns the anchor it was measured from."""
        self.confirmed_at_ms = now_ms
        self.armed_at_ms = None
        return self.anchor_ms

    def reset(self, now_ms: int) -> None:
        """Restart the quiet period from ``now_ms`` and disarm."""
        self.anchor_ms = now_ms
        self.armed_at_ms = None
        self.confirmed_at_ms = None
