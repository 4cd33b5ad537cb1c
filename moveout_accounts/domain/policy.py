"""Authorization and inactivity decision rules."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from .account import Account, DeactivationReason
from .contracts import Transition, TransitionKind


def can_manage(caller: Account | None, caller_id: str, target_id: str) -> bool:
    """Return ``True`` when the caller may run lifecycle operations on ``target_id``."""
    if caller_id == target_id:
        return True
    return caller is not None and caller.is_admin


@dataclass(frozen=True)
class SweepPolicy:
    """Timing parameters driving the inactivity sweeper."""

    inactivity_threshold: timedelta
    warn_lead_time: timedelta
    sweep_interval: timedelta

    def __post_init__(self) -> None:
        if not timedelta(0) < self.warn_lead_time < self.inactivity_threshold:
            raise ValueError("warn lead time must be positive and shorter than the inactivity threshold")

    def inactivity_cutoff(self, now: datetime) -> datetime:
        return now - self.inactivity_threshold

    def reminder_cutoff(self, now: datetime) -> datetime:
        return now - (self.inactivity_threshold - self.warn_lead_time)

    def minutes_remaining(self, last: datetime, now: datetime) -> int:
        """Whole minutes until deactivation, never less than one."""
        remaining = self.inactivity_threshold - (now - last)
        return max(1, math.floor(remaining.total_seconds() / 60))

    def evaluate(self, account: Account, now: datetime) -> Transition | None:
        """Decide the sweep transition for an active account, or ``None``."""
        if not account.is_active:
            return None
        last = account.effective_last_activity
        if last < self.inactivity_cutoff(now):
            return Transition(
                account_id=account.account_id,
                kind=TransitionKind.deactivate,
                at=now,
                reason=DeactivationReason.inactivity,
            )
        reminder_cutoff = self.reminder_cutoff(now)
        if last < reminder_cutoff and (
            account.last_reminder_sent is None or account.last_reminder_sent < reminder_cutoff
        ):
            return Transition(account_id=account.account_id, kind=TransitionKind.warn, at=now)
        return None
