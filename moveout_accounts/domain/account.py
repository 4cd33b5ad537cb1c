from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class DeactivationReason(str, Enum):
    inactivity = "inactivity"
    manual = "manual"


@dataclass(slots=True)
class Account:
    """Aggregate root for a registered user's identity and lifecycle state."""

    account_id: str
    email: str
    display_name: str
    created_at: datetime
    updated_at: datetime | None = None
    is_admin: bool = False
    is_active: bool = True
    last_activity: datetime | None = None
    last_reminder_sent: datetime | None = None
    deactivated_at: datetime | None = None
    deactivation_reason: DeactivationReason | None = None

    @property
    def effective_last_activity(self) -> datetime:
        """Last recorded interaction, falling back to the signup time."""
        return self.last_activity or self.created_at

    def is_consistent(self) -> bool:
        """Return ``True`` when the active flag agrees with the deactivation fields."""
        if self.is_active:
            return self.deactivated_at is None and self.deactivation_reason is None
        return self.deactivated_at is not None and self.deactivation_reason is not None
