"""Domain-level request and result contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .account import DeactivationReason


@dataclass(slots=True)
class CreateAccountInput:
    """Validated inputs required to register the account record for an identity."""

    account_id: str
    email: str
    display_name: str


class TransitionKind(str, Enum):
    warn = "warn"
    deactivate = "deactivate"


@dataclass(slots=True)
class Transition:
    """A single sweep decision to be persisted in the sweep batch."""

    account_id: str
    kind: TransitionKind
    at: datetime
    reason: DeactivationReason | None = None


class NotificationKind(str, Enum):
    inactivity_warning = "inactivity_warning"
    deactivation = "deactivation"
    deletion = "deletion"


@dataclass(slots=True)
class Notification:
    """Template selection plus parameters for one outgoing email."""

    kind: NotificationKind
    recipient: str
    display_name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class DeletionReport:
    """Counts of artifacts removed while deleting an account."""

    files_deleted: int = 0
    files_failed: int = 0
    content_records_deleted: int = 0
    contacts_deleted: int = 0
    credential_deleted: bool = False
    email_sent: bool = False


@dataclass(slots=True)
class StorageUsage:
    """Object storage consumed by a single owner."""

    total_bytes: int
    file_count: int
    bytes_by_prefix: dict[str, int] = field(default_factory=dict)

    @property
    def display(self) -> str:
        return format_bytes(self.total_bytes)


def format_bytes(size: int) -> str:
    """Render a byte count with a binary unit, e.g. ``1.5 KB``."""
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {units[index]}"
