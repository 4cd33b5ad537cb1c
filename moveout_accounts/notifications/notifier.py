"""Template selection and best-effort delivery of lifecycle notifications."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from prometheus_client import Counter

from ..domain.account import Account
from ..domain.contracts import Notification, NotificationKind
from ..domain.errors import NotificationError
from .mailer import Mailer
from .templates import EmailContent, deactivation_email, deletion_email, inactivity_warning_email

logger = logging.getLogger(__name__)

NOTIFICATIONS = Counter(
    "moveout_notifications_total",
    "Lifecycle notifications by kind and outcome.",
    ["kind", "outcome"],
)


@dataclass(slots=True)
class DeliveryResult:
    sent: int = 0
    failed: int = 0


class Notifier:
    """Render lifecycle templates and hand them to the mail transport."""

    def __init__(self, mailer: Mailer, *, app_base_url: str) -> None:
        self._mailer = mailer
        self._login_url = f"{app_base_url}/auth/login"

    @staticmethod
    def inactivity_warning(account: Account, minutes_remaining: int) -> Notification:
        return Notification(
            kind=NotificationKind.inactivity_warning,
            recipient=account.email,
            display_name=account.display_name,
            params={
                "last_activity": account.effective_last_activity,
                "minutes_remaining": minutes_remaining,
            },
        )

    @staticmethod
    def deactivation(account: Account) -> Notification:
        return Notification(
            kind=NotificationKind.deactivation,
            recipient=account.email,
            display_name=account.display_name,
        )

    @staticmethod
    def deletion(account: Account) -> Notification:
        return Notification(
            kind=NotificationKind.deletion,
            recipient=account.email,
            display_name=account.display_name,
        )

    def render(self, notification: Notification) -> EmailContent:
        if notification.kind is NotificationKind.inactivity_warning:
            return inactivity_warning_email(
                notification.display_name,
                notification.params["last_activity"],
                notification.params["minutes_remaining"],
                self._login_url,
            )
        if notification.kind is NotificationKind.deactivation:
            return deactivation_email(notification.display_name, self._login_url)
        return deletion_email(notification.display_name)

    def send(self, notification: Notification) -> None:
        """Deliver one notification, raising :class:`NotificationError` on failure."""
        try:
            self._mailer.send(notification.recipient, self.render(notification))
        except NotificationError:
            NOTIFICATIONS.labels(kind=notification.kind.value, outcome="failed").inc()
            raise
        except Exception as exc:
            NOTIFICATIONS.labels(kind=notification.kind.value, outcome="failed").inc()
            raise NotificationError(str(exc)) from exc
        NOTIFICATIONS.labels(kind=notification.kind.value, outcome="sent").inc()

    def try_send(self, notification: Notification) -> bool:
        """Best-effort delivery; failures are logged and reported as ``False``."""
        try:
            self.send(notification)
        except NotificationError as exc:
            logger.warning("%s notification to %s failed: %s", notification.kind.value, notification.recipient, exc)
            return False
        return True

    def deliver_all(self, notifications: Iterable[Notification]) -> DeliveryResult:
        result = DeliveryResult()
        for notification in notifications:
            if self.try_send(notification):
                result.sent += 1
            else:
                result.failed += 1
        return result
