"""Periodic inactivity sweep over all active accounts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from prometheus_client import Counter

from ..notifications.notifier import Notifier
from ..repository import AccountRepository
from ..security.lease import SweepLease
from .contracts import Notification, Transition, TransitionKind
from .policy import SweepPolicy

logger = logging.getLogger(__name__)

SWEEP_RUNS = Counter("moveout_sweep_runs_total", "Inactivity sweep runs by outcome.", ["outcome"])
SWEEP_TRANSITIONS = Counter(
    "moveout_sweep_transitions_total",
    "Accounts transitioned by the inactivity sweep.",
    ["transition"],
)

SWEEP_ACTOR = "system:inactivity-sweep"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class SweepReport:
    """Outcome of a single sweep run."""

    started_at: datetime
    scanned: int = 0
    warned: int = 0
    deactivated: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    committed: bool = False
    skipped: bool = False
    error: str | None = None
    transitions: list[Transition] = field(default_factory=list)

    def summary(self) -> dict[str, object]:
        return {
            "started_at": self.started_at.isoformat(),
            "scanned": self.scanned,
            "warned": self.warned,
            "deactivated": self.deactivated,
            "notifications_sent": self.notifications_sent,
            "notifications_failed": self.notifications_failed,
            "committed": self.committed,
            "skipped": self.skipped,
            "error": self.error,
        }


class InactivitySweeper:
    """Warn accounts approaching the inactivity threshold and deactivate those past it."""

    def __init__(
        self,
        repository: AccountRepository,
        notifier: Notifier,
        lease: SweepLease,
        policy: SweepPolicy,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._notifier = notifier
        self._lease = lease
        self._policy = policy
        self._clock = clock

    @property
    def policy(self) -> SweepPolicy:
        return self._policy

    def run(self) -> SweepReport:
        """Run one sweep iteration under the run lease."""
        now = self._clock()
        report = SweepReport(started_at=now)
        token = self._lease.acquire(self._policy.sweep_interval.total_seconds())
        if token is None:
            logger.info("inactivity sweep skipped: another run holds the lease")
            report.skipped = True
            SWEEP_RUNS.labels(outcome="skipped").inc()
            return report
        try:
            self._sweep(now, report)
        finally:
            self._lease.release(token)
        return report

    def _sweep(self, now: datetime, report: SweepReport) -> None:
        accounts = self._repository.list_accounts(active_only=True)
        notifications: list[Notification] = []
        for account in accounts:
            if not account.is_active:
                continue
            report.scanned += 1
            transition = self._policy.evaluate(account, now)
            if transition is None:
                continue
            report.transitions.append(transition)
            if transition.kind is TransitionKind.deactivate:
                report.deactivated += 1
                notifications.append(self._notifier.deactivation(account))
            else:
                report.warned += 1
                minutes = self._policy.minutes_remaining(account.effective_last_activity, now)
                notifications.append(self._notifier.inactivity_warning(account, minutes))

        if report.transitions:
            try:
                self._repository.apply_transitions(report.transitions, actor=SWEEP_ACTOR)
            except Exception as exc:
                logger.exception("inactivity sweep aborted: batch commit failed")
                report.error = str(exc)
                report.warned = report.deactivated = 0
                SWEEP_RUNS.labels(outcome="aborted").inc()
                self._record(report, "sweep.aborted")
                return
        report.committed = True

        delivery = self._notifier.deliver_all(notifications)
        report.notifications_sent = delivery.sent
        report.notifications_failed = delivery.failed

        SWEEP_RUNS.labels(outcome="completed").inc()
        SWEEP_TRANSITIONS.labels(transition="warned").inc(report.warned)
        SWEEP_TRANSITIONS.labels(transition="deactivated").inc(report.deactivated)
        logger.info(
            "inactivity sweep completed: scanned=%d warned=%d deactivated=%d notifications_failed=%d",
            report.scanned,
            report.warned,
            report.deactivated,
            report.notifications_failed,
        )
        self._record(report, "sweep.completed")

    def _record(self, report: SweepReport, event_type: str) -> None:
        try:
            self._repository.write_audit_event(
                account_id=None,
                event_type=event_type,
                actor=SWEEP_ACTOR,
                metadata=report.summary(),
            )
        except Exception:
            logger.exception("failed to record %s audit event", event_type)
