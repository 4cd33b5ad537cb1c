from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from moveout_accounts.domain.account import Account, DeactivationReason
from moveout_accounts.domain.contracts import CreateAccountInput, TransitionKind
from moveout_accounts.domain.errors import NotificationError
from moveout_accounts.domain.policy import SweepPolicy
from moveout_accounts.domain.service import AccountService
from moveout_accounts.domain.sweeper import InactivitySweeper
from moveout_accounts.notifications.notifier import Notifier
from moveout_accounts.security.lease import InMemoryLease
from moveout_accounts.storage import LocalObjectStore

START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@dataclass
class FakeAuditLogRecord:
    audit_id: int
    account_id: str | None
    event_type: str
    actor: str | None
    metadata: dict
    created_at: datetime


class FakeAccountRepository:
    """In-memory repository mimicking the Postgres-backed behaviors."""

    def __init__(self, clock: FakeClock, steps: list[str] | None = None) -> None:
        self._clock = clock
        self.steps = steps if steps is not None else []
        self.accounts: dict[str, Account] = {}
        self.audit_log: list[FakeAuditLogRecord] = []
        self._audit_seq = 0
        self.fail_commit = False

    def add(self, account_id: str, *, last_activity: datetime | None = None, **fields) -> Account:
        """Seed an account directly, bypassing signup."""
        account = Account(
            account_id=account_id,
            email=fields.pop("email", f"{account_id}@example.com"),
            display_name=fields.pop("display_name", account_id.title()),
            created_at=fields.pop("created_at", START - timedelta(days=365)),
            last_activity=last_activity,
            **fields,
        )
        self.accounts[account_id] = account
        return dataclasses.replace(account)

    def create_account(self, payload: CreateAccountInput, now: datetime):
        existing = self.accounts.get(payload.account_id)
        if existing:
            return dataclasses.replace(existing), True
        account = Account(
            account_id=payload.account_id,
            email=payload.email,
            display_name=payload.display_name,
            created_at=now,
            updated_at=now,
            last_activity=now,
        )
        self.accounts[account.account_id] = account
        return dataclasses.replace(account), False

    def get_account(self, account_id: str):
        account = self.accounts.get(account_id)
        return dataclasses.replace(account) if account else None

    def list_accounts(self, *, active_only: bool = False):
        accounts = sorted(self.accounts.values(), key=lambda a: (a.created_at, a.account_id))
        return [dataclasses.replace(a) for a in accounts if a.is_active or not active_only]

    def touch_activity(self, account_id: str, at: datetime) -> bool:
        account = self.accounts.get(account_id)
        if account is None:
            return False
        account.last_activity = at
        account.updated_at = at
        return True

    def deactivate_account(self, account_id: str, at: datetime, reason: DeactivationReason) -> bool:
        account = self.accounts.get(account_id)
        if account is None or not account.is_active:
            return False
        account.is_active = False
        account.deactivated_at = at
        account.deactivation_reason = reason
        return True

    def reactivate_account(self, account_id: str, at: datetime) -> bool:
        account = self.accounts.get(account_id)
        if account is None or account.is_active:
            return False
        account.is_active = True
        account.deactivated_at = None
        account.deactivation_reason = None
        account.last_activity = at
        account.last_reminder_sent = None
        return True

    def set_admin(self, account_id: str, is_admin: bool, at: datetime) -> bool:
        account = self.accounts.get(account_id)
        if account is None:
            return False
        account.is_admin = is_admin
        return True

    def apply_transitions(self, transitions, *, actor: str) -> None:
        if self.fail_commit:
            raise RuntimeError("batch commit failed")
        staged = {key: dataclasses.replace(value) for key, value in self.accounts.items()}
        events = []
        for transition in transitions:
            account = staged[transition.account_id]
            if not account.is_active:
                continue
            if transition.kind is TransitionKind.deactivate:
                account.is_active = False
                account.deactivated_at = transition.at
                account.deactivation_reason = transition.reason
                events.append((transition.account_id, "account.deactivated"))
            else:
                account.last_reminder_sent = transition.at
                events.append((transition.account_id, "account.inactivity_warned"))
        self.accounts = staged
        for account_id, event_type in events:
            self.write_audit_event(account_id=account_id, event_type=event_type, actor=actor)

    def delete_account(self, account_id: str) -> bool:
        self.steps.append("account")
        return self.accounts.pop(account_id, None) is not None

    def write_audit_event(self, *, account_id, event_type, actor, metadata=None) -> None:
        self._audit_seq += 1
        self.audit_log.append(
            FakeAuditLogRecord(
                audit_id=self._audit_seq,
                account_id=account_id,
                event_type=event_type,
                actor=actor,
                metadata=metadata or {},
                created_at=self._clock(),
            )
        )

    def list_audit_events(
        self,
        *,
        account_id=None,
        event_type=None,
        created_after=None,
        created_before=None,
        limit=50,
        cursor=None,
    ):
        results = list(self.audit_log)
        if account_id:
            results = [r for r in results if r.account_id == account_id]
        if event_type:
            results = [r for r in results if r.event_type == event_type]
        if created_after:
            results = [r for r in results if r.created_at >= created_after]
        if created_before:
            results = [r for r in results if r.created_at <= created_before]
        results.sort(key=lambda r: (r.created_at, r.audit_id), reverse=True)
        if cursor:
            results = [r for r in results if (r.created_at, r.audit_id) < cursor]
        page = results[:limit]
        next_cursor = None
        if len(results) > limit:
            next_cursor = (page[-1].created_at, page[-1].audit_id)
        return page, next_cursor

    def events(self, event_type: str) -> list[FakeAuditLogRecord]:
        return [r for r in self.audit_log if r.event_type == event_type]


class FakeContentRepository:
    def __init__(self, steps: list[str] | None = None) -> None:
        self.content: dict[str, list[str]] = {}
        self.contacts: dict[str, list[str]] = {}
        self.steps = steps if steps is not None else []

    def delete_owned_content(self, owner_id: str) -> int:
        self.steps.append("content")
        return len(self.content.pop(owner_id, []))

    def delete_contacts(self, owner_id: str) -> int:
        self.steps.append("contacts")
        return len(self.contacts.pop(owner_id, []))


class FakeCredentialRepository:
    def __init__(self, steps: list[str] | None = None) -> None:
        self.credentials: set[str] = set()
        self.steps = steps if steps is not None else []

    def has_credential(self, account_id: str) -> bool:
        return account_id in self.credentials

    def delete_credential(self, account_id: str) -> bool:
        self.steps.append("credential")
        if account_id in self.credentials:
            self.credentials.remove(account_id)
            return True
        return False


class RecordingObjectStore(LocalObjectStore):
    def __init__(self, root, prefixes, steps: list[str]) -> None:
        super().__init__(root, prefixes)
        self.steps = steps

    def delete_object(self, key: str) -> None:
        self.steps.append("file")
        super().delete_object(key)


class RecordingMailer:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail_for: set[str] = set()

    def send(self, to_addr, content) -> None:
        if to_addr in self.fail_for:
            raise NotificationError(f"mailbox unavailable: {to_addr}")
        self.sent.append((to_addr, content.subject))

    def recipients(self) -> list[str]:
        return [to for to, _ in self.sent]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def steps() -> list[str]:
    """Shared log of delete cascade steps in the order they ran."""
    return []


@pytest.fixture
def repository(clock, steps) -> FakeAccountRepository:
    return FakeAccountRepository(clock, steps)


@pytest.fixture
def content(steps) -> FakeContentRepository:
    return FakeContentRepository(steps)


@pytest.fixture
def credentials(steps) -> FakeCredentialRepository:
    return FakeCredentialRepository(steps)


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def notifier(mailer) -> Notifier:
    return Notifier(mailer, app_base_url="https://moveout.test")


@pytest.fixture
def object_store(tmp_path, steps) -> LocalObjectStore:
    return RecordingObjectStore(tmp_path / "storage", ("designs", "uploads"), steps)


@pytest.fixture
def service(repository, content, credentials, object_store, notifier, clock) -> AccountService:
    return AccountService(repository, content, credentials, object_store, notifier, clock=clock)


@pytest.fixture
def policy() -> SweepPolicy:
    return SweepPolicy(
        inactivity_threshold=timedelta(minutes=5),
        warn_lead_time=timedelta(minutes=2),
        sweep_interval=timedelta(minutes=1),
    )


@pytest.fixture
def sweeper(repository, notifier, policy, clock) -> InactivitySweeper:
    return InactivitySweeper(repository, notifier, InMemoryLease(), policy, clock=clock)

