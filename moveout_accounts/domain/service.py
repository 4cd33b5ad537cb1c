"""Account service orchestrating lifecycle transitions, cascades and auditing."""

from __future__ import annotations

from base64 import urlsafe_b64decode, urlsafe_b64encode
from datetime import datetime, timezone
import json
import logging
from typing import Callable, Optional, Tuple

from ..notifications.notifier import Notifier
from ..repository import AccountRepository, AuditLogRecord, ContentRepository, CredentialRepository
from ..storage import LocalObjectStore
from .account import Account, DeactivationReason
from .contracts import CreateAccountInput, DeletionReport, StorageUsage
from .deadline import Deadline
from .errors import InvalidArgument, NotFound, PermissionDenied, Unauthenticated
from .policy import can_manage

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccountService:
    """Account lifecycle workflows backed by Postgres storage."""

    def __init__(
        self,
        repository: AccountRepository,
        content: ContentRepository,
        credentials: CredentialRepository,
        storage: LocalObjectStore,
        notifier: Notifier,
        *,
        operation_timeout: float = 30.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Store dependencies used to orchestrate persistence, cascades and email."""
        self._repository = repository
        self._content = content
        self._credentials = credentials
        self._storage = storage
        self._notifier = notifier
        self._operation_timeout = operation_timeout
        self._clock = clock

    # -- helpers -----------------------------------------------------------

    def _deadline(self) -> Deadline:
        return Deadline(self._operation_timeout)

    @staticmethod
    def _require_caller(caller_id: str | None) -> str:
        if not caller_id:
            raise Unauthenticated("authentication required")
        return caller_id

    @staticmethod
    def _require_target(target_id: str | None) -> str:
        if target_id is None or not target_id.strip():
            raise InvalidArgument("target account id is required")
        return target_id

    def _authorize_manage(self, caller_id: str | None, target_id: str | None) -> tuple[str, str]:
        caller_id = self._require_caller(caller_id)
        target_id = self._require_target(target_id)
        caller = self._repository.get_account(caller_id)
        if not can_manage(caller, caller_id, target_id):
            raise PermissionDenied("caller may not manage this account")
        return caller_id, target_id

    def _authorize_admin(self, caller_id: str | None) -> str:
        caller_id = self._require_caller(caller_id)
        caller = self._repository.get_account(caller_id)
        if caller is None or not caller.is_admin:
            raise PermissionDenied("admin privileges required")
        return caller_id

    def _audit(self, *, account_id: str | None, event_type: str, actor: str, metadata: dict) -> None:
        try:
            self._repository.write_audit_event(
                account_id=account_id, event_type=event_type, actor=actor, metadata=metadata
            )
        except Exception:
            logger.exception("failed to record %s audit event for %s", event_type, account_id)

    def _load(self, target_id: str) -> Account:
        account = self._repository.get_account(target_id)
        if account is None:
            raise NotFound("account not found")
        return account

    # -- signup and activity ----------------------------------------------

    def create_account(self, caller_id: str | None, email: str, display_name: str) -> Tuple[Account, bool]:
        """Register the account record for the caller, replaying an existing one."""
        caller_id = self._require_caller(caller_id)
        if not email:
            raise InvalidArgument("email is required")
        account, replay = self._repository.create_account(
            CreateAccountInput(account_id=caller_id, email=email, display_name=display_name),
            self._clock(),
        )
        if not replay:
            self._audit(
                account_id=account.account_id,
                event_type="account.created",
                actor=caller_id,
                metadata={"email": account.email},
            )
        return account, replay

    def record_activity(self, caller_id: str | None) -> datetime:
        """Stamp the caller's ``last_activity`` with the current server time."""
        caller_id = self._require_caller(caller_id)
        now = self._clock()
        if not self._repository.touch_activity(caller_id, now):
            raise NotFound("account not found")
        return now

    # -- manual lifecycle --------------------------------------------------

    def set_activation(self, caller_id: str | None, target_id: str | None, is_active: bool) -> bool:
        """Deactivate or reactivate ``target_id``; returns ``True`` when state changed."""
        if is_active:
            return self.reactivate(caller_id, target_id)
        return self.deactivate(caller_id, target_id)

    def deactivate(self, caller_id: str | None, target_id: str | None) -> bool:
        caller_id, target_id = self._authorize_manage(caller_id, target_id)
        deadline = self._deadline()
        account = self._load(target_id)
        if not account.is_active:
            return False
        deadline.check("deactivation")
        changed = self._repository.deactivate_account(target_id, self._clock(), DeactivationReason.manual)
        if not changed:
            return False
        self._audit(
            account_id=target_id,
            event_type="account.deactivated",
            actor=caller_id,
            metadata={"reason": DeactivationReason.manual.value},
        )
        deadline.check("deactivation notice")
        self._notifier.try_send(self._notifier.deactivation(account))
        return True

    def reactivate(self, caller_id: str | None, target_id: str | None) -> bool:
        caller_id, target_id = self._authorize_manage(caller_id, target_id)
        deadline = self._deadline()
        account = self._load(target_id)
        if account.is_active:
            return False
        deadline.check("reactivation")
        changed = self._repository.reactivate_account(target_id, self._clock())
        if changed:
            self._audit(
                account_id=target_id,
                event_type="account.reactivated",
                actor=caller_id,
                metadata={"previous_reason": account.deactivation_reason.value if account.deactivation_reason else None},
            )
        return changed

    def delete_account(self, caller_id: str | None, target_id: str | None) -> DeletionReport:
        """Erase the target account and everything it owns.

        Files go first and are best-effort; the credential goes last so a failure
        part-way leaves the account reachable for a retry.
        A retry after the account record is gone but the credential survived
        resumes the cascade. No confirmation email is sent then, since the
        address went with the record.
        """
        caller_id, target_id = self._authorize_manage(caller_id, target_id)
        deadline = self._deadline()
        account = self._repository.get_account(target_id)
        if account is None and not self._credentials.has_credential(target_id):
            raise NotFound("account not found")
        if account is None:
            logger.info("resuming interrupted deletion of %s", target_id)
        report = DeletionReport()

        deadline.check("file deletion")
        try:
            objects = self._storage.list_objects(target_id)
        except (OSError, ValueError) as exc:
            logger.warning("could not list stored files of %s: %s", target_id, exc)
            objects = []
        for obj in objects:
            try:
                self._storage.delete_object(obj.key)
                report.files_deleted += 1
            except (OSError, ValueError) as exc:
                report.files_failed += 1
                logger.warning("could not delete stored file %s of %s: %s", obj.key, target_id, exc)
        if objects:
            try:
                self._storage.prune_empty_dirs(target_id)
            except (OSError, ValueError) as exc:
                logger.warning("could not prune storage directories of %s: %s", target_id, exc)

        deadline.check("content deletion")
        report.content_records_deleted = self._content.delete_owned_content(target_id)
        deadline.check("contact deletion")
        report.contacts_deleted = self._content.delete_contacts(target_id)
        deadline.check("account deletion")
        self._repository.delete_account(target_id)
        deadline.check("credential deletion")
        report.credential_deleted = self._credentials.delete_credential(target_id)

        self._audit(
            account_id=target_id,
            event_type="account.deleted",
            actor=caller_id,
            metadata={
                "files_deleted": report.files_deleted,
                "files_failed": report.files_failed,
                "content_records_deleted": report.content_records_deleted,
                "contacts_deleted": report.contacts_deleted,
                "resumed": account is None,
            },
        )
        if account is not None:
            report.email_sent = self._notifier.try_send(self._notifier.deletion(account))
        return report

    # -- admin -------------------------------------------------------------

    def set_admin_status(self, caller_id: str | None, target_id: str | None, is_admin: bool) -> None:
        caller_id = self._authorize_admin(caller_id)
        target_id = self._require_target(target_id)
        if not self._repository.set_admin(target_id, is_admin, self._clock()):
            raise NotFound("account not found")
        self._audit(
            account_id=target_id,
            event_type="account.admin_granted" if is_admin else "account.admin_revoked",
            actor=caller_id,
            metadata={},
        )

    def list_accounts(self, caller_id: str | None) -> list[Account]:
        self._authorize_admin(caller_id)
        return self._repository.list_accounts()

    def storage_usage(self, caller_id: str | None, target_id: str | None) -> StorageUsage:
        _, target_id = self._authorize_manage(caller_id, target_id)
        self._load(target_id)
        return self._storage.usage(target_id)

    def list_audit_events(
        self,
        caller_id: str | None,
        *,
        account_id: str | None = None,
        event_type: str | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
        limit: int = 50,
        cursor: str | None = None,
    ) -> tuple[list[AuditLogRecord], str | None]:
        """Return audit log records with optional filters and cursor pagination (admin only)."""
        self._authorize_admin(caller_id)
        decoded_cursor: Optional[Tuple[datetime, int]] = None
        if cursor:
            decoded_cursor = self._decode_cursor(cursor)
        records, next_cursor_tuple = self._repository.list_audit_events(
            account_id=account_id,
            event_type=event_type,
            created_after=created_after,
            created_before=created_before,
            limit=limit,
            cursor=decoded_cursor,
        )
        next_cursor = self._encode_cursor(next_cursor_tuple) if next_cursor_tuple else None
        return records, next_cursor

    def require_admin(self, caller_id: str | None) -> str:
        """Raise unless the caller is an admin; used by admin-only endpoints outside this service."""
        return self._authorize_admin(caller_id)

    def _encode_cursor(self, cursor: Tuple[datetime, int]) -> str:
        created_at, audit_id = cursor
        payload = json.dumps({"created_at": created_at.isoformat(), "audit_id": audit_id})
        return urlsafe_b64encode(payload.encode("utf-8")).decode("utf-8")

    def _decode_cursor(self, cursor: str) -> Tuple[datetime, int]:
        try:
            data = json.loads(urlsafe_b64decode(cursor.encode("utf-8")).decode("utf-8"))
            return datetime.fromisoformat(data["created_at"]), int(data["audit_id"])
        except (ValueError, KeyError, TypeError) as exc:
            raise InvalidArgument("invalid cursor") from exc
