"""Database repositories for account lifecycle data and owned content."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional, Tuple

from psycopg.rows import tuple_row
from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from .domain.account import Account, DeactivationReason
from .domain.contracts import CreateAccountInput, Transition, TransitionKind

_ACCOUNT_COLUMNS = """
    account_id, email, display_name, created_at, updated_at, is_admin, is_active,
    last_activity, last_reminder_sent, deactivated_at, deactivation_reason
"""


@dataclass(slots=True)
class AuditLogRecord:
    """Row projection for items in account_audit_log."""

    audit_id: int
    account_id: str | None
    event_type: str
    actor: str | None
    metadata: dict[str, Any]
    created_at: datetime


class AccountRepository:
    """Postgres-backed account persistence."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def create_account(self, payload: CreateAccountInput, now: datetime) -> Tuple[Account, bool]:
        """Insert the account record, or return the existing one with the replay flag set."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO accounts (account_id, email, display_name, created_at, updated_at,
                                          is_admin, is_active, last_activity)
                    VALUES (%s, %s, %s, %s, %s, false, true, %s)
                    ON CONFLICT (account_id) DO NOTHING
                    RETURNING {_ACCOUNT_COLUMNS}
                    """,
                    (payload.account_id, payload.email, payload.display_name, now, now, now),
                )
                row = cur.fetchone()
                replay = row is None
                if replay:
                    cur.execute(
                        f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE account_id = %s",
                        (payload.account_id,),
                    )
                    row = cur.fetchone()
                conn.commit()
        return self._map_record(row), replay

    def get_account(self, account_id: str) -> Account | None:
        """Fetch an account or return ``None``."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE account_id = %s",
                    (account_id,),
                )
                row = cur.fetchone()
                if not row:
                    return None
        return self._map_record(row)

    def list_accounts(self, *, active_only: bool = False) -> list[Account]:
        """Return all accounts ordered by signup time, optionally only active ones."""
        query = f"SELECT {_ACCOUNT_COLUMNS} FROM accounts"
        if active_only:
            query += " WHERE is_active"
        query += " ORDER BY created_at, account_id"
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query)
                rows = cur.fetchall()
        return [self._map_record(row) for row in rows]

    def touch_activity(self, account_id: str, at: datetime) -> bool:
        """Set ``last_activity``; return ``False`` when the account does not exist."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE accounts
                    SET last_activity = %s, updated_at = %s
                    WHERE account_id = %s
                    """,
                    (at, at, account_id),
                )
                updated = cur.rowcount == 1
                conn.commit()
        return updated

    def deactivate_account(self, account_id: str, at: datetime, reason: DeactivationReason) -> bool:
        """Mark an active account inactive; return ``True`` when the row changed."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE accounts
                    SET is_active = false, deactivated_at = %s, deactivation_reason = %s, updated_at = %s
                    WHERE account_id = %s AND is_active
                    """,
                    (at, reason.value, at, account_id),
                )
                changed = cur.rowcount == 1
                conn.commit()
        return changed

    def reactivate_account(self, account_id: str, at: datetime) -> bool:
        """Mark an inactive account active and restart its inactivity clock."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE accounts
                    SET is_active = true, deactivated_at = NULL, deactivation_reason = NULL,
                        last_activity = %s, last_reminder_sent = NULL, updated_at = %s
                    WHERE account_id = %s AND NOT is_active
                    """,
                    (at, at, account_id),
                )
                changed = cur.rowcount == 1
                conn.commit()
        return changed

    def set_admin(self, account_id: str, is_admin: bool, at: datetime) -> bool:
        """Update the admin capability flag; return ``False`` when the account is missing."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE accounts SET is_admin = %s, updated_at = %s WHERE account_id = %s",
                    (is_admin, at, account_id),
                )
                updated = cur.rowcount == 1
                conn.commit()
        return updated

    def apply_transitions(self, transitions: Iterable[Transition], *, actor: str) -> None:
        """Persist a sweep batch and its audit rows in one transaction.

        Any failure rolls back every mutation of the batch.
        """
        with self._pool.connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    for transition in transitions:
                        if transition.kind is TransitionKind.deactivate:
                            reason = (transition.reason or DeactivationReason.inactivity).value
                            cur.execute(
                                """
                                UPDATE accounts
                                SET is_active = false, deactivated_at = %s,
                                    deactivation_reason = %s, updated_at = %s
                                WHERE account_id = %s AND is_active
                                """,
                                (transition.at, reason, transition.at, transition.account_id),
                            )
                            event_type, metadata = "account.deactivated", {"reason": reason}
                        else:
                            cur.execute(
                                """
                                UPDATE accounts
                                SET last_reminder_sent = %s, updated_at = %s
                                WHERE account_id = %s AND is_active
                                """,
                                (transition.at, transition.at, transition.account_id),
                            )
                            event_type, metadata = "account.inactivity_warned", {}
                        cur.execute(
                            """
                            INSERT INTO account_audit_log (account_id, event_type, actor, metadata)
                            VALUES (%s, %s, %s, %s)
                            """,
                            (transition.account_id, event_type, actor, Json(metadata)),
                        )

    def delete_account(self, account_id: str) -> bool:
        """Remove the account record."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM accounts WHERE account_id = %s", (account_id,))
                deleted = cur.rowcount == 1
                conn.commit()
        return deleted

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=row[0],
            email=row[1],
            display_name=row[2],
            created_at=row[3],
            updated_at=row[4],
            is_admin=row[5],
            is_active=row[6],
            last_activity=row[7],
            last_reminder_sent=row[8],
            deactivated_at=row[9],
            deactivation_reason=DeactivationReason(row[10]) if row[10] else None,
        )

    def write_audit_event(
        self,
        *,
        account_id: str | None,
        event_type: str,
        actor: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Record an audit trail entry capturing lifecycle activity."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO account_audit_log (account_id, event_type, actor, metadata)
                    VALUES (%s, %s, %s, %s)
                    """,
                    (account_id, event_type, actor, Json(metadata or {})),
                )
                conn.commit()

    def list_audit_events(
        self,
        *,
        account_id: str | None = None,
        event_type: str | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
        limit: int = 50,
        cursor: Tuple[datetime, int] | None = None,
    ) -> tuple[list[AuditLogRecord], Optional[Tuple[datetime, int]]]:
        """Return audit log entries with optional filters and cursor pagination."""
        limit = max(1, min(limit, 100))
        clauses = ["true"]
        params: list[Any] = []

        if account_id:
            clauses.append("account_id = %s")
            params.append(account_id)
        if event_type:
            clauses.append("event_type = %s")
            params.append(event_type)
        if created_after:
            clauses.append("created_at >= %s")
            params.append(created_after)
        if created_before:
            clauses.append("created_at <= %s")
            params.append(created_before)
        if cursor:
            clauses.append("(created_at, audit_id) < (%s, %s)")
            params.extend(cursor)

        where_sql = " AND ".join(clauses)
        query = f"""
            SELECT audit_id, account_id, event_type, actor, metadata, created_at
            FROM account_audit_log
            WHERE {where_sql}
            ORDER BY created_at DESC, audit_id DESC
            LIMIT %s
        """
        params.append(limit)

        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, params)
                records = [
                    AuditLogRecord(
                        audit_id=row[0],
                        account_id=row[1],
                        event_type=row[2],
                        actor=row[3],
                        metadata=row[4] or {},
                        created_at=row[5],
                    )
                    for row in cur.fetchall()
                ]

        next_cursor: Tuple[datetime, int] | None = None
        if len(records) == limit:
            last = records[-1]
            next_cursor = (last.created_at, last.audit_id)
        return records, next_cursor


class ContentRepository:
    """Owned boxes, insurance labels, their attachments and the owner's contacts."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def delete_owned_content(self, owner_id: str) -> int:
        """Delete boxes, labels and their attachments; return the number of records removed."""
        with self._pool.connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        DELETE FROM contents
                        WHERE box_id IN (SELECT box_id FROM boxes WHERE user_id = %s)
                        """,
                        (owner_id,),
                    )
                    removed = cur.rowcount
                    cur.execute(
                        """
                        DELETE FROM label_attachments
                        WHERE label_id IN (SELECT label_id FROM insurance_labels WHERE user_id = %s)
                        """,
                        (owner_id,),
                    )
                    removed += cur.rowcount
                    cur.execute("DELETE FROM boxes WHERE user_id = %s", (owner_id,))
                    removed += cur.rowcount
                    cur.execute("DELETE FROM insurance_labels WHERE user_id = %s", (owner_id,))
                    removed += cur.rowcount
        return removed

    def delete_contacts(self, owner_id: str) -> int:
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM contacts WHERE user_id = %s", (owner_id,))
                removed = cur.rowcount
                conn.commit()
        return removed


class CredentialRepository:
    """Authentication credentials and the refresh tokens issued against them."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def has_credential(self, account_id: str) -> bool:
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1 FROM auth_credentials WHERE account_id = %s", (account_id,))
                return cur.fetchone() is not None

    def delete_credential(self, account_id: str) -> bool:
        """Revoke every refresh token and drop the credential; ``True`` if one existed."""
        with self._pool.connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute("DELETE FROM refresh_tokens WHERE account_id = %s", (account_id,))
                    cur.execute("DELETE FROM auth_credentials WHERE account_id = %s", (account_id,))
                    deleted = cur.rowcount == 1
        return deleted
