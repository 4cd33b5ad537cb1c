"""HTTP route definitions for the accounts service."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator

import psycopg
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from pydantic import BaseModel, EmailStr

from ..config import get_settings
from ..domain.account import Account
from ..domain.errors import LifecycleError
from ..domain.service import AccountService
from ..domain.sweeper import InactivitySweeper
from ..security.rate_limiter import SlidingWindowRateLimiter
from ..security.redis_rate_limiter import RedisSlidingWindowRateLimiter
from .auth import get_caller_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


class AccountResponse(BaseModel):
    """Serialised representation of an `Account` aggregate."""

    account_id: str
    email: str
    display_name: str
    is_admin: bool
    is_active: bool
    created_at: datetime
    last_activity: datetime
    last_reminder_sent: datetime | None = None
    deactivated_at: datetime | None = None
    deactivation_reason: str | None = None

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        """Build a response model from the domain aggregate."""
        return cls(
            account_id=account.account_id,
            email=account.email,
            display_name=account.display_name,
            is_admin=account.is_admin,
            is_active=account.is_active,
            created_at=account.created_at,
            last_activity=account.effective_last_activity,
            last_reminder_sent=account.last_reminder_sent,
            deactivated_at=account.deactivated_at,
            deactivation_reason=account.deactivation_reason.value if account.deactivation_reason else None,
        )


class CreateAccountRequest(BaseModel):
    """Payload accepted when registering the account record after signup."""

    email: EmailStr
    display_name: str = ""


class CreateAccountResponse(BaseModel):
    account: AccountResponse
    idempotent_replay: bool


class SuccessResponse(BaseModel):
    success: bool


class ActivationRequest(BaseModel):
    is_active: bool


class AdminStatusRequest(BaseModel):
    is_admin: bool


class DeleteAccountResponse(BaseModel):
    success: bool
    files_deleted: int
    files_failed: int
    content_records_deleted: int
    contacts_deleted: int
    credential_deleted: bool
    email_sent: bool


class UsersResponse(BaseModel):
    users: list[AccountResponse]


class StorageUsageResponse(BaseModel):
    account_id: str
    total_bytes: int
    file_count: int
    display: str
    bytes_by_category: dict[str, int]


class SweepReportResponse(BaseModel):
    started_at: datetime
    scanned: int
    warned: int
    deactivated: int
    notifications_sent: int
    notifications_failed: int
    committed: bool
    skipped: bool
    error: str | None = None


class AuditLogEntry(BaseModel):
    """Audit log response entry."""

    audit_id: int
    account_id: str | None
    event_type: str
    actor: str | None
    metadata: dict[str, Any]
    created_at: datetime


class AuditLogResponse(BaseModel):
    """Envelope for paginated audit log data."""

    items: list[AuditLogEntry]
    next_cursor: str | None = None


settings = get_settings()


def _build_rate_limiter() -> SlidingWindowRateLimiter | RedisSlidingWindowRateLimiter:
    """Instantiate the configured rate limiter backend, preferring Redis when available."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        try:
            import redis

            client = redis.from_url(settings.redis_url)
            client.ping()
            logger.info("rate limiter configured for redis backend at %s", settings.redis_url)
            return RedisSlidingWindowRateLimiter(
                client,
                max_requests=settings.rate_limit_requests,
                window_seconds=settings.rate_limit_window_seconds,
            )
        except Exception as exc:  # pragma: no cover - depends on a live redis
            logger.warning("redis rate limiter unavailable, falling back to in-memory: %s", exc)

    logger.info("rate limiter using in-memory backend")
    return SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


rate_limiter = _build_rate_limiter()


def get_service(request: Request) -> AccountService:
    """Resolve the `AccountService` stored on the FastAPI application state."""
    service: AccountService = request.app.state.account_service
    return service


def get_sweeper(request: Request) -> InactivitySweeper:
    sweeper: InactivitySweeper = request.app.state.sweeper
    return sweeper


def _enforce_rate_limit(operation: str, caller_id: str) -> None:
    if not rate_limiter.allow(f"{operation}:{caller_id}"):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="rate limited")


@contextmanager
def _lifecycle_errors() -> Iterator[None]:
    """Translate domain and downstream failures into HTTP errors."""
    try:
        yield
    except LifecycleError as exc:
        raise HTTPException(
            status_code=exc.status_code,
            detail={"code": exc.code, "message": str(exc)},
        ) from exc
    except psycopg.Error as exc:
        logger.exception("database failure while handling lifecycle request")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"code": "internal", "message": "internal error"},
        ) from exc


@router.post("/accounts", response_model=CreateAccountResponse, status_code=status.HTTP_201_CREATED)
def create_account(
    response: Response,
    payload: CreateAccountRequest,
    caller_id: str = Depends(get_caller_id),
    service: AccountService = Depends(get_service),
) -> CreateAccountResponse:
    """Register the caller's account record; repeated calls replay the existing record."""
    _enforce_rate_limit("create", caller_id)
    with _lifecycle_errors():
        account, replay = service.create_account(caller_id, payload.email, payload.display_name)
    response.status_code = status.HTTP_200_OK if replay else status.HTTP_201_CREATED
    return CreateAccountResponse(account=AccountResponse.from_domain(account), idempotent_replay=replay)


@router.get("/accounts", response_model=UsersResponse)
def get_all_users(
    caller_id: str = Depends(get_caller_id),
    service: AccountService = Depends(get_service),
) -> UsersResponse:
    """List every account (admin only)."""
    with _lifecycle_errors():
        accounts = service.list_accounts(caller_id)
    return UsersResponse(users=[AccountResponse.from_domain(account) for account in accounts])


@router.post("/activity", response_model=SuccessResponse)
def update_last_activity(
    caller_id: str = Depends(get_caller_id),
    service: AccountService = Depends(get_service),
) -> SuccessResponse:
    """Record that the caller is active right now."""
    with _lifecycle_errors():
        service.record_activity(caller_id)
    return SuccessResponse(success=True)


@router.put("/accounts/{target_id}/activation", response_model=SuccessResponse)
def toggle_account_activation(
    target_id: str,
    payload: ActivationRequest,
    caller_id: str = Depends(get_caller_id),
    service: AccountService = Depends(get_service),
) -> SuccessResponse:
    """Deactivate or reactivate an account (self or admin)."""
    _enforce_rate_limit("activation", caller_id)
    with _lifecycle_errors():
        service.set_activation(caller_id, target_id, payload.is_active)
    return SuccessResponse(success=True)


@router.delete("/accounts/{target_id}", response_model=DeleteAccountResponse)
def delete_user_account(
    target_id: str,
    caller_id: str = Depends(get_caller_id),
    service: AccountService = Depends(get_service),
) -> DeleteAccountResponse:
    """Delete an account and cascade to everything it owns (self or admin)."""
    _enforce_rate_limit("delete", caller_id)
    with _lifecycle_errors():
        report = service.delete_account(caller_id, target_id)
    return DeleteAccountResponse(
        success=True,
        files_deleted=report.files_deleted,
        files_failed=report.files_failed,
        content_records_deleted=report.content_records_deleted,
        contacts_deleted=report.contacts_deleted,
        credential_deleted=report.credential_deleted,
        email_sent=report.email_sent,
    )


@router.put("/accounts/{target_id}/admin", response_model=SuccessResponse)
def set_admin_status(
    target_id: str,
    payload: AdminStatusRequest,
    caller_id: str = Depends(get_caller_id),
    service: AccountService = Depends(get_service),
) -> SuccessResponse:
    """Grant or revoke admin capability (admin only)."""
    with _lifecycle_errors():
        service.set_admin_status(caller_id, target_id, payload.is_admin)
    return SuccessResponse(success=True)


@router.get("/accounts/{target_id}/storage", response_model=StorageUsageResponse)
def get_storage_usage(
    target_id: str,
    caller_id: str = Depends(get_caller_id),
    service: AccountService = Depends(get_service),
) -> StorageUsageResponse:
    with _lifecycle_errors():
        usage = service.storage_usage(caller_id, target_id)
    return StorageUsageResponse(
        account_id=target_id,
        total_bytes=usage.total_bytes,
        file_count=usage.file_count,
        display=usage.display,
        bytes_by_category=usage.bytes_by_prefix,
    )


@router.post("/sweeps", response_model=SweepReportResponse)
def run_sweep(
    caller_id: str = Depends(get_caller_id),
    service: AccountService = Depends(get_service),
    sweeper: InactivitySweeper = Depends(get_sweeper),
) -> SweepReportResponse:
    """Run an inactivity sweep immediately (admin only)."""
    with _lifecycle_errors():
        service.require_admin(caller_id)
        report = sweeper.run()
    logger.info("manual inactivity sweep triggered by %s", caller_id)
    return SweepReportResponse(**report.summary())


@router.get("/audit/logs", response_model=AuditLogResponse)
def list_audit_logs(
    account_id: str | None = Query(default=None),
    event_type: str | None = Query(default=None),
    created_after: datetime | None = Query(default=None),
    created_before: datetime | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    cursor: str | None = Query(default=None),
    caller_id: str = Depends(get_caller_id),
    service: AccountService = Depends(get_service),
) -> AuditLogResponse:
    """Return paginated lifecycle audit events with optional filtering (admin only)."""
    with _lifecycle_errors():
        records, next_cursor = service.list_audit_events(
            caller_id,
            account_id=account_id,
            event_type=event_type,
            created_after=created_after,
            created_before=created_before,
            limit=limit,
            cursor=cursor,
        )

    items = [
        AuditLogEntry(
            audit_id=record.audit_id,
            account_id=record.account_id,
            event_type=record.event_type,
            actor=record.actor,
            metadata=record.metadata,
            created_at=record.created_at,
        )
        for record in records
    ]
    return AuditLogResponse(items=items, next_cursor=next_cursor)
