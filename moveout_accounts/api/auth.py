"""Caller identity resolution for HTTP requests."""

from __future__ import annotations

import logging

import jwt
from fastapi import Header, HTTPException, status

from ..security.tokens import decode_access_token

logger = logging.getLogger(__name__)


def _unauthenticated(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "unauthenticated", "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_caller_id(authorization: str | None = Header(default=None)) -> str:
    """Return the account id carried by the bearer token, or fail with 401."""
    if not authorization:
        raise _unauthenticated("authentication required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise _unauthenticated("bearer token required")
    try:
        claims = decode_access_token(token.strip())
    except jwt.PyJWTError as exc:
        logger.debug("rejected bearer token: %s", exc)
        raise _unauthenticated("invalid or expired token") from exc
    subject = claims.get("sub")
    if not subject:
        raise _unauthenticated("token has no subject")
    return str(subject)
