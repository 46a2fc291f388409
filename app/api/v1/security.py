from __future__ import annotations

import logging

from fastapi import Depends, Header, HTTPException

from app.application.exceptions import ServiceError, StorageError
from app.application.ports.identity import IdentityPort, VerifiedToken
from app.application.ports.rate_limiter import RateLimiterPort
from app.application.use_cases.tenant_access import TenantAccessGuard
from app.core.config import settings
from app.domain.entities.caller import Caller
from app.wiring.dependencies import get_identity, get_tenant_access_guard


logger = logging.getLogger(__name__)


def to_http_error(error: ServiceError) -> HTTPException:
    detail = str(error)
    if isinstance(error, StorageError) and not settings.is_dev:
        detail = "Storage temporarily unavailable"
    return HTTPException(status_code=error.status_code, detail=detail)


def bearer_token(authorization: str | None = Header(None)) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_verified_token(
    token: str | None = Depends(bearer_token),
    identity: IdentityPort = Depends(get_identity),
) -> VerifiedToken:
    if not token:
        raise HTTPException(status_code=401, detail="Authorization token is required")
    try:
        return identity.verify_token(token)
    except ServiceError as e:
        raise to_http_error(e)


def get_caller(
    token: str | None = Depends(bearer_token),
    guard: TenantAccessGuard = Depends(get_tenant_access_guard),
) -> Caller:
    try:
        return guard.resolve_caller(token)
    except ServiceError as e:
        raise to_http_error(e)


def enforce_rate_limit(limiter: RateLimiterPort, route: str, uid: str) -> None:
    key = f"{route}:{uid}"
    if not limiter.check(key):
        logger.warning("Rate limit exceeded", extra={"key": key})
        raise HTTPException(status_code=429, detail="Too many requests")