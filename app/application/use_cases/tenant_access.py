from __future__ import annotations

import logging
from collections.abc import Iterable

from app.application.exceptions import Forbidden, Unauthenticated
from app.application.ports.document_store import DocumentStorePort
from app.application.ports.identity import IdentityPort
from app.domain.entities.caller import OWNER_ROLES, Caller


USERS_COLLECTION = "users"


def ensure_tenant_access(caller_owner_uid: str, resource_owner_uid: str | None) -> None:
    """Raise Forbidden unless the resource belongs to the caller's tenant."""
    if not resource_owner_uid or resource_owner_uid != caller_owner_uid:
        raise Forbidden("Forbidden")


def require_role(caller: Caller, allowed: Iterable[str]) -> None:
    allowed_roles = {role.lower() for role in allowed}
    if caller.role not in allowed_roles:
        raise Forbidden(f"Access denied. Required roles: {', '.join(sorted(allowed_roles))}")


class TenantAccessGuard:
    def __init__(self, identity: IdentityPort, store: DocumentStorePort) -> None:
        self._identity = identity
        self._store = store
        self._logger = logging.getLogger(__name__)

    def resolve_caller(self, token: str | None) -> Caller:
        """Resolve a bearer token to the caller's uid, tenant and role."""
        if not token:
            raise Unauthenticated("Authorization token is required")

        verified = self._identity.verify_token(token)

        user = self._store.get(USERS_COLLECTION, verified.uid)
        if user is None:
            self._logger.warning("Authenticated user has no profile", extra={"uid": verified.uid})
            raise Forbidden("User not found")

        role = str(user.get("role") or user.get("systemRole") or "").lower()
        if role in OWNER_ROLES:
            owner_uid = verified.uid
        elif user.get("ownerUid"):
            owner_uid = str(user["ownerUid"])
        else:
            raise Forbidden("User has no associated salon owner")

        return Caller(
            uid=verified.uid,
            owner_uid=owner_uid,
            role=role,
            name=user.get("name") or user.get("displayName"),
            email=user.get("email") or verified.email,
        )
