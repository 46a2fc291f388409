from __future__ import annotations

import pytest

from app.application.exceptions import Forbidden, Unauthenticated
from app.application.use_cases.tenant_access import (
    USERS_COLLECTION,
    TenantAccessGuard,
    ensure_tenant_access,
    require_role,
)
from app.domain.entities.caller import OWNER_ROLES, Caller
from app.infrastructure.firebase.static_identity import StaticIdentity


@pytest.fixture
def guard(store) -> TenantAccessGuard:
    store.set(USERS_COLLECTION, "O1", {"role": "salon_owner", "name": "Owner One"})
    store.set(USERS_COLLECTION, "S1", {"role": "salon_staff", "ownerUid": "O1"})
    store.set(USERS_COLLECTION, "X1", {"role": "salon_staff"})
    identity = StaticIdentity({"owner-token": "O1", "staff-token": "S1", "orphan-token": "X1", "ghost-token": "G1"})
    return TenantAccessGuard(identity=identity, store=store)


def test_owner_is_their_own_tenant(guard):
    caller = guard.resolve_caller("owner-token")

    assert caller.owner_uid == "O1"
    assert caller.is_owner
    assert caller.name == "Owner One"


def test_staff_resolves_to_owner_tenant(guard):
    caller = guard.resolve_caller("staff-token")

    assert (caller.uid, caller.owner_uid, caller.role) == ("S1", "O1", "salon_staff")
    assert not caller.is_owner


def test_missing_or_invalid_token_is_unauthenticated(guard):
    with pytest.raises(Unauthenticated):
        guard.resolve_caller(None)
    with pytest.raises(Unauthenticated):
        guard.resolve_caller("bogus")


def test_unknown_user_and_orphan_staff_are_forbidden(guard):
    with pytest.raises(Forbidden):
        guard.resolve_caller("ghost-token")
    with pytest.raises(Forbidden):
        guard.resolve_caller("orphan-token")


def test_ensure_tenant_access():
    ensure_tenant_access("O1", "O1")
    with pytest.raises(Forbidden):
        ensure_tenant_access("O1", "O2")
    with pytest.raises(Forbidden):
        ensure_tenant_access("O1", None)


def test_require_role():
    require_role(Caller(uid="O1", owner_uid="O1", role="salon_owner"), OWNER_ROLES)
    with pytest.raises(Forbidden):
        require_role(Caller(uid="S1", owner_uid="O1", role="salon_staff"), OWNER_ROLES)


def test_uid_tokens_only_when_enabled():
    assert StaticIdentity(allow_uid_tokens=True).verify_token("uid:O1").uid == "O1"
    with pytest.raises(Unauthenticated):
        StaticIdentity().verify_token("uid:O1")
