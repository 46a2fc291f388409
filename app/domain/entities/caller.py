from __future__ import annotations

from dataclasses import dataclass


OWNER_ROLES = frozenset({"salon_owner", "super_admin"})
ADMIN_ROLES = frozenset({"salon_owner", "salon_branch_admin", "salon_admin", "super_admin"})


@dataclass(frozen=True)
class Caller:
    uid: str
    owner_uid: str
    role: str
    name: str | None = None
    email: str | None = None

    @property
    def is_owner(self) -> bool:
        return self.role in OWNER_ROLES
