from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class AuditEntry:
    owner_uid: str
    action: str
    action_type: str  # "create", "update", "delete", "status_change", "other"
    entity_type: str  # "booking", "billing", ...
    entity_id: str
    performed_by: str  # authenticated uid or "system:<job>"
    timestamp: datetime
    previous_value: str | None = None
    new_value: str | None = None
    performed_by_role: str | None = None
    # When set, re-recording the same fact overwrites instead of duplicating
    idempotency_key: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
