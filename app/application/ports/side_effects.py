from __future__ import annotations

from abc import ABC, abstractmethod

from app.domain.entities.audit import AuditEntry
from app.domain.entities.notification import Notification


class AuditLogPort(ABC):
    @abstractmethod
    def record(self, entry: AuditEntry) -> str:
        """Persist an audit entry. Returns its id."""
        raise NotImplementedError


class NotificationSinkPort(ABC):
    @abstractmethod
    def enqueue(self, notification: Notification) -> str:
        """Queue a user-facing notification for delivery. Returns its id."""
        raise NotImplementedError
