from __future__ import annotations

import logging
import uuid
from typing import Any

from app.application.ports.document_store import DocumentStorePort
from app.application.ports.side_effects import AuditLogPort, NotificationSinkPort
from app.domain.entities.audit import AuditEntry
from app.domain.entities.notification import Notification


AUDIT_COLLECTION = "auditLogs"
NOTIFICATIONS_COLLECTION = "notifications"


def _compact(fields: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in fields.items() if v is not None}


class StoreAuditLog(AuditLogPort):
    def __init__(self, store: DocumentStorePort) -> None:
        self._store = store
        self._logger = logging.getLogger(__name__)

    def record(self, entry: AuditEntry) -> str:
        # Keyed entries overwrite, so a retried job leaves one record
        entry_id = entry.idempotency_key or uuid.uuid4().hex
        self._store.set(
            AUDIT_COLLECTION,
            entry_id,
            _compact(
                {
                    "ownerUid": entry.owner_uid,
                    "action": entry.action,
                    "actionType": entry.action_type,
                    "entityType": entry.entity_type,
                    "entityId": entry.entity_id,
                    "performedBy": entry.performed_by,
                    "performedByRole": entry.performed_by_role,
                    "previousValue": entry.previous_value,
                    "newValue": entry.new_value,
                    "timestamp": entry.timestamp,
                    "metadata": entry.metadata or None,
                }
            ),
        )
        self._logger.info("Audit entry recorded", extra={"entity_id": entry.entity_id, "action": entry.action})
        return entry_id


class StoreNotificationSink(NotificationSinkPort):
    def __init__(self, store: DocumentStorePort) -> None:
        self._store = store
        self._logger = logging.getLogger(__name__)

    def enqueue(self, notification: Notification) -> str:
        notification_id = uuid.uuid4().hex
        self._store.set(
            NOTIFICATIONS_COLLECTION,
            notification_id,
            _compact(
                {
                    "bookingId": notification.booking_id,
                    "ownerUid": notification.owner_uid,
                    "type": notification.type,
                    "title": notification.title,
                    "message": notification.message,
                    "status": notification.status,
                    "bookingCode": notification.booking_code,
                    "customerUid": notification.customer_uid,
                    "customerEmail": notification.customer_email,
                    "customerPhone": notification.customer_phone,
                    "clientName": notification.client_name,
                    "staffName": notification.staff_name,
                    "serviceName": notification.service_name,
                    "branchName": notification.branch_name,
                    "bookingDate": notification.booking_date,
                    "bookingTime": notification.booking_time,
                    "read": notification.read,
                    "createdAt": notification.created_at,
                }
            ),
        )
        self._logger.info(
            "Notification queued",
            extra={"booking_id": notification.booking_id, "type": notification.type},
        )
        return notification_id
