from __future__ import annotations

from datetime import datetime, timezone

import pytest

from app.application.ports.side_effects import AuditLogPort, NotificationSinkPort
from app.application.use_cases.billing_transition import BillingTransitionUseCase
from app.application.use_cases.booking_transition import BookingTransitionUseCase
from app.application.use_cases.reconcile_billing import ReconcileBillingUseCase
from app.application.use_cases.record_side_effects import SideEffectSink
from app.application.utils.detached import DetachedTaskRunner
from app.domain.entities.audit import AuditEntry
from app.domain.entities.notification import Notification
from app.infrastructure.store.memory_store import MemoryDocumentStore
from app.infrastructure.stripe.mock_gateway import MockPaymentGateway


NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


class RecordingAuditLog(AuditLogPort):
    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []
        self.by_key: dict[str, AuditEntry] = {}

    def record(self, entry: AuditEntry) -> str:
        if entry.idempotency_key:
            if entry.idempotency_key not in self.by_key:
                self.entries.append(entry)
            self.by_key[entry.idempotency_key] = entry
            return entry.idempotency_key
        self.entries.append(entry)
        return str(len(self.entries))


class RecordingNotifications(NotificationSinkPort):
    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def enqueue(self, notification: Notification) -> str:
        self.notifications.append(notification)
        return str(len(self.notifications))


class FixedClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def gateway() -> MockPaymentGateway:
    return MockPaymentGateway()


@pytest.fixture
def audit_log() -> RecordingAuditLog:
    return RecordingAuditLog()


@pytest.fixture
def notifications() -> RecordingNotifications:
    return RecordingNotifications()


@pytest.fixture
def side_effects(audit_log, notifications, clock) -> SideEffectSink:
    return SideEffectSink(audit_log=audit_log, notifications=notifications, runner=DetachedTaskRunner(), clock=clock)


@pytest.fixture
def booking_uc(store, side_effects, clock) -> BookingTransitionUseCase:
    return BookingTransitionUseCase(store=store, side_effects=side_effects, clock=clock)


@pytest.fixture
def billing_uc(store, gateway, side_effects, clock) -> BillingTransitionUseCase:
    return BillingTransitionUseCase(
        store=store, gateway=gateway, side_effects=side_effects, grace_period_days=7, clock=clock
    )


@pytest.fixture
def reconcile_uc(store, side_effects, clock) -> ReconcileBillingUseCase:
    return ReconcileBillingUseCase(store=store, side_effects=side_effects, clock=clock)
