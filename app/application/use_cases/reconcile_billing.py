from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.application.ports.document_store import DocumentStorePort, StoredDocument, WriteOp
from app.application.use_cases.billing_transition import (
    MIRROR_COLLECTION,
    PRIMARY_COLLECTION,
    transition_fields,
)
from app.application.use_cases.record_side_effects import SideEffectSink
from app.application.utils.clock import Clock, utc_now
from app.application.utils.record_mapping import billing_from_document
from app.core.metrics import mirror_write_failures_total, reconciliation_suspended_total
from app.domain.entities.billing import (
    GRACE_EXPIRED_REASON,
    TRIAL_EXPIRED_REASON,
    BillingStatus,
    ReconciliationReport,
)


RECONCILIATION_ACTOR = "system:reconciliation"


@dataclass(frozen=True)
class _PendingSuspension:
    tenant_id: str
    previous: BillingStatus
    fields: dict
    has_mirror: bool
    cycle: str


class ReconcileBillingUseCase:
    """
    Scheduled batch jobs over tenant billing records.

    Both jobs are stateless and safe to run concurrently with themselves:
    they only select tenants still in the source state, so a second run
    over the same data finds nothing left to do.
    """

    def __init__(
        self,
        store: DocumentStorePort,
        side_effects: SideEffectSink,
        batch_size: int | None = None,
        trial_warning_days: int = 2,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._side_effects = side_effects
        self._batch_size = max(1, min(batch_size or store.max_batch_size, store.max_batch_size))
        self._trial_warning = timedelta(days=trial_warning_days)
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    def suspend_overdue(self, now: datetime | None = None) -> ReconciliationReport:
        """Suspend past_due tenants whose grace window has elapsed (or was never set)."""
        now = now or self._clock()
        documents = self._documents_in_status(BillingStatus.PAST_DUE)

        pending: list[_PendingSuspension] = []
        skipped = 0
        for document in documents:
            try:
                billing = billing_from_document(document.id, document.data)
                if billing.billing_status != BillingStatus.PAST_DUE:
                    skipped += 1
                    continue
                if billing.grace_until is None:
                    self._logger.warning(
                        "past_due tenant has no grace window; treating as expired",
                        extra={"tenant_id": document.id},
                    )
                elif now <= billing.grace_until:
                    continue

                pending.append(
                    _PendingSuspension(
                        tenant_id=document.id,
                        previous=billing.billing_status,
                        fields=transition_fields(
                            BillingStatus.SUSPENDED, now, suspended_reason=GRACE_EXPIRED_REASON
                        ),
                        has_mirror=self._store.exists(MIRROR_COLLECTION, document.id),
                        cycle=billing.grace_until.isoformat() if billing.grace_until else "unset",
                    )
                )
            except Exception as e:
                skipped += 1
                self._logger.exception(
                    "Skipping tenant with unreadable billing data",
                    extra={"tenant_id": document.id, "error": str(e)},
                )

        suspended, failed_batches = self._commit(pending, job="grace_period", reason=GRACE_EXPIRED_REASON)
        report = ReconciliationReport(
            scanned=len(documents),
            suspended=suspended,
            skipped=skipped,
            failed_batches=failed_batches,
        )
        self._logger.info(
            "Grace-period reconciliation finished",
            extra={"scanned": report.scanned, "suspended": report.suspended, "failed_batches": failed_batches},
        )
        return report

    def expire_trials(self, now: datetime | None = None) -> ReconciliationReport:
        """Suspend trialing tenants with no subscription whose trial has ended; report those ending soon."""
        now = now or self._clock()
        documents = self._documents_in_status(BillingStatus.TRIALING)
        warn_before = now + self._trial_warning

        pending: list[_PendingSuspension] = []
        expiring_soon: list[str] = []
        skipped = 0
        for document in documents:
            try:
                billing = billing_from_document(document.id, document.data)
                if billing.billing_status != BillingStatus.TRIALING or billing.stripe_subscription_id:
                    skipped += 1
                    continue
                if billing.trial_end is None:
                    continue
                if now > billing.trial_end:
                    pending.append(
                        _PendingSuspension(
                            tenant_id=document.id,
                            previous=billing.billing_status,
                            fields=transition_fields(
                                BillingStatus.SUSPENDED,
                                now,
                                suspended_reason=TRIAL_EXPIRED_REASON,
                                extra={"subscriptionStatus": "expired"},
                            ),
                            has_mirror=self._store.exists(MIRROR_COLLECTION, document.id),
                            cycle=billing.trial_end.isoformat(),
                        )
                    )
                elif billing.trial_end <= warn_before:
                    expiring_soon.append(document.id)
            except Exception as e:
                skipped += 1
                self._logger.exception(
                    "Skipping tenant with unreadable billing data",
                    extra={"tenant_id": document.id, "error": str(e)},
                )

        suspended, failed_batches = self._commit(pending, job="trial_expiry", reason=TRIAL_EXPIRED_REASON)
        return ReconciliationReport(
            scanned=len(documents),
            suspended=suspended,
            skipped=skipped,
            failed_batches=failed_batches,
            expiring_soon=tuple(expiring_soon),
        )

    def _documents_in_status(self, status: BillingStatus) -> list[StoredDocument]:
        found: dict[str, StoredDocument] = {}
        for key in ("billingStatus", "billing_status"):
            for document in self._store.query(PRIMARY_COLLECTION, [(key, "==", status.value)]):
                found.setdefault(document.id, document)
        return list(found.values())

    def _commit(self, pending: list[_PendingSuspension], job: str, reason: str) -> tuple[int, int]:
        """
        Commit primary updates batch by batch, then mirror updates for each
        committed batch. A failed batch is logged; earlier batches stay
        committed and later ones still run.
        """
        suspended = 0
        failed_batches = 0
        for start in range(0, len(pending), self._batch_size):
            chunk = pending[start : start + self._batch_size]
            primary_ops = [WriteOp("update", PRIMARY_COLLECTION, p.tenant_id, p.fields) for p in chunk]
            try:
                self._store.commit_batch(primary_ops)
            except Exception as e:
                failed_batches += 1
                self._logger.error(
                    "Reconciliation batch failed",
                    extra={"job": job, "batch_start": start, "batch_size": len(chunk), "error": str(e)},
                )
                continue

            suspended += len(chunk)
            reconciliation_suspended_total.labels(job=job).inc(len(chunk))

            mirror_ops = [
                WriteOp("update", MIRROR_COLLECTION, p.tenant_id, p.fields) for p in chunk if p.has_mirror
            ]
            if mirror_ops:
                try:
                    self._store.commit_batch(mirror_ops)
                except Exception as e:
                    mirror_write_failures_total.labels(source=job).inc(len(mirror_ops))
                    self._logger.error(
                        "Owner mirror batch failed",
                        extra={"job": job, "batch_start": start, "error": str(e)},
                    )

            for p in chunk:
                self._side_effects.billing_transitioned(
                    p.tenant_id,
                    p.previous,
                    BillingStatus.SUSPENDED,
                    performed_by=RECONCILIATION_ACTOR,
                    reason=reason,
                    idempotency_key=f"{job}:{p.tenant_id}:{p.cycle}",
                )
        return suspended, failed_batches
