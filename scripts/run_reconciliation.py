#!/usr/bin/env python3
"""
Run the billing reconciliation jobs once against the configured store.

Usage:
  python3 scripts/run_reconciliation.py               # both jobs
  python3 scripts/run_reconciliation.py --job grace   # grace-period suspension only
  python3 scripts/run_reconciliation.py --job trials  # trial expiry only
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.core.config import settings
from app.domain.entities.billing import ReconciliationReport
from app.wiring.dependencies import get_reconcile_billing_use_case, get_task_runner


def _print_report(name: str, report: ReconciliationReport) -> None:
    print(
        f"[{name}] scanned={report.scanned} suspended={report.suspended} "
        f"skipped={report.skipped} failed_batches={report.failed_batches}"
    )
    if report.expiring_soon:
        print(f"[{name}] expiring soon: {', '.join(report.expiring_soon)}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run billing reconciliation jobs once.")
    parser.add_argument("--job", choices=["grace", "trials", "all"], default="all")
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    uc = get_reconcile_billing_use_case()
    failed = 0
    if args.job in {"grace", "all"}:
        report = uc.suspend_overdue()
        _print_report("grace_period", report)
        failed += report.failed_batches
    if args.job in {"trials", "all"}:
        report = uc.expire_trials()
        _print_report("trial_expiry", report)
        failed += report.failed_batches

    # Let queued audit and notification writes finish before exiting
    get_task_runner().shutdown(wait=True)
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
