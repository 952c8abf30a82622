from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from sqlmodel import Session, select

from ..database import build_engine, session_scope
from ..errors import SnapshotImportError
from ..logging_utils import configure_logging
from ..models import Customer, CustomerStatus, LedgerTransaction
from ..snapshot import restore_snapshot
from ..timezone_utils import ensure_local_datetime, format_local, now_local


@dataclass
class AuditIssue:
    severity: str
    category: str
    entity: str
    entity_id: Optional[str]
    message: str
    details: Optional[Dict[str, Any]] = None

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "severity": self.severity,
            "category": self.category,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


@dataclass
class AuditReport:
    stats: Dict[str, int]
    issues: List[AuditIssue]

    @property
    def issue_count(self) -> int:
        return len(self.issues)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "stats": self.stats,
            "issue_count": self.issue_count,
            "issues": [issue.as_dict() for issue in self.issues],
        }


def run_audit(session: Session, *, now: Optional[datetime] = None) -> AuditReport:
    now = ensure_local_datetime(now) if now is not None else now_local()
    customers = session.exec(select(Customer)).all()
    transactions = session.exec(select(LedgerTransaction)).all()

    stats = {
        "customers": len(customers),
        "transactions": len(transactions),
    }

    issues: List[AuditIssue] = []
    for customer in customers:
        expiry = ensure_local_datetime(customer.expiry_date)
        if customer.status == CustomerStatus.ACTIVE and expiry < now:
            issues.append(
                AuditIssue(
                    severity="warning",
                    category="customer_status",
                    entity="customer",
                    entity_id=customer.id,
                    message="customer is ACTIVE but the plan has lapsed; run the expiry sweep",
                    details={"expiry_date": format_local(expiry)},
                )
            )
        if customer.plan_days is None or customer.plan_days <= 0:
            issues.append(
                AuditIssue(
                    severity="error",
                    category="customer_plan",
                    entity="customer",
                    entity_id=customer.id,
                    message="plan_days must be a positive integer",
                    details={"plan_days": customer.plan_days},
                )
            )

    customer_ids = {customer.id for customer in customers}

    for entry in transactions:
        if entry.customer_id is None:
            issues.append(
                AuditIssue(
                    severity="warning",
                    category="transaction_reference",
                    entity="transaction",
                    entity_id=entry.id,
                    message="transaction is not linked to a customer",
                )
            )
        elif entry.customer_id not in customer_ids:
            issues.append(
                AuditIssue(
                    severity="error",
                    category="transaction_reference",
                    entity="transaction",
                    entity_id=entry.id,
                    message="customer_id does not point to an existing customer",
                    details={"customer_id": entry.customer_id},
                )
            )
        if entry.amount is None or entry.amount <= 0:
            issues.append(
                AuditIssue(
                    severity="error",
                    category="transaction_amount",
                    entity="transaction",
                    entity_id=entry.id,
                    message="amount must be positive",
                    details={"amount": entry.amount},
                )
            )

    return AuditReport(stats=stats, issues=issues)


def format_issue(issue: AuditIssue) -> str:
    prefix = f"[{issue.severity.upper()}] {issue.entity}#{issue.entity_id or '-'} {issue.category}"
    if issue.details:
        return f"{prefix}: {issue.message} | {json.dumps(issue.details, ensure_ascii=False)}"
    return f"{prefix}: {issue.message}"


def print_report(report: AuditReport) -> None:
    print("Audited customers={customers}, transactions={transactions}".format(**report.stats))
    if not report.issues:
        print("No consistency issues detected.")
        return
    print(f"Found {report.issue_count} issues:")
    for idx, issue in enumerate(report.issues, start=1):
        print(f"{idx:02d}. {format_issue(issue)}")


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Audit a ledger snapshot for consistency issues")
    parser.add_argument("snapshot", type=Path, help="Path to a snapshot JSON document")
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the audit report as JSON",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging()
    engine = build_engine("sqlite://")
    try:
        with session_scope(engine) as session:
            restore_snapshot(session, args.snapshot.read_text(encoding="utf-8"))
    except (OSError, SnapshotImportError) as exc:
        print(f"Cannot load snapshot: {exc}", file=sys.stderr)
        return 2
    with Session(engine) as session:
        report = run_audit(session)
    if args.json:
        print(json.dumps(report.as_dict(), ensure_ascii=False, indent=2))
    else:
        print_report(report)
    return 1 if report.issue_count else 0


if __name__ == "__main__":
    raise SystemExit(main())
