"""
Whole-state snapshot restore and export.

A restore replaces the customers, transactions, inventory and complaints
sections a document carries, in one unit of work. Documents are checked for shape only; ledger invariants such as
"ACTIVE means not yet expired" are not re-applied to imported rows.
"""
from __future__ import annotations

import json
import logging
from collections import Counter
from typing import Any, Dict, List, Mapping, Set, Union

from pydantic import ValidationError as PydanticValidationError
from sqlmodel import Session, delete, select

from .crud import to_transaction_read
from .errors import SnapshotImportError
from .models import Complaint, Customer, InventoryItem, LedgerTransaction
from .schemas import (
    SnapshotComplaint,
    SnapshotComplaintHistory,
    SnapshotCustomer,
    SnapshotDocument,
    SnapshotInventoryItem,
    SnapshotTransaction,
)
from .timezone_utils import ensure_local_datetime

logger = logging.getLogger(__name__)

SnapshotSource = Union[str, bytes, Mapping[str, Any]]


def parse_snapshot(source: SnapshotSource) -> SnapshotDocument:
    try:
        if isinstance(source, (str, bytes)):
            payload = json.loads(source)
        else:
            payload = dict(source)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError, ValueError) as exc:
        raise SnapshotImportError("Snapshot is not a valid JSON document") from exc
    if not isinstance(payload, dict):
        raise SnapshotImportError("Snapshot must be a JSON object")
    try:
        document = SnapshotDocument.model_validate(payload)
    except PydanticValidationError as exc:
        raise SnapshotImportError(f"Snapshot failed validation: {exc.error_count()} error(s)") from exc
    _ensure_unique_ids(document)
    return document


def _ensure_unique_ids(document: SnapshotDocument) -> None:
    for label, rows in (
        ("customer", document.customers),
        ("inventory", document.inventory),
        ("complaint", document.complaints),
        ("transaction", document.transactions),
    ):
        duplicates = sorted(key for key, count in Counter(row.id for row in rows).items() if count > 1)
        if duplicates:
            raise SnapshotImportError(f"Duplicate {label} ids in snapshot: {', '.join(duplicates)}")


def _transaction_row(entry: SnapshotTransaction, **overrides: Any) -> LedgerTransaction:
    data = entry.model_dump()
    for key, value in overrides.items():
        if data.get(key) is None:
            data[key] = value
    return LedgerTransaction(**data)


def _history_only_rows(document: SnapshotDocument, known_ids: Set[str]) -> List[LedgerTransaction]:
    """Entries found only in a customer's embedded history, oldest first.

    They are linked to the customer that carries them.
    """
    rows: Dict[str, LedgerTransaction] = {}
    for customer in document.customers:
        for entry in reversed(customer.history):
            if entry.id in known_ids or entry.id in rows:
                continue
            rows[entry.id] = _transaction_row(
                entry,
                customer_id=customer.id,
                customer_name=customer.name,
            )
    return list(rows.values())


def _ordered_transactions(document: SnapshotDocument) -> List[LedgerTransaction]:
    """Rows in insertion order, oldest first; history-only entries sort before the log."""
    logged_ids = {entry.id for entry in document.transactions}
    rows = _history_only_rows(document, logged_ids)
    rows.extend(_transaction_row(entry) for entry in reversed(document.transactions))
    return rows


def _add_in_order(session: Session, rows: List[LedgerTransaction]) -> None:
    for row in rows:
        session.add(row)
        # flush one by one so seq follows list order
        session.flush()


def _replace_customers(session: Session, document: SnapshotDocument) -> None:
    session.exec(delete(Customer))
    for customer in document.customers:
        session.add(
            Customer(
                id=customer.id,
                name=customer.name,
                email=customer.email,
                phone=customer.phone,
                status=customer.status,
                balance=customer.balance,
                subscription_type=customer.subscription_type,
                plan_days=customer.plan_days,
                expiry_date=ensure_local_datetime(customer.expiry_date),
                area=customer.area,
                address=customer.address,
                avatar_url=customer.avatar_url,
                devices_json=json.dumps(customer.devices, ensure_ascii=False) if customer.devices else None,
            )
        )


def _replace_transactions(session: Session, document: SnapshotDocument) -> None:
    session.exec(delete(LedgerTransaction))
    _add_in_order(session, _ordered_transactions(document))


def _merge_customer_histories(session: Session, document: SnapshotDocument) -> None:
    existing_ids = set(session.exec(select(LedgerTransaction.id)).all())
    _add_in_order(session, _history_only_rows(document, existing_ids))


def _replace_inventory(session: Session, document: SnapshotDocument) -> None:
    session.exec(delete(InventoryItem))
    for item in document.inventory:
        session.add(
            InventoryItem(
                id=item.id,
                name=item.name,
                category=item.category,
                price=item.price,
                status=item.status,
                serial_numbers_json=json.dumps(item.serial_numbers, ensure_ascii=False),
                image=item.image,
                remarks=item.remarks,
            )
        )


def _replace_complaints(session: Session, document: SnapshotDocument) -> None:
    session.exec(delete(Complaint))
    for complaint in document.complaints:
        session.add(
            Complaint(
                id=complaint.id,
                customer_id=complaint.customer_id,
                customer_name=complaint.customer_name,
                assigned_to_json=json.dumps(complaint.assigned_to_user_ids, ensure_ascii=False),
                description=complaint.description,
                status=complaint.status,
                date=complaint.date,
                resolved_by=complaint.resolved_by,
                resolution_remark=complaint.resolution_remark,
                history_json=json.dumps(
                    [entry.model_dump(mode="json") for entry in complaint.history],
                    ensure_ascii=False,
                ),
            )
        )


def restore_snapshot(session: Session, source: SnapshotSource) -> SnapshotDocument:
    """Replace each collection the snapshot carries; leave the others alone.

    A section present in the document, even as an empty list, replaces its
    table wholesale. When ``customers`` comes without ``transactions`` the log
    is kept and only unseen entries from the embedded histories are added.
    Parsing happens before anything is deleted, so a malformed document leaves
    the session untouched. The caller commits.
    """
    document = parse_snapshot(source)
    sections = document.model_fields_set

    if "customers" in sections:
        _replace_customers(session, document)
    if "transactions" in sections:
        _replace_transactions(session, document)
    elif "customers" in sections:
        _merge_customer_histories(session, document)
    if "inventory" in sections:
        _replace_inventory(session, document)
    if "complaints" in sections:
        _replace_complaints(session, document)
    session.flush()
    logger.info(
        "Restored snapshot sections: %s",
        ", ".join(sorted(sections)) or "-",
        extra={"operation": "restore"},
    )
    return document


def _decode_list(raw: str | None) -> list:
    if not raw:
        return []
    value = json.loads(raw)
    return value if isinstance(value, list) else []


def export_snapshot(session: Session) -> Dict[str, Any]:
    """Dump the whole state in the camelCase document shape restore accepts."""
    transactions = session.exec(select(LedgerTransaction).order_by(LedgerTransaction.seq.desc())).all()
    log = [SnapshotTransaction.model_validate(to_transaction_read(row).model_dump()) for row in transactions]
    history_by_customer: Dict[str, List[SnapshotTransaction]] = {}
    for entry in log:
        if entry.customer_id:
            history_by_customer.setdefault(entry.customer_id, []).append(entry)

    customers = [
        SnapshotCustomer(
            id=row.id,
            name=row.name,
            email=row.email,
            phone=row.phone,
            status=row.status,
            balance=row.balance,
            subscription_type=row.subscription_type,
            plan_days=row.plan_days,
            expiry_date=ensure_local_datetime(row.expiry_date),
            area=row.area,
            address=row.address,
            avatar_url=row.avatar_url,
            devices=_decode_list(row.devices_json),
            history=history_by_customer.get(row.id, []),
        )
        for row in session.exec(select(Customer).order_by(Customer.id)).all()
    ]
    inventory = [
        SnapshotInventoryItem(
            id=row.id,
            name=row.name,
            category=row.category,
            price=row.price,
            status=row.status,
            serial_numbers=_decode_list(row.serial_numbers_json),
            image=row.image,
            remarks=row.remarks,
        )
        for row in session.exec(select(InventoryItem).order_by(InventoryItem.id)).all()
    ]
    complaints = [
        SnapshotComplaint(
            id=row.id,
            customer_id=row.customer_id,
            customer_name=row.customer_name,
            assigned_to_user_ids=_decode_list(row.assigned_to_json),
            description=row.description,
            status=row.status,
            date=row.date,
            resolved_by=row.resolved_by,
            resolution_remark=row.resolution_remark,
            history=[SnapshotComplaintHistory.model_validate(entry) for entry in _decode_list(row.history_json)],
        )
        for row in session.exec(select(Complaint).order_by(Complaint.id)).all()
    ]
    document = SnapshotDocument(
        customers=customers,
        transactions=log,
        inventory=inventory,
        complaints=complaints,
    )
    return document.model_dump(by_alias=True, mode="json")
