from __future__ import annotations

import json
import logging
import secrets
import string
from datetime import datetime
from typing import Callable, List, Optional

from sqlmodel import Session, select

from .errors import CustomerNotFound, ValidationError
from .models import (
    Complaint,
    ComplaintStatus,
    Customer,
    CustomerStatus,
    InventoryItem,
    LedgerTransaction,
    TransactionType,
)
from .schemas import (
    ComplaintCreate,
    ComplaintHistoryEntry,
    ComplaintRead,
    CustomerRead,
    InventoryItemRead,
    LedgerEventRequest,
    TransactionRead,
)
from .timezone_utils import add_calendar_days, ensure_local_datetime, today_local

logger = logging.getLogger(__name__)

TRANSACTION_ID_CHARSET = string.ascii_lowercase + string.digits
EVENT_DESCRIPTIONS = {
    TransactionType.RECHARGE: "Wallet Recharge",
    TransactionType.PAYMENT: "Service Payment",
}

IdFactory = Callable[[], str]


def _round_amount(value: Optional[float]) -> float:
    try:
        number = float(value or 0.0)
    except (TypeError, ValueError):
        number = 0.0
    return round(number, 2)


def _decode_json_list(raw: Optional[str]) -> list:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return []
    return value if isinstance(value, list) else []


def _random_transaction_id() -> str:
    return "TX" + "".join(secrets.choice(TRANSACTION_ID_CHARSET) for _ in range(5))


def _generate_transaction_id(session: Session, id_factory: Optional[IdFactory] = None) -> str:
    factory = id_factory or _random_transaction_id
    while True:
        candidate = factory()
        existing = session.exec(select(LedgerTransaction.seq).where(LedgerTransaction.id == candidate)).first()
        if existing is None:
            return candidate


def _generate_complaint_id(session: Session) -> str:
    while True:
        candidate = "CP" + "".join(secrets.choice(string.digits) for _ in range(5))
        if session.get(Complaint, candidate) is None:
            return candidate


def to_transaction_read(row: LedgerTransaction) -> TransactionRead:
    return TransactionRead.model_validate(row)


def to_customer_read(session: Session, customer: Customer) -> CustomerRead:
    return CustomerRead(
        id=customer.id,
        name=customer.name,
        email=customer.email,
        phone=customer.phone,
        status=customer.status,
        balance=_round_amount(customer.balance),
        subscription_type=customer.subscription_type,
        plan_days=customer.plan_days,
        expiry_date=ensure_local_datetime(customer.expiry_date),
        area=customer.area,
        address=customer.address,
        avatar_url=customer.avatar_url,
        devices=_decode_json_list(customer.devices_json),
        history=customer_history(session, customer.id),
    )


def to_inventory_read(item: InventoryItem) -> InventoryItemRead:
    return InventoryItemRead(
        id=item.id,
        name=item.name,
        category=item.category,
        price=item.price,
        status=item.status,
        serial_numbers=[str(serial) for serial in _decode_json_list(item.serial_numbers_json)],
        image=item.image,
        remarks=item.remarks,
    )


def to_complaint_read(complaint: Complaint) -> ComplaintRead:
    return ComplaintRead(
        id=complaint.id,
        customer_id=complaint.customer_id,
        customer_name=complaint.customer_name,
        assigned_to=_decode_json_list(complaint.assigned_to_json),
        description=complaint.description,
        status=complaint.status,
        date=complaint.date,
        resolved_by=complaint.resolved_by,
        resolution_remark=complaint.resolution_remark,
        history=[ComplaintHistoryEntry.model_validate(entry) for entry in _decode_json_list(complaint.history_json)],
    )


def get_customer(session: Session, customer_id: str) -> Customer:
    customer = session.get(Customer, customer_id)
    if not customer:
        raise CustomerNotFound(customer_id)
    return customer


def list_customers(session: Session) -> List[Customer]:
    return session.exec(select(Customer).order_by(Customer.id)).all()


def list_transactions(
    session: Session,
    *,
    customer_id: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[TransactionRead]:
    stmt = select(LedgerTransaction)
    if customer_id is not None:
        stmt = stmt.where(LedgerTransaction.customer_id == customer_id)
    stmt = stmt.order_by(LedgerTransaction.seq.desc())
    if limit is not None:
        if limit <= 0:
            return []
        stmt = stmt.limit(limit)
    return [to_transaction_read(row) for row in session.exec(stmt).all()]


def customer_history(session: Session, customer_id: str) -> List[TransactionRead]:
    return list_transactions(session, customer_id=customer_id)


def list_inventory(session: Session) -> List[InventoryItemRead]:
    rows = session.exec(select(InventoryItem).order_by(InventoryItem.id)).all()
    return [to_inventory_read(row) for row in rows]


def list_complaints(session: Session, *, status: Optional[ComplaintStatus] = None) -> List[ComplaintRead]:
    stmt = select(Complaint)
    if status is not None:
        stmt = stmt.where(Complaint.status == status)
    rows = session.exec(stmt.order_by(Complaint.date.desc(), Complaint.id)).all()
    return [to_complaint_read(row) for row in rows]


def record_transaction(session: Session, entry: LedgerTransaction) -> LedgerTransaction:
    """Append to the front of the log. The log has no update or delete path."""
    if entry.seq is not None:
        raise ValueError("Transactions are append-only; seq is assigned on insert")
    session.add(entry)
    session.flush()
    return entry


def apply_event(
    session: Session,
    request: LedgerEventRequest,
    *,
    now: datetime,
    id_factory: Optional[IdFactory] = None,
) -> Customer:
    """Apply a validated RECHARGE or PAYMENT to one customer.

    Balance moves by the amount in the direction of the event type. A recharge
    also reactivates the customer and extends the expiry by ``plan_days``
    counted from the later of the current expiry and ``now``. The caller owns
    the unit of work; nothing here commits.
    """
    if request.type not in EVENT_DESCRIPTIONS:
        raise ValidationError(f"{request.type.value} cannot be applied as a ledger event", field="type")
    customer = get_customer(session, request.customer_id)
    now = ensure_local_datetime(now)
    amount = _round_amount(request.amount)

    entry = LedgerTransaction(
        id=_generate_transaction_id(session, id_factory),
        customer_id=customer.id,
        customer_name=customer.name,
        date=today_local(now),
        amount=amount,
        type=request.type,
        method=request.method,
        description=EVENT_DESCRIPTIONS[request.type],
        receipt_image=request.receipt_image,
    )

    previous_status = customer.status
    if request.type == TransactionType.RECHARGE:
        customer.balance = _round_amount((customer.balance or 0.0) + amount)
        customer.status = CustomerStatus.ACTIVE
        current_expiry = ensure_local_datetime(customer.expiry_date)
        base_date = current_expiry if current_expiry and current_expiry > now else now
        customer.expiry_date = add_calendar_days(base_date, customer.plan_days)
    else:
        customer.balance = _round_amount((customer.balance or 0.0) - amount)

    session.add(customer)
    record_transaction(session, entry)
    logger.info(
        "Applied %s of %.2f to %s",
        request.type.value,
        entry.amount,
        customer.id,
        extra={
            "operation": "apply_event",
            "customer_id": customer.id,
            "transaction_id": entry.id,
            "status": customer.status.value,
        },
    )
    if previous_status != customer.status:
        logger.info("Customer %s reactivated by recharge", customer.id)
    return customer


def sweep_expired(session: Session, now: datetime) -> List[Customer]:
    """Deactivate every ACTIVE customer whose expiry is before ``now``."""
    now = ensure_local_datetime(now)
    changed: List[Customer] = []
    active = session.exec(select(Customer).where(Customer.status == CustomerStatus.ACTIVE)).all()
    for customer in active:
        expiry = ensure_local_datetime(customer.expiry_date)
        if expiry < now:
            customer.status = CustomerStatus.INACTIVE
            session.add(customer)
            changed.append(customer)
    if changed:
        session.flush()
        logger.info(
            "Expiry sweep deactivated %d customer(s)",
            len(changed),
            extra={"operation": "sweep", "status": CustomerStatus.INACTIVE.value},
        )
    return changed


def _complaint_history_entry(now: datetime, action: str, by: str, details: Optional[str] = None) -> dict:
    entry = ComplaintHistoryEntry(timestamp=now, action=action, by=by, details=details)
    return entry.model_dump(mode="json")


def assign_complaint(session: Session, payload: ComplaintCreate, *, now: datetime) -> Complaint:
    customer_name = None
    if payload.customer_id:
        customer_name = get_customer(session, payload.customer_id).name
    now = ensure_local_datetime(now)
    complaint = Complaint(
        id=_generate_complaint_id(session),
        customer_id=payload.customer_id,
        customer_name=customer_name,
        assigned_to_json=json.dumps(payload.assigned_to, ensure_ascii=False),
        description=payload.description,
        status=ComplaintStatus.PENDING,
        date=today_local(now),
        history_json=json.dumps(
            [_complaint_history_entry(now, "created", payload.created_by)],
            ensure_ascii=False,
        ),
    )
    session.add(complaint)
    session.flush()
    logger.info("Complaint %s assigned to %s", complaint.id, ", ".join(payload.assigned_to) or "-")
    return complaint


def resolve_complaint(
    session: Session,
    complaint_id: str,
    *,
    resolved_by: str,
    now: datetime,
    remark: Optional[str] = None,
) -> Complaint:
    complaint = session.get(Complaint, complaint_id)
    if not complaint:
        raise ValidationError(f"Complaint {complaint_id} not found", field="complaint_id")
    if complaint.status == ComplaintStatus.RESOLVED:
        raise ValidationError(f"Complaint {complaint_id} is already resolved", field="status")
    history = _decode_json_list(complaint.history_json)
    history.append(_complaint_history_entry(ensure_local_datetime(now), "resolved", resolved_by, remark))
    complaint.status = ComplaintStatus.RESOLVED
    complaint.resolved_by = resolved_by
    complaint.resolution_remark = remark
    complaint.history_json = json.dumps(history, ensure_ascii=False)
    session.add(complaint)
    session.flush()
    logger.info("Complaint %s resolved by %s", complaint.id, resolved_by)
    return complaint
