"""
In-process facade over the subscription ledger.

Every mutation runs under one lock and inside one database transaction, so
callers never observe a half-applied event, sweep or restore.
"""
from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.engine import Engine
from sqlmodel import Session

from . import crud
from .database import build_engine, session_scope
from .errors import ValidationError
from .models import ComplaintStatus, PaymentMethod, TransactionType
from .schemas import (
    ComplaintCreate,
    ComplaintRead,
    CustomerRead,
    InventoryItemRead,
    LedgerEventRequest,
    TransactionRead,
)
from .scripts.audit_consistency import AuditReport, run_audit
from .seed import demo_snapshot
from .snapshot import SnapshotSource, export_snapshot, restore_snapshot
from .timezone_utils import now_local

logger = logging.getLogger(__name__)

SEED_DEMO_DATA = os.getenv("ISP_LEDGER_SEED_DEMO", "true").lower() == "true"

Clock = Callable[[], datetime]


def _validation_error_from(exc: PydanticValidationError) -> ValidationError:
    first = exc.errors()[0] if exc.error_count() else {}
    location = first.get("loc") or ()
    field = str(location[0]) if location else None
    message = first.get("msg", str(exc))
    return ValidationError(f"{field}: {message}" if field else message, field=field)


class Ledger:
    def __init__(
        self,
        engine: Optional[Engine] = None,
        *,
        clock: Optional[Clock] = None,
        id_factory: Optional[crud.IdFactory] = None,
    ) -> None:
        self.engine = engine or build_engine()
        self.clock = clock or now_local
        self.id_factory = id_factory
        self._lock = threading.RLock()

    @contextmanager
    def _reading(self) -> Iterator[Session]:
        with self._lock, Session(self.engine) as session:
            yield session

    def bootstrap(self, *, seed: Optional[bool] = None) -> List[CustomerRead]:
        """Load demo records when asked, then run the startup expiry sweep."""
        if seed is None:
            seed = SEED_DEMO_DATA
        if seed:
            self.restore(demo_snapshot(self.clock()))
        return self.sweep()

    # -- events ---------------------------------------------------------

    def apply_event(
        self,
        customer_id: str,
        amount: float,
        type: Union[TransactionType, str],
        method: Union[PaymentMethod, str],
        receipt_image: Optional[str] = None,
    ) -> CustomerRead:
        try:
            request = LedgerEventRequest(
                customer_id=customer_id,
                amount=amount,
                type=type,
                method=method,
                receipt_image=receipt_image,
            )
        except PydanticValidationError as exc:
            error = _validation_error_from(exc)
            logger.warning(
                "Rejected ledger event for %s: %s",
                customer_id,
                error,
                extra={"operation": "apply_event", "customer_id": customer_id, "error": str(error)},
            )
            raise error from exc

        with self._lock:
            try:
                with session_scope(self.engine) as session:
                    customer = crud.apply_event(
                        session,
                        request,
                        now=self.clock(),
                        id_factory=self.id_factory,
                    )
                    result = crud.to_customer_read(session, customer)
            except ValidationError as exc:
                logger.warning(
                    "Rejected ledger event for %s: %s",
                    customer_id,
                    exc,
                    extra={"operation": "apply_event", "customer_id": customer_id, "error": str(exc)},
                )
                raise
        return result

    def recharge(self, customer_id: str, amount: float, method: Union[PaymentMethod, str], **kwargs: Any) -> CustomerRead:
        return self.apply_event(customer_id, amount, TransactionType.RECHARGE, method, **kwargs)

    def pay(self, customer_id: str, amount: float, method: Union[PaymentMethod, str], **kwargs: Any) -> CustomerRead:
        return self.apply_event(customer_id, amount, TransactionType.PAYMENT, method, **kwargs)

    def sweep(self, now: Optional[datetime] = None) -> List[CustomerRead]:
        """Deactivate lapsed customers and return the ones that changed."""
        with self._lock:
            with session_scope(self.engine) as session:
                changed = crud.sweep_expired(session, now or self.clock())
                return [crud.to_customer_read(session, customer) for customer in changed]

    # -- snapshots ------------------------------------------------------

    def restore(self, source: SnapshotSource) -> None:
        with self._lock:
            with session_scope(self.engine) as session:
                restore_snapshot(session, source)

    def export_snapshot(self) -> Dict[str, Any]:
        with self._reading() as session:
            return export_snapshot(session)

    def audit(self) -> AuditReport:
        with self._reading() as session:
            return run_audit(session, now=self.clock())

    # -- complaints -----------------------------------------------------

    def assign_complaint(
        self,
        description: str,
        *,
        assigned_to: Optional[List[str]] = None,
        customer_id: Optional[str] = None,
        created_by: str = "system",
    ) -> ComplaintRead:
        try:
            payload = ComplaintCreate(
                customer_id=customer_id,
                assigned_to=assigned_to or [],
                description=description,
                created_by=created_by,
            )
        except PydanticValidationError as exc:
            raise _validation_error_from(exc) from exc
        with self._lock:
            with session_scope(self.engine) as session:
                complaint = crud.assign_complaint(session, payload, now=self.clock())
                return crud.to_complaint_read(complaint)

    def resolve_complaint(self, complaint_id: str, *, resolved_by: str, remark: Optional[str] = None) -> ComplaintRead:
        with self._lock:
            with session_scope(self.engine) as session:
                complaint = crud.resolve_complaint(
                    session,
                    complaint_id,
                    resolved_by=resolved_by,
                    remark=remark,
                    now=self.clock(),
                )
                return crud.to_complaint_read(complaint)

    # -- reads ----------------------------------------------------------

    def get_customer(self, customer_id: str) -> CustomerRead:
        with self._reading() as session:
            return crud.to_customer_read(session, crud.get_customer(session, customer_id))

    def list_customers(self) -> List[CustomerRead]:
        with self._reading() as session:
            return [crud.to_customer_read(session, customer) for customer in crud.list_customers(session)]

    def list_transactions(self, *, customer_id: Optional[str] = None, limit: Optional[int] = None) -> List[TransactionRead]:
        with self._reading() as session:
            return crud.list_transactions(session, customer_id=customer_id, limit=limit)

    def customer_history(self, customer_id: str) -> List[TransactionRead]:
        with self._reading() as session:
            crud.get_customer(session, customer_id)
            return crud.customer_history(session, customer_id)

    def list_inventory(self) -> List[InventoryItemRead]:
        with self._reading() as session:
            return crud.list_inventory(session)

    def list_complaints(self, *, status: Optional[ComplaintStatus] = None) -> List[ComplaintRead]:
        with self._reading() as session:
            return crud.list_complaints(session, status=status)
