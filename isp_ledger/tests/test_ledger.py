import math
import threading
from datetime import timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from isp_ledger import CustomerNotFound, ValidationError
from isp_ledger.models import CustomerStatus, PaymentMethod, TransactionType

from .conftest import NOW, customer_record, sequential_ids


def test_recharge_after_lapse_counts_from_now(make_ledger):
    ledger = make_ledger([customer_record("C1", status="INACTIVE", expires_in_days=-2)])

    customer = ledger.apply_event("C1", 30, "RECHARGE", "UPI")

    assert customer.expiry_date == NOW + timedelta(days=30)
    assert customer.status == CustomerStatus.ACTIVE


def test_recharge_while_running_extends_current_expiry(make_ledger):
    ledger = make_ledger([customer_record("C1", expires_in_days=10)])

    customer = ledger.apply_event("C1", 30, TransactionType.RECHARGE, PaymentMethod.CASH)

    assert customer.expiry_date == NOW + timedelta(days=40)


def test_recharge_uses_customer_plan_days(make_ledger):
    ledger = make_ledger([customer_record("C1", plan_days=90, expires_in_days=-1)])

    customer = ledger.recharge("C1", 250, "CARD")

    assert customer.expiry_date == NOW + timedelta(days=90)


def test_recharge_reactivates_inactive_customer_for_any_amount(make_ledger):
    ledger = make_ledger([customer_record("C1", status="INACTIVE", balance=-20, expires_in_days=5)])

    customer = ledger.recharge("C1", 0.01, "CASH")

    assert customer.status == CustomerStatus.ACTIVE
    assert customer.balance == pytest.approx(-19.99)
    assert customer.expiry_date == NOW + timedelta(days=35)


def test_payment_only_moves_balance(make_ledger):
    ledger = make_ledger([customer_record("C1", status="INACTIVE", balance=50, expires_in_days=-3)])
    before = ledger.get_customer("C1")

    after = ledger.pay("C1", 80, "UPI")

    assert after.balance == pytest.approx(-30)
    assert after.status == before.status == CustomerStatus.INACTIVE
    assert after.expiry_date == before.expiry_date


def test_event_is_linked_in_log_and_history(make_ledger):
    ledger = make_ledger(
        [customer_record("C1", name="Alice Cyber"), customer_record("C2")],
        id_factory=sequential_ids(),
    )
    ledger.pay("C2", 5, "CASH")

    customer = ledger.apply_event("C1", 100, "RECHARGE", "UPI", receipt_image="data:image/png;base64,AAAA")

    log = ledger.list_transactions()
    assert len(log) == 2
    newest = log[0]
    assert newest.id == "TXT002"
    assert newest.customer_id == "C1"
    assert newest.customer_name == "Alice Cyber"
    assert newest.amount == pytest.approx(100)
    assert newest.type == TransactionType.RECHARGE
    assert newest.method == PaymentMethod.UPI
    assert newest.description == "Wallet Recharge"
    assert newest.receipt_image == "data:image/png;base64,AAAA"
    assert newest.date == NOW.date()
    assert customer.history[0] == newest
    assert [entry.id for entry in ledger.customer_history("C2")] == ["TXT001"]
    assert ledger.list_transactions(customer_id="C2")[0].description == "Service Payment"


def test_history_is_newest_first(make_ledger):
    ledger = make_ledger([customer_record("C1")], id_factory=sequential_ids())

    for amount in (10, 20, 30):
        ledger.pay("C1", amount, "CASH")

    history = ledger.get_customer("C1").history
    assert [entry.amount for entry in history] == [30, 20, 10]
    assert [entry.id for entry in ledger.list_transactions(limit=2)] == ["TXT003", "TXT002"]


@pytest.mark.parametrize("limit", [0, -1])
def test_non_positive_limit_returns_nothing(make_ledger, limit):
    ledger = make_ledger([customer_record("C1")])
    ledger.pay("C1", 10, "CASH")

    assert ledger.list_transactions(limit=limit) == []


def test_balance_moves_by_the_recorded_amount(make_ledger):
    ledger = make_ledger([customer_record("C1", balance=0.1)])

    customer = ledger.recharge("C1", 0.015, "UPI")

    recorded = customer.history[0].amount
    assert recorded == 0.01
    assert customer.balance == pytest.approx(0.11)
    assert customer.balance - 0.1 == pytest.approx(recorded)


@pytest.mark.parametrize("amount", [0, -5, math.nan, math.inf, 0.001])
def test_invalid_amount_is_rejected_without_side_effects(make_ledger, amount):
    ledger = make_ledger([customer_record("C1", balance=10)])
    before = ledger.export_snapshot()

    with pytest.raises(ValidationError) as excinfo:
        ledger.apply_event("C1", amount, "RECHARGE", "UPI")

    assert excinfo.value.field == "amount"
    assert ledger.export_snapshot() == before
    assert ledger.list_transactions() == []


def test_unknown_customer_is_rejected_without_side_effects(make_ledger):
    ledger = make_ledger([customer_record("C1")])
    before = ledger.export_snapshot()

    with pytest.raises(CustomerNotFound) as excinfo:
        ledger.apply_event("C404", 10, "PAYMENT", "CASH")

    assert excinfo.value.field == "customer_id"
    assert isinstance(excinfo.value, ValidationError)
    assert ledger.export_snapshot() == before


def test_refund_cannot_be_applied(make_ledger):
    ledger = make_ledger([customer_record("C1")])

    with pytest.raises(ValidationError) as excinfo:
        ledger.apply_event("C1", 10, "REFUND", "CASH")

    assert excinfo.value.field == "type"
    assert ledger.list_transactions() == []


def test_unknown_method_is_rejected(make_ledger):
    ledger = make_ledger([customer_record("C1")])

    with pytest.raises(ValidationError) as excinfo:
        ledger.apply_event("C1", 10, "PAYMENT", "CHEQUE")

    assert excinfo.value.field == "method"


def test_generated_ids_skip_existing_transactions(make_ledger):
    existing = [{"id": "TXdup", "date": "2024-01-01", "amount": 5, "type": "PAYMENT", "method": "CASH"}]
    candidates = iter(["TXdup", "TXdup", "TXnew"])
    ledger = make_ledger(
        [customer_record("C1", history=existing)],
        id_factory=lambda: next(candidates),
    )

    ledger.pay("C1", 1, "CASH")

    assert [entry.id for entry in ledger.list_transactions()] == ["TXnew", "TXdup"]


def test_default_ids_are_unique(make_ledger):
    ledger = make_ledger([customer_record("C1")])

    for _ in range(50):
        ledger.pay("C1", 1, "CASH")

    ids = [entry.id for entry in ledger.list_transactions()]
    assert len(set(ids)) == 50
    assert all(entry.startswith("TX") and len(entry) == 7 for entry in ids)


def test_read_models_are_frozen(make_ledger):
    ledger = make_ledger([customer_record("C1")])
    customer = ledger.pay("C1", 1, "CASH")

    with pytest.raises(PydanticValidationError):
        customer.balance = 1000
    with pytest.raises(PydanticValidationError):
        customer.history[0].amount = 1000
    assert ledger.get_customer("C1").balance == pytest.approx(-1)


def test_concurrent_events_do_not_lose_updates(make_ledger):
    ledger = make_ledger([customer_record("C1", balance=0)])

    def worker():
        for _ in range(25):
            ledger.recharge("C1", 1, "UPI")

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    customer = ledger.get_customer("C1")
    assert customer.balance == pytest.approx(100)
    assert len(customer.history) == 100
    assert customer.expiry_date == NOW + timedelta(days=10 + 100 * 30)
