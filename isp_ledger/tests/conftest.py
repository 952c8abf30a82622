import logging
from datetime import datetime, timedelta
from itertools import count

import pytest

from isp_ledger.database import build_engine
from isp_ledger.ledger import Ledger
from isp_ledger.timezone_utils import LOCAL_TZ

NOW = datetime(2024, 3, 15, 10, 30, tzinfo=LOCAL_TZ)


def customer_record(
    customer_id: str,
    *,
    name: str = "",
    status: str = "ACTIVE",
    balance: float = 0.0,
    plan_days: int = 30,
    expires_in_days: float = 10,
    history=None,
):
    return {
        "id": customer_id,
        "name": name or f"Customer {customer_id}",
        "email": f"{customer_id.lower()}@example.net",
        "phone": "+91-98450-00000",
        "status": status,
        "balance": balance,
        "subscriptionType": "INTERNET",
        "planDays": plan_days,
        "expiryDate": (NOW + timedelta(days=expires_in_days)).isoformat(),
        "devices": [],
        "history": history or [],
        "avatarUrl": "",
    }


def sequential_ids(prefix: str = "TXT"):
    counter = count(1)
    return lambda: f"{prefix}{next(counter):03d}"


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_ledger():
    def factory(customers=None, *, transactions=None, clock_value=NOW, id_factory=None):
        ledger = Ledger(build_engine("sqlite://"), clock=lambda: clock_value, id_factory=id_factory)
        ledger.restore({"customers": customers or [], "transactions": transactions or []})
        return ledger

    return factory


@pytest.fixture(autouse=True)
def reset_package_logger():
    logger = logging.getLogger("isp_ledger")
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
