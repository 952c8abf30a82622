from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel

from .timezone_utils import now_local


class CustomerStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class SubscriptionType(str, Enum):
    CABLE = "CABLE"
    INTERNET = "INTERNET"


class TransactionType(str, Enum):
    PAYMENT = "PAYMENT"
    RECHARGE = "RECHARGE"
    REFUND = "REFUND"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    UPI = "UPI"
    CARD = "CARD"


class StockStatus(str, Enum):
    IN_STOCK = "IN_STOCK"
    LOW_STOCK = "LOW_STOCK"
    OUT_OF_STOCK = "OUT_OF_STOCK"


class ComplaintStatus(str, Enum):
    PENDING = "PENDING"
    RESOLVED = "RESOLVED"


class Customer(SQLModel, table=True):
    id: str = Field(primary_key=True)
    name: str
    email: str = Field(default="")
    phone: str = Field(default="")
    status: CustomerStatus = Field(default=CustomerStatus.ACTIVE)
    balance: float = Field(default=0.0)
    subscription_type: SubscriptionType = Field(default=SubscriptionType.INTERNET)
    plan_days: int = Field(default=30)
    expiry_date: datetime = Field(default_factory=now_local)
    area: Optional[str] = None
    address: Optional[str] = None
    avatar_url: str = Field(default="")
    devices_json: Optional[str] = None


class LedgerTransaction(SQLModel, table=True):
    __tablename__ = "ledger_transaction"

    # seq orders the log; higher is newer
    seq: Optional[int] = Field(default=None, primary_key=True)
    id: str = Field(index=True, unique=True)
    customer_id: Optional[str] = Field(default=None, index=True)
    customer_name: Optional[str] = None
    date: date
    amount: float
    type: TransactionType
    method: PaymentMethod
    description: str = Field(default="")
    receipt_image: Optional[str] = None


class InventoryItem(SQLModel, table=True):
    __tablename__ = "inventory_item"

    id: str = Field(primary_key=True)
    name: str
    category: str = Field(default="")
    price: float = Field(default=0.0)
    status: StockStatus = Field(default=StockStatus.IN_STOCK)
    serial_numbers_json: str = Field(default="[]")
    image: Optional[str] = None
    remarks: Optional[str] = None


class Complaint(SQLModel, table=True):
    id: str = Field(primary_key=True)
    customer_id: Optional[str] = Field(default=None, index=True)
    customer_name: Optional[str] = None
    assigned_to_json: str = Field(default="[]")
    description: str
    status: ComplaintStatus = Field(default=ComplaintStatus.PENDING)
    date: date
    resolved_by: Optional[str] = None
    resolution_remark: Optional[str] = None
    history_json: str = Field(default="[]")
