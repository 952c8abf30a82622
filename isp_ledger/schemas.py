from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .models import (
    ComplaintStatus,
    CustomerStatus,
    PaymentMethod,
    StockStatus,
    SubscriptionType,
    TransactionType,
)
from .timezone_utils import parse_local_datetime


class TransactionRead(BaseModel):
    id: str
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    date: date
    amount: float
    type: TransactionType
    method: PaymentMethod
    description: str = ""
    receipt_image: Optional[str] = None
    model_config = ConfigDict(from_attributes=True, frozen=True)


class CustomerRead(BaseModel):
    id: str
    name: str
    email: str = ""
    phone: str = ""
    status: CustomerStatus
    balance: float
    subscription_type: SubscriptionType
    plan_days: int
    expiry_date: datetime
    area: Optional[str] = None
    address: Optional[str] = None
    avatar_url: str = ""
    devices: List[Dict[str, Any]] = Field(default_factory=list)
    history: List[TransactionRead] = Field(default_factory=list)
    model_config = ConfigDict(frozen=True)

    @property
    def is_active(self) -> bool:
        return self.status == CustomerStatus.ACTIVE


class InventoryItemRead(BaseModel):
    id: str
    name: str
    category: str = ""
    price: float = 0.0
    status: StockStatus
    serial_numbers: List[str] = Field(default_factory=list)
    image: Optional[str] = None
    remarks: Optional[str] = None
    model_config = ConfigDict(frozen=True)

    @property
    def quantity(self) -> int:
        return len(self.serial_numbers)


class ComplaintHistoryEntry(BaseModel):
    timestamp: datetime
    action: str
    by: str
    details: Optional[str] = None
    model_config = ConfigDict(frozen=True)


class ComplaintRead(BaseModel):
    id: str
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    assigned_to: List[str] = Field(default_factory=list)
    description: str
    status: ComplaintStatus
    date: date
    resolved_by: Optional[str] = None
    resolution_remark: Optional[str] = None
    history: List[ComplaintHistoryEntry] = Field(default_factory=list)
    model_config = ConfigDict(frozen=True)


class LedgerEventRequest(BaseModel):
    customer_id: str
    amount: float
    type: TransactionType
    method: PaymentMethod
    receipt_image: Optional[str] = None

    @field_validator("customer_id")
    @classmethod
    def validate_customer_id(cls, value: str) -> str:
        trimmed = (value or "").strip()
        if not trimmed:
            raise ValueError("customer_id is required")
        return trimmed

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("amount must be a finite number")
        if value <= 0:
            raise ValueError("amount must be positive")
        if round(value, 2) <= 0:
            raise ValueError("amount must be at least 0.01")
        return value

    @field_validator("type")
    @classmethod
    def validate_type(cls, value: TransactionType) -> TransactionType:
        if value == TransactionType.REFUND:
            raise ValueError("REFUND cannot be applied as a ledger event")
        return value


class ComplaintCreate(BaseModel):
    customer_id: Optional[str] = None
    assigned_to: List[str] = Field(default_factory=list)
    description: str
    created_by: str = "system"

    @field_validator("description")
    @classmethod
    def validate_description(cls, value: str) -> str:
        trimmed = (value or "").strip()
        if not trimmed:
            raise ValueError("description is required")
        return trimmed


# Snapshot documents use the console's camelCase keys; snake_case is accepted too.
class SnapshotModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class SnapshotTransaction(SnapshotModel):
    id: str
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    date: date
    amount: float
    type: TransactionType
    method: PaymentMethod
    description: str = ""
    receipt_image: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def validate_date(cls, value: Any) -> Any:
        # full ISO timestamps are cut down to their calendar day
        if isinstance(value, str) and "T" in value:
            return value.split("T", 1)[0]
        if isinstance(value, datetime):
            return value.date()
        return value


class SnapshotCustomer(SnapshotModel):
    id: str
    name: str
    email: str = ""
    phone: str = ""
    status: CustomerStatus
    balance: float
    subscription_type: SubscriptionType
    plan_days: int
    expiry_date: datetime
    area: Optional[str] = None
    address: Optional[str] = None
    avatar_url: str = ""
    devices: List[Dict[str, Any]] = Field(default_factory=list)
    history: List[SnapshotTransaction] = Field(default_factory=list)

    @field_validator("expiry_date", mode="before")
    @classmethod
    def validate_expiry_date(cls, value: Any) -> Any:
        return parse_local_datetime(value)


class SnapshotInventoryItem(SnapshotModel):
    id: str
    name: str
    category: str = ""
    price: float = 0.0
    status: StockStatus
    serial_numbers: List[str] = Field(default_factory=list)
    image: Optional[str] = None
    remarks: Optional[str] = None


class SnapshotComplaintHistory(SnapshotModel):
    timestamp: datetime
    action: str
    by: str
    details: Optional[str] = None


class SnapshotComplaint(SnapshotModel):
    id: str
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    assigned_to_user_ids: List[str] = Field(default_factory=list)
    description: str
    status: ComplaintStatus
    date: date
    resolved_by: Optional[str] = None
    resolution_remark: Optional[str] = None
    history: List[SnapshotComplaintHistory] = Field(default_factory=list)


class SnapshotDocument(SnapshotModel):
    customers: List[SnapshotCustomer] = Field(default_factory=list)
    transactions: List[SnapshotTransaction] = Field(default_factory=list)
    inventory: List[SnapshotInventoryItem] = Field(default_factory=list)
    complaints: List[SnapshotComplaint] = Field(default_factory=list)
