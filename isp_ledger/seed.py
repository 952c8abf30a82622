"""
Demo records the console boots with.

Expiry dates are relative to the boot time so the startup sweep has one
lapsed customer to act on.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from .timezone_utils import now_local


def demo_snapshot(now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or now_local()
    return {
        "customers": [
            {
                "id": "C001",
                "name": "Alice Cyber",
                "email": "alice@net.com",
                "phone": "+1-555-0101",
                "status": "ACTIVE",
                "balance": 150.00,
                "subscriptionType": "INTERNET",
                "planDays": 30,
                "expiryDate": (now + timedelta(days=5)).isoformat(),
                "devices": [
                    {
                        "id": "D1",
                        "name": "Router X1",
                        "type": "ROUTER",
                        "macAddress": "00:1A:2B:3C:4D",
                        "assignedDate": "2023-01-01",
                    }
                ],
                "history": [
                    {"id": "TX1", "date": "2023-10-01", "amount": 50, "type": "PAYMENT", "method": "UPI", "description": "Monthly Sub"},
                ],
                "avatarUrl": "",
            },
            {
                "id": "C002",
                "name": "Bob Matrix",
                "email": "bob@grid.com",
                "phone": "+1-555-0102",
                "status": "INACTIVE",
                "balance": -20.00,
                "subscriptionType": "CABLE",
                "planDays": 30,
                "expiryDate": (now - timedelta(days=2)).isoformat(),
                "devices": [],
                "history": [],
                "avatarUrl": "",
            },
            {
                "id": "C003",
                "name": "Eve Nexus",
                "email": "eve@node.com",
                "phone": "+1-555-0103",
                "status": "ACTIVE",
                "balance": 45.50,
                "subscriptionType": "INTERNET",
                "planDays": 30,
                "expiryDate": (now + timedelta(days=15)).isoformat(),
                "devices": [
                    {
                        "id": "D2",
                        "name": "STB Pro",
                        "type": "SET_TOP_BOX",
                        "macAddress": "AA:BB:CC:DD:EE",
                        "assignedDate": "2023-05-12",
                    }
                ],
                "history": [
                    {"id": "TX3", "date": "2023-10-05", "amount": 100, "type": "RECHARGE", "method": "CASH", "description": "Top Up"},
                ],
                "avatarUrl": "",
            },
        ],
        "inventory": [
            {
                "id": "INV1",
                "name": "Fiber Router GX",
                "category": "Hardware",
                "price": 120,
                "status": "IN_STOCK",
                "serialNumbers": ["GX-1001", "GX-1002", "GX-1003", "GX-1004", "GX-1005"],
                "remarks": "New Batch",
                "image": "",
            },
            {
                "id": "INV2",
                "name": "CAT6 Cable (100m)",
                "category": "Cables",
                "price": 30,
                "status": "LOW_STOCK",
                "serialNumbers": ["CABLE-A1", "CABLE-A2"],
                "remarks": "Order soon",
                "image": "",
            },
            {
                "id": "INV3",
                "name": "Android STB 4K",
                "category": "Hardware",
                "price": 85,
                "status": "OUT_OF_STOCK",
                "serialNumbers": [],
                "image": "",
            },
        ],
        "complaints": [
            {
                "id": "CP1",
                "customerId": "C001",
                "customerName": "Alice Cyber",
                "assignedToUserIds": ["U2"],
                "description": "Router blinking red light",
                "status": "PENDING",
                "date": "2023-10-25",
            }
        ],
    }
