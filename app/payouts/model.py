# app/payouts/model.py
from __future__ import annotations
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional
from datetime import datetime

from app.payouts.state_machine import WithdrawalStatus


@dataclass(frozen=True)
class PayoutProfile:
    vendor_id: str
    account_number: str
    bank_code: str
    account_name: str
    bank_name: Optional[str] = None
    verified: bool = False
    recipient_code: Optional[str] = None


@dataclass(frozen=True)
class Wallet:
    vendor_id: str
    total_earnings: Decimal
    withdrawn_earnings: Decimal

    @property
    def available(self) -> Decimal:
        return self.total_earnings - self.withdrawn_earnings


@dataclass(frozen=True)
class Withdrawal:
    id: str
    vendor_id: str
    amount: Decimal
    status: WithdrawalStatus
    transfer_code: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    admin_notes: Optional[str] = None

    def with_changes(self, **changes) -> "Withdrawal":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vendor_id": self.vendor_id,
            "amount": float(self.amount),
            "status": self.status.value,
            "paystack_transfer_code": self.transfer_code,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "approved_by": self.approved_by,
            "admin_notes": self.admin_notes,
        }


@dataclass(frozen=True)
class LedgerEntry:
    vendor_id: str
    entry_type: str
    amount: Decimal
    reference_type: str
    reference_id: str
    description: Optional[str] = None


@dataclass(frozen=True)
class Order:
    id: str
    seller_id: str
    seller_type: str
    total: Decimal
    platform_commission: Optional[Decimal] = None
    order_number: Optional[str] = None
