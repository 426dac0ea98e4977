# app/payouts/earnings.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from app.payouts.repository import PayoutStore, StoreError, WalletNotFound
from services.metrics import increment_order_credit

logger = logging.getLogger("campuseats.earnings")

# Cafeteria orders settle outside vendor wallets
VENDOR_SELLER_TYPES = ("vendor", "late_night_vendor")
DEFAULT_PLATFORM_COMMISSION = Decimal("200")


@dataclass(frozen=True)
class CreditOutcome:
    success: bool
    message: str
    vendor_id: Optional[str] = None
    amount: Optional[Decimal] = None

    def to_dict(self) -> dict:
        if not self.success:
            return {"success": False, "error": self.message}
        return {
            "success": True,
            "message": self.message,
            "vendor_id": self.vendor_id,
            "amount": float(self.amount) if self.amount is not None else None,
        }


def vendor_earnings(total: Decimal, platform_commission: Optional[Decimal]) -> Decimal:
    commission = DEFAULT_PLATFORM_COMMISSION if platform_commission is None else platform_commission
    return total - commission


def credit_vendor_for_order(store: PayoutStore, order_id: str) -> CreditOutcome:
    """
    Move a delivered order's vendor share into the vendor wallet.

    A second delivery of the same order is reported as success without
    touching the wallet.
    """
    outcome = _credit(store, order_id)
    increment_order_credit("ok" if outcome.success else "failed")
    logger.info(
        "order_credit_processed order_id=%s success=%s vendor_id=%s amount=%s message=%s",
        order_id,
        outcome.success,
        outcome.vendor_id,
        outcome.amount,
        outcome.message,
    )
    return outcome


def _credit(store: PayoutStore, order_id: str) -> CreditOutcome:
    order = store.get_order(order_id)
    if order is None:
        return CreditOutcome(False, "Order not found")

    if order.seller_type not in VENDOR_SELLER_TYPES:
        return CreditOutcome(True, "Cafeteria order - no wallet credit")

    amount = vendor_earnings(order.total, order.platform_commission)
    if amount <= 0:
        logger.warning("order_credit_rejected order_id=%s total=%s amount=%s", order_id, order.total, amount)
        return CreditOutcome(False, "Order earnings must be positive", order.seller_id)

    label = order.order_number or order.id
    try:
        credited = store.credit_order_earnings(
            order.seller_id,
            order.id,
            amount,
            description=f"Earnings from order {label}",
        )
    except WalletNotFound:
        return CreditOutcome(False, "Vendor wallet not found", order.seller_id)
    except StoreError as exc:
        logger.error("order_credit_failed order_id=%s error=%s", order_id, exc)
        return CreditOutcome(False, "Failed to credit vendor wallet", order.seller_id)

    if not credited:
        return CreditOutcome(True, "Already credited", order.seller_id)
    return CreditOutcome(True, "Vendor credited successfully", order.seller_id, amount)
