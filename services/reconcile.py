from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Protocol

from app.payouts.model import Withdrawal
from services.metrics import increment_wallet_debit_gap

logger = logging.getLogger("campuseats.reconcile")


class DebitFailureHandler(Protocol):
    """
    Called when a transfer was initiated but the wallet debit failed afterwards.

    The money has left the platform balance while the ledger still shows it as
    available. There is no compensation policy; implementations decide what to
    do (alert, queue for review, ...). They must not raise.
    """

    def __call__(self, *, withdrawal: Withdrawal, amount: Decimal, error: BaseException) -> None: ...


class LoggingDebitFailureHandler:
    def __call__(self, *, withdrawal: Withdrawal, amount: Decimal, error: BaseException) -> None:
        increment_wallet_debit_gap()
        logger.error(
            "wallet_debit_failed withdrawal_id=%s vendor_id=%s amount=%s transfer_code=%s error=%s",
            withdrawal.id,
            withdrawal.vendor_id,
            amount,
            withdrawal.transfer_code,
            error,
        )


def find_unledgered_withdrawals(store) -> list[Withdrawal]:
    """Withdrawals that reached the gateway but have no debit ledger entry."""
    return list(store.list_unledgered_withdrawals())


def build_report(store) -> dict[str, Any]:
    items = find_unledgered_withdrawals(store)
    total = sum((w.amount for w in items), Decimal("0"))
    return {
        "count": len(items),
        "total_amount": float(total),
        "items": [w.to_dict() for w in items],
    }
