# app/payouts/workflow.py
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Iterator, Optional

from app.payouts.model import Withdrawal
from app.payouts.repository import PayoutStore, StoreError
from app.payouts.state_machine import WithdrawalStatus
from app.providers.base import PaymentGateway, RecipientResult, TransferResult
from services.metrics import increment_withdrawal
from services.reconcile import DebitFailureHandler, LoggingDebitFailureHandler
from services.redaction import redact_dict, redact_text

logger = logging.getLogger("campuseats.withdrawals")

MINIMUM_WITHDRAWAL_AMOUNT = Decimal("100")
TRANSFER_REASON = "Earnings withdrawal"


class WithdrawalError(str, Enum):
    NO_PAYOUT_PROFILE = "NO_PAYOUT_PROFILE"
    WALLET_NOT_FOUND = "WALLET_NOT_FOUND"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    BELOW_MINIMUM = "BELOW_MINIMUM"
    WITHDRAWAL_CREATE_FAILED = "WITHDRAWAL_CREATE_FAILED"
    RECIPIENT_FAILED = "RECIPIENT_FAILED"
    TRANSFER_FAILED = "TRANSFER_FAILED"


@dataclass(frozen=True)
class WithdrawalOutcome:
    success: bool
    message: str
    withdrawal_id: Optional[str] = None
    transfer_code: Optional[str] = None
    error: Optional[WithdrawalError] = None

    def to_dict(self) -> dict:
        if not self.success:
            return {"success": False, "message": self.message}
        return {
            "success": True,
            "message": self.message,
            "withdrawal_id": self.withdrawal_id,
            "transfer_code": self.transfer_code,
        }


def format_naira(amount: Decimal) -> str:
    return f"₦{Decimal(amount):,.2f}"


class KeyedLocks:
    """One lock per key; serializes work for the same vendor inside this process."""

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, holders]; holders counts waiters too, the entry goes when it drops to zero
        self._locks: dict[str, list] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]


class WithdrawalWorkflow:
    def __init__(
        self,
        store: PayoutStore,
        gateway: PaymentGateway,
        *,
        debit_failure_handler: Optional[DebitFailureHandler] = None,
        locks: Optional[KeyedLocks] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.debit_failure_handler = debit_failure_handler or LoggingDebitFailureHandler()
        self.locks = locks or KeyedLocks()

    def process_withdrawal(self, vendor_id: str, amount) -> WithdrawalOutcome:
        try:
            amount = Decimal(str(amount))
        except (InvalidOperation, ValueError):
            raise ValueError(f"amount is not a number: {amount!r}")
        if not amount.is_finite():
            raise ValueError(f"amount is not a number: {amount!r}")

        with self.locks.hold(str(vendor_id)):
            outcome = self._process(str(vendor_id), amount)

        increment_withdrawal(outcome.error.value.lower() if outcome.error else "ok")
        logger.info(
            "withdrawal_processed vendor_id=%s amount=%s success=%s error=%s withdrawal_id=%s",
            vendor_id,
            amount,
            outcome.success,
            outcome.error.value if outcome.error else None,
            outcome.withdrawal_id,
        )
        return outcome

    def _fail(self, error: WithdrawalError, message: str, withdrawal_id: str | None = None) -> WithdrawalOutcome:
        return WithdrawalOutcome(success=False, message=message, withdrawal_id=withdrawal_id, error=error)

    def _mark_failed(self, withdrawal: Withdrawal, message: str) -> None:
        try:
            self.store.transition_withdrawal(
                withdrawal.id,
                from_status=WithdrawalStatus.PENDING,
                to_status=WithdrawalStatus.FAILED,
                error_message=message,
            )
        except StoreError as exc:
            logger.error("withdrawal_mark_failed_error withdrawal_id=%s error=%s", withdrawal.id, exc)

    def _process(self, vendor_id: str, amount: Decimal) -> WithdrawalOutcome:
        # 1) payout profile
        profile = self.store.get_payout_profile(vendor_id)
        if profile is None:
            return self._fail(
                WithdrawalError.NO_PAYOUT_PROFILE,
                "Payout profile not found. Please add your bank details first.",
            )

        # 2) wallet
        wallet = self.store.get_wallet(vendor_id)
        if wallet is None:
            return self._fail(WithdrawalError.WALLET_NOT_FOUND, "Vendor wallet not found")

        # 3) balance
        available = wallet.available
        if amount > available:
            return self._fail(
                WithdrawalError.INSUFFICIENT_BALANCE,
                f"Insufficient balance for withdrawal. Available: {format_naira(available)}",
            )

        # 4) minimum
        if amount < MINIMUM_WITHDRAWAL_AMOUNT:
            return self._fail(
                WithdrawalError.BELOW_MINIMUM,
                f"Minimum withdrawal amount is {format_naira(MINIMUM_WITHDRAWAL_AMOUNT)}",
            )

        # 5) pending record; nothing reaches the gateway without it
        try:
            withdrawal = self.store.create_withdrawal(vendor_id, amount)
        except StoreError as exc:
            logger.error("withdrawal_create_failed vendor_id=%s error=%s", vendor_id, exc)
            return self._fail(WithdrawalError.WITHDRAWAL_CREATE_FAILED, "Failed to create withdrawal request")

        # 6) recipient (cached on the profile after first success)
        recipient_code = profile.recipient_code
        if not recipient_code:
            try:
                recipient = self.gateway.create_recipient(
                    profile.account_number,
                    profile.bank_code,
                    profile.account_name,
                )
            except Exception as exc:
                logger.error(
                    "recipient_create_error withdrawal_id=%s error=%s", withdrawal.id, redact_text(repr(exc))
                )
                recipient = RecipientResult(ok=False, message=str(exc) or type(exc).__name__)
            if not recipient.ok:
                reason = recipient.message or "Failed to create transfer recipient"
                logger.warning(
                    "recipient_create_failed withdrawal_id=%s response=%s",
                    withdrawal.id,
                    redact_dict(recipient.response or {}),
                )
                self._mark_failed(withdrawal, reason)
                return self._fail(
                    WithdrawalError.RECIPIENT_FAILED,
                    f"Failed to create transfer recipient: {reason}",
                    withdrawal.id,
                )
            recipient_code = recipient.recipient_code
            try:
                self.store.save_recipient_code(vendor_id, recipient_code)
            except StoreError as exc:
                logger.warning("recipient_code_not_cached vendor_id=%s error=%s", vendor_id, exc)

        # 7) transfer
        try:
            transfer = self.gateway.initiate_transfer(amount, recipient_code, TRANSFER_REASON)
        except Exception as exc:
            logger.error(
                "transfer_initiate_error withdrawal_id=%s error=%s", withdrawal.id, redact_text(repr(exc))
            )
            transfer = TransferResult(ok=False, message=str(exc) or type(exc).__name__)
        if not transfer.ok:
            reason = transfer.message or "Transfer initiation failed"
            logger.warning(
                "transfer_initiate_failed withdrawal_id=%s response=%s",
                withdrawal.id,
                redact_dict(transfer.response or {}),
            )
            self._mark_failed(withdrawal, reason)
            return self._fail(
                WithdrawalError.TRANSFER_FAILED,
                f"Transfer initiation failed: {reason}",
                withdrawal.id,
            )

        # 8) processing + transfer code
        try:
            self.store.transition_withdrawal(
                withdrawal.id,
                from_status=WithdrawalStatus.PENDING,
                to_status=WithdrawalStatus.PROCESSING,
                transfer_code=transfer.transfer_code,
            )
        except StoreError as exc:
            logger.error(
                "withdrawal_processing_update_failed withdrawal_id=%s transfer_code=%s error=%s",
                withdrawal.id,
                transfer.transfer_code,
                exc,
            )
        withdrawal = withdrawal.with_changes(
            status=WithdrawalStatus.PROCESSING,
            transfer_code=transfer.transfer_code,
        )

        # 9) optimistic debit; the transfer has not settled yet
        try:
            self.store.adjust_wallet(
                vendor_id,
                amount,
                entry_type="debit",
                reference_type="withdrawal",
                reference_id=withdrawal.id,
                description=f"Withdrawal request {withdrawal.id}",
            )
        except Exception as exc:
            # Known gap: funds sent, ledger not debited. No compensation here.
            self.debit_failure_handler(withdrawal=withdrawal, amount=amount, error=exc)

        return WithdrawalOutcome(
            success=True,
            message="Withdrawal request processed successfully",
            withdrawal_id=withdrawal.id,
            transfer_code=transfer.transfer_code,
        )
