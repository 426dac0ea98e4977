# app/providers/base.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Protocol


@dataclass(frozen=True)
class RecipientResult:
    ok: bool
    recipient_code: Optional[str] = None
    message: Optional[str] = None
    response: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class TransferResult:
    ok: bool
    transfer_code: Optional[str] = None
    reference: Optional[str] = None
    message: Optional[str] = None
    response: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class AccountResolution:
    ok: bool
    account_name: Optional[str] = None
    bank_name: Optional[str] = None
    message: Optional[str] = None
    response: Optional[dict[str, Any]] = None


class PaymentGateway(Protocol):
    def create_recipient(self, account_number: str, bank_code: str, account_name: str) -> RecipientResult: ...
    def initiate_transfer(
        self,
        amount: Decimal,
        recipient_code: str,
        reason: str,
        reference: Optional[str] = None,
    ) -> TransferResult: ...
    def resolve_account(self, account_number: str, bank_code: str) -> AccountResolution: ...
