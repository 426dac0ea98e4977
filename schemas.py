# schemas.py
from __future__ import annotations

from pydantic import BaseModel, Field
from typing import Optional, List


# -------- BANK ACCOUNTS --------
class BankAccountVerifyRequest(BaseModel):
    account_number: str = Field(pattern=r"^\d{10}$")
    bank_code: str = Field(min_length=3, max_length=10)
    bank_name: Optional[str] = None


class BankAccountData(BaseModel):
    account_name: str
    bank_name: Optional[str] = None


class BankAccountVerifyResponse(BaseModel):
    success: bool = True
    message: str
    data: BankAccountData


# -------- WITHDRAWALS --------
class WithdrawalItem(BaseModel):
    id: str
    vendor_id: str
    amount: float
    status: str
    paystack_transfer_code: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    processed_at: Optional[str] = None
    approved_by: Optional[str] = None
    admin_notes: Optional[str] = None


class WithdrawalListResponse(BaseModel):
    success: bool = True
    withdrawals: List[WithdrawalItem]
    count: int


class CompleteWithdrawalRequest(BaseModel):
    paystack_reference: Optional[str] = Field(default=None, max_length=100)
    admin_notes: Optional[str] = Field(default=None, max_length=500)


class CompleteWithdrawalResponse(BaseModel):
    success: bool = True
    message: str
    withdrawal: WithdrawalItem
