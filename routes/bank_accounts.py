# routes/bank_accounts.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from schemas import BankAccountData, BankAccountVerifyRequest, BankAccountVerifyResponse
from deps.admin import require_vendor_owner
from deps.auth import CurrentUser
from deps.payouts import get_gateway, get_store
from app.payouts.repository import PayoutStore
from app.providers.base import PaymentGateway
from services.redaction import mask_account_number

logger = logging.getLogger("campuseats.bank_accounts")
router = APIRouter(prefix="/v1", tags=["bank-accounts"])


@router.post("/vendors/{vendor_id}/bank-account", response_model=BankAccountVerifyResponse)
def verify_bank_account(
    vendor_id: str,
    body: BankAccountVerifyRequest,
    _user: CurrentUser = Depends(require_vendor_owner),
    store: PayoutStore = Depends(get_store),
    gateway: PaymentGateway = Depends(get_gateway),
):
    resolved = gateway.resolve_account(body.account_number, body.bank_code)
    if not resolved.ok:
        logger.info(
            "bank_account_rejected vendor_id=%s account=%s message=%s",
            vendor_id,
            mask_account_number(body.account_number),
            resolved.message,
        )
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": resolved.message or "Account verification failed"},
        )

    bank_name = body.bank_name or resolved.bank_name
    profile = store.upsert_payout_profile(
        vendor_id,
        account_number=body.account_number,
        bank_code=body.bank_code,
        account_name=resolved.account_name,
        bank_name=bank_name,
    )
    logger.info(
        "bank_account_verified vendor_id=%s account=%s recipient_cached=%s",
        vendor_id,
        mask_account_number(profile.account_number),
        bool(profile.recipient_code),
    )
    return BankAccountVerifyResponse(
        message="Bank account verified and saved successfully",
        data=BankAccountData(account_name=profile.account_name, bank_name=profile.bank_name),
    )
