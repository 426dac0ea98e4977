# routes/withdrawals.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from schemas import (
    CompleteWithdrawalRequest,
    CompleteWithdrawalResponse,
    WithdrawalItem,
    WithdrawalListResponse,
)
from deps.admin import require_admin, require_vendor_owner
from deps.auth import CurrentUser
from deps.payouts import get_store
from app.payouts.repository import PayoutStore
from app.payouts.state_machine import InvalidTransition, WithdrawalStatus

logger = logging.getLogger("campuseats.withdrawals")
router = APIRouter(prefix="/v1", tags=["withdrawals"])

MAX_LIST_LIMIT = 200


def _parse_status(status: str | None) -> WithdrawalStatus | None:
    value = (status or "all").strip().lower()
    if value == "all":
        return None
    try:
        return WithdrawalStatus(value)
    except ValueError:
        raise HTTPException(status_code=422, detail="INVALID_STATUS")


def _list_response(items) -> WithdrawalListResponse:
    withdrawals = [WithdrawalItem(**w.to_dict()) for w in items]
    return WithdrawalListResponse(withdrawals=withdrawals, count=len(withdrawals))


@router.get("/vendors/{vendor_id}/withdrawals", response_model=WithdrawalListResponse)
def vendor_withdrawals(
    vendor_id: str,
    limit: int = Query(50, ge=1, le=MAX_LIST_LIMIT),
    _user: CurrentUser = Depends(require_vendor_owner),
    store: PayoutStore = Depends(get_store),
):
    return _list_response(store.list_withdrawals(vendor_id=vendor_id, limit=limit))


@router.get("/admin/withdrawals", response_model=WithdrawalListResponse)
def admin_withdrawals(
    status: str = Query("all"),
    limit: int = Query(100, ge=1, le=MAX_LIST_LIMIT),
    _admin: CurrentUser = Depends(require_admin),
    store: PayoutStore = Depends(get_store),
):
    return _list_response(store.list_withdrawals(status=_parse_status(status), limit=limit))


def _completion_notes(admin_notes: Optional[str], paystack_reference: Optional[str]) -> Optional[str]:
    # Manual references live in the notes; the transfer code column is never overwritten
    parts = []
    if admin_notes and admin_notes.strip():
        parts.append(admin_notes.strip())
    if paystack_reference and paystack_reference.strip():
        parts.append(f"Paystack reference: {paystack_reference.strip()}")
    return "\n".join(parts) or None


@router.post("/admin/withdrawals/{withdrawal_id}/complete", response_model=CompleteWithdrawalResponse)
def admin_complete_withdrawal(
    withdrawal_id: str,
    body: CompleteWithdrawalRequest,
    admin: CurrentUser = Depends(require_admin),
    store: PayoutStore = Depends(get_store),
):
    withdrawal = store.get_withdrawal(withdrawal_id)
    if withdrawal is None:
        raise HTTPException(status_code=404, detail="WITHDRAWAL_NOT_FOUND")

    try:
        applied = store.transition_withdrawal(
            withdrawal.id,
            from_status=withdrawal.status,
            to_status=WithdrawalStatus.COMPLETED,
            processed_at=datetime.now(timezone.utc),
            approved_by=admin.user_id,
            admin_notes=_completion_notes(body.admin_notes, body.paystack_reference),
        )
    except InvalidTransition:
        raise HTTPException(status_code=409, detail="INVALID_TRANSITION")

    if not applied:
        # Status moved underneath us (webhook raced the admin)
        raise HTTPException(status_code=409, detail="INVALID_TRANSITION")

    logger.info(
        "withdrawal_completed_manually withdrawal_id=%s admin_id=%s status_before=%s",
        withdrawal.id,
        admin.user_id,
        withdrawal.status.value,
    )
    refreshed = store.get_withdrawal(withdrawal.id) or withdrawal
    return CompleteWithdrawalResponse(
        message="Withdrawal marked as completed successfully",
        withdrawal=WithdrawalItem(**refreshed.to_dict()),
    )
