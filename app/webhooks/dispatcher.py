# app/webhooks/dispatcher.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from app.payouts.repository import PayoutStore
from app.payouts.state_machine import (
    InvalidTransition,
    WithdrawalStatus,
    assert_transition,
    is_terminal,
)
from app.payouts.workflow import WithdrawalWorkflow
from app.webhooks.signature import SIGNATURE_HEADER, verify
from services.metrics import increment_webhook_event
from services.redaction import redact_text

logger = logging.getLogger("campuseats.webhooks")

TRANSFER_EVENTS = {
    "transfer.success": WithdrawalStatus.COMPLETED,
    "transfer.failed": WithdrawalStatus.FAILED,
}

ERROR_PROCESSING = {"error": "Error processing webhook"}


@dataclass(frozen=True)
class DispatchResponse:
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _failure_reason(data: dict) -> str | None:
    for key in ("failure_reason", "gateway_response"):
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return False
    try:
        return Decimal(str(value)).is_finite()
    except InvalidOperation:
        return False


class WebhookDispatcher:
    """
    Single POST entry point for Paystack events and internal withdrawal requests.

    Bodies carrying an ``event`` key are gateway events; anything else is read
    as a ``{vendor_id, amount}`` withdrawal request.
    """

    def __init__(
        self,
        store: PayoutStore,
        workflow: WithdrawalWorkflow,
        *,
        secret: str,
        dev_mode: bool = False,
    ):
        self.store = store
        self.workflow = workflow
        self.secret = secret or ""
        self.dev_mode = bool(dev_mode)

    def dispatch(self, method: str, headers: Mapping[str, str], body: bytes) -> DispatchResponse:
        if (method or "").upper() != "POST":
            return DispatchResponse(405, {"error": "Method not allowed"})

        try:
            return self._dispatch_post(headers, body)
        except Exception:
            logger.exception("webhook_processing_error")
            return DispatchResponse(500, dict(ERROR_PROCESSING))

    def _dispatch_post(self, headers: Mapping[str, str], body: bytes) -> DispatchResponse:
        lowered = {str(k).lower(): v for k, v in headers.items()}
        signature = lowered.get(SIGNATURE_HEADER)

        if self.dev_mode:
            signature_valid = verify(body, signature, self.secret) if signature else False
            if not signature_valid:
                logger.info("webhook_signature_skipped dev_mode=true has_signature=%s", bool(signature))
        else:
            if not self.secret:
                logger.error("webhook_rejected reason=PAYSTACK_SECRET_KEY_NOT_SET")
                return DispatchResponse(500, {"error": "Payment system not configured"})
            signature_valid = verify(body, signature, self.secret)
            if not signature_valid:
                logger.warning("webhook_rejected reason=%s", "MISSING_SIGNATURE" if not signature else "INVALID_SIGNATURE")
                increment_webhook_event("unverified", signature_valid=False, applied=False)
                return DispatchResponse(401, {"error": "Invalid signature"})

        try:
            payload = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            logger.warning("webhook_invalid_json body=%s", redact_text(body[:200].decode("utf-8", errors="replace")))
            return DispatchResponse(500, dict(ERROR_PROCESSING))

        if isinstance(payload, dict) and "event" in payload:
            return self._handle_event(payload, signature_valid)
        return self._handle_withdrawal_request(payload)

    # ------------------------------------------------------
    # Gateway events
    # ------------------------------------------------------

    def _handle_event(self, payload: dict, signature_valid: bool) -> DispatchResponse:
        event = str(payload.get("event") or "")
        target = TRANSFER_EVENTS.get(event)
        if target is None:
            logger.info("webhook_event_not_handled event=%s", event)
            increment_webhook_event("unhandled", signature_valid=signature_valid, applied=False)
            return DispatchResponse(200, {"message": "Event not handled"})

        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        applied = self._apply_transfer_event(event, target, data)
        increment_webhook_event(event, signature_valid=signature_valid, applied=applied)
        return DispatchResponse(200, {"success": True})

    def _apply_transfer_event(self, event: str, target: WithdrawalStatus, data: dict) -> bool:
        transfer_code = str(data.get("transfer_code") or "").strip()
        if not transfer_code:
            logger.info("webhook_ignored event=%s reason=MISSING_TRANSFER_CODE", event)
            return False

        withdrawal = self.store.get_withdrawal_by_transfer_code(transfer_code)
        if withdrawal is None:
            # 200 anyway so the gateway does not keep redelivering
            logger.info("webhook_ignored event=%s transfer_code=%s reason=WITHDRAWAL_NOT_FOUND", event, transfer_code)
            return False

        if is_terminal(withdrawal.status):
            logger.info(
                "webhook_ignored event=%s withdrawal_id=%s reason=ALREADY_%s",
                event,
                withdrawal.id,
                withdrawal.status.value.upper(),
            )
            return False

        try:
            assert_transition(withdrawal.status, target)
        except InvalidTransition as exc:
            logger.warning("webhook_ignored event=%s withdrawal_id=%s reason=%s", event, withdrawal.id, exc)
            return False

        applied = self.store.transition_withdrawal(
            withdrawal.id,
            from_status=withdrawal.status,
            to_status=target,
            processed_at=_utcnow(),
            error_message=_failure_reason(data) if target is WithdrawalStatus.FAILED else None,
        )
        logger.info(
            "webhook_applied event=%s withdrawal_id=%s status_before=%s status_after=%s applied=%s",
            event,
            withdrawal.id,
            withdrawal.status.value,
            target.value,
            applied,
        )
        return applied

    # ------------------------------------------------------
    # Withdrawal requests
    # ------------------------------------------------------

    def _handle_withdrawal_request(self, payload: Any) -> DispatchResponse:
        if not isinstance(payload, dict):
            return DispatchResponse(400, {"success": False, "message": "vendor_id and amount are required"})

        vendor_id = payload.get("vendor_id")
        amount = payload.get("amount")
        if vendor_id in (None, "") or amount in (None, ""):
            return DispatchResponse(400, {"success": False, "message": "vendor_id and amount are required"})
        if not _is_number(amount):
            return DispatchResponse(400, {"success": False, "message": "amount must be a number"})

        outcome = self.workflow.process_withdrawal(str(vendor_id), amount)
        return DispatchResponse(200 if outcome.success else 400, outcome.to_dict())
