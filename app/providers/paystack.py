# app/providers/paystack.py
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional
import logging
import requests

from app.providers.base import AccountResolution, RecipientResult, TransferResult
from services.metrics import increment_gateway_call


logger = logging.getLogger("campuseats.paystack")

DEFAULT_BASE_URL = "https://api.paystack.co"
RECIPIENT_TYPE = "nuban"
CURRENCY = "NGN"
TRANSFER_SOURCE = "balance"


def to_minor_units(amount: Decimal | int | float | str) -> int:
    """Naira -> kobo, rounded half-up to the nearest integer."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _safe_json(resp: requests.Response) -> Optional[Dict[str, Any]]:
    try:
        data = resp.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


class PaystackClient:
    """
    Thin Paystack REST client. Every call returns a tagged result; transport
    failures and non-2xx responses come back as ok=False, never as exceptions.
    No retries and no idempotency keys are attached.
    """

    def __init__(self, secret_key: str, base_url: str = DEFAULT_BASE_URL, timeout_s: float = 20.0):
        self.secret_key = (secret_key or "").strip()
        self.base_url = (base_url or DEFAULT_BASE_URL).strip().rstrip("/")
        self.timeout_s = float(timeout_s)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def _call(self, op: str, method: str, path: str, *, json_body=None, params=None) -> tuple[bool, Dict[str, Any], str | None]:
        """
        Returns (ok, body, message). ``ok`` is the gateway's own ``status`` flag on a 2xx.
        """
        url = f"{self.base_url}{path}"
        if not self.secret_key:
            increment_gateway_call(op, "not_configured")
            return False, {}, "PAYSTACK_SECRET_KEY_NOT_SET"

        try:
            if method == "GET":
                resp = requests.get(url, headers=self._headers(), params=params, timeout=self.timeout_s)
            else:
                resp = requests.post(url, headers=self._headers(), json=json_body, timeout=self.timeout_s)
        except requests.RequestException as exc:
            logger.warning("paystack %s transport error: %s", op, type(exc).__name__)
            increment_gateway_call(op, "transport_error")
            return False, {}, f"Paystack request failed: {type(exc).__name__}"

        body = _safe_json(resp)
        if body is None:
            increment_gateway_call(op, "invalid_body")
            return False, {"http_status": resp.status_code}, f"Paystack API Error: {resp.status_code}"

        message = body.get("message")
        if not (200 <= resp.status_code < 300):
            logger.warning("paystack %s http_status=%s message=%s", op, resp.status_code, message)
            increment_gateway_call(op, "http_error")
            return False, body, message or f"Paystack API Error: {resp.status_code}"

        ok = body.get("status") is True
        increment_gateway_call(op, "ok" if ok else "rejected")
        return ok, body, message

    def create_recipient(self, account_number: str, bank_code: str, account_name: str) -> RecipientResult:
        ok, body, message = self._call(
            "create_recipient",
            "POST",
            "/transferrecipient",
            json_body={
                "type": RECIPIENT_TYPE,
                "name": account_name,
                "account_number": account_number,
                "bank_code": bank_code,
                "currency": CURRENCY,
            },
        )
        data = body.get("data") if isinstance(body.get("data"), dict) else {}
        code = data.get("recipient_code")
        if ok and not code:
            return RecipientResult(ok=False, message="Paystack response missing recipient_code", response=body)
        if not ok:
            return RecipientResult(ok=False, message=message or "Failed to create transfer recipient", response=body)
        return RecipientResult(ok=True, recipient_code=code, message=message, response=body)

    def initiate_transfer(
        self,
        amount: Decimal,
        recipient_code: str,
        reason: str,
        reference: Optional[str] = None,
    ) -> TransferResult:
        payload: Dict[str, Any] = {
            "source": TRANSFER_SOURCE,
            "amount": to_minor_units(amount),
            "recipient": recipient_code,
            "reason": reason,
        }
        if reference:
            payload["reference"] = reference

        ok, body, message = self._call("initiate_transfer", "POST", "/transfer", json_body=payload)
        data = body.get("data") if isinstance(body.get("data"), dict) else {}
        code = data.get("transfer_code")
        if ok and not code:
            return TransferResult(ok=False, message="Paystack response missing transfer_code", response=body)
        if not ok:
            return TransferResult(ok=False, message=message or "Transfer initiation failed", response=body)
        return TransferResult(
            ok=True,
            transfer_code=code,
            reference=data.get("reference"),
            message=message,
            response=body,
        )

    def resolve_account(self, account_number: str, bank_code: str) -> AccountResolution:
        ok, body, message = self._call(
            "resolve_account",
            "GET",
            "/bank/resolve",
            params={"account_number": account_number, "bank_code": bank_code},
        )
        data = body.get("data") if isinstance(body.get("data"), dict) else {}
        if not ok or not data.get("account_name"):
            return AccountResolution(ok=False, message=message or "Account verification failed", response=body)
        return AccountResolution(
            ok=True,
            account_name=data.get("account_name"),
            bank_name=data.get("bank_name"),
            message=message,
            response=body,
        )
