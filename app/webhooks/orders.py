# app/webhooks/orders.py
from __future__ import annotations

import json
import logging
from typing import Mapping

from app.payouts.earnings import credit_vendor_for_order
from app.payouts.repository import PayoutStore
from app.webhooks.dispatcher import DispatchResponse
from app.webhooks.signature import verify

logger = logging.getLogger("campuseats.webhooks")

ORDER_SIGNATURE_HEADER = "x-campuseats-signature"
ORDER_DELIVERED_ACTION = "order_delivered"


class OrderDeliveredHandler:
    """Credits the vendor wallet when the order service reports a delivery."""

    def __init__(self, store: PayoutStore, *, secret: str, dev_mode: bool = False):
        self.store = store
        self.secret = secret or ""
        self.dev_mode = bool(dev_mode)

    def handle(self, method: str, headers: Mapping[str, str], body: bytes) -> DispatchResponse:
        if (method or "").upper() != "POST":
            return DispatchResponse(405, {"error": "Method not allowed"})
        try:
            return self._handle_post(headers, body)
        except Exception:
            logger.exception("order_webhook_error")
            return DispatchResponse(500, {"error": "Internal server error"})

    def _handle_post(self, headers: Mapping[str, str], body: bytes) -> DispatchResponse:
        if not self.dev_mode:
            if not self.secret:
                logger.error("order_webhook_rejected reason=ORDER_WEBHOOK_SECRET_NOT_SET")
                return DispatchResponse(500, {"error": "Order webhook not configured"})
            lowered = {str(k).lower(): v for k, v in headers.items()}
            if not verify(body, lowered.get(ORDER_SIGNATURE_HEADER), self.secret):
                logger.warning("order_webhook_rejected reason=INVALID_SIGNATURE")
                return DispatchResponse(401, {"error": "Invalid signature"})

        try:
            payload = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            return DispatchResponse(400, {"error": "Invalid JSON body"})
        if not isinstance(payload, dict):
            return DispatchResponse(400, {"error": "Invalid action"})

        if payload.get("action") != ORDER_DELIVERED_ACTION:
            return DispatchResponse(400, {"error": "Invalid action"})
        order_id = payload.get("order_id")
        if order_id in (None, ""):
            return DispatchResponse(400, {"error": "order_id is required"})

        logger.info("order_delivered_received order_id=%s", order_id)
        outcome = credit_vendor_for_order(self.store, str(order_id))
        return DispatchResponse(200 if outcome.success else 400, outcome.to_dict())
