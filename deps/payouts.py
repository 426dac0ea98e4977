# deps/payouts.py
from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from db import get_conn
from settings import settings
from app.payouts.repository import PayoutStore, PostgresPayoutStore
from app.payouts.workflow import KeyedLocks, WithdrawalWorkflow
from app.providers.base import PaymentGateway
from app.providers.paystack import PaystackClient
from app.webhooks.dispatcher import WebhookDispatcher
from app.webhooks.orders import OrderDeliveredHandler


@lru_cache(maxsize=1)
def get_store() -> PayoutStore:
    return PostgresPayoutStore(get_conn)


@lru_cache(maxsize=1)
def get_gateway() -> PaymentGateway:
    return PaystackClient(
        settings.PAYSTACK_SECRET_KEY,
        base_url=settings.PAYSTACK_BASE_URL,
        timeout_s=settings.PAYSTACK_HTTP_TIMEOUT_S,
    )


# Shared so same-vendor requests serialize across request-scoped workflows.
_vendor_locks = KeyedLocks()


def get_workflow(
    store: PayoutStore = Depends(get_store),
    gateway: PaymentGateway = Depends(get_gateway),
) -> WithdrawalWorkflow:
    return WithdrawalWorkflow(store, gateway, locks=_vendor_locks)


def get_dispatcher(
    store: PayoutStore = Depends(get_store),
    workflow: WithdrawalWorkflow = Depends(get_workflow),
) -> WebhookDispatcher:
    return WebhookDispatcher(
        store,
        workflow,
        secret=settings.PAYSTACK_SECRET_KEY,
        dev_mode=settings.WEBHOOK_DEV_MODE,
    )


def get_order_handler(store: PayoutStore = Depends(get_store)) -> OrderDeliveredHandler:
    return OrderDeliveredHandler(
        store,
        secret=settings.ORDER_WEBHOOK_SECRET,
        dev_mode=settings.WEBHOOK_DEV_MODE,
    )
