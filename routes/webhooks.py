# routes/webhooks.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from deps.payouts import get_dispatcher, get_order_handler
from app.webhooks.dispatcher import WebhookDispatcher
from app.webhooks.orders import OrderDeliveredHandler


router = APIRouter(tags=["webhooks"])

@router.api_route(
    "/api/paystack-webhook",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
)
async def paystack_webhook(req: Request, dispatcher: WebhookDispatcher = Depends(get_dispatcher)):
    # Raw bytes: the signature covers the body exactly as sent.
    raw = await req.body()
    result = await run_in_threadpool(dispatcher.dispatch, req.method, dict(req.headers), raw)
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.api_route(
    "/api/order-delivered-webhook",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
)
async def order_delivered_webhook(req: Request, handler: OrderDeliveredHandler = Depends(get_order_handler)):
    raw = await req.body()
    result = await run_in_threadpool(handler.handle, req.method, dict(req.headers), raw)
    return JSONResponse(status_code=result.status_code, content=result.body)
