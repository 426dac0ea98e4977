#main.py
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from db import close_pool
from middleware import RequestContextMiddleware
from services.observability import configure_logging
from settings import settings
from routes.bank_accounts import router as bank_accounts_router
from routes.health import router as health_router
from routes.metrics import router as metrics_router
from routes.webhooks import router as webhooks_router
from routes.withdrawals import router as withdrawals_router

logger = logging.getLogger("campuseats.app")


def create_app() -> FastAPI:
    configure_logging(settings.LOG_LEVEL)
    app = FastAPI(title="Campus Eats Payouts", version="1.0.0")

    app.add_middleware(RequestContextMiddleware)

    # -----------------------------
    # ROUTERS
    # -----------------------------
    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(webhooks_router)
    app.include_router(bank_accounts_router)
    app.include_router(withdrawals_router)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(
            "unhandled_error path=%s request_id=%s",
            request.url.path,
            getattr(request.state, "request_id", None),
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    @app.on_event("shutdown")
    def _shutdown() -> None:
        close_pool()

    return app


app = create_app()
