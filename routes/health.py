from __future__ import annotations

import os

from fastapi import APIRouter

from db import get_conn
from settings import settings

router = APIRouter(tags=["health"])

REQUIRED_TABLES = (
    "public.vendor_payout_profiles",
    "public.vendor_wallets",
    "public.vendor_withdrawals",
    "public.vendor_wallet_transactions",
)


def _check_db() -> tuple[bool, str | None]:
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True, None
    except Exception as exc:
        return False, type(exc).__name__


def _check_tables() -> bool:
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                for table in REQUIRED_TABLES:
                    cur.execute("SELECT to_regclass(%s);", (table,))
                    row = cur.fetchone()
                    if not row or not row[0]:
                        return False
        return True
    except Exception:
        return False


def _resolve_git_sha() -> str | None:
    return (os.getenv("GIT_SHA") or "").strip() or None


@router.get("/health")
def health():
    return {
        "ok": True,
        "env": settings.ENV,
        "git_sha": _resolve_git_sha(),
    }


@router.get("/healthz")
def healthz():
    db_ok, db_error = _check_db()
    return {
        "ok": True,
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "git_sha": _resolve_git_sha(),
        "db_ok": db_ok,
        "db_error": db_error,
    }


@router.get("/readyz")
def readyz():
    db_ok, db_error = _check_db()
    tables_ok = _check_tables() if db_ok else False
    paystack_configured = bool(settings.PAYSTACK_SECRET_KEY) or settings.WEBHOOK_DEV_MODE
    return {
        "ready": bool(db_ok and tables_ok and paystack_configured),
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "db_ok": db_ok,
        "db_error": db_error,
        "tables_ok": tables_ok,
        "paystack_configured": paystack_configured,
    }
