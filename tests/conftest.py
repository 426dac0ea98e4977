# tests/conftest.py

import time
from typing import Dict

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from main import app
from settings import settings
from deps.payouts import get_gateway, get_store
from services import metrics
from tests.fakes import FakeGateway, FakePayoutStore


WEBHOOK_SECRET = "sk_test_webhook_secret_0001"
ORDER_WEBHOOK_SECRET = "order_webhook_secret_0001"
OWNER_ID = "11111111-1111-1111-1111-111111111111"
ADMIN_ID = "22222222-2222-2222-2222-222222222222"
STRANGER_ID = "33333333-3333-3333-3333-333333333333"
VENDOR_ID = "vendor-1"


def make_token(user_id: str, *, audience: str | None = None, secret: str | None = None) -> str:
    now = int(time.time())
    claims = {
        "sub": user_id,
        "aud": audience or settings.JWT_AUDIENCE,
        "role": "authenticated",
        "iat": now,
        "exp": now + 3600,
    }
    return jwt.encode(claims, secret or settings.SUPABASE_JWT_SECRET, algorithm=settings.JWT_ALG)


def _auth_headers(user_id: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


# ---------------------------
# Fakes + Client
# ---------------------------

@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def store() -> FakePayoutStore:
    s = FakePayoutStore()
    s.add_vendor(VENDOR_ID, owner_id=OWNER_ID, total="5000", withdrawn="0")
    s.roles[ADMIN_ID] = "admin"
    s.roles[OWNER_ID] = "vendor"
    return s


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def client(store, gateway, monkeypatch) -> TestClient:
    monkeypatch.setattr(settings, "PAYSTACK_SECRET_KEY", WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "WEBHOOK_DEV_MODE", False)
    monkeypatch.setattr(settings, "ORDER_WEBHOOK_SECRET", ORDER_WEBHOOK_SECRET)
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_gateway] = lambda: gateway
    # Needed so tests can assert 500s instead of pytest re-raising server exceptions
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
