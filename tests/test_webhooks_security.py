import json

from app.payouts.state_machine import WithdrawalStatus
from app.webhooks.signature import sign
from settings import settings
from tests.conftest import VENDOR_ID, WEBHOOK_SECRET


WEBHOOK_PATH = "/api/paystack-webhook"


def _post_signed(client, payload, secret=WEBHOOK_SECRET):
    raw = json.dumps(payload, separators=(",", ":"))
    return client.post(
        WEBHOOK_PATH,
        content=raw,
        headers={"Content-Type": "application/json", "x-paystack-signature": sign(raw, secret)},
    )


def test_get_is_405(client):
    r = client.get(WEBHOOK_PATH)
    assert r.status_code == 405, r.text
    assert r.json() == {"error": "Method not allowed"}


def test_webhook_missing_signature_401(client):
    r = client.post(WEBHOOK_PATH, json={"event": "transfer.success", "data": {"transfer_code": "TRF_x"}})
    assert r.status_code == 401, r.text
    assert r.json() == {"error": "Invalid signature"}


def test_webhook_signed_with_other_secret_401(client, store):
    w = store.add_withdrawal(VENDOR_ID, 1000, WithdrawalStatus.PROCESSING, transfer_code="TRF_x")
    r = _post_signed(client, {"event": "transfer.success", "data": {"transfer_code": "TRF_x"}}, secret="sk_test_other")
    assert r.status_code == 401, r.text
    assert store.withdrawals[w.id].status == WithdrawalStatus.PROCESSING


def test_signature_covers_raw_bytes_not_reserialized_json(client, store):
    store.add_withdrawal(VENDOR_ID, 1000, WithdrawalStatus.PROCESSING, transfer_code="TRF_raw")
    raw = '{ "event": "transfer.success",  "data": {"transfer_code": "TRF_raw"} }'
    r = client.post(
        WEBHOOK_PATH,
        content=raw,
        headers={"Content-Type": "application/json", "x-paystack-signature": sign(raw, WEBHOOK_SECRET)},
    )
    assert r.status_code == 200, r.text
    assert r.json() == {"success": True}


def test_transfer_success_completes_withdrawal(client, store):
    w = store.add_withdrawal(VENDOR_ID, 1000, WithdrawalStatus.PROCESSING, transfer_code="TRF_ok")
    payload = {"event": "transfer.success", "data": {"transfer_code": "TRF_ok"}}

    r1 = _post_signed(client, payload)
    r2 = _post_signed(client, payload)

    assert r1.status_code == 200 and r2.status_code == 200
    assert r1.json() == r2.json() == {"success": True}
    assert store.withdrawals[w.id].status == WithdrawalStatus.COMPLETED


def test_unconfigured_secret_500(client, monkeypatch):
    monkeypatch.setattr(settings, "PAYSTACK_SECRET_KEY", "")
    r = client.post(WEBHOOK_PATH, json={"event": "transfer.success"})
    assert r.status_code == 500, r.text
    assert r.json() == {"error": "Payment system not configured"}


def test_dev_mode_accepts_unsigned(client, store, monkeypatch):
    monkeypatch.setattr(settings, "WEBHOOK_DEV_MODE", True)
    r = client.post(WEBHOOK_PATH, json={"vendor_id": VENDOR_ID, "amount": 1000})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] is True
    assert store.withdrawals[body["withdrawal_id"]].status == WithdrawalStatus.PROCESSING


def test_withdrawal_request_through_endpoint(client, store, gateway):
    r = _post_signed(client, {"vendor_id": VENDOR_ID, "amount": 2000})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] is True
    assert body["message"] == "Withdrawal request processed successfully"
    assert body["transfer_code"] == "TRF_test456"
    assert gateway.count("initiate_transfer") == 1


def test_withdrawal_request_insufficient_balance_400(client, store):
    r = _post_signed(client, {"vendor_id": VENDOR_ID, "amount": 9000})
    assert r.status_code == 400, r.text
    assert r.json() == {
        "success": False,
        "message": "Insufficient balance for withdrawal. Available: ₦5,000.00",
    }
    assert store.withdrawals == {}


def test_invalid_json_500(client):
    raw = "not-json"
    r = client.post(
        WEBHOOK_PATH,
        content=raw,
        headers={"Content-Type": "application/json", "x-paystack-signature": sign(raw, WEBHOOK_SECRET)},
    )
    assert r.status_code == 500, r.text
    assert r.json() == {"error": "Error processing webhook"}
