from app.payouts.state_machine import WithdrawalStatus
from tests.conftest import ADMIN_ID, OWNER_ID, STRANGER_ID, VENDOR_ID, _auth_headers, make_token


def test_vendor_history_requires_auth(client):
    r = client.get(f"/v1/vendors/{VENDOR_ID}/withdrawals")
    assert r.status_code == 401, r.text


def test_vendor_history_rejects_bad_token(client):
    token = make_token(OWNER_ID, secret="a-different-secret-entirely")
    r = client.get(f"/v1/vendors/{VENDOR_ID}/withdrawals", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401, r.text


def test_vendor_history_rejects_wrong_audience(client):
    token = make_token(OWNER_ID, audience="anon")
    r = client.get(f"/v1/vendors/{VENDOR_ID}/withdrawals", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401, r.text


def test_vendor_history_for_owner(client, store):
    store.add_withdrawal(VENDOR_ID, 1000, WithdrawalStatus.PROCESSING, transfer_code="TRF_a")
    store.add_withdrawal(VENDOR_ID, 500, WithdrawalStatus.FAILED)
    store.add_vendor("vendor-2", owner_id=STRANGER_ID, total="100")
    store.add_withdrawal("vendor-2", 100, WithdrawalStatus.PENDING)

    r = client.get(f"/v1/vendors/{VENDOR_ID}/withdrawals", headers=_auth_headers(OWNER_ID))
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["success"] is True
    assert data["count"] == 2
    assert {w["vendor_id"] for w in data["withdrawals"]} == {VENDOR_ID}
    codes = {w["paystack_transfer_code"] for w in data["withdrawals"]}
    assert "TRF_a" in codes


def test_vendor_history_other_owner_403(client):
    r = client.get(f"/v1/vendors/{VENDOR_ID}/withdrawals", headers=_auth_headers(STRANGER_ID))
    assert r.status_code == 403, r.text
    assert r.json()["detail"] == "VENDOR_NOT_OWNED"


def test_vendor_history_unknown_vendor_404(client):
    r = client.get("/v1/vendors/nope/withdrawals", headers=_auth_headers(OWNER_ID))
    assert r.status_code == 404, r.text
    assert r.json()["detail"] == "VENDOR_NOT_FOUND"


def test_admin_list_requires_admin(client):
    r = client.get("/v1/admin/withdrawals", headers=_auth_headers(OWNER_ID))
    assert r.status_code == 403, r.text
    assert r.json()["detail"] == "ADMIN_REQUIRED"


def test_admin_list_filters_by_status(client, store):
    store.add_withdrawal(VENDOR_ID, 1000, WithdrawalStatus.PROCESSING, transfer_code="TRF_p")
    store.add_withdrawal(VENDOR_ID, 700, WithdrawalStatus.FAILED)

    r_all = client.get("/v1/admin/withdrawals", headers=_auth_headers(ADMIN_ID))
    assert r_all.status_code == 200, r_all.text
    assert r_all.json()["count"] == 2

    r = client.get("/v1/admin/withdrawals?status=processing", headers=_auth_headers(ADMIN_ID))
    assert r.status_code == 200, r.text
    items = r.json()["withdrawals"]
    assert [w["status"] for w in items] == ["processing"]


def test_admin_list_invalid_status_422(client):
    r = client.get("/v1/admin/withdrawals?status=sent", headers=_auth_headers(ADMIN_ID))
    assert r.status_code == 422, r.text
    assert r.json()["detail"] == "INVALID_STATUS"


def test_admin_complete_processing_withdrawal(client, store):
    w = store.add_withdrawal(VENDOR_ID, 1000, WithdrawalStatus.PROCESSING, transfer_code="TRF_m")
    r = client.post(
        f"/v1/admin/withdrawals/{w.id}/complete",
        json={"admin_notes": "confirmed on dashboard"},
        headers=_auth_headers(ADMIN_ID),
    )
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["success"] is True
    assert data["withdrawal"]["status"] == "completed"
    assert data["withdrawal"]["approved_by"] == ADMIN_ID
    assert data["withdrawal"]["admin_notes"] == "confirmed on dashboard"
    assert data["withdrawal"]["paystack_transfer_code"] == "TRF_m"
    assert data["withdrawal"]["processed_at"]

    updated = store.withdrawals[w.id]
    assert updated.status == WithdrawalStatus.COMPLETED


def test_admin_complete_keeps_manual_reference_in_notes(client, store):
    w = store.add_withdrawal(VENDOR_ID, 1000, WithdrawalStatus.PROCESSING, transfer_code="TRF_m")
    r = client.post(
        f"/v1/admin/withdrawals/{w.id}/complete",
        json={"admin_notes": "paid by hand", "paystack_reference": "ref_manual_77"},
        headers=_auth_headers(ADMIN_ID),
    )
    assert r.status_code == 200, r.text
    data = r.json()["withdrawal"]
    assert data["admin_notes"] == "paid by hand\nPaystack reference: ref_manual_77"
    assert data["paystack_transfer_code"] == "TRF_m"

    other = store.add_withdrawal(VENDOR_ID, 500, WithdrawalStatus.PROCESSING, transfer_code="TRF_n")
    r2 = client.post(
        f"/v1/admin/withdrawals/{other.id}/complete",
        json={"paystack_reference": "ref_only"},
        headers=_auth_headers(ADMIN_ID),
    )
    assert r2.json()["withdrawal"]["admin_notes"] == "Paystack reference: ref_only"


def test_admin_complete_terminal_is_409(client, store):
    w = store.add_withdrawal(VENDOR_ID, 1000, WithdrawalStatus.FAILED)
    r = client.post(f"/v1/admin/withdrawals/{w.id}/complete", json={}, headers=_auth_headers(ADMIN_ID))
    assert r.status_code == 409, r.text
    assert r.json() == {"detail": "INVALID_TRANSITION"}
    assert store.withdrawals[w.id].status == WithdrawalStatus.FAILED


def test_admin_complete_pending_is_409(client, store):
    w = store.add_withdrawal(VENDOR_ID, 1000, WithdrawalStatus.PENDING)
    r = client.post(f"/v1/admin/withdrawals/{w.id}/complete", json={}, headers=_auth_headers(ADMIN_ID))
    assert r.status_code == 409, r.text


def test_admin_complete_unknown_404(client):
    r = client.post(
        "/v1/admin/withdrawals/00000000-0000-0000-0000-00000000dead/complete",
        json={},
        headers=_auth_headers(ADMIN_ID),
    )
    assert r.status_code == 404, r.text
    assert r.json()["detail"] == "WITHDRAWAL_NOT_FOUND"


def test_admin_complete_requires_admin(client, store):
    w = store.add_withdrawal(VENDOR_ID, 1000, WithdrawalStatus.PROCESSING, transfer_code="TRF_z")
    r = client.post(f"/v1/admin/withdrawals/{w.id}/complete", json={}, headers=_auth_headers(OWNER_ID))
    assert r.status_code == 403, r.text
    assert store.withdrawals[w.id].status == WithdrawalStatus.PROCESSING
