from decimal import Decimal

from app.payouts.repository import StoreError
from app.payouts.state_machine import WithdrawalStatus
from app.payouts.workflow import WithdrawalWorkflow
from services.reconcile import build_report, find_unledgered_withdrawals
from tests.fakes import FakeGateway, FakePayoutStore


def test_gap_withdrawal_shows_up_in_report():
    store = FakePayoutStore()
    store.add_vendor("v1", total="5000")
    workflow = WithdrawalWorkflow(store, FakeGateway())

    ok = workflow.process_withdrawal("v1", 1000)
    store.fail_on["adjust_wallet"] = StoreError("connection reset")
    gap = workflow.process_withdrawal("v1", 1500)
    assert ok.success and gap.success

    unledgered = find_unledgered_withdrawals(store)
    assert [w.id for w in unledgered] == [gap.withdrawal_id]

    report = build_report(store)
    assert report["count"] == 1
    assert report["total_amount"] == 1500.0
    assert report["items"][0]["id"] == gap.withdrawal_id
    assert report["items"][0]["status"] == "processing"


def test_pending_and_failed_withdrawals_are_not_gaps():
    store = FakePayoutStore()
    store.add_vendor("v1", total="5000")
    store.add_withdrawal("v1", 500, WithdrawalStatus.PENDING)
    store.add_withdrawal("v1", 500, WithdrawalStatus.FAILED)
    report = build_report(store)
    assert report == {"count": 0, "total_amount": 0.0, "items": []}


def test_report_does_not_compensate():
    store = FakePayoutStore()
    store.add_vendor("v1", total="5000")
    store.add_withdrawal("v1", 800, WithdrawalStatus.COMPLETED, transfer_code="TRF_c")
    build_report(store)
    assert store.writes == []
    assert store.wallets["v1"].withdrawn_earnings == Decimal("0")
