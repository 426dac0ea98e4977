from __future__ import annotations

import argparse
import json

from db import close_pool, get_conn
from app.payouts.repository import PostgresPayoutStore
from services.reconcile import build_report


def main() -> None:
    parser = argparse.ArgumentParser(
        description="List withdrawals that reached Paystack but never debited the vendor wallet."
    )
    parser.add_argument("--json", action="store_true", help="print the full report as JSON")
    args = parser.parse_args()

    try:
        report = build_report(PostgresPayoutStore(get_conn))
    finally:
        close_pool()

    if args.json:
        print(json.dumps(report, indent=2, sort_keys=True))
        return

    print("unledgered_withdrawals:", report["count"], f"total_amount={report['total_amount']:.2f}")
    for item in report["items"]:
        print(
            "-",
            item["id"],
            f"vendor_id={item['vendor_id']}",
            f"amount={item['amount']:.2f}",
            f"status={item['status']}",
            f"transfer_code={item['paystack_transfer_code']}",
        )


if __name__ == "__main__":
    main()
