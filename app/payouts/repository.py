# app/payouts/repository.py
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Protocol

import psycopg2
from psycopg2.extras import RealDictCursor

from app.payouts.model import Order, PayoutProfile, Wallet, Withdrawal
from app.payouts.state_machine import (
    WithdrawalStatus,
    assert_processing_invariant,
    assert_transition,
)
from services.retry import db_read_retry

logger = logging.getLogger("campuseats.repository")

LEDGER_ENTRY_TYPES = ("debit", "credit")


class StoreError(Exception):
    """The data store rejected a write."""


class WalletDebitRejected(StoreError):
    """A debit would push withdrawn_earnings above total_earnings (or the wallet vanished)."""


class WalletNotFound(StoreError):
    """A credit targeted a vendor without a wallet row."""


class PayoutStore(Protocol):
    def get_payout_profile(self, vendor_id: str) -> Optional[PayoutProfile]: ...
    def save_recipient_code(self, vendor_id: str, recipient_code: str) -> None: ...
    def upsert_payout_profile(
        self,
        vendor_id: str,
        *,
        account_number: str,
        bank_code: str,
        account_name: str,
        bank_name: Optional[str] = None,
    ) -> PayoutProfile: ...
    def get_wallet(self, vendor_id: str) -> Optional[Wallet]: ...
    def adjust_wallet(
        self,
        vendor_id: str,
        amount: Decimal,
        *,
        entry_type: str,
        reference_type: str,
        reference_id: str,
        description: Optional[str] = None,
    ) -> None: ...
    def credit_order_earnings(
        self,
        vendor_id: str,
        order_id: str,
        amount: Decimal,
        *,
        description: Optional[str] = None,
    ) -> bool: ...
    def get_order(self, order_id: str) -> Optional[Order]: ...
    def create_withdrawal(self, vendor_id: str, amount: Decimal) -> Withdrawal: ...
    def get_withdrawal(self, withdrawal_id: str) -> Optional[Withdrawal]: ...
    def get_withdrawal_by_transfer_code(self, transfer_code: str) -> Optional[Withdrawal]: ...
    def transition_withdrawal(
        self,
        withdrawal_id: str,
        *,
        from_status: WithdrawalStatus,
        to_status: WithdrawalStatus,
        transfer_code: Optional[str] = None,
        error_message: Optional[str] = None,
        processed_at: Optional[datetime] = None,
        approved_by: Optional[str] = None,
        admin_notes: Optional[str] = None,
    ) -> bool: ...
    def list_withdrawals(
        self,
        *,
        vendor_id: Optional[str] = None,
        status: Optional[WithdrawalStatus] = None,
        limit: int = 100,
    ) -> list[Withdrawal]: ...
    def list_unledgered_withdrawals(self) -> list[Withdrawal]: ...
    def get_vendor_owner(self, vendor_id: str) -> Optional[str]: ...
    def get_user_role(self, user_id: str) -> Optional[str]: ...


# ==========================================================
# Row mapping
# ==========================================================

def _row_to_profile(row: dict[str, Any]) -> PayoutProfile:
    return PayoutProfile(
        vendor_id=str(row["vendor_id"]),
        account_number=row["account_number"],
        bank_code=row["bank_code"],
        account_name=row["account_name"],
        bank_name=row.get("bank_name"),
        verified=bool(row.get("verified")),
        recipient_code=row.get("recipient_code") or None,
    )


def _row_to_withdrawal(row: dict[str, Any]) -> Withdrawal:
    return Withdrawal(
        id=str(row["id"]),
        vendor_id=str(row["vendor_id"]),
        amount=Decimal(str(row["amount"])),
        status=WithdrawalStatus(row["status"]),
        transfer_code=row.get("paystack_transfer_code"),
        error_message=row.get("error_message"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
        processed_at=row.get("processed_at"),
        approved_by=str(row["approved_by"]) if row.get("approved_by") else None,
        admin_notes=row.get("admin_notes"),
    )


def _row_to_order(row: dict[str, Any]) -> Order:
    commission = row.get("platform_commission")
    return Order(
        id=str(row["id"]),
        seller_id=str(row["seller_id"]),
        seller_type=row.get("seller_type") or "",
        total=Decimal(str(row["total"])),
        platform_commission=Decimal(str(commission)) if commission is not None else None,
        order_number=row.get("order_number"),
    )


_WITHDRAWAL_COLUMNS = """
    id, vendor_id, amount, status, paystack_transfer_code, error_message,
    created_at, updated_at, processed_at, approved_by, admin_notes
"""


class PostgresPayoutStore:
    """
    PayoutStore backed by the Supabase Postgres database.

    Every method is its own transaction: there is no transaction spanning the
    withdrawal workflow's steps. Reads retry on transient connection errors; writes never do.
    """

    def __init__(self, get_conn):
        self._get_conn = get_conn

    # ------------------------------------------------------
    # Reads
    # ------------------------------------------------------

    @db_read_retry
    def _fetch_one(self, sql: str, params: tuple) -> Optional[dict[str, Any]]:
        with self._get_conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(sql, params)
                row = cur.fetchone()
                return dict(row) if row else None

    @db_read_retry
    def _fetch_all(self, sql: str, params: tuple) -> list[dict[str, Any]]:
        with self._get_conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(sql, params)
                return [dict(r) for r in cur.fetchall()]

    def get_payout_profile(self, vendor_id: str) -> Optional[PayoutProfile]:
        row = self._fetch_one(
            """
            SELECT vendor_id, account_number, bank_code, account_name, bank_name, verified, recipient_code
            FROM public.vendor_payout_profiles
            WHERE vendor_id = %s
            LIMIT 1
            """,
            (vendor_id,),
        )
        return _row_to_profile(row) if row else None

    def get_wallet(self, vendor_id: str) -> Optional[Wallet]:
        row = self._fetch_one(
            """
            SELECT vendor_id, total_earnings, withdrawn_earnings
            FROM public.vendor_wallets
            WHERE vendor_id = %s
            LIMIT 1
            """,
            (vendor_id,),
        )
        if not row:
            return None
        return Wallet(
            vendor_id=str(row["vendor_id"]),
            total_earnings=Decimal(str(row["total_earnings"] or 0)),
            withdrawn_earnings=Decimal(str(row["withdrawn_earnings"] or 0)),
        )

    def get_withdrawal(self, withdrawal_id: str) -> Optional[Withdrawal]:
        row = self._fetch_one(
            f"SELECT {_WITHDRAWAL_COLUMNS} FROM public.vendor_withdrawals WHERE id = %s::uuid",
            (withdrawal_id,),
        )
        return _row_to_withdrawal(row) if row else None

    def get_withdrawal_by_transfer_code(self, transfer_code: str) -> Optional[Withdrawal]:
        row = self._fetch_one(
            f"""
            SELECT {_WITHDRAWAL_COLUMNS}
            FROM public.vendor_withdrawals
            WHERE paystack_transfer_code = %s
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (transfer_code,),
        )
        return _row_to_withdrawal(row) if row else None

    def list_withdrawals(
        self,
        *,
        vendor_id: Optional[str] = None,
        status: Optional[WithdrawalStatus] = None,
        limit: int = 100,
    ) -> list[Withdrawal]:
        rows = self._fetch_all(
            f"""
            SELECT {_WITHDRAWAL_COLUMNS}
            FROM public.vendor_withdrawals
            WHERE (%s::text IS NULL OR vendor_id::text = %s::text)
              AND (%s::text IS NULL OR status = %s::text)
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (
                vendor_id,
                vendor_id,
                status.value if status else None,
                status.value if status else None,
                limit,
            ),
        )
        return [_row_to_withdrawal(r) for r in rows]

    def list_unledgered_withdrawals(self) -> list[Withdrawal]:
        rows = self._fetch_all(
            f"""
            SELECT {_WITHDRAWAL_COLUMNS}
            FROM public.vendor_withdrawals w
            WHERE w.status IN ('processing', 'completed')
              AND NOT EXISTS (
                SELECT 1
                FROM public.vendor_wallet_transactions t
                WHERE t.reference_type = 'withdrawal'
                  AND t.reference_id = w.id::text
                  AND t.transaction_type = 'debit'
              )
            ORDER BY w.created_at
            """,
            (),
        )
        return [_row_to_withdrawal(r) for r in rows]

    def get_order(self, order_id: str) -> Optional[Order]:
        row = self._fetch_one(
            """
            SELECT id, seller_id, seller_type, total, platform_commission, order_number
            FROM public.orders
            WHERE id = %s
            """,
            (order_id,),
        )
        return _row_to_order(row) if row else None

    def get_vendor_owner(self, vendor_id: str) -> Optional[str]:
        row = self._fetch_one("SELECT user_id FROM public.vendors WHERE id = %s", (vendor_id,))
        return str(row["user_id"]) if row and row.get("user_id") else None

    def get_user_role(self, user_id: str) -> Optional[str]:
        row = self._fetch_one("SELECT role FROM public.profiles WHERE id = %s::uuid", (user_id,))
        return row["role"] if row else None

    # ------------------------------------------------------
    # Writes
    # ------------------------------------------------------

    def save_recipient_code(self, vendor_id: str, recipient_code: str) -> None:
        try:
            with self._get_conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        UPDATE public.vendor_payout_profiles
                        SET recipient_code = %s, updated_at = now()
                        WHERE vendor_id = %s
                        """,
                        (recipient_code, vendor_id),
                    )
        except psycopg2.Error as exc:
            raise StoreError(f"save_recipient_code failed: {exc.pgcode or type(exc).__name__}") from exc

    def upsert_payout_profile(
        self,
        vendor_id: str,
        *,
        account_number: str,
        bank_code: str,
        account_name: str,
        bank_name: Optional[str] = None,
    ) -> PayoutProfile:
        # A changed account/bank invalidates the cached gateway recipient.
        try:
            with self._get_conn() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(
                        """
                        INSERT INTO public.vendor_payout_profiles
                            (vendor_id, account_number, bank_code, account_name, bank_name, verified, recipient_code, updated_at)
                        VALUES (%s, %s, %s, %s, %s, TRUE, NULL, now())
                        ON CONFLICT (vendor_id) DO UPDATE SET
                            recipient_code = CASE
                                WHEN vendor_payout_profiles.account_number = EXCLUDED.account_number
                                 AND vendor_payout_profiles.bank_code = EXCLUDED.bank_code
                                THEN vendor_payout_profiles.recipient_code
                                ELSE NULL
                            END,
                            account_number = EXCLUDED.account_number,
                            bank_code = EXCLUDED.bank_code,
                            account_name = EXCLUDED.account_name,
                            bank_name = COALESCE(EXCLUDED.bank_name, vendor_payout_profiles.bank_name),
                            verified = TRUE,
                            updated_at = now()
                        RETURNING vendor_id, account_number, bank_code, account_name, bank_name, verified, recipient_code
                        """,
                        (vendor_id, account_number, bank_code, account_name, bank_name),
                    )
                    row = cur.fetchone()
        except psycopg2.Error as exc:
            raise StoreError(f"upsert_payout_profile failed: {exc.pgcode or type(exc).__name__}") from exc
        return _row_to_profile(dict(row))

    def create_withdrawal(self, vendor_id: str, amount: Decimal) -> Withdrawal:
        try:
            with self._get_conn() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(
                        f"""
                        INSERT INTO public.vendor_withdrawals (vendor_id, amount, status, created_at, updated_at)
                        VALUES (%s, %s, 'pending', now(), now())
                        RETURNING {_WITHDRAWAL_COLUMNS}
                        """,
                        (vendor_id, amount),
                    )
                    row = cur.fetchone()
        except psycopg2.Error as exc:
            raise StoreError(f"create_withdrawal failed: {exc.pgcode or type(exc).__name__}") from exc
        if not row:
            raise StoreError("create_withdrawal returned no row")
        return _row_to_withdrawal(dict(row))

    def transition_withdrawal(
        self,
        withdrawal_id: str,
        *,
        from_status: WithdrawalStatus,
        to_status: WithdrawalStatus,
        transfer_code: Optional[str] = None,
        error_message: Optional[str] = None,
        processed_at: Optional[datetime] = None,
        approved_by: Optional[str] = None,
        admin_notes: Optional[str] = None,
    ) -> bool:
        assert_transition(from_status, to_status)
        assert_processing_invariant(to_status, transfer_code)

        try:
            with self._get_conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        UPDATE public.vendor_withdrawals
                        SET
                          status = %s,
                          paystack_transfer_code = COALESCE(%s, paystack_transfer_code),
                          error_message = COALESCE(%s, error_message),
                          processed_at = COALESCE(%s, processed_at),
                          approved_by = COALESCE(%s::uuid, approved_by),
                          admin_notes = COALESCE(%s, admin_notes),
                          updated_at = now()
                        WHERE id = %s::uuid
                          AND status = %s
                        """,
                        (
                            WithdrawalStatus(to_status).value,
                            transfer_code,
                            error_message,
                            processed_at,
                            approved_by,
                            admin_notes,
                            withdrawal_id,
                            WithdrawalStatus(from_status).value,
                        ),
                    )
                    return cur.rowcount == 1
        except psycopg2.Error as exc:
            raise StoreError(f"transition_withdrawal failed: {exc.pgcode or type(exc).__name__}") from exc

    def adjust_wallet(
        self,
        vendor_id: str,
        amount: Decimal,
        *,
        entry_type: str,
        reference_type: str,
        reference_id: str,
        description: Optional[str] = None,
    ) -> None:
        if entry_type not in LEDGER_ENTRY_TYPES:
            raise ValueError(f"Unknown ledger entry type: {entry_type}")
        if amount <= 0:
            raise ValueError("adjust_wallet amount must be positive")

        try:
            with self._get_conn() as conn:
                with conn.cursor() as cur:
                    self._apply_wallet_entry(cur, vendor_id, amount, entry_type, reference_type, reference_id, description)
        except psycopg2.Error as exc:
            raise StoreError(f"adjust_wallet failed: {exc.pgcode or type(exc).__name__}") from exc

    def credit_order_earnings(
        self,
        vendor_id: str,
        order_id: str,
        amount: Decimal,
        *,
        description: Optional[str] = None,
    ) -> bool:
        """
        Credit a delivered order's earnings once. Returns False when the order
        already has a credit entry; the wallet is left untouched in that case.
        """
        if amount <= 0:
            raise ValueError("credit amount must be positive")

        try:
            with self._get_conn() as conn:
                with conn.cursor() as cur:
                    # Serializes concurrent deliveries of the same order until commit
                    cur.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (f"order_credit:{order_id}",))
                    cur.execute(
                        """
                        SELECT 1 FROM public.vendor_wallet_transactions
                        WHERE transaction_type = 'credit' AND reference_type = 'order' AND reference_id = %s
                        LIMIT 1
                        """,
                        (str(order_id),),
                    )
                    if cur.fetchone():
                        logger.info("order_credit_skipped order_id=%s reason=ALREADY_CREDITED", order_id)
                        return False
                    self._apply_wallet_entry(cur, vendor_id, amount, "credit", "order", order_id, description)
        except psycopg2.Error as exc:
            raise StoreError(f"credit_order_earnings failed: {exc.pgcode or type(exc).__name__}") from exc
        return True

    def _apply_wallet_entry(
        self,
        cur,
        vendor_id: str,
        amount: Decimal,
        entry_type: str,
        reference_type: str,
        reference_id: str,
        description: Optional[str],
    ) -> None:
        if entry_type == "debit":
            # Conditional update: never let withdrawn exceed total.
            cur.execute(
                """
                UPDATE public.vendor_wallets
                SET withdrawn_earnings = withdrawn_earnings + %s, updated_at = now()
                WHERE vendor_id = %s
                  AND withdrawn_earnings + %s <= total_earnings
                """,
                (amount, vendor_id, amount),
            )
        else:
            # Delivered earnings move out of pending into total
            cur.execute(
                """
                UPDATE public.vendor_wallets
                SET total_earnings = total_earnings + %s,
                    pending_earnings = GREATEST(0, COALESCE(pending_earnings, 0) - %s),
                    updated_at = now()
                WHERE vendor_id = %s
                """,
                (amount, amount, vendor_id),
            )
        if cur.rowcount != 1:
            logger.warning(
                "wallet_adjust_rejected vendor_id=%s entry_type=%s amount=%s reference_id=%s",
                vendor_id,
                entry_type,
                amount,
                reference_id,
            )
            if entry_type == "credit":
                raise WalletNotFound(f"wallet not found vendor_id={vendor_id}")
            raise WalletDebitRejected(f"wallet debit rejected vendor_id={vendor_id} amount={amount}")

        cur.execute(
            """
            INSERT INTO public.vendor_wallet_transactions
                (vendor_id, transaction_type, amount, reference_type, reference_id, description, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, now())
            """,
            (vendor_id, entry_type, amount, reference_type, str(reference_id), description),
        )
