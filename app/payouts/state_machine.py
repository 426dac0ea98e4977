# app/payouts/state_machine.py
from __future__ import annotations

from enum import Enum


class WithdrawalStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class InvalidTransition(Exception):
    pass


ALLOWED = {
    WithdrawalStatus.PENDING: {WithdrawalStatus.PROCESSING, WithdrawalStatus.FAILED},
    WithdrawalStatus.PROCESSING: {WithdrawalStatus.COMPLETED, WithdrawalStatus.FAILED},
    WithdrawalStatus.COMPLETED: set(),
    WithdrawalStatus.FAILED: set(),
}

TERMINAL_STATUSES = frozenset({WithdrawalStatus.COMPLETED, WithdrawalStatus.FAILED})


def is_terminal(status: WithdrawalStatus | str) -> bool:
    return WithdrawalStatus(status) in TERMINAL_STATUSES


def assert_transition(old: WithdrawalStatus | str, new: WithdrawalStatus | str) -> None:
    old_s, new_s = WithdrawalStatus(old), WithdrawalStatus(new)
    if new_s not in ALLOWED.get(old_s, set()):
        raise InvalidTransition(f"Illegal withdrawal transition: {old_s.value} -> {new_s.value}")


def assert_processing_invariant(new_status: WithdrawalStatus | str, transfer_code: str | None) -> None:
    """
    Invariant: a withdrawal only becomes processing once the gateway handed back a transfer code.
    """
    if WithdrawalStatus(new_status) is WithdrawalStatus.PROCESSING and not transfer_code:
        raise ValueError("Invariant violation: status=processing requires transfer_code")
