"""Derived view-models: member dues state and account balances."""

from ledger_engine.derivation.balances import (
    account_history,
    derive_account,
    derive_accounts,
)
from ledger_engine.derivation.dues import (
    derive_member,
    derive_members,
    is_on_leave,
    iter_months,
)

__all__ = [
    "account_history",
    "derive_account",
    "derive_accounts",
    "derive_member",
    "derive_members",
    "is_on_leave",
    "iter_months",
]
