"""
Account Balance Derivation

current_balance = initial_balance + income - expense, over every
transaction recorded on the account. Transfers need no special case:
each leg is an ordinary income or expense on its own account.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from ledger_engine.models.ledger import (
    ZERO,
    Account,
    AccountHistory,
    AccountHistoryEntry,
    AccountView,
    Transaction,
    TransactionFilter,
)


def derive_accounts(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
) -> list[AccountView]:
    """Attach current_balance to every account, preserving input order."""
    movement: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
    for trx in transactions:
        movement[trx.account_id] += trx.signed_amount

    return [
        AccountView(
            **account.model_dump(),
            current_balance=account.initial_balance + movement.get(account.id, ZERO),
        )
        for account in accounts
    ]


def derive_account(account: Account, transactions: Iterable[Transaction]) -> AccountView:
    return derive_accounts([account], transactions)[0]


def account_history(
    account: Account,
    transactions: Iterable[Transaction],
    filter: Optional[TransactionFilter] = None,
) -> AccountHistory:
    """
    Statement of an account over the filter's date range.

    The opening balance folds in every movement dated before start_date,
    whatever its type or category. The rest of the filter (type,
    category, project, tags) narrows the listed rows, and running
    balances follow the listed rows only. Running balances are computed
    oldest first; entries are returned newest first.
    """
    filter = filter or TransactionFilter()
    start_date = filter.start_date
    own = sorted(
        (t for t in transactions if t.account_id == account.id),
        key=lambda t: t.date,
    )

    opening = account.initial_balance
    period: list[Transaction] = []
    for trx in own:
        if start_date and trx.date.date() < start_date:
            opening += trx.signed_amount
        elif filter.matches(trx):
            period.append(trx)

    running = opening
    entries = []
    for trx in period:
        running += trx.signed_amount
        entries.append(AccountHistoryEntry(transaction=trx, running_balance=running))

    entries.reverse()
    return AccountHistory(
        account_id=account.id,
        opening_balance=opening,
        closing_balance=running,
        entries=entries,
    )
