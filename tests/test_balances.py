"""
Tests for account balance derivation.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from ledger_engine.derivation import account_history, derive_account, derive_accounts
from ledger_engine.models.ledger import Account, Transaction, TransactionFilter, TransactionType

FEBRUARY = TransactionFilter(start_date=date(2024, 2, 1), end_date=date(2024, 2, 29))


def _trx(account, amount, type=TransactionType.INCOME, when=date(2024, 3, 10)):
    return Transaction(
        description="x",
        type=type,
        amount=Decimal(amount),
        date=when,
        account_id=account.id,
    )


class TestDeriveAccounts:
    """Tests for current balances."""

    def test_balance_is_initial_plus_income_minus_expense(self):
        account = Account(name="Banco", initial_balance=Decimal("100.00"))
        transactions = [
            _trx(account, "50.00"),
            _trx(account, "30.00", TransactionType.EXPENSE),
        ]
        assert derive_account(account, transactions).current_balance == Decimal("120.00")

    def test_other_accounts_are_ignored(self):
        account = Account(name="Banco")
        other = Account(name="Caixa")
        view = derive_account(account, [_trx(other, "999.00")])
        assert view.current_balance == Decimal("0.00")

    def test_preserves_input_order(self):
        accounts = [Account(name="B"), Account(name="A")]
        assert [v.name for v in derive_accounts(accounts, [])] == ["B", "A"]


class TestAccountHistory:
    """Tests for account statements."""

    def _setup(self):
        account = Account(name="Banco", initial_balance=Decimal("1000.00"))
        transactions = [
            _trx(account, "100.00", when=date(2024, 1, 15)),
            _trx(account, "50.00", TransactionType.EXPENSE, when=date(2024, 2, 10)),
            _trx(account, "200.00", when=date(2024, 2, 20)),
            _trx(account, "25.00", TransactionType.EXPENSE, when=date(2024, 3, 5)),
        ]
        return account, transactions

    def test_opening_balance_includes_earlier_movements(self):
        account, transactions = self._setup()
        history = account_history(account, transactions, FEBRUARY)

        assert history.opening_balance == Decimal("1100.00")
        assert history.closing_balance == Decimal("1250.00")

    def test_entries_are_newest_first_with_running_balance(self):
        account, transactions = self._setup()
        history = account_history(account, transactions, FEBRUARY)

        assert [e.running_balance for e in history.entries] == [
            Decimal("1250.00"),
            Decimal("1050.00"),
        ]
        assert history.entries[0].transaction.date > history.entries[1].transaction.date

    def test_end_date_covers_whole_day(self):
        account = Account(name="Banco")
        late = _trx(account, "10.00", when=datetime(2024, 2, 29, 23, 59, 59))
        history = account_history(account, [late], FEBRUARY)
        assert len(history.entries) == 1

    def test_no_range_is_full_history(self):
        account, transactions = self._setup()
        history = account_history(account, transactions)

        assert history.opening_balance == Decimal("1000.00")
        assert history.closing_balance == Decimal("1225.00")
        assert len(history.entries) == 4

    def test_type_filter_narrows_rows_not_opening_balance(self):
        account, transactions = self._setup()
        incomes = FEBRUARY.model_copy(update={"type": TransactionType.INCOME})

        history = account_history(account, transactions, incomes)

        assert history.opening_balance == Decimal("1100.00")
        assert [e.transaction.amount for e in history.entries] == [Decimal("200.00")]
        assert history.entries[0].running_balance == Decimal("1300.00")
        assert history.closing_balance == Decimal("1300.00")

    def test_category_filter(self):
        account = Account(name="Banco")
        rent = uuid4()
        transactions = [
            _trx(account, "40.00", when=date(2024, 2, 2)).model_copy(update={"category_id": rent}),
            _trx(account, "15.00", when=date(2024, 2, 3)),
        ]

        history = account_history(
            account, transactions, FEBRUARY.model_copy(update={"category_id": rent})
        )

        assert [e.transaction.category_id for e in history.entries] == [rent]
