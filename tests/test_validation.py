"""
Tests for the two-stage link validator.
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from ledger_engine.config import LedgerSettings
from ledger_engine.errors import InvalidTransfer, ValidationError
from ledger_engine.models.ledger import (
    PayableBill,
    PaymentLink,
    Transaction,
    TransactionType,
)
from ledger_engine.validation import LinkValidator, coerce_links, raise_for_errors


def _trx(amount="100.00", type=TransactionType.INCOME):
    return Transaction(
        description="PIX",
        type=type,
        amount=Decimal(amount),
        date=date(2024, 3, 10),
        account_id=uuid4(),
    )


def _link(amount, member_id=None, month="2024-03"):
    return PaymentLink(
        member_id=member_id or uuid4(),
        reference_month=month,
        amount=Decimal(amount),
    )


class TestCoerceLinks:
    def test_accepts_models_and_dicts(self):
        member_id = uuid4()
        links = coerce_links([
            _link("10"),
            {"member_id": str(member_id), "reference_month": "2024-02", "amount": "5.5"},
        ])
        assert links[1].member_id == member_id
        assert links[1].amount == Decimal("5.50")

    def test_malformed_payload_names_the_field(self):
        with pytest.raises(ValidationError) as exc_info:
            coerce_links([{"member_id": str(uuid4()), "reference_month": "03/2024", "amount": "5"}])
        assert exc_info.value.field == "reference_month"
        assert "#1" in str(exc_info.value)


class TestPaymentLinkValidation:
    """Tests for validate_payment_links."""

    def test_valid_links(self):
        validator = LinkValidator(LedgerSettings())
        result = validator.validate_payment_links(_trx(), [_link("60"), _link("40")])
        assert result.is_valid
        assert result.issues == []

    def test_mismatch_is_only_a_warning(self):
        validator = LinkValidator(LedgerSettings())
        result = validator.validate_payment_links(_trx(), [_link("60"), _link("30")])

        assert result.is_valid
        assert not result.has_errors
        assert [w.issue_type for w in result.warnings] == ["amount_mismatch"]

    def test_tolerance(self):
        validator = LinkValidator(LedgerSettings(link_amount_tolerance=Decimal("0.05")))
        result = validator.validate_payment_links(_trx(), [_link("60"), _link("39.96")])
        assert result.warnings == []

    def test_schema_errors_skip_semantic_stage(self):
        """Test that stage 2 does not run when stage 1 fails."""
        validator = LinkValidator(LedgerSettings())
        result = validator.validate_payment_links(
            _trx(type=TransactionType.EXPENSE), [_link("60"), _link("30")]
        )

        assert not result.schema_valid
        assert not result.semantic_valid
        assert [i.issue_type for i in result.issues] == ["invalid_value"]

    def test_duplicates(self):
        member_id = uuid4()
        validator = LinkValidator(LedgerSettings())
        result = validator.validate_payment_links(
            _trx(), [_link("50", member_id), _link("50", member_id)]
        )
        assert result.error_count == 1
        assert result.issues[0].issue_type == "duplicate"


class TestBillAndTransferValidation:
    def test_bill_link_amount_difference_is_info(self):
        validator = LinkValidator(LedgerSettings())
        bill = PayableBill(description="Luz", amount=Decimal("80"), due_date=date(2024, 3, 20))

        result = validator.validate_bill_link(_trx("75.00", TransactionType.EXPENSE), bill)

        assert result.is_valid
        assert result.issues[0].severity == "info"

    def test_transfer_leg_cannot_link_to_bill(self):
        validator = LinkValidator(LedgerSettings())
        bill = PayableBill(description="Luz", amount=Decimal("80"), due_date=date(2024, 3, 20))
        leg = _trx("80.00", TransactionType.EXPENSE).model_copy(update={"transfer_id": uuid4()})

        result = validator.validate_bill_link(leg, bill)

        assert not result.is_valid
        assert [i.issue_type for i in result.issues] == ["transfer_leg"]
        with pytest.raises(ValidationError, match="transfer leg"):
            raise_for_errors(result)

    def test_same_account_raises_invalid_transfer(self):
        validator = LinkValidator(LedgerSettings())
        account_id = uuid4()
        result = validator.validate_transfer(account_id, account_id, Decimal("10"))

        with pytest.raises(InvalidTransfer):
            raise_for_errors(result)

    def test_non_positive_amount_is_plain_validation_error(self):
        validator = LinkValidator(LedgerSettings())
        account_id = uuid4()
        result = validator.validate_transfer(account_id, account_id, Decimal("0"))

        with pytest.raises(ValidationError) as exc_info:
            raise_for_errors(result)
        assert not isinstance(exc_info.value, InvalidTransfer)
