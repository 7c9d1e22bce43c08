"""
Two-Stage Validation for Linking Commands

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Transaction type matches the command
- Amounts are positive
- No duplicate (member, month) keys in one request

STAGE 2 - SEMANTIC VALIDATION:
- Linked payments add up to the transaction amount
- Transfer source and destination differ

Stage 2 only runs when stage 1 passes. Error-level issues abort the
command; warnings are reported and the command goes ahead.

IMPORTANT: Validation NEVER silently fixes issues.
"""

from collections import Counter
from decimal import Decimal
from typing import Any, Iterable, Optional, Union

import pydantic

from ledger_engine.config import LedgerSettings, get_settings
from ledger_engine.errors import InvalidTransfer, ValidationError
from ledger_engine.models.ledger import (
    ZERO,
    PayableBill,
    PaymentLink,
    Transaction,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)


def coerce_links(links: Iterable[Union[PaymentLink, dict[str, Any]]]) -> list[PaymentLink]:
    """
    Turn raw link payloads into PaymentLink models.

    Raises:
        ValidationError: If any payload is malformed (e.g., amount <= 0)
    """
    result = []
    for index, link in enumerate(links):
        if isinstance(link, PaymentLink):
            result.append(link)
            continue
        try:
            result.append(PaymentLink.model_validate(link))
        except pydantic.ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"])
            raise ValidationError(
                f"Invalid payment link #{index + 1}: {first['msg']}",
                field=field,
            ) from e
    return result


def raise_for_errors(result: ValidationResult) -> None:
    """Raise the first error-level issue as a ledger exception."""
    for issue in result.issues:
        if issue.severity != "error":
            continue
        if issue.issue_type == "same_account":
            raise InvalidTransfer(issue.message, field=issue.field)
        raise ValidationError(issue.message, field=issue.field)


class LinkValidator:
    """
    Validates linking commands through a two-stage pipeline.

    Stage 1: Schema validation
    Stage 2: Semantic validation
    """

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger

    def _validate_payment_schema(
        self,
        transaction: Transaction,
        links: list[PaymentLink],
    ) -> tuple[bool, list[ValidationIssue]]:
        issues = []

        if transaction.type != TransactionType.INCOME:
            issues.append(ValidationIssue(
                field="transaction.type",
                issue_type="invalid_value",
                message="Only income transactions can be linked to dues payments",
                severity="error",
            ))

        for link in links:
            if link.amount <= ZERO:
                issues.append(ValidationIssue(
                    field="links.amount",
                    issue_type="invalid_value",
                    message=f"Payment for {link.reference_month} must be positive",
                    severity="error",
                ))

        counts = Counter(link.key for link in links)
        for (member_id, month), count in counts.items():
            if count > 1:
                issues.append(ValidationIssue(
                    field="links",
                    issue_type="duplicate",
                    message=f"Member {member_id} listed {count} times for {month}",
                    severity="error",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_payment_semantic(
        self,
        transaction: Transaction,
        links: list[PaymentLink],
    ) -> tuple[bool, list[ValidationIssue]]:
        issues = []

        if len(links) > 1:
            total = sum((link.amount for link in links), ZERO)
            if abs(total - transaction.amount) > self._settings.link_amount_tolerance:
                issues.append(ValidationIssue(
                    field="links.amount",
                    issue_type="amount_mismatch",
                    message=(
                        f"Linked payments total {total} but the transaction "
                        f"amount is {transaction.amount}"
                    ),
                    severity="warning",
                ))

        return True, issues

    def validate_payment_links(
        self,
        transaction: Transaction,
        links: list[PaymentLink],
    ) -> ValidationResult:
        """
        Validate a set_payment_links request.

        A mismatch between the links and the transaction amount is only a
        warning: partial payments are legitimate.
        """
        all_issues = []

        schema_valid, schema_issues = self._validate_payment_schema(transaction, links)
        all_issues.extend(schema_issues)

        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_payment_semantic(
                transaction, links
            )
            all_issues.extend(semantic_issues)

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            issues=all_issues,
        )

    def validate_bill_link(
        self,
        transaction: Transaction,
        bill: PayableBill,
    ) -> ValidationResult:
        issues = []

        if transaction.type != TransactionType.EXPENSE:
            issues.append(ValidationIssue(
                field="transaction.type",
                issue_type="invalid_value",
                message="Only expense transactions can pay a bill",
                severity="error",
            ))

        if transaction.transfer_id is not None:
            # Both legs of a transfer must keep the same amount
            issues.append(ValidationIssue(
                field="transaction.transfer_id",
                issue_type="transfer_leg",
                message="A transfer leg cannot be linked to a bill",
                severity="error",
            ))

        schema_valid = not issues
        if schema_valid and transaction.amount != bill.amount:
            # The link snapshots the bill amount onto the transaction
            issues.append(ValidationIssue(
                field="amount",
                issue_type="amount_mismatch",
                message=(
                    f"Transaction amount {transaction.amount} will be replaced "
                    f"by the bill amount {bill.amount}"
                ),
                severity="info",
            ))

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=schema_valid,
            issues=issues,
        )

    def validate_transfer(
        self,
        from_account_id: Any,
        to_account_id: Any,
        amount: Decimal,
    ) -> ValidationResult:
        issues = []

        if amount <= ZERO:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Transfer amount must be positive",
                severity="error",
            ))

        schema_valid = not issues
        semantic_valid = False
        if schema_valid:
            if from_account_id == to_account_id:
                issues.append(ValidationIssue(
                    field="to_account_id",
                    issue_type="same_account",
                    message="Source and destination accounts must be different",
                    severity="error",
                ))
            semantic_valid = not issues

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            issues=issues,
        )
