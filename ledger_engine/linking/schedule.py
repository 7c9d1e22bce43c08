"""
Payable Bill Schedules

Expands a bill request into the rows to store:
- single: one bill
- installments: N bills "<description> (i/N)" sharing an installment_group_id
- monthly: one bill per month sharing a recurring_id

Due dates step one calendar month at a time from the first due date.
relativedelta clamps to the last day of shorter months (Jan 31 -> Feb 29).
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from dateutil.relativedelta import relativedelta

from ledger_engine.errors import ValidationError
from ledger_engine.models.ledger import (
    BillSchedule,
    BillStatus,
    InstallmentInfo,
    PayableBill,
    to_cents,
)


def build_bill_schedule(
    description: str,
    amount: Decimal,
    first_due_date: date,
    schedule: BillSchedule = BillSchedule.SINGLE,
    installments: Optional[int] = None,
    months: int = 12,
    payee_id: Optional[UUID] = None,
    category_id: Optional[UUID] = None,
    notes: Optional[str] = None,
    is_estimate: bool = False,
) -> list[PayableBill]:
    """
    Build (but do not store) the bills for a schedule.

    amount is the amount of EACH bill, not a total to be split.

    Raises:
        ValidationError: amount <= 0, or fewer than 2 installments
    """
    schedule = BillSchedule(schedule)
    amount = to_cents(Decimal(str(amount)))
    if amount <= 0:
        raise ValidationError("Bill amount must be positive", field="amount")

    common = dict(
        payee_id=payee_id,
        category_id=category_id,
        amount=amount,
        notes=notes,
        is_estimate=is_estimate,
        status=BillStatus.PENDING,
    )

    if schedule == BillSchedule.SINGLE:
        return [PayableBill(description=description, due_date=first_due_date, **common)]

    if schedule == BillSchedule.INSTALLMENTS:
        if installments is None or installments < 2:
            raise ValidationError(
                "An installment plan needs at least 2 installments",
                field="installments",
            )
        group_id = uuid4()
        return [
            PayableBill(
                description=f"{description} ({i + 1}/{installments})",
                due_date=first_due_date + relativedelta(months=i),
                installment_info=InstallmentInfo(current=i + 1, total=installments),
                installment_group_id=group_id,
                **common,
            )
            for i in range(installments)
        ]

    if months < 1:
        raise ValidationError("A recurring schedule needs at least 1 month", field="months")
    recurring_id = uuid4()
    return [
        PayableBill(
            description=description,
            due_date=first_due_date + relativedelta(months=i),
            recurring_id=recurring_id,
            **common,
        )
        for i in range(months)
    ]
