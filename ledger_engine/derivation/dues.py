"""
Member Dues Derivation

Computes a member's overdue months and payment status from the member
record and their dues payments.

DESIGN DECISION: Nothing computed here is ever stored. The view is
rebuilt from the payments on every read, so a late payment or a
corrected fee is reflected immediately.

Rules, in order:
1. Archived, dismissed and inactive members owe nothing
2. Exempt members owe nothing
3. Every month from the effective start through the current month is
   due; payments for that reference month are subtracted from the fee
4. Months that begin during a leave are skipped unless the
   on_leave_accrues_dues policy is enabled
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable, Iterator

from dateutil.relativedelta import relativedelta

from ledger_engine.models.ledger import (
    ZERO,
    ActivityStatus,
    Member,
    MemberView,
    OverdueMonth,
    Payment,
    PaymentStatus,
    month_key,
)


def iter_months(start: date, end: date) -> Iterator[date]:
    """
    Yield the first day of every month from start's month to end's month.

    Both ends are inclusive. Nothing is yielded when start is after end.
    """
    current = start.replace(day=1)
    last = end.replace(day=1)
    while current <= last:
        yield current
        current += relativedelta(months=1)


def _view(member: Member, status: PaymentStatus, **kwargs) -> MemberView:
    return MemberView(**member.model_dump(), payment_status=status, **kwargs)


def is_on_leave(member: Member, day: date) -> bool:
    return any(leave.covers(day) for leave in member.leaves)


def derive_member(
    member: Member,
    payments: Iterable[Payment],
    today: date,
    on_leave_accrues_dues: bool = False,
) -> MemberView:
    """
    Build the MemberView for one member.

    Args:
        member: The stored member
        payments: Dues payments; entries for other members are ignored
        today: Reference date for "current month" and "currently on leave"
        on_leave_accrues_dues: Whether months on leave still generate dues

    Returns:
        MemberView with overdue months sorted ascending
    """
    if member.activity_status == ActivityStatus.ARQUIVADO:
        return _view(member, PaymentStatus.ARQUIVADO)
    if member.activity_status in (ActivityStatus.DESLIGADO, ActivityStatus.INATIVO):
        return _view(member, PaymentStatus.DESLIGADO)
    if member.is_exempt:
        return _view(member, PaymentStatus.ISENTO)

    fee = member.monthly_fee or ZERO

    paid_by_month: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for payment in payments:
        if payment.member_id == member.id:
            paid_by_month[payment.reference_month] += payment.amount

    overdue: list[OverdueMonth] = []
    if fee > ZERO:
        for first_day in iter_months(member.effective_start, today):
            if not on_leave_accrues_dues and is_on_leave(member, first_day):
                continue
            key = month_key(first_day)
            remainder = fee - paid_by_month.get(key, ZERO)
            if remainder > ZERO:
                overdue.append(OverdueMonth(month=key, amount=remainder))

    total_due = sum((m.amount for m in overdue), ZERO)
    on_leave = is_on_leave(member, today)

    # "YYYY-MM" strings order chronologically
    latest_paid = max(paid_by_month) if paid_by_month else None

    if overdue:
        status = PaymentStatus.ATRASADO
    elif on_leave:
        status = PaymentStatus.EM_LICENCA
    elif latest_paid is not None and latest_paid > month_key(today):
        status = PaymentStatus.ADIANTADO
    else:
        status = PaymentStatus.EM_DIA

    return _view(
        member,
        status,
        overdue_months=overdue,
        total_due=total_due,
        on_leave=on_leave,
    )


def derive_members(
    members: Iterable[Member],
    payments: Iterable[Payment],
    today: date,
    on_leave_accrues_dues: bool = False,
) -> list[MemberView]:
    """Derive every member in one pass over the payments, sorted by name."""
    by_member: dict = defaultdict(list)
    for payment in payments:
        by_member[payment.member_id].append(payment)

    views = [
        derive_member(m, by_member.get(m.id, []), today, on_leave_accrues_dues)
        for m in members
    ]
    return sorted(views, key=lambda v: v.name.lower())
