"""
Core Data Models for the Ledger Engine

These models define the strict schemas for all data flowing through the engine.
They are designed to:
1. Enforce type safety at runtime
2. Keep money exact (Decimal quantized to cents, never float)
3. Be serializable for storage and logging
4. Separate stored entities from derived view-models

DESIGN DECISION: Derived fields (current balance, overdue months, payment
status) only exist on the *View models. Stored entities never carry them,
so nothing can mistake a stale derived value for ground truth.
"""

from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from ledger_engine.errors import InconsistentLinkAmount


CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def to_cents(value: Decimal) -> Decimal:
    """Quantize a monetary value to two decimal places."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def at_noon(value: Any) -> Any:
    """Promote a bare date to a datetime at 12:00, leave anything else alone."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time(12, 0))
    return value


def month_key(value: date) -> str:
    """YYYY-MM key for the month containing value."""
    return f"{value.year:04d}-{value.month:02d}"


Money = Annotated[Decimal, AfterValidator(to_cents)]
ReferenceMonth = Annotated[str, Field(pattern=r"^\d{4}-(0[1-9]|1[0-2])$")]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of a money movement."""
    INCOME = "income"
    EXPENSE = "expense"


class CategoryType(str, Enum):
    """Which transaction types a category applies to."""
    INCOME = "income"
    EXPENSE = "expense"
    BOTH = "both"


class ActivityStatus(str, Enum):
    """Membership lifecycle, set by the organization."""
    ATIVO = "Ativo"
    INATIVO = "Inativo"
    DESLIGADO = "Desligado"
    ARQUIVADO = "Arquivado"


class PaymentStatus(str, Enum):
    """
    Dues status of a member.

    CRITICAL: Always derived from dues history. Never stored.
    """
    EM_DIA = "Em Dia"
    ATRASADO = "Atrasado"
    ADIANTADO = "Adiantado"
    DESLIGADO = "Desligado"
    ISENTO = "Isento"
    ARQUIVADO = "Arquivado"
    EM_LICENCA = "Em Licença"


class BillStatus(str, Enum):
    """
    Payable bill status.

    PAID is stored. PENDING/OVERDUE are computed from the due date.
    """
    PENDING = "pending"
    OVERDUE = "overdue"
    PAID = "paid"


class BillSchedule(str, Enum):
    """How a new payable bill is laid out over time."""
    SINGLE = "single"
    INSTALLMENTS = "installments"
    MONTHLY = "monthly"


class DeleteScope(str, Enum):
    """Reach of a bill deletion inside an installment or recurring group."""
    SINGLE = "single"
    THIS_AND_FUTURE = "this-and-future"


class ReportDimension(str, Enum):
    """Grouping dimension for the financial summary."""
    CATEGORY = "category"
    PROJECT = "project"
    TAG = "tag"


# =============================================================================
# LOOKUP ENTITIES
# =============================================================================

class NamedEntity(BaseModel):
    """Base for simple named lookups (payee, project, tag)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)


class Category(NamedEntity):
    """Transaction category."""

    type: CategoryType = Field(
        default=CategoryType.BOTH,
        description="Transaction types this category applies to"
    )


class Payee(NamedEntity):
    """Beneficiary or payer."""
    pass


class Project(NamedEntity):
    """Project a transaction is attributed to."""
    pass


class Tag(NamedEntity):
    """Free-form label; a transaction may carry several."""
    pass


# =============================================================================
# ACCOUNTS & TRANSACTIONS
# =============================================================================

class Account(BaseModel):
    """A bank or cash account owned by the organization."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    initial_balance: Money = Field(
        default=ZERO,
        description="Balance before the first recorded transaction"
    )


class AccountView(Account):
    """Account with its derived balance."""

    current_balance: Money = Field(
        ...,
        description="initial_balance + income - expense"
    )


class Transaction(BaseModel):
    """
    A single money movement on one account.

    A transfer between two owned accounts is represented by two of these
    sharing the same transfer_id.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    description: str = Field(default="", max_length=500)
    type: TransactionType
    amount: Money = Field(..., gt=0)
    date: datetime
    account_id: UUID
    category_id: Optional[UUID] = None
    payee_id: Optional[UUID] = None
    project_id: Optional[UUID] = None
    tag_ids: list[UUID] = Field(default_factory=list)
    comments: Optional[str] = None
    attachment_url: Optional[str] = None

    # Links
    payable_bill_id: Optional[UUID] = None
    transfer_id: Optional[UUID] = None

    @field_validator('date', mode='before')
    @classmethod
    def promote_date(cls, v: Any) -> Any:
        return at_noon(v)

    @property
    def signed_amount(self) -> Decimal:
        """Amount as it affects the account balance."""
        return self.amount if self.type == TransactionType.INCOME else -self.amount


class TransferPair(BaseModel):
    """Both legs of an account transfer."""

    transfer_id: UUID
    outgoing: Transaction
    incoming: Transaction


# =============================================================================
# MEMBERS & DUES
# =============================================================================

class Leave(BaseModel):
    """A leave of absence. Open-ended when end_date is missing."""

    id: UUID = Field(default_factory=uuid4)
    member_id: UUID
    start_date: date
    end_date: Optional[date] = None
    reason: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode='after')
    def validate_dates(self) -> 'Leave':
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("Leave end date cannot be before start date")
        return self

    def covers(self, day: date) -> bool:
        """Is day inside this leave (both ends inclusive)?"""
        if day < self.start_date:
            return False
        return self.end_date is None or day <= self.end_date


class Member(BaseModel):
    """
    A member of the organization as stored.

    monthly_fee may be missing on legacy rows; it is treated as zero.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = None
    phone: Optional[str] = None
    join_date: date
    reactivation_date: Optional[date] = Field(
        default=None,
        description="When set, dues are counted from here instead of join_date"
    )
    monthly_fee: Optional[Money] = Field(default=None, ge=0)
    activity_status: ActivityStatus = ActivityStatus.ATIVO
    is_exempt: bool = False
    leaves: list[Leave] = Field(default_factory=list)

    @property
    def effective_start(self) -> date:
        return self.reactivation_date or self.join_date


class OverdueMonth(BaseModel):
    """One month with an unpaid remainder."""

    month: ReferenceMonth
    amount: Money


class MemberView(Member):
    """Member with derived dues state."""

    payment_status: PaymentStatus
    overdue_months: list[OverdueMonth] = Field(default_factory=list)
    total_due: Money = ZERO
    on_leave: bool = False

    @property
    def overdue_months_count(self) -> int:
        return len(self.overdue_months)

    @model_validator(mode='after')
    def validate_total_due(self) -> 'MemberView':
        expected = sum((m.amount for m in self.overdue_months), ZERO)
        if expected != self.total_due:
            raise ValueError(
                f"total_due {self.total_due} does not match overdue months ({expected})"
            )
        return self


class Payment(BaseModel):
    """A dues payment for one member and one reference month."""

    id: UUID = Field(default_factory=uuid4)
    member_id: UUID
    reference_month: ReferenceMonth
    amount: Money = Field(..., ge=0)
    payment_date: datetime
    comments: Optional[str] = None
    transaction_id: Optional[UUID] = Field(
        default=None,
        description="Income transaction that settled this payment"
    )

    @field_validator('payment_date', mode='before')
    @classmethod
    def promote_date(cls, v: Any) -> Any:
        return at_noon(v)

    @property
    def key(self) -> tuple[UUID, str]:
        return (self.member_id, self.reference_month)


class PaymentLink(BaseModel):
    """Requested association between an income transaction and a dues month."""

    member_id: UUID
    reference_month: ReferenceMonth
    amount: Money = Field(..., gt=0)

    @property
    def key(self) -> tuple[UUID, str]:
        return (self.member_id, self.reference_month)


# =============================================================================
# PAYABLE BILLS
# =============================================================================

class InstallmentInfo(BaseModel):
    """Position of a bill inside an installment plan."""

    current: int = Field(..., ge=1)
    total: int = Field(..., ge=1)

    @model_validator(mode='after')
    def validate_position(self) -> 'InstallmentInfo':
        if self.current > self.total:
            raise ValueError("Installment number cannot exceed total installments")
        return self


class PayableBill(BaseModel):
    """
    An obligation to pay a third party.

    Only PAID is authoritative in `status`; use status_on() to read
    the effective status of an unpaid bill.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    description: str = Field(..., min_length=1, max_length=500)
    payee_id: Optional[UUID] = None
    category_id: Optional[UUID] = None
    amount: Money = Field(..., gt=0)
    due_date: date
    status: BillStatus = BillStatus.PENDING
    paid_date: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    is_estimate: bool = False

    # Grouping
    installment_info: Optional[InstallmentInfo] = None
    installment_group_id: Optional[UUID] = None
    recurring_id: Optional[UUID] = None

    transaction_id: Optional[UUID] = None

    def status_on(self, today: date) -> BillStatus:
        """pending -> overdue once today is past the due date; paid is terminal."""
        if self.status == BillStatus.PAID:
            return BillStatus.PAID
        return BillStatus.OVERDUE if today > self.due_date else BillStatus.PENDING

    @property
    def group_id(self) -> Optional[UUID]:
        return self.installment_group_id or self.recurring_id


# =============================================================================
# FILTERS & DERIVED RESULTS
# =============================================================================

class TransactionFilter(BaseModel):
    """
    Filter for transaction listings and reports.

    All criteria are optional and combined with AND.
    A transaction matches tag_ids only if it carries every listed tag.
    """

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    type: Optional[TransactionType] = None
    account_ids: list[UUID] = Field(default_factory=list)
    category_id: Optional[UUID] = None
    project_id: Optional[UUID] = None
    tag_ids: list[UUID] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_range(self) -> 'TransactionFilter':
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("Filter end date cannot be before start date")
        return self

    def matches(self, trx: Transaction) -> bool:
        day = trx.date.date()
        if self.start_date and day < self.start_date:
            return False
        if self.end_date and day > self.end_date:
            return False
        if self.type and trx.type != self.type:
            return False
        if self.account_ids and trx.account_id not in self.account_ids:
            return False
        if self.category_id and trx.category_id != self.category_id:
            return False
        if self.project_id and trx.project_id != self.project_id:
            return False
        if self.tag_ids and not set(self.tag_ids).issubset(trx.tag_ids):
            return False
        return True


class AccountHistoryEntry(BaseModel):
    """A transaction with the account balance right after it."""

    transaction: Transaction
    running_balance: Money


class AccountHistory(BaseModel):
    """Statement of one account over a period, newest entry first."""

    account_id: UUID
    opening_balance: Money
    closing_balance: Money
    entries: list[AccountHistoryEntry] = Field(default_factory=list)


class LinkResult(BaseModel):
    """
    Outcome of set_payment_links.

    `advisory` is populated when linked payments do not add up to the
    transaction amount. The links are committed either way.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    transaction_id: UUID
    transaction_amount: Money
    linked_total: Money
    created: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)
    deleted: int = Field(default=0, ge=0)
    payments: list[Payment] = Field(default_factory=list)
    advisory: Optional[InconsistentLinkAmount] = None

    @field_serializer('advisory')
    def serialize_advisory(self, advisory: Optional[InconsistentLinkAmount]) -> Optional[dict]:
        if advisory is None:
            return None
        return {
            "message": str(advisory),
            "transaction_amount": str(advisory.transaction_amount),
            "linked_total": str(advisory.linked_total),
            "difference": str(advisory.difference),
        }

    @property
    def is_consistent(self) -> bool:
        return self.advisory is None


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'invalid_value', 'duplicate', 'amount_mismatch')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Shape checks (types, signs, duplicates)
    Stage 2: Semantic checks against the target entities
    """

    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    schema_valid: bool
    semantic_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.schema_valid and self.semantic_valid

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]
