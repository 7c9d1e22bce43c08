"""
Linking Engine

Keeps transactions, dues payments and payable bills consistent with each
other. Every command here touches more than one entity, so every command
runs inside the store's atomic boundary.

DESIGN DECISION: Failure semantics are split in three.
- ValidationError / ReferentialConflict / NotFound: the caller asked for
  something invalid. Raised unchanged, nothing written.
- InconsistentLinkAmount: advisory. Attached to the LinkResult and
  audited as a warning, the links are committed.
- Anything else mid-sequence: the store is restored and a single
  LinkOperationFailed is raised. Transient StorageErrors are retried
  first, always from the last committed state.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar, Union
from uuid import UUID, uuid4

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ledger_engine.audit import AuditLogger, create_correlation_id
from ledger_engine.config import LedgerSettings, get_settings
from ledger_engine.errors import (
    AlreadyLinked,
    InconsistentLinkAmount,
    LedgerError,
    LinkOperationFailed,
    NotFound,
    ReferentialConflict,
    ValidationError,
)
from ledger_engine.linking.schedule import build_bill_schedule
from ledger_engine.models.ledger import (
    ZERO,
    Account,
    BillSchedule,
    BillStatus,
    Category,
    CategoryType,
    DeleteScope,
    LinkResult,
    PayableBill,
    Payment,
    PaymentLink,
    Transaction,
    TransactionType,
    TransferPair,
    at_noon,
    to_cents,
)
from ledger_engine.services.storage import LedgerStoreInterface, StorageError
from ledger_engine.validation import LinkValidator, coerce_links, raise_for_errors


T = TypeVar("T")

ChangeListener = Callable[[str, UUID], None]


def bill_status(bill: PayableBill, today: Optional[date] = None) -> BillStatus:
    """Effective status of a bill: paid, or pending/overdue by due date."""
    return bill.status_on(today or date.today())


def _as_money(value: Union[Decimal, int, float, str]) -> Decimal:
    return to_cents(Decimal(str(value)))


class LinkingEngine:
    """
    Executes linking commands against a ledger store.

    on_change(entity_type, entity_id) is called for every entity written,
    after the command has committed.
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[LinkValidator] = None,
        settings: Optional[LedgerSettings] = None,
        on_change: Optional[ChangeListener] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger
        self._audit = audit_logger or AuditLogger()
        self._validator = validator or LinkValidator(self._settings)
        self._on_change = on_change
        self._logger = structlog.get_logger(__name__)

    # =========================================================================
    # INFRASTRUCTURE
    # =========================================================================

    async def _run_atomic(
        self,
        operation: str,
        fn: Callable[[], Awaitable[T]],
        entity_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> T:
        """
        Run fn inside store.atomic(), retrying transient storage failures.

        Raises:
            LedgerError: Unchanged, from validation or referential checks
            LinkOperationFailed: For anything else, after rollback
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._settings.max_link_attempts),
            wait=wait_exponential(
                multiplier=self._settings.link_retry_backoff_seconds,
                max=10,
            ),
            retry=retry_if_exception_type(StorageError),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        self._logger.warning(
                            "link_operation_retry",
                            operation=operation,
                            attempt=attempt.retry_state.attempt_number,
                        )
                    async with self._store.atomic():
                        result = await fn()
            return result
        except LedgerError as e:
            self._logger.info(
                "link_operation_rejected",
                operation=operation,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise
        except Exception as e:
            self._logger.error(
                "link_operation_failed",
                operation=operation,
                error=str(e),
                exc_info=True,
            )
            await self._audit.log_operation_failed(
                operation=operation,
                error_message=str(e),
                entity_id=entity_id,
                correlation_id=correlation_id,
            )
            raise LinkOperationFailed(operation, e) from e

    def _notify(self, entity_type: str, *entity_ids: Optional[UUID]) -> None:
        if self._on_change is None:
            return
        for entity_id in entity_ids:
            if entity_id is not None:
                self._on_change(entity_type, entity_id)

    async def _require_transaction(self, transaction_id: UUID) -> Transaction:
        trx = await self._store.get_transaction(transaction_id)
        if trx is None:
            raise NotFound("transaction", transaction_id)
        return trx

    async def _require_bill(self, bill_id: UUID) -> PayableBill:
        bill = await self._store.get_payable_bill(bill_id)
        if bill is None:
            raise NotFound("payable_bill", bill_id)
        return bill

    async def _require_account(self, account_id: UUID) -> Account:
        account = await self._store.get_account(account_id)
        if account is None:
            raise NotFound("account", account_id)
        return account

    # =========================================================================
    # DUES PAYMENTS
    # =========================================================================

    async def set_payment_links(
        self,
        transaction_id: UUID,
        links: Iterable[Union[PaymentLink, dict[str, Any]]],
        transaction_date: Optional[Union[date, datetime]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> LinkResult:
        """
        Make the payments linked to an income transaction match `links`.

        Existing payments are matched by (member_id, reference_month):
        matched rows are updated, new keys are created, keys no longer
        requested are deleted. Calling twice with the same input changes
        nothing the second time.

        Args:
            transaction_id: Income transaction being reconciled
            links: Requested (member, month, amount) set; may be empty
            transaction_date: payment_date for the rows; defaults to the
                transaction date

        Returns:
            LinkResult with counts and, when more than one link does not add
            up to the transaction amount, an InconsistentLinkAmount advisory

        Raises:
            ValidationError: Expense transaction, duplicate keys, amount <= 0
            NotFound: Unknown transaction or member
        """
        requested = coerce_links(links)
        correlation_id = correlation_id or create_correlation_id()
        touched_members: set[UUID] = set()

        async def apply() -> LinkResult:
            trx = await self._require_transaction(transaction_id)
            raise_for_errors(self._validator.validate_payment_links(trx, requested))

            for link in requested:
                if await self._store.get_member(link.member_id) is None:
                    raise NotFound("member", link.member_id)

            payment_date = at_noon(transaction_date) if transaction_date else trx.date

            existing: dict[tuple[UUID, str], Payment] = {}
            stale: list[Payment] = []
            for payment in await self._store.list_payments(transaction_id=trx.id):
                if payment.key in existing:
                    stale.append(payment)
                else:
                    existing[payment.key] = payment

            created = updated = 0
            kept: list[Payment] = []
            for link in requested:
                current = existing.pop(link.key, None)
                if current is None:
                    payment = Payment(
                        member_id=link.member_id,
                        reference_month=link.reference_month,
                        amount=link.amount,
                        payment_date=payment_date,
                        transaction_id=trx.id,
                    )
                    await self._store.save_payment(payment)
                    created += 1
                elif current.amount != link.amount or current.payment_date != payment_date:
                    payment = current.model_copy(
                        update={"amount": link.amount, "payment_date": payment_date}
                    )
                    await self._store.save_payment(payment)
                    updated += 1
                else:
                    payment = current
                kept.append(payment)
                touched_members.add(link.member_id)

            stale.extend(existing.values())
            for payment in stale:
                await self._store.delete_payment(payment.id)
                touched_members.add(payment.member_id)

            linked_total = sum((p.amount for p in kept), ZERO)
            advisory = None
            if (
                len(kept) > 1
                and abs(linked_total - trx.amount) > self._settings.link_amount_tolerance
            ):
                advisory = InconsistentLinkAmount(trx.id, trx.amount, linked_total)

            return LinkResult(
                transaction_id=trx.id,
                transaction_amount=trx.amount,
                linked_total=linked_total,
                created=created,
                updated=updated,
                deleted=len(stale),
                payments=kept,
                advisory=advisory,
            )

        result = await self._run_atomic(
            "set_payment_links", apply, transaction_id, correlation_id
        )

        await self._audit.log_payment_links_set(
            transaction_id=result.transaction_id,
            created=result.created,
            updated=result.updated,
            deleted=result.deleted,
            linked_total=result.linked_total,
            correlation_id=correlation_id,
        )
        if result.advisory is not None:
            await self._audit.log_link_amount_mismatch(
                transaction_id=result.transaction_id,
                transaction_amount=result.transaction_amount,
                linked_total=result.linked_total,
                correlation_id=correlation_id,
            )

        self._notify("transaction", transaction_id)
        self._notify("member", *touched_members)
        return result

    # =========================================================================
    # PAYABLE BILLS
    # =========================================================================

    async def link_to_bill(
        self,
        transaction_id: UUID,
        bill_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Transaction, PayableBill]:
        """
        Link an expense transaction to the bill it pays.

        The bill becomes paid on the transaction date. The bill's
        description, amount, category and payee are copied onto the
        transaction; later edits to the bill do not flow through.

        Raises:
            ValidationError: The transaction is not an expense
            AlreadyLinked: Either side is linked to something else
            NotFound: Unknown transaction or bill
        """
        correlation_id = correlation_id or create_correlation_id()

        async def apply() -> tuple[Transaction, PayableBill, bool]:
            trx = await self._require_transaction(transaction_id)
            bill = await self._require_bill(bill_id)
            raise_for_errors(self._validator.validate_bill_link(trx, bill))

            if bill.transaction_id == trx.id and trx.payable_bill_id == bill.id:
                return trx, bill, False
            if bill.transaction_id is not None and bill.transaction_id != trx.id:
                raise AlreadyLinked(
                    bill.id,
                    bill.transaction_id,
                    f"Bill {bill.id} is already linked to transaction {bill.transaction_id}",
                )
            if trx.payable_bill_id is not None and trx.payable_bill_id != bill.id:
                raise AlreadyLinked(
                    trx.payable_bill_id,
                    trx.id,
                    f"Transaction {trx.id} is already linked to bill {trx.payable_bill_id}",
                )

            snapshot: dict[str, Any] = {
                "description": bill.description,
                "amount": bill.amount,
                "payable_bill_id": bill.id,
            }
            if bill.category_id is not None:
                snapshot["category_id"] = bill.category_id
            if bill.payee_id is not None:
                snapshot["payee_id"] = bill.payee_id

            linked_trx = trx.model_copy(update=snapshot)
            paid_bill = bill.model_copy(update={
                "status": BillStatus.PAID,
                "paid_date": trx.date,
                "transaction_id": trx.id,
            })
            await self._store.save_transaction(linked_trx)
            await self._store.save_payable_bill(paid_bill)
            return linked_trx, paid_bill, True

        trx, bill, changed = await self._run_atomic(
            "link_to_bill", apply, bill_id, correlation_id
        )

        if changed:
            await self._audit.log_bill_linked(
                bill_id=bill.id,
                transaction_id=trx.id,
                amount=bill.amount,
                correlation_id=correlation_id,
            )
            self._notify("transaction", trx.id)
            self._notify("payable_bill", bill.id)
        return trx, bill

    async def unlink_bill(
        self,
        bill_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> PayableBill:
        """
        Undo a bill link. The bill goes back to pending/overdue.

        The transaction keeps the values snapshotted at link time.
        Unlinking a bill with no transaction is a no-op.
        """
        correlation_id = correlation_id or create_correlation_id()

        async def apply() -> tuple[PayableBill, Optional[UUID]]:
            bill = await self._require_bill(bill_id)
            transaction_id = bill.transaction_id
            if transaction_id is None:
                return bill, None

            trx = await self._store.get_transaction(transaction_id)
            if trx is not None and trx.payable_bill_id == bill.id:
                await self._store.save_transaction(
                    trx.model_copy(update={"payable_bill_id": None})
                )

            unlinked = bill.model_copy(update={
                "status": BillStatus.PENDING,
                "paid_date": None,
                "transaction_id": None,
            })
            await self._store.save_payable_bill(unlinked)
            return unlinked, transaction_id

        bill, transaction_id = await self._run_atomic(
            "unlink_bill", apply, bill_id, correlation_id
        )

        if transaction_id is not None:
            await self._audit.log_bill_unlinked(
                bill_id=bill.id,
                transaction_id=transaction_id,
                correlation_id=correlation_id,
            )
            self._notify("transaction", transaction_id)
            self._notify("payable_bill", bill.id)
        return bill

    async def pay_bill(
        self,
        bill_id: UUID,
        account_id: UUID,
        paid_amount: Union[Decimal, int, float, str],
        payment_date: Union[date, datetime],
        attachment_url: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Transaction, PayableBill]:
        """
        Record the payment of a bill.

        Creates the expense "Pagamento: <description>" on the account and
        links it to the bill in one unit. The bill amount becomes the
        amount actually paid.

        Raises:
            ValidationError: paid_amount <= 0
            AlreadyLinked: The bill already has a transaction
            NotFound: Unknown bill or account
        """
        amount = _as_money(paid_amount)
        if amount <= ZERO:
            raise ValidationError("Paid amount must be positive", field="paid_amount")
        correlation_id = correlation_id or create_correlation_id()

        async def apply() -> tuple[Transaction, PayableBill]:
            bill = await self._require_bill(bill_id)
            await self._require_account(account_id)
            if bill.transaction_id is not None:
                raise AlreadyLinked(
                    bill.id,
                    bill.transaction_id,
                    f"Bill {bill.id} is already paid by transaction {bill.transaction_id}",
                )

            trx = Transaction(
                description=f"Pagamento: {bill.description}",
                type=TransactionType.EXPENSE,
                amount=amount,
                date=payment_date,
                account_id=account_id,
                category_id=bill.category_id,
                payee_id=bill.payee_id,
                attachment_url=attachment_url,
                payable_bill_id=bill.id,
            )
            paid_bill = bill.model_copy(update={
                "status": BillStatus.PAID,
                "paid_date": trx.date,
                "transaction_id": trx.id,
                "amount": trx.amount,
            })
            await self._store.save_transaction(trx)
            await self._store.save_payable_bill(paid_bill)
            return trx, paid_bill

        trx, bill = await self._run_atomic("pay_bill", apply, bill_id, correlation_id)

        await self._audit.log_bill_paid(
            bill_id=bill.id,
            transaction_id=trx.id,
            paid_amount=trx.amount,
            correlation_id=correlation_id,
        )
        self._notify("transaction", trx.id)
        self._notify("payable_bill", bill.id)
        self._notify("account", account_id)
        return trx, bill

    async def create_bills(
        self,
        description: str,
        amount: Union[Decimal, int, float, str],
        first_due_date: date,
        schedule: Union[BillSchedule, str] = BillSchedule.SINGLE,
        installments: Optional[int] = None,
        payee_id: Optional[UUID] = None,
        category_id: Optional[UUID] = None,
        notes: Optional[str] = None,
        is_estimate: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> list[PayableBill]:
        """
        Create a single bill, an installment plan or a monthly series.

        Monthly series span `recurring_bill_months` months.
        """
        try:
            schedule = BillSchedule(schedule)
        except ValueError as e:
            raise ValidationError(f"Unknown bill schedule: {schedule}", field="schedule") from e

        bills = build_bill_schedule(
            description=description,
            amount=Decimal(str(amount)),
            first_due_date=first_due_date,
            schedule=schedule,
            installments=installments,
            months=self._settings.recurring_bill_months,
            payee_id=payee_id,
            category_id=category_id,
            notes=notes,
            is_estimate=is_estimate,
        )
        correlation_id = correlation_id or create_correlation_id()

        async def apply() -> list[PayableBill]:
            for bill in bills:
                await self._store.save_payable_bill(bill)
            return bills

        await self._run_atomic("create_bills", apply, bills[0].id, correlation_id)

        await self._audit.log_bills_created(
            bill_ids=[b.id for b in bills],
            schedule=schedule.value,
            group_id=bills[0].group_id,
            correlation_id=correlation_id,
        )
        self._notify("payable_bill", *(b.id for b in bills))
        return bills

    async def delete_bill_with_scope(
        self,
        bill_id: UUID,
        scope: Optional[Union[DeleteScope, str]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[UUID]:
        """
        Delete a bill, or a bill and its later siblings.

        this-and-future removes every bill of the same installment group
        (or recurring series) due on or after this bill. A bill in no group
        is deleted alone whatever the scope. A grouped bill needs an
        explicit scope; without one nothing is deleted.

        Returns:
            Ids of the deleted bills, by due date

        Raises:
            ReferentialConflict: Some targeted bill is linked to a
                transaction, or no scope was given for a grouped bill.
                Nothing is deleted.
            NotFound: Unknown bill
        """
        if scope is not None:
            try:
                scope = DeleteScope(scope)
            except ValueError as e:
                raise ValidationError(f"Unknown delete scope: {scope}", field="scope") from e
        correlation_id = correlation_id or create_correlation_id()

        async def apply() -> tuple[DeleteScope, list[UUID]]:
            bill = await self._require_bill(bill_id)

            effective = scope
            if effective is None:
                if bill.group_id is not None:
                    raise ReferentialConflict(
                        f"Bill {bill.id} belongs to an installment plan or recurring "
                        f"series; choose '{DeleteScope.SINGLE.value}' or "
                        f"'{DeleteScope.THIS_AND_FUTURE.value}'"
                    )
                effective = DeleteScope.SINGLE

            targets = [bill]
            if effective == DeleteScope.THIS_AND_FUTURE:
                if bill.installment_group_id is not None:
                    group = await self._store.list_payable_bills(
                        installment_group_id=bill.installment_group_id
                    )
                    targets = [b for b in group if b.due_date >= bill.due_date]
                elif bill.recurring_id is not None:
                    group = await self._store.list_payable_bills(
                        recurring_id=bill.recurring_id
                    )
                    targets = [b for b in group if b.due_date >= bill.due_date]

            linked = [b for b in targets if b.transaction_id is not None]
            if linked:
                raise ReferentialConflict(
                    f"{len(linked)} bill(s) in the selection are linked to "
                    f"transactions; unlink them first (e.g. {linked[0].id})"
                )

            targets.sort(key=lambda b: b.due_date)
            for target in targets:
                await self._store.delete_payable_bill(target.id)
            return effective, [b.id for b in targets]

        effective, deleted = await self._run_atomic(
            "delete_bill_with_scope", apply, bill_id, correlation_id
        )

        await self._audit.log_bills_deleted(
            bill_id=bill_id,
            scope=effective.value,
            deleted_ids=deleted,
            correlation_id=correlation_id,
        )
        self._notify("payable_bill", *deleted)
        return deleted

    # =========================================================================
    # TRANSFERS
    # =========================================================================

    async def _resolve_transfer_category(self) -> Category:
        """Find the transfer category by name, creating it when missing."""
        name = self._settings.transfer_category_name
        for category in await self._store.list_categories():
            if category.name.casefold() == name.casefold():
                return category

        category = Category(name=name, type=CategoryType.BOTH)
        await self._store.save_category(category)
        self._logger.info("transfer_category_created", category_id=str(category.id))
        return category

    async def create_transfer_pair(
        self,
        from_account_id: UUID,
        to_account_id: UUID,
        amount: Union[Decimal, int, float, str],
        date: Union[date, datetime],
        description: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> TransferPair:
        """
        Move money between two owned accounts.

        Creates an expense on the source and an income on the destination,
        same amount and date, sharing one transfer_id.

        Raises:
            InvalidTransfer: Source and destination are the same account
            ValidationError: amount <= 0
            NotFound: Unknown account
        """
        amount = _as_money(amount)
        raise_for_errors(
            self._validator.validate_transfer(from_account_id, to_account_id, amount)
        )
        correlation_id = correlation_id or create_correlation_id()
        suffix = f": {description}" if description else ""

        async def apply() -> TransferPair:
            source = await self._require_account(from_account_id)
            destination = await self._require_account(to_account_id)
            category = await self._resolve_transfer_category()

            transfer_id = uuid4()
            moment = at_noon(date)
            outgoing = Transaction(
                description=f"Transferência para {destination.name}{suffix}",
                type=TransactionType.EXPENSE,
                amount=amount,
                date=moment,
                account_id=source.id,
                category_id=category.id,
                transfer_id=transfer_id,
            )
            incoming = Transaction(
                description=f"Transferência de {source.name}{suffix}",
                type=TransactionType.INCOME,
                amount=amount,
                date=moment,
                account_id=destination.id,
                category_id=category.id,
                transfer_id=transfer_id,
            )
            await self._store.save_transaction(outgoing)
            await self._store.save_transaction(incoming)
            return TransferPair(transfer_id=transfer_id, outgoing=outgoing, incoming=incoming)

        pair = await self._run_atomic(
            "create_transfer_pair", apply, None, correlation_id
        )

        await self._audit.log_transfer_created(
            transfer_id=pair.transfer_id,
            from_account_id=from_account_id,
            to_account_id=to_account_id,
            amount=amount,
            correlation_id=correlation_id,
        )
        self._notify("transaction", pair.outgoing.id, pair.incoming.id)
        self._notify("account", from_account_id, to_account_id)
        return pair
