"""
Payment run lifecycle: DRAFT -> COMPLETED.

Every mutating call re-reads the run under a row lock, so allocation changes and
completion are serialized per run. Completion posts one ledger entry per allocation in
``sequence`` order inside a single transaction; if any posting fails nothing is kept
and the run stays DRAFT.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from django.db import transaction
from django.db.models import Max, Sum
from django.utils import timezone

from core.accounting_defaults import get_payables_account
from core.exceptions import (
    ConflictError,
    DomainError,
    InvalidStateError,
    PersistenceError,
    ValidationError,
    translate_storage_errors,
)
from core.models import BankAccount, JournalEntry
from core.money import ZERO, quantize_money
from core.services.audit import log_event
from core.services.posting import CREDIT, DEBIT, PostingLine, TransactionDraft, post_transaction

from payables.models import PaymentAllocation, PaymentRun, SupplierBill
from payables.services.bills import apply_payment

logger = logging.getLogger(__name__)


class PaymentPostingError(ValidationError):
    """An allocation could not be posted; the whole completion was rolled back."""

    default_code = "payment_posting_failed"


@dataclass(frozen=True)
class AllocationRequest:
    bill: SupplierBill
    amount: Decimal | None = None


@dataclass
class DueRunsResult:
    completed: list[int] = field(default_factory=list)
    failed: dict[int, dict] = field(default_factory=dict)


def _lock_run(run: PaymentRun) -> PaymentRun:
    return PaymentRun.objects.select_for_update().select_related("business", "bank_account").get(pk=run.pk)


def _require_draft(run: PaymentRun) -> None:
    if run.status != PaymentRun.Status.DRAFT:
        raise InvalidStateError(
            f"Payment run {run.pk} is {run.status}; only draft runs can be changed.",
            code="run_not_draft",
            payment_run_id=run.pk,
            status=run.status,
        )


def _sync(target: PaymentRun, source: PaymentRun) -> None:
    """Copy the persisted lifecycle fields onto the caller's instance."""
    target.status = source.status
    target.total_amount = source.total_amount
    target.completed_at = source.completed_at
    target.completed_by_id = source.completed_by_id


def _recompute_total(run: PaymentRun) -> Decimal:
    total = run.allocations.aggregate(total=Sum("amount"))["total"] or ZERO
    run.total_amount = total
    run.save(update_fields=["total_amount"])
    return total


def _as_request(item) -> AllocationRequest:
    if isinstance(item, AllocationRequest):
        return item
    if isinstance(item, SupplierBill):
        return AllocationRequest(bill=item)
    bill, amount = item
    return AllocationRequest(bill=bill, amount=amount)


@transaction.atomic
def create_payment_run(*, business, bank_account: BankAccount, run_date, created_by=None, notes: str = "") -> PaymentRun:
    if bank_account.business_id != business.pk:
        raise ValidationError(
            "The bank account belongs to another company.",
            code="foreign_bank_account",
            bank_account_id=bank_account.pk,
        )
    if not bank_account.is_active:
        raise ValidationError("The bank account is inactive.", code="inactive_bank_account", bank_account_id=bank_account.pk)
    run = PaymentRun.objects.create(
        business=business,
        bank_account=bank_account,
        run_date=run_date,
        notes=notes,
        created_by=created_by if getattr(created_by, "pk", None) else None,
    )
    log_event(
        business=business,
        actor=created_by,
        action="PAYMENT_RUN_CREATED",
        obj=run,
        message=f"Payment run for {run_date}",
        bank_account_id=bank_account.pk,
    )
    return run


@translate_storage_errors("A bill in this request was allocated concurrently; re-fetch and retry.")
@transaction.atomic
def add_allocations(run: PaymentRun, bills: Iterable, *, actor=None) -> list[PaymentAllocation]:
    """
    Allocate bills to a draft run, each for its full outstanding balance unless an amount
    is given. Items may be bills, ``(bill, amount)`` pairs or AllocationRequest values.
    Either every item is allocated or none is.
    """
    locked = _lock_run(run)
    _require_draft(locked)
    requests = [_as_request(item) for item in bills]
    if not requests:
        raise ValidationError("No bills were given.", code="no_bills")

    seen: set[int] = set()
    for request in requests:
        if request.bill.pk in seen:
            raise ValidationError(
                f"Bill {request.bill.bill_number} appears twice in the request.",
                code="duplicate_bill",
                bill_id=request.bill.pk,
            )
        seen.add(request.bill.pk)

    currency = locked.bank_account.currency
    next_sequence = (locked.allocations.aggregate(top=Max("sequence"))["top"] or 0) + 1
    created: list[PaymentAllocation] = []
    for request in requests:
        bill = SupplierBill.objects.select_for_update().get(pk=request.bill.pk)
        if bill.business_id != locked.business_id:
            raise ValidationError("Bill belongs to another company.", code="foreign_bill", bill_id=bill.pk)
        if bill.status != SupplierBill.Status.POSTED:
            raise ValidationError(
                f"Bill {bill.bill_number} is {bill.status} and cannot be paid.",
                code="bill_not_payable",
                bill_id=bill.pk,
                status=bill.status,
            )
        if bill.currency != currency:
            raise ValidationError(
                f"Bill {bill.bill_number} is in {bill.currency}; the bank account pays in {currency}.",
                code="currency_mismatch",
                bill_id=bill.pk,
            )
        outstanding = bill.outstanding
        if outstanding <= 0:
            raise ValidationError(f"Bill {bill.bill_number} is fully paid.", code="bill_fully_paid", bill_id=bill.pk)

        reserved = PaymentAllocation.objects.filter(bill=bill, is_open=True).first()
        if reserved is not None:
            raise ConflictError(
                f"Bill {bill.bill_number} is already allocated in draft payment run {reserved.payment_run_id}.",
                code="bill_already_allocated",
                bill_id=bill.pk,
                payment_run_id=reserved.payment_run_id,
            )

        amount = outstanding if request.amount is None else quantize_money(request.amount, currency, strict=True)
        if amount <= 0:
            raise ValidationError("Allocation amount must be positive.", code="non_positive_amount", bill_id=bill.pk)
        if amount > outstanding:
            raise ValidationError(
                f"Allocation of {amount} exceeds the outstanding balance {outstanding} of bill {bill.bill_number}.",
                code="exceeds_outstanding",
                bill_id=bill.pk,
                amount=amount,
                outstanding=outstanding,
            )
        created.append(
            PaymentAllocation.objects.create(
                payment_run=locked,
                bill=bill,
                amount=amount,
                sequence=next_sequence,
            )
        )
        next_sequence += 1

    _recompute_total(locked)
    _sync(run, locked)
    log_event(
        business=locked.business,
        actor=actor,
        action="PAYMENT_RUN_ALLOCATIONS_ADDED",
        obj=locked,
        message=f"{len(created)} bill(s) added",
        bill_ids=[allocation.bill_id for allocation in created],
        total_amount=locked.total_amount,
    )
    return created


@transaction.atomic
def remove_allocation(run: PaymentRun, bill: SupplierBill, *, actor=None) -> None:
    locked = _lock_run(run)
    _require_draft(locked)
    allocation = locked.allocations.filter(bill=bill).first()
    if allocation is None:
        raise ValidationError(
            f"Bill {bill.bill_number} is not part of payment run {locked.pk}.",
            code="not_allocated",
            bill_id=bill.pk,
            payment_run_id=locked.pk,
        )
    allocation.delete()
    _recompute_total(locked)
    _sync(run, locked)
    log_event(
        business=locked.business,
        actor=actor,
        action="PAYMENT_RUN_ALLOCATION_REMOVED",
        obj=locked,
        message=f"Bill {bill.bill_number} removed",
        bill_id=bill.pk,
    )


def _post_allocation(run: PaymentRun, allocation: PaymentAllocation, *, payables_account, actor) -> JournalEntry:
    bill = SupplierBill.objects.select_for_update().select_related("supplier").get(pk=allocation.bill_id)
    if bill.status != SupplierBill.Status.POSTED:
        raise ValidationError(f"Bill {bill.bill_number} is {bill.status}.", code="bill_not_payable", bill_id=bill.pk)
    entry = post_transaction(
        TransactionDraft(
            business=run.business,
            date=run.run_date,
            description=f"Payment run {run.pk}: {bill.supplier.name} bill {bill.bill_number}",
            lines=(
                PostingLine(account=payables_account, amount=allocation.amount, direction=DEBIT),
                PostingLine(account=run.bank_account.account, amount=allocation.amount, direction=CREDIT),
            ),
            entry_type=JournalEntry.EntryType.PAYMENT,
            currency=run.bank_account.currency,
            reference=bill.bill_number,
            source=allocation,
            posting_key=f"payment-run:{run.pk}:allocation:{allocation.pk}",
        ),
        actor=actor,
    )
    apply_payment(bill, allocation.amount)
    return entry


@translate_storage_errors("This payment run was changed concurrently; re-fetch and retry.")
@transaction.atomic
def complete_payment_run(run: PaymentRun, *, actor=None) -> PaymentRun:
    """
    Post every allocation and mark the run COMPLETED.

    Completing an already completed run returns it unchanged. A failed allocation raises
    PaymentPostingError naming the allocation and bill; nothing from the batch is kept.
    """
    locked = _lock_run(run)
    if locked.status == PaymentRun.Status.COMPLETED:
        logger.info("Payment run %s already completed; nothing to do", locked.pk)
        _sync(run, locked)
        return locked

    allocations = list(locked.allocations.select_related("bill").order_by("sequence", "id"))
    if not allocations:
        raise ValidationError(
            "A payment run needs at least one allocation before it can be completed.",
            code="empty_run",
            payment_run_id=locked.pk,
        )

    payables_account = get_payables_account(locked.business)
    posted_total = ZERO
    for allocation in allocations:
        try:
            entry = _post_allocation(locked, allocation, payables_account=payables_account, actor=actor)
        except PersistenceError:
            raise
        except DomainError as exc:
            raise PaymentPostingError(
                f"Allocation {allocation.pk} for bill {allocation.bill.bill_number} could not be posted: {exc.message}",
                allocation_id=allocation.pk,
                bill_id=allocation.bill_id,
                bill_number=allocation.bill.bill_number,
                reason=exc.code,
            ) from exc
        allocation.journal_entry = entry
        allocation.is_open = False
        allocation.save(update_fields=["journal_entry", "is_open"])
        posted_total += allocation.amount

    locked.total_amount = posted_total
    locked.status = PaymentRun.Status.COMPLETED
    locked.completed_at = timezone.now()
    locked.completed_by = actor if getattr(actor, "pk", None) else None
    locked.save(update_fields=["total_amount", "status", "completed_at", "completed_by"])
    _sync(run, locked)
    log_event(
        business=locked.business,
        actor=actor,
        action="PAYMENT_RUN_COMPLETED",
        obj=locked,
        message=f"{len(allocations)} payment(s) posted",
        total_amount=posted_total,
    )
    return locked


def complete_due_payment_runs(business, as_of, *, actor=None) -> DueRunsResult:
    """Complete every draft run dated on or before ``as_of``, one transaction per run."""
    result = DueRunsResult()
    due = PaymentRun.objects.filter(
        business=business,
        status=PaymentRun.Status.DRAFT,
        run_date__lte=as_of,
    ).order_by("run_date", "id")
    for run in due:
        try:
            complete_payment_run(run, actor=actor)
        except DomainError as exc:
            logger.warning("Payment run %s could not be completed: %s", run.pk, exc.message)
            result.failed[run.pk] = exc.as_dict()
        else:
            result.completed.append(run.pk)
    return result
