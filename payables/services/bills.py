from __future__ import annotations

import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import F

from core.accounting_defaults import ensure_default_accounts, get_payables_account
from core.exceptions import InvalidStateError, ValidationError, translate_storage_errors
from core.models import Account, JournalEntry
from core.money import quantize_money
from core.services.audit import log_event
from core.services.posting import CREDIT, DEBIT, PostingLine, TransactionDraft, post_transaction, reverse_transaction

from payables.models import PaymentAllocation, Supplier, SupplierBill

logger = logging.getLogger(__name__)


@translate_storage_errors("A bill with this number already exists.")
@transaction.atomic
def create_supplier_bill(
    *,
    business,
    supplier: Supplier,
    bill_number: str,
    total,
    issue_date,
    due_date=None,
    currency: str | None = None,
    description: str = "",
) -> SupplierBill:
    if supplier.business_id != business.pk:
        raise ValidationError("Supplier belongs to another company.", code="foreign_supplier", supplier_id=supplier.pk)
    currency = (currency or business.currency).upper()
    # SupplierBill.total is max_digits=12, decimal_places=2.
    amount = quantize_money(total, currency, strict=True, max_integer_digits=10)
    if amount <= 0:
        raise ValidationError("Bill total must be positive.", code="non_positive_amount", total=amount)
    return SupplierBill.objects.create(
        business=business,
        supplier=supplier,
        bill_number=bill_number,
        issue_date=issue_date,
        due_date=due_date,
        currency=currency,
        description=description,
        total=amount,
    )


def _lock_bill(bill: SupplierBill) -> SupplierBill:
    return SupplierBill.objects.select_for_update().select_related("supplier", "business").get(pk=bill.pk)


@transaction.atomic
def post_supplier_bill(bill: SupplierBill, *, expense_account: Account | None = None, actor=None) -> JournalEntry:
    """DR expense / CR accounts payable for the bill total, and mark the bill POSTED."""
    locked = _lock_bill(bill)
    if locked.status != SupplierBill.Status.DRAFT:
        raise InvalidStateError(
            "Only draft bills can be posted.",
            code="bill_not_draft",
            bill_id=locked.pk,
            status=locked.status,
        )
    business = locked.business
    expense_account = expense_account or ensure_default_accounts(business)["opex"]
    entry = post_transaction(
        TransactionDraft(
            business=business,
            date=locked.issue_date,
            description=f"Supplier bill {locked.bill_number} – {locked.supplier.name}",
            lines=(
                PostingLine(account=expense_account, amount=locked.total, direction=DEBIT),
                PostingLine(account=get_payables_account(business), amount=locked.total, direction=CREDIT),
            ),
            entry_type=JournalEntry.EntryType.BILL,
            currency=locked.currency,
            reference=locked.bill_number,
            source=locked,
            posting_key=f"supplier-bill:{locked.pk}:posted",
        ),
        actor=actor,
    )
    locked.status = SupplierBill.Status.POSTED
    locked.posted_entry = entry
    locked.save(update_fields=["status", "posted_entry"])
    bill.status, bill.posted_entry = locked.status, entry
    log_event(business=business, actor=actor, action="SUPPLIER_BILL_POSTED", obj=locked, message=locked.bill_number)
    return entry


@transaction.atomic
def void_supplier_bill(bill: SupplierBill, *, reason: str = "", actor=None) -> SupplierBill:
    """
    Void a bill. A posted bill is voided by reversing its ledger entry.

    Refused once any payment has been applied or while the bill is reserved by a
    draft payment run.
    """
    locked = _lock_bill(bill)
    if locked.status == SupplierBill.Status.VOID:
        raise InvalidStateError("This bill is already void.", code="bill_void", bill_id=locked.pk)
    if locked.amount_paid > 0:
        raise InvalidStateError(
            "Bills with payments applied cannot be voided.",
            code="payments_applied",
            bill_id=locked.pk,
            amount_paid=locked.amount_paid,
        )
    open_allocation = PaymentAllocation.objects.filter(bill=locked, is_open=True).first()
    if open_allocation is not None:
        raise InvalidStateError(
            "This bill is part of a draft payment run; remove it from the run first.",
            code="in_open_payment_run",
            bill_id=locked.pk,
            payment_run_id=open_allocation.payment_run_id,
        )

    if locked.posted_entry_id:
        logger.info("Reversing entry %s for voided bill %s", locked.posted_entry_id, locked.bill_number)
        reverse_transaction(locked.posted_entry, reason=reason or f"Void bill {locked.bill_number}", actor=actor)
    locked.status = SupplierBill.Status.VOID
    locked.save(update_fields=["status"])
    bill.status = locked.status
    log_event(business=locked.business, actor=actor, action="SUPPLIER_BILL_VOIDED", obj=locked, message=reason)
    return locked


def payable_bills(business, *, currency: str | None = None):
    """Posted bills with an outstanding balance that no draft run has reserved."""
    qs = (
        SupplierBill.objects.filter(business=business, status=SupplierBill.Status.POSTED)
        .filter(amount_paid__lt=F("total"))
        .exclude(payment_allocations__is_open=True)
        .select_related("supplier")
    )
    if currency:
        qs = qs.filter(currency=currency.upper())
    return qs.order_by("due_date", "issue_date", "id")


def apply_payment(bill: SupplierBill, amount: Decimal) -> SupplierBill:
    """Increase amount paid on an already locked bill."""
    if amount > bill.outstanding:
        raise ValidationError(
            f"Payment of {amount} exceeds the outstanding balance {bill.outstanding} of bill {bill.bill_number}.",
            code="exceeds_outstanding",
            bill_id=bill.pk,
            amount=amount,
            outstanding=bill.outstanding,
        )
    bill.amount_paid = bill.amount_paid + amount
    bill.save(update_fields=["amount_paid"])
    return bill
