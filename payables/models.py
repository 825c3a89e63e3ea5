from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import models

if TYPE_CHECKING:
    from django.db.models import Manager


class Supplier(models.Model):
    business = models.ForeignKey(
        "core.Business",
        on_delete=models.CASCADE,
        related_name="suppliers",
    )
    name = models.CharField(max_length=255)
    email = models.EmailField(blank=True)
    bank_branch_code = models.CharField(max_length=7, blank=True, help_text="BSB, e.g. 062-000.")
    bank_account_number = models.CharField(max_length=20, blank=True)
    bank_account_name = models.CharField(
        max_length=255,
        blank=True,
        help_text="Name on the bank account when it differs from the supplier name.",
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.UniqueConstraint(fields=["business", "name"], name="unique_supplier_name_per_business"),
        ]

    def __str__(self):
        return self.name

    @property
    def bank_reference(self) -> str:
        if not self.bank_account_number:
            return ""
        return f"{self.bank_branch_code} {self.bank_account_number}".strip()

    @property
    def payee_name(self) -> str:
        return self.bank_account_name or self.name


class SupplierBill(models.Model):
    """A payable obligation. Outstanding balance is total minus what payment runs have paid."""

    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        POSTED = "POSTED", "Posted"
        VOID = "VOID", "Void"

    business = models.ForeignKey(
        "core.Business",
        on_delete=models.CASCADE,
        related_name="supplier_bills",
    )
    supplier = models.ForeignKey(
        Supplier,
        on_delete=models.PROTECT,
        related_name="bills",
    )
    bill_number = models.CharField(max_length=50)
    issue_date = models.DateField()
    due_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.DRAFT, db_index=True)
    currency = models.CharField(max_length=3)
    description = models.CharField(max_length=255, blank=True)
    total = models.DecimalField(max_digits=12, decimal_places=2)
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    posted_entry = models.ForeignKey(
        "core.JournalEntry",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["due_date", "issue_date", "id"]
        constraints = [
            models.UniqueConstraint(fields=["business", "bill_number"], name="unique_bill_number_per_business"),
            models.CheckConstraint(condition=models.Q(total__gte=0), name="bill_total_non_negative"),
            models.CheckConstraint(
                condition=models.Q(amount_paid__gte=0) & models.Q(amount_paid__lte=models.F("total")),
                name="bill_amount_paid_within_total",
            ),
        ]

    def __str__(self):
        return f"{self.bill_number} – {self.supplier}"

    @property
    def outstanding(self) -> Decimal:
        return (self.total or Decimal("0.00")) - (self.amount_paid or Decimal("0.00"))

    if TYPE_CHECKING:
        id: int
        supplier_id: int
        payment_allocations: Manager["PaymentAllocation"]


class PaymentRun(models.Model):
    """
    A batch of supplier payments settled together from one bank account on one date.

    DRAFT runs collect allocations; completion posts them to the ledger and is final.
    """

    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        COMPLETED = "COMPLETED", "Completed"

    business = models.ForeignKey(
        "core.Business",
        on_delete=models.CASCADE,
        related_name="payment_runs",
    )
    bank_account = models.ForeignKey(
        "core.BankAccount",
        on_delete=models.PROTECT,
        related_name="payment_runs",
    )
    run_date = models.DateField(db_index=True)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.DRAFT, db_index=True)
    notes = models.TextField(blank=True)
    remittance_reference = models.CharField(
        max_length=255,
        blank=True,
        help_text="Reference to a generated remittance advice stored elsewhere.",
    )
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payment_runs_created",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    completed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payment_runs_completed",
    )

    class Meta:
        ordering = ["-run_date", "-id"]

    def __str__(self):
        return f"Payment run {self.pk} ({self.run_date}, {self.status})"

    @property
    def is_draft(self) -> bool:
        return self.status == self.Status.DRAFT

    if TYPE_CHECKING:
        id: int
        bank_account_id: int
        allocations: Manager["PaymentAllocation"]


class PaymentAllocation(models.Model):
    payment_run = models.ForeignKey(
        PaymentRun,
        on_delete=models.CASCADE,
        related_name="allocations",
    )
    bill = models.ForeignKey(
        SupplierBill,
        on_delete=models.PROTECT,
        related_name="payment_allocations",
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    sequence = models.PositiveIntegerField()
    is_open = models.BooleanField(
        default=True,
        help_text="True while the run is a draft; an open allocation reserves the bill.",
    )
    journal_entry = models.ForeignKey(
        "core.JournalEntry",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["sequence", "id"]
        constraints = [
            models.CheckConstraint(condition=models.Q(amount__gt=0), name="payment_allocation_amount_positive"),
            models.UniqueConstraint(fields=["payment_run", "bill"], name="uniq_bill_per_payment_run"),
            models.UniqueConstraint(fields=["payment_run", "sequence"], name="uniq_sequence_per_payment_run"),
            models.UniqueConstraint(
                fields=["bill"],
                condition=models.Q(is_open=True),
                name="uniq_open_allocation_per_bill",
            ),
        ]

    def __str__(self):
        return f"{self.bill} – {self.amount}"

    if TYPE_CHECKING:
        id: int
        bill_id: int
        payment_run_id: int
