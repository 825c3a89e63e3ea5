from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.contrib.contenttypes.fields import GenericForeignKey
from django.contrib.contenttypes.models import ContentType
from django.db import models

from .exceptions import InvalidStateError, ValidationError

if TYPE_CHECKING:
    from django.db.models import Manager


class Business(models.Model):
    name = models.CharField(max_length=255, unique=True)
    currency = models.CharField(max_length=3)
    owner_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="businesses",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = "Businesses"
        constraints = [
            models.UniqueConstraint(
                fields=["owner_user"],
                name="uniq_business_per_owner",
            ),
        ]

    def __str__(self):
        return self.name


class Account(models.Model):
    class AccountType(models.TextChoices):
        ASSET = "ASSET", "Asset"
        LIABILITY = "LIABILITY", "Liability"
        EQUITY = "EQUITY", "Equity"
        INCOME = "INCOME", "Income"
        EXPENSE = "EXPENSE", "Expense"

    business = models.ForeignKey(
        "core.Business",
        on_delete=models.CASCADE,
        related_name="accounts",
    )
    code = models.CharField(
        max_length=20,
        help_text="Short code like 1010, 2000, etc.",
    )
    name = models.CharField(max_length=255)
    type = models.CharField(
        max_length=10,
        choices=AccountType.choices,
    )
    is_active = models.BooleanField(default=True)
    description = models.TextField(blank=True)

    class Meta:
        ordering = ["type", "code", "name"]
        constraints = [
            models.UniqueConstraint(
                fields=["business", "code"],
                name="unique_account_code_per_business",
            )
        ]

    def __str__(self):
        return f"{self.code} – {self.name}" if self.code else self.name


class FiscalPeriod(models.Model):
    """Accounting period; postings dated inside a locked period are refused."""

    business = models.ForeignKey(
        "core.Business",
        on_delete=models.CASCADE,
        related_name="fiscal_periods",
    )
    start_date = models.DateField()
    end_date = models.DateField()
    is_locked = models.BooleanField(default=False)
    locked_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-start_date"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_date__gte=models.F("start_date")),
                name="fiscal_period_dates_ordered",
            ),
        ]

    def __str__(self):
        state = "locked" if self.is_locked else "open"
        return f"{self.start_date} – {self.end_date} ({state})"


class BankAccount(models.Model):
    """
    Company bank account used to pay supplier bills and to receive the bank feed.

    The remaining fields are the bank-file settings needed for direct credit files.
    """

    business = models.ForeignKey(
        "core.Business",
        on_delete=models.CASCADE,
        related_name="bank_accounts",
    )
    name = models.CharField(
        max_length=255,
        help_text="e.g. 'ANZ Business Cheque'",
    )
    currency = models.CharField(max_length=3)
    account = models.OneToOneField(
        "core.Account",
        on_delete=models.PROTECT,
        related_name="bank_account",
        help_text="Ledger account the bank balance is posted to.",
    )
    bank_code = models.CharField(
        max_length=3,
        blank=True,
        help_text="Financial institution abbreviation, e.g. 'ANZ'.",
    )
    branch_code = models.CharField(max_length=7, blank=True, help_text="BSB / bank-branch code.")
    account_number = models.CharField(max_length=20, blank=True)
    user_identifier = models.CharField(
        max_length=6,
        blank=True,
        help_text="User identification number issued by the bank for direct entry.",
    )
    remitter_name = models.CharField(max_length=32, blank=True)
    file_description = models.CharField(max_length=12, default="PAYMENTS")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = [("business", "name")]
        ordering = ["name"]

    def __str__(self):
        return self.name

    if TYPE_CHECKING:
        id: int
        account_id: int
        bank_transactions: Manager["BankTransaction"]


class JournalEntry(models.Model):
    """
    A ledger transaction. Balanced and immutable once posted; corrections are made with
    a reversing entry (see ReversalLink), never by editing.
    """

    class EntryType(models.TextChoices):
        PAYMENT = "PAYMENT", "Payment"
        BILL = "BILL", "Supplier bill"
        REVERSAL = "REVERSAL", "Reversal"
        MANUAL = "MANUAL", "Manual journal"
        ADJUSTMENT = "ADJUSTMENT", "Adjustment"

    business = models.ForeignKey(
        "core.Business",
        on_delete=models.CASCADE,
        related_name="journal_entries",
    )
    date = models.DateField(db_index=True)
    entry_type = models.CharField(max_length=12, choices=EntryType.choices, default=EntryType.MANUAL)
    description = models.CharField(max_length=255)
    reference = models.CharField(max_length=100, blank=True)
    currency = models.CharField(max_length=3)
    created_at = models.DateTimeField(auto_now_add=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="journal_entries_created",
    )
    source_content_type = models.ForeignKey(
        ContentType,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
    )
    source_object_id = models.PositiveIntegerField(null=True, blank=True)
    source_object = GenericForeignKey("source_content_type", "source_object_id")
    posting_key = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        db_index=True,
    )

    class Meta:
        ordering = ["-date", "-id"]
        verbose_name_plural = "Journal entries"
        constraints = [
            models.UniqueConstraint(
                fields=["business", "posting_key"],
                condition=models.Q(posting_key__isnull=False),
                name="unique_posting_key_per_business",
            )
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise InvalidStateError(
                "Posted journal entries are immutable; post a reversal instead.",
                journal_entry_id=self.pk,
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise InvalidStateError(
            "Posted journal entries cannot be deleted; post a reversal instead.",
            journal_entry_id=self.pk,
        )

    def check_balance(self):
        totals = self.lines.aggregate(
            total_debit=models.Sum("debit"),
            total_credit=models.Sum("credit"),
        )
        total_debit = totals["total_debit"] or Decimal("0.00")
        total_credit = totals["total_credit"] or Decimal("0.00")
        if total_debit != total_credit:
            raise ValidationError(
                f"Unbalanced journal entry (debits={total_debit}, credits={total_credit}).",
                code="unbalanced",
                journal_entry_id=self.pk,
                debits=total_debit,
                credits=total_credit,
            )
        if total_debit == Decimal("0.00"):
            raise ValidationError("Journal entry has no value.", code="empty_entry", journal_entry_id=self.pk)

    @property
    def is_reversed(self) -> bool:
        return ReversalLink.objects.filter(original_entry_id=self.pk).exists()

    def __str__(self):
        return f"{self.date} – {self.description}"

    if TYPE_CHECKING:
        id: int
        lines: Manager["JournalLine"]


class JournalLine(models.Model):
    journal_entry = models.ForeignKey(
        JournalEntry,
        on_delete=models.CASCADE,
        related_name="lines",
    )
    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name="journal_lines",
    )
    debit = models.DecimalField(max_digits=19, decimal_places=4, default=Decimal("0.0000"))
    credit = models.DecimalField(max_digits=19, decimal_places=4, default=Decimal("0.0000"))
    description = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(debit__gte=0) & models.Q(credit__gte=0),
                name="jl_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(debit=0) | models.Q(credit=0),
                name="jl_single_side",
            ),
            models.CheckConstraint(
                condition=models.Q(debit__gt=0) | models.Q(credit__gt=0),
                name="jl_non_zero",
            ),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise InvalidStateError("Journal lines are immutable.", journal_line_id=self.pk)
        super().save(*args, **kwargs)

    @property
    def signed_amount(self) -> Decimal:
        return (self.debit or Decimal("0")) - (self.credit or Decimal("0"))


class ReversalLink(models.Model):
    original_entry = models.OneToOneField(
        JournalEntry,
        on_delete=models.PROTECT,
        related_name="reversal_link",
    )
    reversing_entry = models.OneToOneField(
        JournalEntry,
        on_delete=models.PROTECT,
        related_name="reverses_link",
    )
    reason = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.original_entry_id} reversed by {self.reversing_entry_id}"


class BankTransaction(models.Model):
    """A bank feed item: one line of an externally reported bank statement."""

    bank_account = models.ForeignKey(
        BankAccount,
        on_delete=models.CASCADE,
        related_name="bank_transactions",
    )
    date = models.DateField(db_index=True)
    description = models.CharField(max_length=512)
    amount = models.DecimalField(
        max_digits=19,
        decimal_places=4,
        help_text="Positive = deposit, negative = withdrawal",
    )
    external_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
    )
    imported_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ("bank_account", "external_id")
        ordering = ["-date", "-id"]

    def __str__(self):
        return f"{self.date} – {self.description}"

    if TYPE_CHECKING:
        id: int
        bank_account_id: int
        matches: Manager["BankReconciliationMatch"]


class BankReconciliationMatch(models.Model):
    """
    Append-only log linking bank feed items to journal entries.

    Superseded matches are kept with ``is_active=False``; the partial unique constraint
    guarantees at most one active match per feed item.
    """

    class MatchType(models.TextChoices):
        EXACT_AMOUNT = "EXACT_AMOUNT", "Exact amount"
        MANUAL = "MANUAL", "Manual"
        RULE_BASED = "RULE_BASED", "Rule based"
        MANY_TO_ONE = "MANY_TO_ONE", "Several feed items to one entry"

    business = models.ForeignKey(
        "core.Business",
        on_delete=models.CASCADE,
        related_name="reconciliation_matches",
    )
    bank_transaction = models.ForeignKey(
        BankTransaction,
        on_delete=models.PROTECT,
        related_name="matches",
    )
    journal_entry = models.ForeignKey(
        JournalEntry,
        on_delete=models.PROTECT,
        related_name="bank_matches",
    )
    match_type = models.CharField(
        max_length=20,
        choices=MatchType.choices,
        default=MatchType.MANUAL,
    )
    is_active = models.BooleanField(default=True)
    notes = models.CharField(max_length=500, blank=True)

    matched_at = models.DateTimeField()
    matched_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="bank_matches_made",
    )
    unmatched_at = models.DateTimeField(null=True, blank=True)
    unmatched_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="bank_matches_removed",
    )

    class Meta:
        ordering = ["-matched_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["bank_transaction"],
                condition=models.Q(is_active=True),
                name="uniq_active_match_per_feed_item",
            ),
        ]
        indexes = [
            models.Index(fields=["bank_transaction", "matched_at"], name="brm_item_matched_idx"),
            models.Index(fields=["business", "is_active"], name="brm_business_active_idx"),
            models.Index(fields=["journal_entry"], name="brm_entry_idx"),
        ]

    def __str__(self):
        state = "active" if self.is_active else "superseded"
        return f"{self.bank_transaction_id} -> {self.journal_entry_id} ({self.match_type}, {state})"

    if TYPE_CHECKING:
        id: int
        bank_transaction_id: int
        journal_entry_id: int


class AuditEvent(models.Model):
    business = models.ForeignKey(
        "core.Business",
        on_delete=models.CASCADE,
        related_name="audit_events",
    )
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    action = models.CharField(max_length=64, db_index=True)
    object_type = models.CharField(max_length=64)
    object_id = models.CharField(max_length=64, blank=True)
    message = models.CharField(max_length=500, blank=True)
    extra = models.JSONField(blank=True, default=dict)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["object_type", "object_id"], name="audit_object_idx"),
        ]

    def __str__(self):
        return f"{self.action} {self.object_type}#{self.object_id}"
