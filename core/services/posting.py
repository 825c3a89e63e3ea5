from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date as date_type
from decimal import Decimal

from django.contrib.contenttypes.models import ContentType
from django.db import transaction

from core.exceptions import InvalidStateError, ValidationError, translate_storage_errors
from core.models import Account, FiscalPeriod, JournalEntry, JournalLine, ReversalLink
from core.money import quantize_money, sum_money
from core.services.audit import log_event

logger = logging.getLogger(__name__)

DEBIT = "DEBIT"
CREDIT = "CREDIT"
DIRECTIONS = (DEBIT, CREDIT)


@dataclass(frozen=True)
class PostingLine:
    account: Account
    amount: Decimal
    direction: str
    description: str = ""


@dataclass(frozen=True)
class TransactionDraft:
    """Everything needed to post one balanced journal entry."""

    business: object
    date: date_type
    description: str
    lines: tuple[PostingLine, ...]
    entry_type: str = JournalEntry.EntryType.MANUAL
    currency: str | None = None
    reference: str = ""
    source: object | None = None
    posting_key: str | None = None

    @property
    def resolved_currency(self) -> str:
        return (self.currency or self.business.currency).upper()


def ensure_period_open(business, on_date) -> None:
    locked = FiscalPeriod.objects.filter(
        business=business,
        start_date__lte=on_date,
        end_date__gte=on_date,
        is_locked=True,
    ).first()
    if locked is not None:
        raise ValidationError(
            f"The accounting period {locked.start_date} – {locked.end_date} is locked.",
            code="period_locked",
            date=on_date,
            fiscal_period_id=locked.pk,
        )


def validate_draft(draft: TransactionDraft, *, allow_inactive_accounts: bool = False) -> list[tuple[PostingLine, Decimal]]:
    """
    Check a draft without touching the ledger.

    Returns (line, quantized amount) pairs. The first violated rule raises ValidationError.
    """
    currency = draft.resolved_currency
    lines = list(draft.lines)
    if len(lines) < 2:
        raise ValidationError(
            "A journal entry needs at least two lines.",
            code="too_few_lines",
            line_count=len(lines),
        )

    normalized: list[tuple[PostingLine, Decimal]] = []
    for index, line in enumerate(lines):
        if line.direction not in DIRECTIONS:
            raise ValidationError(
                f"Line {index} has an unknown direction {line.direction!r}.",
                code="invalid_direction",
                line=index,
            )
        try:
            amount = quantize_money(line.amount, currency, strict=True)
        except ValidationError as exc:
            raise ValidationError(exc.message, code=exc.code, line=index, **exc.detail) from exc
        if amount <= 0:
            raise ValidationError(
                f"Line {index} amount must be greater than zero.",
                code="non_positive_amount",
                line=index,
                amount=amount,
            )
        normalized.append((line, amount))

    for index, (line, _amount) in enumerate(normalized):
        account = line.account
        if account is None or account.business_id != draft.business.pk:
            raise ValidationError(
                f"Line {index} posts to an account of another company.",
                code="foreign_account",
                line=index,
                account_id=getattr(account, "pk", None),
            )
        if not account.is_active and not allow_inactive_accounts:
            raise ValidationError(
                f"Account {account} is inactive.",
                code="inactive_account",
                line=index,
                account_id=account.pk,
            )

    debits = sum_money(amount for line, amount in normalized if line.direction == DEBIT)
    credits = sum_money(amount for line, amount in normalized if line.direction == CREDIT)
    if debits != credits:
        raise ValidationError(
            f"Debits ({debits}) do not equal credits ({credits}).",
            code="unbalanced",
            debits=debits,
            credits=credits,
            difference=debits - credits,
        )

    ensure_period_open(draft.business, draft.date)
    return normalized


def _existing_posting(draft: TransactionDraft) -> JournalEntry | None:
    if not draft.posting_key:
        return None
    return JournalEntry.objects.filter(business=draft.business, posting_key=draft.posting_key).first()


@translate_storage_errors("A journal entry with this posting key was posted concurrently.")
@transaction.atomic
def post_transaction(draft: TransactionDraft, *, actor=None, allow_inactive_accounts: bool = False) -> JournalEntry:
    """
    Persist a balanced journal entry and its lines in one atomic write.

    A draft carrying a posting_key that was already used returns the earlier entry.
    """
    existing = _existing_posting(draft)
    if existing is not None:
        logger.info("Posting key %s already used by entry %s", draft.posting_key, existing.pk)
        return existing

    normalized = validate_draft(draft, allow_inactive_accounts=allow_inactive_accounts)

    source = draft.source
    entry = JournalEntry.objects.create(
        business=draft.business,
        date=draft.date,
        entry_type=draft.entry_type,
        description=draft.description[:255],
        reference=(draft.reference or "")[:100],
        currency=draft.resolved_currency,
        created_by=actor if getattr(actor, "pk", None) else None,
        source_content_type=ContentType.objects.get_for_model(source.__class__) if source is not None else None,
        source_object_id=source.pk if source is not None else None,
        posting_key=draft.posting_key,
    )
    for line, amount in normalized:
        JournalLine.objects.create(
            journal_entry=entry,
            account=line.account,
            debit=amount if line.direction == DEBIT else Decimal("0.00"),
            credit=amount if line.direction == CREDIT else Decimal("0.00"),
            description=line.description[:255],
        )
    entry.check_balance()

    log_event(
        business=draft.business,
        actor=actor,
        action="TRANSACTION_POSTED",
        obj=entry,
        message=entry.description,
        entry_type=entry.entry_type,
        line_count=len(normalized),
    )
    return entry


@translate_storage_errors("This journal entry is already being reversed.")
@transaction.atomic
def reverse_transaction(entry: JournalEntry, *, reason: str = "", actor=None, date: date_type | None = None) -> JournalEntry:
    """
    Post a new entry with every line of ``entry`` flipped, and link the two.

    The original entry is never modified. An entry is reversed at most once and a
    reversing entry cannot itself be reversed.
    """
    original = JournalEntry.objects.select_for_update().get(pk=entry.pk)
    if ReversalLink.objects.filter(original_entry=original).exists():
        raise InvalidStateError(
            "This journal entry has already been reversed.",
            code="already_reversed",
            journal_entry_id=original.pk,
        )
    if ReversalLink.objects.filter(reversing_entry=original).exists():
        raise InvalidStateError(
            "A reversing entry cannot itself be reversed.",
            code="reversal_of_reversal",
            journal_entry_id=original.pk,
        )

    flipped = tuple(
        PostingLine(
            account=line.account,
            amount=line.debit if line.debit > 0 else line.credit,
            direction=CREDIT if line.debit > 0 else DEBIT,
            description=line.description,
        )
        for line in original.lines.select_related("account").order_by("id")
    )
    description = f"Reversal of: {original.description}"
    if reason:
        description = f"{description} ({reason})"

    reversing = post_transaction(
        TransactionDraft(
            business=original.business,
            date=date or original.date,
            description=description,
            lines=flipped,
            entry_type=JournalEntry.EntryType.REVERSAL,
            currency=original.currency,
            reference=f"REV-{original.pk}",
            source=original,
            posting_key=f"reversal:{original.pk}",
        ),
        actor=actor,
        allow_inactive_accounts=True,
    )
    ReversalLink.objects.create(
        original_entry=original,
        reversing_entry=reversing,
        reason=(reason or "")[:500],
        created_by=actor if getattr(actor, "pk", None) else None,
    )
    log_event(
        business=original.business,
        actor=actor,
        action="TRANSACTION_REVERSED",
        obj=original,
        message=reason,
        reversing_entry_id=reversing.pk,
    )
    return reversing
