"""
Bank Reconciliation Service

Links bank feed items to journal entries. Matches are never deleted: a new match
deactivates the previous one, so every feed item keeps its full match history while
exactly zero or one match is current.
"""

import logging
from typing import Optional

from django.db import transaction
from django.db.models import Count
from django.utils import timezone

from core.exceptions import ConflictError, InvalidStateError, ValidationError, translate_storage_errors
from core.models import BankReconciliationMatch, BankTransaction, JournalEntry
from core.services.audit import log_event

logger = logging.getLogger(__name__)

MatchType = BankReconciliationMatch.MatchType


def _lock_feed_item(bank_transaction: BankTransaction) -> BankTransaction:
    return (
        BankTransaction.objects.select_for_update()
        .select_related("bank_account__business")
        .get(pk=bank_transaction.pk)
    )


def _lock_entry(journal_entry: JournalEntry) -> JournalEntry:
    return JournalEntry.objects.select_for_update().get(pk=journal_entry.pk)


def _user_or_none(user):
    return user if getattr(user, "pk", None) else None


class BankReconciliationService:
    """
    Match, unmatch and inspect reconciliation decisions for bank feed items.
    """

    @staticmethod
    @translate_storage_errors("This bank line was matched concurrently; re-fetch and retry.")
    @transaction.atomic
    def match(
        bank_transaction: BankTransaction,
        journal_entry: JournalEntry,
        *,
        match_type: str = MatchType.MANUAL,
        user=None,
        notes: str = "",
        only_if_unmatched: bool = False,
    ) -> BankReconciliationMatch:
        """
        Make ``journal_entry`` the current match for ``bank_transaction``.

        Any existing active match for the feed item is deactivated in the same
        transaction. Unless the match type is MANY_TO_ONE, the journal entry must not be
        the active match of another feed item.

        With ``only_if_unmatched`` the call refuses to supersede an active match; the
        check runs under the feed item lock.
        """
        if match_type not in MatchType.values:
            raise ValidationError(f"Unknown match type {match_type!r}.", code="invalid_match_type")

        item = _lock_feed_item(bank_transaction)
        business = item.bank_account.business
        if journal_entry.business_id != business.pk:
            raise ValidationError(
                "Bank lines can only be matched to journal entries of the same company.",
                code="foreign_entry",
                bank_transaction_id=item.pk,
                journal_entry_id=journal_entry.pk,
            )
        # Lock order: feed item, then journal entry. Serializes the clash check below
        # across feed items matching the same entry.
        journal_entry = _lock_entry(journal_entry)

        if only_if_unmatched:
            current = BankReconciliationMatch.objects.filter(bank_transaction=item, is_active=True).first()
            if current is not None:
                raise ConflictError(
                    "This bank line was matched concurrently.",
                    code="already_matched",
                    bank_transaction_id=item.pk,
                    journal_entry_id=current.journal_entry_id,
                )

        if match_type != MatchType.MANY_TO_ONE:
            clash = (
                BankReconciliationMatch.objects.filter(journal_entry=journal_entry, is_active=True)
                .exclude(bank_transaction=item)
                .first()
            )
            if clash is not None:
                raise ConflictError(
                    "This journal entry is already matched to another bank line.",
                    code="entry_already_matched",
                    journal_entry_id=journal_entry.pk,
                    bank_transaction_id=clash.bank_transaction_id,
                )

        now = timezone.now()
        actor = _user_or_none(user)
        superseded = BankReconciliationMatch.objects.filter(bank_transaction=item, is_active=True).update(
            is_active=False,
            unmatched_at=now,
            unmatched_by=actor,
        )
        if superseded:
            logger.info("Bank line %s: superseding its active match", item.pk)
        match = BankReconciliationMatch.objects.create(
            business=business,
            bank_transaction=item,
            journal_entry=journal_entry,
            match_type=match_type,
            is_active=True,
            notes=(notes or "")[:500],
            matched_at=now,
            matched_by=actor,
        )
        log_event(
            business=business,
            actor=actor,
            action="BANK_MATCH_CREATED",
            obj=match,
            message=f"Bank line {item.pk} matched to entry {journal_entry.pk}",
            match_type=match_type,
            superseded=superseded,
        )
        return match

    @staticmethod
    @translate_storage_errors("This bank line was changed concurrently; re-fetch and retry.")
    @transaction.atomic
    def unmatch(bank_transaction: BankTransaction, *, user=None) -> BankReconciliationMatch:
        """Deactivate the current match of a feed item, leaving it unmatched."""
        item = _lock_feed_item(bank_transaction)
        current = BankReconciliationMatch.objects.filter(bank_transaction=item, is_active=True).first()
        if current is None:
            raise InvalidStateError(
                "This bank line has no active match.",
                code="not_matched",
                bank_transaction_id=item.pk,
            )
        actor = _user_or_none(user)
        current.is_active = False
        current.unmatched_at = timezone.now()
        current.unmatched_by = actor
        current.save(update_fields=["is_active", "unmatched_at", "unmatched_by"])
        log_event(
            business=item.bank_account.business,
            actor=actor,
            action="BANK_MATCH_REMOVED",
            obj=current,
            message=f"Bank line {item.pk} unmatched",
        )
        return current

    @staticmethod
    def current_match(bank_transaction: BankTransaction) -> Optional[BankReconciliationMatch]:
        return (
            BankReconciliationMatch.objects.filter(bank_transaction=bank_transaction, is_active=True)
            .select_related("journal_entry")
            .first()
        )

    @staticmethod
    def history(bank_transaction: BankTransaction) -> list[BankReconciliationMatch]:
        """All matches for the feed item, newest first."""
        return list(
            BankReconciliationMatch.objects.filter(bank_transaction=bank_transaction)
            .select_related("journal_entry")
            .order_by("-matched_at", "-id")
        )

    @staticmethod
    def statistics(business) -> dict[str, int]:
        counts = {value: 0 for value in MatchType.values}
        rows = (
            BankReconciliationMatch.objects.filter(business=business, is_active=True)
            .values("match_type")
            .annotate(total=Count("id"))
        )
        for row in rows:
            counts[row["match_type"]] = row["total"]
        return counts
