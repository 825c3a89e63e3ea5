import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import List, Optional

from django.conf import settings

from core.exceptions import ConflictError
from core.models import BankAccount, BankReconciliationMatch, BankTransaction, JournalEntry, JournalLine
from core.services.bank_reconciliation import BankReconciliationService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    journal_entry: JournalEntry
    line: JournalLine
    day_distance: int
    amount_delta: Decimal

    @property
    def sort_key(self):
        return (self.day_distance, self.amount_delta, self.journal_entry.pk)


class ReconciliationEngine:
    """
    Finds ledger entries that explain a bank feed item and records automatic matches.

    Candidates are entries in the bank account's currency, dated within the configured
    window of the feed item, with a line on the bank ledger account whose signed amount
    equals the feed amount. Ranking: closest date, then smallest amount delta, then
    lowest entry id.
    """

    AMOUNT_TOLERANCE = Decimal("0.00")

    def __init__(self, bank_account: BankAccount, *, date_window_days: Optional[int] = None):
        self.bank_account = bank_account
        self.business = bank_account.business
        self.ledger_account = bank_account.account
        if date_window_days is None:
            date_window_days = getattr(settings, "RECONCILIATION_DATE_WINDOW_DAYS", 3)
        self.date_window_days = date_window_days

    def get_unmatched_items(self):
        return (
            BankTransaction.objects.filter(bank_account=self.bank_account)
            .exclude(matches__is_active=True)
            .order_by("date", "id")
        )

    def get_candidate_matches(self, bank_line: BankTransaction) -> List[Candidate]:
        window_start = bank_line.date - timedelta(days=self.date_window_days)
        window_end = bank_line.date + timedelta(days=self.date_window_days)

        lines = (
            JournalLine.objects.select_related("journal_entry")
            .filter(
                account=self.ledger_account,
                journal_entry__business=self.business,
                journal_entry__currency=self.bank_account.currency,
                journal_entry__date__range=(window_start, window_end),
            )
            .exclude(journal_entry__entry_type=JournalEntry.EntryType.REVERSAL)
            .exclude(journal_entry__reversal_link__isnull=False)
            .exclude(journal_entry__bank_matches__is_active=True)
            .order_by("journal_entry__date", "id")
        )

        target = bank_line.amount or Decimal("0.00")
        seen = set()
        candidates: List[Candidate] = []
        for line in lines:
            delta = abs(line.signed_amount - target)
            if delta > self.AMOUNT_TOLERANCE:
                continue
            entry = line.journal_entry
            if entry.pk in seen:
                continue
            seen.add(entry.pk)
            candidates.append(
                Candidate(
                    journal_entry=entry,
                    line=line,
                    day_distance=abs((entry.date - bank_line.date).days),
                    amount_delta=delta,
                )
            )
        candidates.sort(key=lambda c: c.sort_key)
        return candidates

    def auto_match(self, bank_line: BankTransaction, *, user=None) -> Optional[BankReconciliationMatch]:
        """Match the best candidate, only when the feed item has no active match."""
        if BankReconciliationService.current_match(bank_line) is not None:
            return None
        candidates = self.get_candidate_matches(bank_line)
        if not candidates:
            return None
        best = candidates[0]
        try:
            return BankReconciliationService.match(
                bank_line,
                best.journal_entry,
                match_type=BankReconciliationMatch.MatchType.EXACT_AMOUNT,
                user=user,
                notes="Automatic match",
                only_if_unmatched=True,
            )
        except ConflictError as exc:
            logger.info(
                "Bank line %s not auto-matched to entry %s: %s", bank_line.pk, best.journal_entry.pk, exc.code
            )
            return None

    def auto_match_all(self, *, user=None) -> List[BankReconciliationMatch]:
        matched = []
        for bank_line in self.get_unmatched_items():
            match = self.auto_match(bank_line, user=user)
            if match is not None:
                matched.append(match)
        logger.info("Auto-matched %s bank lines on account %s", len(matched), self.bank_account.pk)
        return matched


def auto_match(bank_line: BankTransaction, *, user=None) -> Optional[BankReconciliationMatch]:
    return ReconciliationEngine(bank_line.bank_account).auto_match(bank_line, user=user)


def auto_match_bank_account(bank_account: BankAccount, *, user=None) -> List[BankReconciliationMatch]:
    return ReconciliationEngine(bank_account).auto_match_all(user=user)
