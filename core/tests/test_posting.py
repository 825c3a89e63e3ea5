"""
Tests for the ledger posting engine (core/services/posting.py).
"""
import random
from datetime import date
from decimal import Decimal

from django.test import TestCase

from core.exceptions import InvalidStateError, ValidationError
from core.ledger_services import entry_totals, get_account_balance, unbalanced_entries
from core.models import Account, AuditEvent, FiscalPeriod, JournalEntry, JournalLine, ReversalLink
from core.services.posting import (
    CREDIT,
    DEBIT,
    PostingLine,
    TransactionDraft,
    post_transaction,
    reverse_transaction,
)
from core.tests.helpers import make_business, post_simple


class PostTransactionTests(TestCase):
    def setUp(self):
        self.user, self.business, accounts = make_business("poster")
        self.cash = accounts["cash"]
        self.ap = accounts["ap"]
        self.opex = accounts["opex"]

    def _draft(self, lines, **kwargs):
        return TransactionDraft(
            business=self.business,
            date=kwargs.pop("on", date(2024, 7, 1)),
            description=kwargs.pop("description", "Office supplies"),
            lines=tuple(lines),
            **kwargs,
        )

    def _assert_rejected(self, draft, code):
        entries_before = JournalEntry.objects.count()
        lines_before = JournalLine.objects.count()
        with self.assertRaises(ValidationError) as ctx:
            post_transaction(draft)
        self.assertEqual(ctx.exception.code, code)
        self.assertEqual(JournalEntry.objects.count(), entries_before)
        self.assertEqual(JournalLine.objects.count(), lines_before)
        return ctx.exception

    def test_posts_balanced_entry(self):
        entry = post_transaction(
            self._draft(
                [
                    PostingLine(self.opex, Decimal("120.00"), DEBIT),
                    PostingLine(self.cash, Decimal("120.00"), CREDIT),
                ],
                reference="INV-1",
            ),
            actor=self.user,
        )
        self.assertEqual(entry.lines.count(), 2)
        self.assertEqual(entry_totals(entry), (Decimal("120.00"), Decimal("120.00")))
        self.assertEqual(entry.currency, "AUD")
        self.assertEqual(entry.created_by, self.user)
        self.assertEqual(get_account_balance(self.opex), Decimal("120.00"))
        self.assertEqual(get_account_balance(self.cash), Decimal("-120.00"))
        self.assertTrue(AuditEvent.objects.filter(action="TRANSACTION_POSTED", object_id=str(entry.pk)).exists())

    def test_split_lines_balance(self):
        entry = post_transaction(
            self._draft(
                [
                    PostingLine(self.opex, Decimal("70.25"), DEBIT),
                    PostingLine(self.opex, Decimal("29.75"), DEBIT),
                    PostingLine(self.cash, Decimal("100.00"), CREDIT),
                ]
            )
        )
        self.assertEqual(entry.lines.count(), 3)

    def test_rejects_single_line(self):
        self._assert_rejected(self._draft([PostingLine(self.opex, Decimal("10.00"), DEBIT)]), "too_few_lines")

    def test_rejects_zero_amount(self):
        error = self._assert_rejected(
            self._draft(
                [
                    PostingLine(self.opex, Decimal("0.00"), DEBIT),
                    PostingLine(self.cash, Decimal("0.00"), CREDIT),
                ]
            ),
            "non_positive_amount",
        )
        self.assertEqual(error.detail["line"], 0)

    def test_rejects_negative_amount(self):
        self._assert_rejected(
            self._draft(
                [
                    PostingLine(self.opex, Decimal("-10.00"), DEBIT),
                    PostingLine(self.cash, Decimal("-10.00"), CREDIT),
                ]
            ),
            "non_positive_amount",
        )

    def test_rejects_sub_cent_precision(self):
        error = self._assert_rejected(
            self._draft(
                [
                    PostingLine(self.opex, Decimal("10.005"), DEBIT),
                    PostingLine(self.cash, Decimal("10.005"), CREDIT),
                ]
            ),
            "invalid_precision",
        )
        self.assertEqual(error.detail["line"], 0)

    def test_rejects_amount_too_large_for_the_ledger(self):
        error = self._assert_rejected(
            self._draft(
                [
                    PostingLine(self.opex, Decimal("1e30"), DEBIT),
                    PostingLine(self.cash, Decimal("1e30"), CREDIT),
                ]
            ),
            "amount_too_large",
        )
        self.assertEqual(error.detail["line"], 0)
        self.assertFalse(JournalEntry.objects.filter(business=self.business).exists())

    def test_rejects_unknown_direction(self):
        self._assert_rejected(
            self._draft(
                [
                    PostingLine(self.opex, Decimal("10.00"), "SIDEWAYS"),
                    PostingLine(self.cash, Decimal("10.00"), CREDIT),
                ]
            ),
            "invalid_direction",
        )

    def test_rejects_account_of_other_company(self):
        _, _, other_accounts = make_business("stranger")
        self._assert_rejected(
            self._draft(
                [
                    PostingLine(self.opex, Decimal("10.00"), DEBIT),
                    PostingLine(other_accounts["cash"], Decimal("10.00"), CREDIT),
                ]
            ),
            "foreign_account",
        )

    def test_rejects_inactive_account(self):
        retired = Account.objects.create(
            business=self.business,
            code="5999",
            name="Retired",
            type=Account.AccountType.EXPENSE,
            is_active=False,
        )
        self._assert_rejected(
            self._draft(
                [
                    PostingLine(retired, Decimal("10.00"), DEBIT),
                    PostingLine(self.cash, Decimal("10.00"), CREDIT),
                ]
            ),
            "inactive_account",
        )

    def test_rejects_one_cent_imbalance(self):
        error = self._assert_rejected(
            self._draft(
                [
                    PostingLine(self.opex, Decimal("100.00"), DEBIT),
                    PostingLine(self.cash, Decimal("99.99"), CREDIT),
                ]
            ),
            "unbalanced",
        )
        self.assertEqual(error.detail["difference"], Decimal("0.01"))

    def test_rejects_locked_period(self):
        FiscalPeriod.objects.create(
            business=self.business,
            start_date=date(2024, 7, 1),
            end_date=date(2024, 7, 31),
            is_locked=True,
        )
        self._assert_rejected(
            self._draft(
                [
                    PostingLine(self.opex, Decimal("10.00"), DEBIT),
                    PostingLine(self.cash, Decimal("10.00"), CREDIT),
                ],
                on=date(2024, 7, 15),
            ),
            "period_locked",
        )

    def test_open_period_and_undefined_dates_are_allowed(self):
        FiscalPeriod.objects.create(business=self.business, start_date=date(2024, 7, 1), end_date=date(2024, 7, 31))
        post_simple(self.business, self.opex, self.cash, "10.00", on=date(2024, 7, 15))
        post_simple(self.business, self.opex, self.cash, "10.00", on=date(2030, 1, 1))
        self.assertEqual(JournalEntry.objects.filter(business=self.business).count(), 2)

    def test_posting_key_is_idempotent(self):
        first = post_simple(self.business, self.opex, self.cash, "55.00", posting_key="import:1")
        second = post_simple(self.business, self.opex, self.cash, "55.00", posting_key="import:1")
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(JournalEntry.objects.filter(posting_key="import:1").count(), 1)

    def test_source_document_is_recorded(self):
        source = post_simple(self.business, self.opex, self.cash, "10.00")
        entry = post_simple(self.business, self.opex, self.cash, "5.00", source=source)
        self.assertEqual(entry.source_object, source)

    def test_entries_and_lines_are_immutable(self):
        entry = post_simple(self.business, self.opex, self.cash, "10.00")
        entry.description = "Edited"
        with self.assertRaises(InvalidStateError):
            entry.save()
        with self.assertRaises(InvalidStateError):
            entry.delete()
        line = entry.lines.first()
        line.debit = Decimal("11.00")
        with self.assertRaises(InvalidStateError):
            line.save()
        entry.refresh_from_db()
        self.assertEqual(entry.description, "Test entry")

    def test_randomized_drafts_post_only_when_balanced(self):
        rng = random.Random(20240701)
        accounts = [self.cash, self.ap, self.opex]
        for index in range(60):
            debit_count = rng.randint(1, 3)
            credit_count = rng.randint(1, 3)
            debits = [Decimal(rng.randint(1, 500_000)) / 100 for _ in range(debit_count)]
            credits = [Decimal(rng.randint(1, 500_000)) / 100 for _ in range(credit_count - 1)]
            remainder = sum(debits) - sum(credits, Decimal("0"))
            if remainder <= 0:
                continue
            credits.append(remainder)
            skew = rng.choice([Decimal("0"), Decimal("0.01"), Decimal("-0.01")])
            credits[0] += skew
            if credits[0] <= 0:
                continue
            lines = [PostingLine(rng.choice(accounts), amount, DEBIT) for amount in debits]
            lines += [PostingLine(rng.choice(accounts), amount, CREDIT) for amount in credits]
            draft = self._draft(lines, description=f"Random {index}")
            if skew:
                with self.assertRaises(ValidationError) as ctx:
                    post_transaction(draft)
                self.assertEqual(ctx.exception.code, "unbalanced")
            else:
                entry = post_transaction(draft)
                total_debit, total_credit = entry_totals(entry)
                self.assertEqual(total_debit, total_credit)
        self.assertEqual(unbalanced_entries(self.business), [])


class ReverseTransactionTests(TestCase):
    def setUp(self):
        self.user, self.business, accounts = make_business("reverser")
        self.cash = accounts["cash"]
        self.opex = accounts["opex"]
        self.entry = post_simple(self.business, self.opex, self.cash, "80.00", description="Stationery")

    def test_reversal_flips_every_line(self):
        reversing = reverse_transaction(self.entry, reason="Duplicate", actor=self.user)
        self.assertEqual(reversing.entry_type, JournalEntry.EntryType.REVERSAL)
        self.assertEqual(reversing.reference, f"REV-{self.entry.pk}")
        original_lines = {(line.account_id, line.debit, line.credit) for line in self.entry.lines.all()}
        flipped_lines = {(line.account_id, line.credit, line.debit) for line in reversing.lines.all()}
        self.assertEqual(original_lines, flipped_lines)
        self.assertEqual(get_account_balance(self.cash), Decimal("0"))
        self.assertEqual(get_account_balance(self.opex), Decimal("0"))
        link = ReversalLink.objects.get(original_entry=self.entry)
        self.assertEqual(link.reversing_entry, reversing)
        self.assertEqual(link.reason, "Duplicate")
        self.assertTrue(self.entry.is_reversed)

    def test_original_is_untouched(self):
        reverse_transaction(self.entry, reason="Duplicate")
        self.entry.refresh_from_db()
        self.assertEqual(self.entry.description, "Stationery")
        self.assertEqual(self.entry.lines.count(), 2)

    def test_second_reversal_is_refused(self):
        reverse_transaction(self.entry, reason="Duplicate")
        with self.assertRaises(InvalidStateError) as ctx:
            reverse_transaction(self.entry, reason="Again")
        self.assertEqual(ctx.exception.code, "already_reversed")
        self.assertEqual(ReversalLink.objects.count(), 1)

    def test_reversal_cannot_be_reversed(self):
        reversing = reverse_transaction(self.entry, reason="Duplicate")
        with self.assertRaises(InvalidStateError) as ctx:
            reverse_transaction(reversing, reason="Undo")
        self.assertEqual(ctx.exception.code, "reversal_of_reversal")

    def test_reversal_into_locked_period_is_refused(self):
        FiscalPeriod.objects.create(
            business=self.business,
            start_date=date(2024, 7, 1),
            end_date=date(2024, 7, 31),
            is_locked=True,
        )
        with self.assertRaises(ValidationError) as ctx:
            reverse_transaction(self.entry, reason="Late")
        self.assertEqual(ctx.exception.code, "period_locked")
        reversing = reverse_transaction(self.entry, reason="Late", date=date(2024, 8, 1))
        self.assertEqual(reversing.date, date(2024, 8, 1))

    def test_reversal_works_after_account_is_deactivated(self):
        Account.objects.filter(pk=self.opex.pk).update(is_active=False)
        reversing = reverse_transaction(self.entry, reason="Closing account")
        self.assertEqual(reversing.lines.count(), 2)
