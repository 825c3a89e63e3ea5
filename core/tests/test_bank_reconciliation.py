"""
Tests for Bank Reconciliation Service
"""
import random
from datetime import date

from django.test import TestCase

from core.exceptions import ConflictError, InvalidStateError, ValidationError
from core.models import AuditEvent, BankReconciliationMatch
from core.services.bank_reconciliation import BankReconciliationService
from core.tests.helpers import make_bank_account, make_business, make_feed_item, post_simple

MatchType = BankReconciliationMatch.MatchType


class BankReconciliationServiceTest(TestCase):
    def setUp(self):
        self.user, self.business, accounts = make_business("reconciler")
        self.cash = accounts["cash"]
        self.opex = accounts["opex"]
        self.bank_account = make_bank_account(self.business, self.cash)
        self.item = make_feed_item(self.bank_account, "-80.00", on=date(2024, 7, 2))
        self.t1 = post_simple(self.business, self.opex, self.cash, "80.00", description="Stationery")
        self.t2 = post_simple(self.business, self.opex, self.cash, "80.00", description="Printer ink")

    def test_match_creates_active_match(self):
        match = BankReconciliationService.match(self.item, self.t1, user=self.user, notes="checked")
        self.assertTrue(match.is_active)
        self.assertEqual(match.business, self.business)
        self.assertEqual(match.matched_by, self.user)
        self.assertEqual(BankReconciliationService.current_match(self.item), match)
        self.assertTrue(AuditEvent.objects.filter(action="BANK_MATCH_CREATED").exists())

    def test_rematch_supersedes_previous_match(self):
        first = BankReconciliationService.match(self.item, self.t1, user=self.user)
        second = BankReconciliationService.match(self.item, self.t2, user=self.user)

        current = BankReconciliationService.current_match(self.item)
        self.assertEqual(current, second)
        self.assertEqual(current.journal_entry, self.t2)

        history = BankReconciliationService.history(self.item)
        self.assertEqual([m.pk for m in history], [second.pk, first.pk])
        first.refresh_from_db()
        self.assertFalse(first.is_active)
        self.assertIsNotNone(first.unmatched_at)
        self.assertEqual(first.unmatched_by, self.user)
        self.assertEqual(BankReconciliationMatch.objects.filter(bank_transaction=self.item, is_active=True).count(), 1)

    def test_rematching_same_entry_keeps_history(self):
        BankReconciliationService.match(self.item, self.t1)
        BankReconciliationService.match(self.item, self.t1, match_type=MatchType.RULE_BASED)
        self.assertEqual(len(BankReconciliationService.history(self.item)), 2)
        self.assertEqual(BankReconciliationService.current_match(self.item).match_type, MatchType.RULE_BASED)

    def test_unmatch_leaves_item_unmatched_with_history(self):
        match = BankReconciliationService.match(self.item, self.t1)
        removed = BankReconciliationService.unmatch(self.item, user=self.user)
        self.assertEqual(removed.pk, match.pk)
        self.assertIsNone(BankReconciliationService.current_match(self.item))
        self.assertEqual(len(BankReconciliationService.history(self.item)), 1)
        removed.refresh_from_db()
        self.assertEqual(removed.unmatched_by, self.user)

    def test_unmatch_without_active_match_is_invalid_state(self):
        with self.assertRaises(InvalidStateError) as ctx:
            BankReconciliationService.unmatch(self.item)
        self.assertEqual(ctx.exception.code, "not_matched")

    def test_entry_matched_elsewhere_conflicts(self):
        other_item = make_feed_item(self.bank_account, "-80.00", on=date(2024, 7, 3))
        BankReconciliationService.match(other_item, self.t1)
        with self.assertRaises(ConflictError) as ctx:
            BankReconciliationService.match(self.item, self.t1)
        self.assertEqual(ctx.exception.detail["bank_transaction_id"], other_item.pk)
        self.assertIsNone(BankReconciliationService.current_match(self.item))

    def test_only_if_unmatched_refuses_to_supersede(self):
        manual = BankReconciliationService.match(self.item, self.t1, user=self.user)
        with self.assertRaises(ConflictError) as ctx:
            BankReconciliationService.match(
                self.item, self.t2, match_type=MatchType.EXACT_AMOUNT, only_if_unmatched=True
            )
        self.assertEqual(ctx.exception.code, "already_matched")
        self.assertEqual(BankReconciliationService.current_match(self.item), manual)
        self.assertEqual(len(BankReconciliationService.history(self.item)), 1)

    def test_many_to_one_may_share_an_entry(self):
        deposit = post_simple(self.business, self.cash, self.opex, "100.00", description="Refund")
        part_one = make_feed_item(self.bank_account, "60.00")
        part_two = make_feed_item(self.bank_account, "40.00")
        BankReconciliationService.match(part_one, deposit, match_type=MatchType.MANY_TO_ONE)
        BankReconciliationService.match(part_two, deposit, match_type=MatchType.MANY_TO_ONE)
        self.assertEqual(deposit.bank_matches.filter(is_active=True).count(), 2)

    def test_entry_of_another_company_is_rejected(self):
        _, other_business, other_accounts = make_business("outsider")
        foreign_entry = post_simple(other_business, other_accounts["opex"], other_accounts["cash"], "80.00")
        with self.assertRaises(ValidationError) as ctx:
            BankReconciliationService.match(self.item, foreign_entry)
        self.assertEqual(ctx.exception.code, "foreign_entry")

    def test_unknown_match_type_is_rejected(self):
        with self.assertRaises(ValidationError):
            BankReconciliationService.match(self.item, self.t1, match_type="GUESS")

    def test_statistics_count_active_matches_only(self):
        other_item = make_feed_item(self.bank_account, "-80.00")
        third_item = make_feed_item(self.bank_account, "-80.00")
        t3 = post_simple(self.business, self.opex, self.cash, "80.00")
        BankReconciliationService.match(self.item, self.t1, match_type=MatchType.EXACT_AMOUNT)
        BankReconciliationService.match(other_item, self.t2)
        BankReconciliationService.match(third_item, t3)
        BankReconciliationService.unmatch(third_item)

        stats = BankReconciliationService.statistics(self.business)
        self.assertEqual(stats[MatchType.EXACT_AMOUNT], 1)
        self.assertEqual(stats[MatchType.MANUAL], 1)
        self.assertEqual(stats[MatchType.RULE_BASED], 0)
        self.assertEqual(stats[MatchType.MANY_TO_ONE], 0)

    def test_random_match_sequences_keep_one_active_match(self):
        rng = random.Random(7)
        entries = [self.t1, self.t2]
        match_calls = 0
        for _ in range(40):
            if rng.random() < 0.7:
                BankReconciliationService.match(self.item, rng.choice(entries))
                match_calls += 1
            elif BankReconciliationService.current_match(self.item) is not None:
                BankReconciliationService.unmatch(self.item)
            active = BankReconciliationMatch.objects.filter(bank_transaction=self.item, is_active=True).count()
            self.assertLessEqual(active, 1)
        self.assertEqual(len(BankReconciliationService.history(self.item)), match_calls)
