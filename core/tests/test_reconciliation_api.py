from datetime import date

from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from core.models import BankReconciliationMatch
from core.tests.helpers import make_bank_account, make_business, make_feed_item, post_simple


class ReconciliationApiTests(TestCase):
    def setUp(self):
        self.user, self.business, accounts = make_business("apiuser")
        self.cash = accounts["cash"]
        self.opex = accounts["opex"]
        self.bank_account = make_bank_account(self.business, self.cash)
        self.item = make_feed_item(self.bank_account, "-42.00", on=date(2024, 7, 5))
        self.entry = post_simple(self.business, self.opex, self.cash, "42.00", on=date(2024, 7, 4))
        self.client = APIClient()
        self.client.force_authenticate(self.user)
        self.match_url = reverse("core:bank_transaction_match", args=[self.item.pk])

    def test_match_and_read_back(self):
        response = self.client.post(self.match_url, {"journal_entry_id": self.entry.pk}, format="json")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["match_type"], BankReconciliationMatch.MatchType.MANUAL)

        response = self.client.get(self.match_url)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["match"]["journal_entry"], self.entry.pk)

    def test_conflicting_match_returns_409(self):
        other_item = make_feed_item(self.bank_account, "-42.00", on=date(2024, 7, 5))
        self.client.post(self.match_url, {"journal_entry_id": self.entry.pk}, format="json")
        response = self.client.post(
            reverse("core:bank_transaction_match", args=[other_item.pk]),
            {"journal_entry_id": self.entry.pk},
            format="json",
        )
        self.assertEqual(response.status_code, 409)
        body = response.json()
        self.assertEqual(body["error"], "ConflictError")
        self.assertEqual(body["code"], "entry_already_matched")

    def test_unmatch_without_match_returns_409(self):
        response = self.client.delete(self.match_url)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "not_matched")

    def test_history_lists_superseded_matches(self):
        second = post_simple(self.business, self.opex, self.cash, "42.00", on=date(2024, 7, 5))
        self.client.post(self.match_url, {"journal_entry_id": self.entry.pk}, format="json")
        self.client.post(self.match_url, {"journal_entry_id": second.pk}, format="json")
        response = self.client.get(reverse("core:bank_transaction_match_history", args=[self.item.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["is_active"] for row in response.json()], [True, False])

    def test_candidates_and_auto_match(self):
        response = self.client.get(reverse("core:bank_transaction_candidates", args=[self.item.pk]))
        self.assertEqual([row["journal_entry"] for row in response.json()], [self.entry.pk])

        response = self.client.post(reverse("core:bank_account_auto_match", args=[self.bank_account.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["matched"], 1)

        stats = self.client.get(reverse("core:reconciliation_statistics")).json()
        self.assertEqual(stats[BankReconciliationMatch.MatchType.EXACT_AMOUNT], 1)

    def test_other_company_items_are_not_visible(self):
        _, other_business, other_accounts = make_business("nosy")
        other_bank = make_bank_account(other_business, other_accounts["cash"])
        foreign_item = make_feed_item(other_bank, "-1.00")
        response = self.client.get(reverse("core:bank_transaction_match", args=[foreign_item.pk]))
        self.assertEqual(response.status_code, 404)

    def test_requires_authentication(self):
        response = APIClient().get(self.match_url)
        self.assertIn(response.status_code, (401, 403))
