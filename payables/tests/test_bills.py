from datetime import date
from decimal import Decimal

from django.test import TestCase

from core.exceptions import ConflictError, InvalidStateError, ValidationError
from core.ledger_services import get_account_balance
from core.models import JournalEntry, ReversalLink
from core.tests.helpers import make_bank_account, make_business
from payables.models import SupplierBill
from payables.services.bills import create_supplier_bill, payable_bills, post_supplier_bill, void_supplier_bill
from payables.services.payment_runs import add_allocations, create_payment_run
from payables.tests.helpers import make_posted_bill, make_supplier


class SupplierBillTests(TestCase):
    def setUp(self):
        self.user, self.business, accounts = make_business("billing")
        self.ap = accounts["ap"]
        self.opex = accounts["opex"]
        self.bank_account = make_bank_account(self.business, accounts["cash"])
        self.supplier = make_supplier(self.business)

    def test_posting_a_bill_credits_payables(self):
        bill = create_supplier_bill(
            business=self.business,
            supplier=self.supplier,
            bill_number="B-100",
            total="330.00",
            issue_date=date(2024, 6, 1),
        )
        entry = post_supplier_bill(bill, actor=self.user)
        bill.refresh_from_db()
        self.assertEqual(bill.status, SupplierBill.Status.POSTED)
        self.assertEqual(bill.posted_entry, entry)
        self.assertEqual(entry.entry_type, JournalEntry.EntryType.BILL)
        self.assertEqual(get_account_balance(self.ap), Decimal("330.00"))
        self.assertEqual(get_account_balance(self.opex), Decimal("330.00"))

    def test_posting_twice_is_refused(self):
        bill = make_posted_bill(self.business, self.supplier, "B-101", "10.00")
        with self.assertRaises(InvalidStateError):
            post_supplier_bill(bill)

    def test_bill_total_must_be_positive(self):
        with self.assertRaises(ValidationError):
            create_supplier_bill(
                business=self.business,
                supplier=self.supplier,
                bill_number="B-0",
                total="0",
                issue_date=date(2024, 6, 1),
            )

    def test_bill_total_must_fit_the_bill_column(self):
        with self.assertRaises(ValidationError) as ctx:
            create_supplier_bill(
                business=self.business,
                supplier=self.supplier,
                bill_number="B-BIG",
                total=Decimal("1e30"),
                issue_date=date(2024, 6, 1),
            )
        self.assertEqual(ctx.exception.code, "amount_too_large")
        self.assertFalse(SupplierBill.objects.filter(bill_number="B-BIG").exists())

    def test_duplicate_bill_number_conflicts(self):
        make_posted_bill(self.business, self.supplier, "B-102", "10.00")
        with self.assertRaises(ConflictError):
            create_supplier_bill(
                business=self.business,
                supplier=self.supplier,
                bill_number="B-102",
                total="20.00",
                issue_date=date(2024, 6, 1),
            )

    def test_void_reverses_the_posting(self):
        bill = make_posted_bill(self.business, self.supplier, "B-103", "75.00")
        void_supplier_bill(bill, reason="Sent in error", actor=self.user)
        bill.refresh_from_db()
        self.assertEqual(bill.status, SupplierBill.Status.VOID)
        self.assertTrue(ReversalLink.objects.filter(original_entry=bill.posted_entry).exists())
        self.assertEqual(get_account_balance(self.ap), Decimal("0"))

    def test_void_refused_while_in_draft_run(self):
        bill = make_posted_bill(self.business, self.supplier, "B-104", "75.00")
        run = create_payment_run(business=self.business, bank_account=self.bank_account, run_date=date(2024, 7, 1))
        add_allocations(run, [bill])
        with self.assertRaises(InvalidStateError) as ctx:
            void_supplier_bill(bill)
        self.assertEqual(ctx.exception.code, "in_open_payment_run")

    def test_void_refused_after_payment(self):
        bill = make_posted_bill(self.business, self.supplier, "B-105", "75.00")
        SupplierBill.objects.filter(pk=bill.pk).update(amount_paid=Decimal("10.00"))
        with self.assertRaises(InvalidStateError) as ctx:
            void_supplier_bill(bill)
        self.assertEqual(ctx.exception.code, "payments_applied")

    def test_payable_bills_excludes_reserved_and_paid(self):
        open_bill = make_posted_bill(self.business, self.supplier, "B-106", "10.00")
        reserved = make_posted_bill(self.business, self.supplier, "B-107", "10.00")
        paid = make_posted_bill(self.business, self.supplier, "B-108", "10.00")
        SupplierBill.objects.filter(pk=paid.pk).update(amount_paid=Decimal("10.00"))
        create_supplier_bill(
            business=self.business,
            supplier=self.supplier,
            bill_number="B-109",
            total="10.00",
            issue_date=date(2024, 6, 1),
        )
        run = create_payment_run(business=self.business, bank_account=self.bank_account, run_date=date(2024, 7, 1))
        add_allocations(run, [reserved])
        self.assertEqual(list(payable_bills(self.business)), [open_bill])
