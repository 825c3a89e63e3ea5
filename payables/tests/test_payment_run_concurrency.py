from datetime import date
from threading import Lock, Thread

from django.db import close_old_connections, connection
from django.test import TransactionTestCase

from core.exceptions import ConflictError, DomainError
from core.models import JournalEntry
from core.tests.helpers import make_bank_account, make_business
from payables.models import PaymentAllocation, PaymentRun, SupplierBill
from payables.services.payment_runs import add_allocations, complete_payment_run, create_payment_run
from payables.tests.helpers import make_posted_bill, make_supplier


class PaymentRunConcurrencyTests(TransactionTestCase):
    def setUp(self):
        self.user, self.business, accounts = make_business("runconcurrency")
        self.bank_account = make_bank_account(self.business, accounts["cash"])
        self.supplier = make_supplier(self.business)
        self.bills = [
            make_posted_bill(self.business, self.supplier, f"C-{ix}", "100.00") for ix in range(3)
        ]

    def _run(self):
        return create_payment_run(business=self.business, bank_account=self.bank_account, run_date=date(2024, 7, 1))

    def _race(self, workers):
        successes: list[int] = []
        failures: list[DomainError] = []
        lock = Lock()

        def worker(ix: int, target):
            close_old_connections()
            try:
                target()
                with lock:
                    successes.append(ix)
            except DomainError as exc:
                with lock:
                    failures.append(exc)
            finally:
                close_old_connections()

        threads = [Thread(target=worker, args=(ix, target)) for ix, target in enumerate(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return successes, failures

    def test_concurrent_completion_posts_once(self):
        if connection.vendor == "sqlite":
            self.skipTest("SQLite locking makes this concurrency test flaky; set DATABASE_URL to a Postgres database.")

        run = self._run()
        add_allocations(run, self.bills)

        successes, failures = self._race([lambda: complete_payment_run(run) for _ in range(5)])

        self.assertEqual(failures, [])
        self.assertEqual(len(successes), 5)
        run.refresh_from_db()
        self.assertEqual(run.status, PaymentRun.Status.COMPLETED)
        postings = JournalEntry.objects.filter(business=self.business, posting_key__startswith=f"payment-run:{run.pk}:")
        self.assertEqual(postings.count(), 3)
        for bill in SupplierBill.objects.filter(pk__in=[b.pk for b in self.bills]):
            self.assertEqual(bill.outstanding, 0)

    def test_same_bill_into_two_runs_only_one_wins(self):
        if connection.vendor == "sqlite":
            self.skipTest("SQLite locking makes this concurrency test flaky; set DATABASE_URL to a Postgres database.")

        bill = self.bills[0]
        runs = [self._run() for _ in range(4)]

        successes, failures = self._race([lambda run=run: add_allocations(run, [bill]) for run in runs])

        self.assertEqual(len(successes), 1)
        self.assertEqual(len(failures), 3)
        self.assertTrue(all(isinstance(exc, ConflictError) for exc in failures))
        self.assertEqual(PaymentAllocation.objects.filter(bill=bill, is_open=True).count(), 1)
