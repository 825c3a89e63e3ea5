"""
Match unmatched bank feed lines to ledger entries.

USAGE:
    python manage.py auto_match_bank_feed --business-id 1
    python manage.py auto_match_bank_feed --bank-account-id 4
"""
from django.core.management.base import BaseCommand, CommandError

from core.models import BankAccount
from core.services.reconciliation_engine import auto_match_bank_account


class Command(BaseCommand):
    help = "Automatically match unmatched bank feed lines to exact-amount ledger entries."

    def add_arguments(self, parser):
        parser.add_argument("--business-id", type=int, help="Match every active bank account of this business.")
        parser.add_argument("--bank-account-id", type=int, help="Match a single bank account.")

    def handle(self, *args, **options):
        accounts = BankAccount.objects.filter(is_active=True).select_related("business", "account")
        if options["bank_account_id"]:
            accounts = accounts.filter(pk=options["bank_account_id"])
        elif options["business_id"]:
            accounts = accounts.filter(business_id=options["business_id"])
        else:
            raise CommandError("Pass --business-id or --bank-account-id.")

        total = 0
        for bank_account in accounts:
            matches = auto_match_bank_account(bank_account)
            total += len(matches)
            self.stdout.write(f"{bank_account.name}: {len(matches)} matched")
        self.stdout.write(self.style.SUCCESS(f"Done. {total} bank lines matched."))
