"""
Complete draft payment runs whose run date has arrived.

USAGE:
    python manage.py complete_due_payment_runs --business-id 1
    python manage.py complete_due_payment_runs --business-id 1 --as-of 2024-07-31
"""
from datetime import date

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from core.models import Business
from payables.services.payment_runs import complete_due_payment_runs


class Command(BaseCommand):
    help = "Complete every draft payment run dated on or before the given day."

    def add_arguments(self, parser):
        parser.add_argument("--business-id", type=int, help="Only this business (default: all).")
        parser.add_argument("--as-of", help="ISO date; defaults to today.")

    def handle(self, *args, **options):
        try:
            as_of = date.fromisoformat(options["as_of"]) if options["as_of"] else timezone.localdate()
        except ValueError as exc:
            raise CommandError(f"Invalid --as-of date: {options['as_of']}") from exc

        businesses = Business.objects.all().order_by("id")
        if options["business_id"]:
            businesses = businesses.filter(pk=options["business_id"])

        failures = 0
        for business in businesses:
            result = complete_due_payment_runs(business, as_of)
            for run_id in result.completed:
                self.stdout.write(f"{business.name}: payment run {run_id} completed")
            for run_id, error in result.failed.items():
                failures += 1
                self.stderr.write(f"{business.name}: payment run {run_id} failed: {error['message']}")
        if failures:
            raise CommandError(f"{failures} payment run(s) could not be completed.")
        self.stdout.write(self.style.SUCCESS("Done."))
