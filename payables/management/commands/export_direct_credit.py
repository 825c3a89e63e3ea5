"""
Write the direct credit file of a completed payment run.

USAGE:
    python manage.py export_direct_credit 42 --format ABA --output-dir /tmp
"""
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from core.exceptions import DomainError
from payables.direct_credit import export_direct_credit
from payables.models import PaymentRun


class Command(BaseCommand):
    help = "Export a completed payment run as a bank direct credit file."

    def add_arguments(self, parser):
        parser.add_argument("payment_run_id", type=int)
        parser.add_argument("--format", dest="format_code", help="CSV or ABA (default from settings).")
        parser.add_argument("--output-dir", default=".", help="Directory to write the file into.")

    def handle(self, *args, **options):
        run = PaymentRun.objects.filter(pk=options["payment_run_id"]).first()
        if run is None:
            raise CommandError(f"Payment run {options['payment_run_id']} does not exist.")
        try:
            result = export_direct_credit(run, options["format_code"])
        except DomainError as exc:
            raise CommandError(exc.message) from exc

        path = Path(options["output_dir"]) / result.filename
        path.write_bytes(result.content)
        for warning in result.warnings:
            self.stderr.write(f"warning: {warning.message}")
        self.stdout.write(
            self.style.SUCCESS(f"Wrote {path} ({result.payment_count} payments, total {result.total_amount}).")
        )
