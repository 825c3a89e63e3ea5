from decimal import Decimal

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("core", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Supplier",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("email", models.EmailField(blank=True, max_length=254)),
                ("bank_branch_code", models.CharField(blank=True, help_text="BSB, e.g. 062-000.", max_length=7)),
                ("bank_account_number", models.CharField(blank=True, max_length=20)),
                ("bank_account_name", models.CharField(blank=True, help_text="Name on the bank account when it differs from the supplier name.", max_length=255)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("business", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="suppliers", to="core.business")),
            ],
            options={
                "ordering": ["name"],
                "constraints": [models.UniqueConstraint(fields=("business", "name"), name="unique_supplier_name_per_business")],
            },
        ),
        migrations.CreateModel(
            name="SupplierBill",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("bill_number", models.CharField(max_length=50)),
                ("issue_date", models.DateField()),
                ("due_date", models.DateField(blank=True, null=True)),
                ("status", models.CharField(choices=[("DRAFT", "Draft"), ("POSTED", "Posted"), ("VOID", "Void")], db_index=True, default="DRAFT", max_length=10)),
                ("currency", models.CharField(max_length=3)),
                ("description", models.CharField(blank=True, max_length=255)),
                ("total", models.DecimalField(decimal_places=2, max_digits=12)),
                ("amount_paid", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("business", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="supplier_bills", to="core.business")),
                ("posted_entry", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="+", to="core.journalentry")),
                ("supplier", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="bills", to="payables.supplier")),
            ],
            options={
                "ordering": ["due_date", "issue_date", "id"],
                "constraints": [
                    models.UniqueConstraint(fields=("business", "bill_number"), name="unique_bill_number_per_business"),
                    models.CheckConstraint(condition=models.Q(("total__gte", 0)), name="bill_total_non_negative"),
                    models.CheckConstraint(condition=models.Q(("amount_paid__gte", 0), ("amount_paid__lte", models.F("total"))), name="bill_amount_paid_within_total"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentRun",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("run_date", models.DateField(db_index=True)),
                ("status", models.CharField(choices=[("DRAFT", "Draft"), ("COMPLETED", "Completed")], db_index=True, default="DRAFT", max_length=10)),
                ("notes", models.TextField(blank=True)),
                ("remittance_reference", models.CharField(blank=True, help_text="Reference to a generated remittance advice stored elsewhere.", max_length=255)),
                ("total_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("bank_account", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="payment_runs", to="core.bankaccount")),
                ("business", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="payment_runs", to="core.business")),
                ("completed_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="payment_runs_completed", to=settings.AUTH_USER_MODEL)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="payment_runs_created", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-run_date", "-id"],
            },
        ),
        migrations.CreateModel(
            name="PaymentAllocation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("sequence", models.PositiveIntegerField()),
                ("is_open", models.BooleanField(default=True, help_text="True while the run is a draft; an open allocation reserves the bill.")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("bill", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="payment_allocations", to="payables.supplierbill")),
                ("journal_entry", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="+", to="core.journalentry")),
                ("payment_run", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="allocations", to="payables.paymentrun")),
            ],
            options={
                "ordering": ["sequence", "id"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="payment_allocation_amount_positive"),
                    models.UniqueConstraint(fields=("payment_run", "bill"), name="uniq_bill_per_payment_run"),
                    models.UniqueConstraint(fields=("payment_run", "sequence"), name="uniq_sequence_per_payment_run"),
                    models.UniqueConstraint(condition=models.Q(("is_open", True)), fields=("bill",), name="uniq_open_allocation_per_bill"),
                ],
            },
        ),
    ]
