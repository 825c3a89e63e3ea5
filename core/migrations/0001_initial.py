from decimal import Decimal

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("contenttypes", "0002_remove_content_type_name"),
    ]

    operations = [
        migrations.CreateModel(
            name="Business",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255, unique=True)),
                ("currency", models.CharField(max_length=3)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("owner_user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="businesses", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name_plural": "Businesses",
                "constraints": [models.UniqueConstraint(fields=("owner_user",), name="uniq_business_per_owner")],
            },
        ),
        migrations.CreateModel(
            name="Account",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(help_text="Short code like 1010, 2000, etc.", max_length=20)),
                ("name", models.CharField(max_length=255)),
                ("type", models.CharField(choices=[("ASSET", "Asset"), ("LIABILITY", "Liability"), ("EQUITY", "Equity"), ("INCOME", "Income"), ("EXPENSE", "Expense")], max_length=10)),
                ("is_active", models.BooleanField(default=True)),
                ("description", models.TextField(blank=True)),
                ("business", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="accounts", to="core.business")),
            ],
            options={
                "ordering": ["type", "code", "name"],
                "constraints": [models.UniqueConstraint(fields=("business", "code"), name="unique_account_code_per_business")],
            },
        ),
        migrations.CreateModel(
            name="FiscalPeriod",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("start_date", models.DateField()),
                ("end_date", models.DateField()),
                ("is_locked", models.BooleanField(default=False)),
                ("locked_at", models.DateTimeField(blank=True, null=True)),
                ("business", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="fiscal_periods", to="core.business")),
            ],
            options={
                "ordering": ["-start_date"],
                "constraints": [models.CheckConstraint(condition=models.Q(("end_date__gte", models.F("start_date"))), name="fiscal_period_dates_ordered")],
            },
        ),
        migrations.CreateModel(
            name="BankAccount",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(help_text="e.g. 'ANZ Business Cheque'", max_length=255)),
                ("currency", models.CharField(max_length=3)),
                ("bank_code", models.CharField(blank=True, help_text="Financial institution abbreviation, e.g. 'ANZ'.", max_length=3)),
                ("branch_code", models.CharField(blank=True, help_text="BSB / bank-branch code.", max_length=7)),
                ("account_number", models.CharField(blank=True, max_length=20)),
                ("user_identifier", models.CharField(blank=True, help_text="User identification number issued by the bank for direct entry.", max_length=6)),
                ("remitter_name", models.CharField(blank=True, max_length=32)),
                ("file_description", models.CharField(default="PAYMENTS", max_length=12)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("account", models.OneToOneField(help_text="Ledger account the bank balance is posted to.", on_delete=django.db.models.deletion.PROTECT, related_name="bank_account", to="core.account")),
                ("business", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="bank_accounts", to="core.business")),
            ],
            options={
                "ordering": ["name"],
                "unique_together": {("business", "name")},
            },
        ),
        migrations.CreateModel(
            name="JournalEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("date", models.DateField(db_index=True)),
                ("entry_type", models.CharField(choices=[("PAYMENT", "Payment"), ("BILL", "Supplier bill"), ("REVERSAL", "Reversal"), ("MANUAL", "Manual journal"), ("ADJUSTMENT", "Adjustment")], default="MANUAL", max_length=12)),
                ("description", models.CharField(max_length=255)),
                ("reference", models.CharField(blank=True, max_length=100)),
                ("currency", models.CharField(max_length=3)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("source_object_id", models.PositiveIntegerField(blank=True, null=True)),
                ("posting_key", models.CharField(blank=True, db_index=True, max_length=100, null=True)),
                ("business", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="journal_entries", to="core.business")),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="journal_entries_created", to=settings.AUTH_USER_MODEL)),
                ("source_content_type", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, to="contenttypes.contenttype")),
            ],
            options={
                "verbose_name_plural": "Journal entries",
                "ordering": ["-date", "-id"],
                "constraints": [models.UniqueConstraint(condition=models.Q(("posting_key__isnull", False)), fields=("business", "posting_key"), name="unique_posting_key_per_business")],
            },
        ),
        migrations.CreateModel(
            name="JournalLine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("debit", models.DecimalField(decimal_places=4, default=Decimal("0.0000"), max_digits=19)),
                ("credit", models.DecimalField(decimal_places=4, default=Decimal("0.0000"), max_digits=19)),
                ("description", models.CharField(blank=True, max_length=255)),
                ("account", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="journal_lines", to="core.account")),
                ("journal_entry", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="lines", to="core.journalentry")),
            ],
            options={
                "ordering": ["id"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("debit__gte", 0), ("credit__gte", 0)), name="jl_non_negative"),
                    models.CheckConstraint(condition=models.Q(("debit", 0), ("credit", 0), _connector="OR"), name="jl_single_side"),
                    models.CheckConstraint(condition=models.Q(("debit__gt", 0), ("credit__gt", 0), _connector="OR"), name="jl_non_zero"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ReversalLink",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("reason", models.CharField(blank=True, max_length=500)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("original_entry", models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name="reversal_link", to="core.journalentry")),
                ("reversing_entry", models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name="reverses_link", to="core.journalentry")),
            ],
            options={
                "ordering": ["-created_at", "-id"],
            },
        ),
        migrations.CreateModel(
            name="BankTransaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("date", models.DateField(db_index=True)),
                ("description", models.CharField(max_length=512)),
                ("amount", models.DecimalField(decimal_places=4, help_text="Positive = deposit, negative = withdrawal", max_digits=19)),
                ("external_id", models.CharField(blank=True, db_index=True, max_length=255, null=True)),
                ("imported_at", models.DateTimeField(auto_now_add=True)),
                ("bank_account", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="bank_transactions", to="core.bankaccount")),
            ],
            options={
                "ordering": ["-date", "-id"],
                "unique_together": {("bank_account", "external_id")},
            },
        ),
        migrations.CreateModel(
            name="BankReconciliationMatch",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("match_type", models.CharField(choices=[("EXACT_AMOUNT", "Exact amount"), ("MANUAL", "Manual"), ("RULE_BASED", "Rule based"), ("MANY_TO_ONE", "Several feed items to one entry")], default="MANUAL", max_length=20)),
                ("is_active", models.BooleanField(default=True)),
                ("notes", models.CharField(blank=True, max_length=500)),
                ("matched_at", models.DateTimeField()),
                ("unmatched_at", models.DateTimeField(blank=True, null=True)),
                ("bank_transaction", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="matches", to="core.banktransaction")),
                ("business", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="reconciliation_matches", to="core.business")),
                ("journal_entry", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="bank_matches", to="core.journalentry")),
                ("matched_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="bank_matches_made", to=settings.AUTH_USER_MODEL)),
                ("unmatched_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="bank_matches_removed", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-matched_at", "-id"],
                "indexes": [
                    models.Index(fields=["bank_transaction", "matched_at"], name="brm_item_matched_idx"),
                    models.Index(fields=["business", "is_active"], name="brm_business_active_idx"),
                    models.Index(fields=["journal_entry"], name="brm_entry_idx"),
                ],
                "constraints": [models.UniqueConstraint(condition=models.Q(("is_active", True)), fields=("bank_transaction",), name="uniq_active_match_per_feed_item")],
            },
        ),
        migrations.CreateModel(
            name="AuditEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("action", models.CharField(db_index=True, max_length=64)),
                ("object_type", models.CharField(max_length=64)),
                ("object_id", models.CharField(blank=True, max_length=64)),
                ("message", models.CharField(blank=True, max_length=500)),
                ("extra", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("actor", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("business", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="audit_events", to="core.business")),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [models.Index(fields=["object_type", "object_id"], name="audit_object_idx")],
            },
        ),
    ]
