from django.contrib import admin

from .models import (
    Account,
    AuditEvent,
    BankAccount,
    BankReconciliationMatch,
    BankTransaction,
    Business,
    FiscalPeriod,
    JournalEntry,
    JournalLine,
    ReversalLink,
)


admin.site.site_header = "Settlement – System Admin"
admin.site.site_title = "Settlement System Admin"


def _superuser_only(request):
    return request.user.is_active and request.user.is_superuser


admin.site.has_permission = _superuser_only


class ReadOnlyAdmin(admin.ModelAdmin):
    """Ledger and audit rows are append-only; the admin may look but not touch."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Business)
class BusinessAdmin(admin.ModelAdmin):
    list_display = ("name", "currency", "owner_user", "created_at")
    search_fields = ("name",)


@admin.register(Account)
class AccountAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "type", "business", "is_active")
    list_filter = ("type", "is_active")
    search_fields = ("code", "name")
    ordering = ("business", "code")


@admin.register(FiscalPeriod)
class FiscalPeriodAdmin(admin.ModelAdmin):
    list_display = ("business", "start_date", "end_date", "is_locked")
    list_filter = ("is_locked",)


@admin.register(BankAccount)
class BankAccountAdmin(admin.ModelAdmin):
    list_display = ("name", "business", "currency", "bank_code", "branch_code", "account_number", "is_active")
    search_fields = ("name", "account_number")


class JournalLineInline(admin.TabularInline):
    model = JournalLine
    extra = 0
    can_delete = False
    readonly_fields = ("account", "debit", "credit", "description")

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(JournalEntry)
class JournalEntryAdmin(ReadOnlyAdmin):
    list_display = ("id", "date", "entry_type", "description", "reference", "business")
    list_filter = ("entry_type",)
    search_fields = ("description", "reference", "posting_key")
    inlines = [JournalLineInline]


@admin.register(ReversalLink)
class ReversalLinkAdmin(ReadOnlyAdmin):
    list_display = ("original_entry", "reversing_entry", "reason", "created_at")


@admin.register(BankTransaction)
class BankTransactionAdmin(admin.ModelAdmin):
    list_display = ("date", "description", "amount", "bank_account", "external_id")
    search_fields = ("description", "external_id")


@admin.register(BankReconciliationMatch)
class BankReconciliationMatchAdmin(ReadOnlyAdmin):
    list_display = ("bank_transaction", "journal_entry", "match_type", "is_active", "matched_at", "unmatched_at")
    list_filter = ("match_type", "is_active")


@admin.register(AuditEvent)
class AuditEventAdmin(ReadOnlyAdmin):
    list_display = ("created_at", "action", "object_type", "object_id", "actor", "business")
    list_filter = ("action",)
    search_fields = ("object_id", "message")
