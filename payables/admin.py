from django.contrib import admin

from .models import PaymentAllocation, PaymentRun, Supplier, SupplierBill


@admin.register(Supplier)
class SupplierAdmin(admin.ModelAdmin):
    list_display = ("name", "business", "bank_branch_code", "bank_account_number", "is_active")
    search_fields = ("name", "bank_account_number")


@admin.register(SupplierBill)
class SupplierBillAdmin(admin.ModelAdmin):
    list_display = ("bill_number", "supplier", "status", "currency", "total", "amount_paid", "due_date")
    list_filter = ("status", "currency")
    search_fields = ("bill_number", "supplier__name")
    readonly_fields = ("status", "amount_paid", "posted_entry")


class PaymentAllocationInline(admin.TabularInline):
    model = PaymentAllocation
    extra = 0
    can_delete = False
    readonly_fields = ("sequence", "bill", "amount", "is_open", "journal_entry")

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(PaymentRun)
class PaymentRunAdmin(admin.ModelAdmin):
    list_display = ("id", "business", "bank_account", "run_date", "status", "total_amount", "completed_at")
    list_filter = ("status",)
    readonly_fields = ("status", "total_amount", "completed_at", "completed_by", "created_by")
    inlines = [PaymentAllocationInline]
