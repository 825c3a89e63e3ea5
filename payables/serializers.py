from rest_framework import serializers

from .models import PaymentAllocation, PaymentRun, SupplierBill


class SupplierBillSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source="supplier.name", read_only=True)
    outstanding = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = SupplierBill
        fields = [
            "id",
            "bill_number",
            "supplier",
            "supplier_name",
            "issue_date",
            "due_date",
            "status",
            "currency",
            "total",
            "amount_paid",
            "outstanding",
        ]
        read_only_fields = fields


class PaymentAllocationSerializer(serializers.ModelSerializer):
    bill_number = serializers.CharField(source="bill.bill_number", read_only=True)
    supplier_name = serializers.CharField(source="bill.supplier.name", read_only=True)

    class Meta:
        model = PaymentAllocation
        fields = ["id", "sequence", "bill", "bill_number", "supplier_name", "amount", "is_open", "journal_entry"]
        read_only_fields = fields


class PaymentRunSerializer(serializers.ModelSerializer):
    allocations = PaymentAllocationSerializer(many=True, read_only=True)

    class Meta:
        model = PaymentRun
        fields = [
            "id",
            "bank_account",
            "run_date",
            "status",
            "notes",
            "remittance_reference",
            "total_amount",
            "created_at",
            "completed_at",
            "allocations",
        ]
        read_only_fields = fields


class PaymentRunCreateSerializer(serializers.Serializer):
    bank_account_id = serializers.IntegerField()
    run_date = serializers.DateField()
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class AllocationItemSerializer(serializers.Serializer):
    bill_id = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True, default=None)


class AddAllocationsSerializer(serializers.Serializer):
    bills = AllocationItemSerializer(many=True, allow_empty=False)
