from rest_framework import serializers

from .models import BankReconciliationMatch, BankTransaction


class BankTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = BankTransaction
        fields = ["id", "bank_account", "date", "description", "amount", "external_id"]
        read_only_fields = fields


class ReconciliationMatchSerializer(serializers.ModelSerializer):
    matched_by = serializers.CharField(source="matched_by.username", default=None, read_only=True)
    unmatched_by = serializers.CharField(source="unmatched_by.username", default=None, read_only=True)

    class Meta:
        model = BankReconciliationMatch
        fields = [
            "id",
            "bank_transaction",
            "journal_entry",
            "match_type",
            "is_active",
            "notes",
            "matched_at",
            "matched_by",
            "unmatched_at",
            "unmatched_by",
        ]
        read_only_fields = fields


class MatchRequestSerializer(serializers.Serializer):
    journal_entry_id = serializers.IntegerField()
    match_type = serializers.ChoiceField(
        choices=BankReconciliationMatch.MatchType.choices,
        default=BankReconciliationMatch.MatchType.MANUAL,
    )
    notes = serializers.CharField(required=False, allow_blank=True, max_length=500, default="")
