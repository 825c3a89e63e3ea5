from django.shortcuts import get_object_or_404
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from core.api import require_business
from core.models import BankAccount, BankTransaction, JournalEntry
from core.serializers import BankTransactionSerializer, MatchRequestSerializer, ReconciliationMatchSerializer
from core.services.bank_reconciliation import BankReconciliationService
from core.services.reconciliation_engine import ReconciliationEngine


def _get_feed_item(business, pk) -> BankTransaction:
    return get_object_or_404(
        BankTransaction.objects.select_related("bank_account"),
        pk=pk,
        bank_account__business=business,
    )


class BankTransactionMatchView(APIView):
    """GET the current match of a bank line, POST a new match, DELETE to unmatch."""

    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, pk):
        business = require_business(request)
        item = _get_feed_item(business, pk)
        current = BankReconciliationService.current_match(item)
        return Response(
            {
                "bank_transaction": BankTransactionSerializer(item).data,
                "match": ReconciliationMatchSerializer(current).data if current else None,
            }
        )

    def post(self, request, pk):
        business = require_business(request)
        item = _get_feed_item(business, pk)
        payload = MatchRequestSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        entry = get_object_or_404(JournalEntry, pk=payload.validated_data["journal_entry_id"], business=business)
        match = BankReconciliationService.match(
            item,
            entry,
            match_type=payload.validated_data["match_type"],
            user=request.user,
            notes=payload.validated_data["notes"],
        )
        return Response(ReconciliationMatchSerializer(match).data, status=status.HTTP_201_CREATED)

    def delete(self, request, pk):
        business = require_business(request)
        item = _get_feed_item(business, pk)
        removed = BankReconciliationService.unmatch(item, user=request.user)
        return Response(ReconciliationMatchSerializer(removed).data)


class BankTransactionMatchHistoryView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, pk):
        business = require_business(request)
        item = _get_feed_item(business, pk)
        history = BankReconciliationService.history(item)
        return Response(ReconciliationMatchSerializer(history, many=True).data)


class BankTransactionCandidatesView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, pk):
        business = require_business(request)
        item = _get_feed_item(business, pk)
        candidates = ReconciliationEngine(item.bank_account).get_candidate_matches(item)
        return Response(
            [
                {
                    "journal_entry": candidate.journal_entry.pk,
                    "date": candidate.journal_entry.date,
                    "description": candidate.journal_entry.description,
                    "day_distance": candidate.day_distance,
                }
                for candidate in candidates
            ]
        )


class BankAccountAutoMatchView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, pk):
        business = require_business(request)
        bank_account = get_object_or_404(BankAccount, pk=pk, business=business)
        matches = ReconciliationEngine(bank_account).auto_match_all(user=request.user)
        return Response({"matched": len(matches), "matches": ReconciliationMatchSerializer(matches, many=True).data})


class ReconciliationStatisticsView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        business = require_business(request)
        return Response(BankReconciliationService.statistics(business))
