from django.urls import path

from .views_reconciliation import (
    BankAccountAutoMatchView,
    BankTransactionCandidatesView,
    BankTransactionMatchHistoryView,
    BankTransactionMatchView,
    ReconciliationStatisticsView,
)

app_name = "core"

urlpatterns = [
    path("bank-transactions/<int:pk>/match/", BankTransactionMatchView.as_view(), name="bank_transaction_match"),
    path(
        "bank-transactions/<int:pk>/match-history/",
        BankTransactionMatchHistoryView.as_view(),
        name="bank_transaction_match_history",
    ),
    path(
        "bank-transactions/<int:pk>/candidates/",
        BankTransactionCandidatesView.as_view(),
        name="bank_transaction_candidates",
    ),
    path("bank-accounts/<int:pk>/auto-match/", BankAccountAutoMatchView.as_view(), name="bank_account_auto_match"),
    path("reconciliation/statistics/", ReconciliationStatisticsView.as_view(), name="reconciliation_statistics"),
]
