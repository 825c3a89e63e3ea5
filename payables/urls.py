from django.urls import path

from .views import (
    PayableBillsView,
    PaymentRunAllocationDetailView,
    PaymentRunAllocationsView,
    PaymentRunCompleteView,
    PaymentRunDetailView,
    PaymentRunDirectCreditSummaryView,
    PaymentRunDirectCreditView,
    PaymentRunListCreateView,
)

app_name = "payables"

urlpatterns = [
    path("bills/payable/", PayableBillsView.as_view(), name="payable_bills"),
    path("payment-runs/", PaymentRunListCreateView.as_view(), name="payment_runs"),
    path("payment-runs/<int:pk>/", PaymentRunDetailView.as_view(), name="payment_run_detail"),
    path("payment-runs/<int:pk>/allocations/", PaymentRunAllocationsView.as_view(), name="payment_run_allocations"),
    path(
        "payment-runs/<int:pk>/allocations/<int:bill_id>/",
        PaymentRunAllocationDetailView.as_view(),
        name="payment_run_allocation_detail",
    ),
    path("payment-runs/<int:pk>/complete/", PaymentRunCompleteView.as_view(), name="payment_run_complete"),
    path("payment-runs/<int:pk>/direct-credit/", PaymentRunDirectCreditView.as_view(), name="payment_run_direct_credit"),
    path(
        "payment-runs/<int:pk>/direct-credit/summary/",
        PaymentRunDirectCreditSummaryView.as_view(),
        name="payment_run_direct_credit_summary",
    ),
]
