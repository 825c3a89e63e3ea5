from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from core.api import require_business
from core.models import BankAccount

from .direct_credit import export_direct_credit
from .models import PaymentRun, SupplierBill
from .serializers import (
    AddAllocationsSerializer,
    PaymentRunCreateSerializer,
    PaymentRunSerializer,
    SupplierBillSerializer,
)
from .services.bills import payable_bills
from .services.payment_runs import AllocationRequest, add_allocations, complete_payment_run, create_payment_run, remove_allocation


def _get_run(business, pk) -> PaymentRun:
    return get_object_or_404(PaymentRun.objects.select_related("bank_account"), pk=pk, business=business)


def _run_payload(run: PaymentRun):
    run = PaymentRun.objects.prefetch_related("allocations__bill__supplier").get(pk=run.pk)
    return PaymentRunSerializer(run).data


class PayableBillsView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        business = require_business(request)
        bills = payable_bills(business, currency=request.query_params.get("currency"))
        return Response(SupplierBillSerializer(bills, many=True).data)


class PaymentRunListCreateView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        business = require_business(request)
        runs = PaymentRun.objects.filter(business=business).prefetch_related("allocations__bill__supplier")
        return Response(PaymentRunSerializer(runs, many=True).data)

    def post(self, request):
        business = require_business(request)
        payload = PaymentRunCreateSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        bank_account = get_object_or_404(BankAccount, pk=payload.validated_data["bank_account_id"], business=business)
        run = create_payment_run(
            business=business,
            bank_account=bank_account,
            run_date=payload.validated_data["run_date"],
            created_by=request.user,
            notes=payload.validated_data["notes"],
        )
        return Response(_run_payload(run), status=status.HTTP_201_CREATED)


class PaymentRunDetailView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, pk):
        business = require_business(request)
        return Response(_run_payload(_get_run(business, pk)))


class PaymentRunAllocationsView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, pk):
        business = require_business(request)
        run = _get_run(business, pk)
        payload = AddAllocationsSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        requests = [
            AllocationRequest(
                bill=get_object_or_404(SupplierBill, pk=item["bill_id"], business=business),
                amount=item["amount"],
            )
            for item in payload.validated_data["bills"]
        ]
        add_allocations(run, requests, actor=request.user)
        return Response(_run_payload(run), status=status.HTTP_201_CREATED)


class PaymentRunAllocationDetailView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def delete(self, request, pk, bill_id):
        business = require_business(request)
        run = _get_run(business, pk)
        bill = get_object_or_404(SupplierBill, pk=bill_id, business=business)
        remove_allocation(run, bill, actor=request.user)
        return Response(_run_payload(run))


class PaymentRunCompleteView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, pk):
        business = require_business(request)
        run = complete_payment_run(_get_run(business, pk), actor=request.user)
        return Response(_run_payload(run))


class PaymentRunDirectCreditView(APIView):
    """Download the bank file for a completed run. Warnings travel in a response header."""

    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, pk):
        business = require_business(request)
        run = _get_run(business, pk)
        result = export_direct_credit(run, request.query_params.get("bank_format"))
        response = HttpResponse(result.content, content_type=result.content_type)
        response["Content-Disposition"] = f'attachment; filename="{result.filename}"'
        response["X-Payment-Count"] = str(result.payment_count)
        response["X-Warning-Count"] = str(len(result.warnings))
        return response


class PaymentRunDirectCreditSummaryView(APIView):
    """Per-row warnings and totals for the bank file, without the file itself."""

    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, pk):
        business = require_business(request)
        run = _get_run(business, pk)
        result = export_direct_credit(run, request.query_params.get("bank_format"))
        return Response(
            {
                "filename": result.filename,
                "content_type": result.content_type,
                "payment_count": result.payment_count,
                "total_amount": f"{result.total_amount:f}",
                "warnings": [warning.as_dict() for warning in result.warnings],
            }
        )
