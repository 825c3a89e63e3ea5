from datetime import date
from decimal import Decimal

from payables.models import Supplier
from payables.services.bills import create_supplier_bill, post_supplier_bill


def make_supplier(business, name="Acme Supplies", *, branch="062-000", account="11112222", account_name=""):
    return Supplier.objects.create(
        business=business,
        name=name,
        bank_branch_code=branch,
        bank_account_number=account,
        bank_account_name=account_name,
    )


def make_posted_bill(business, supplier, number, total, *, issued=date(2024, 6, 15), currency=None):
    bill = create_supplier_bill(
        business=business,
        supplier=supplier,
        bill_number=number,
        total=Decimal(total),
        issue_date=issued,
        currency=currency,
    )
    post_supplier_bill(bill)
    return bill
