from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model

from core.accounting_defaults import ensure_default_accounts
from core.models import BankAccount, BankTransaction, Business, JournalEntry
from core.services.posting import CREDIT, DEBIT, PostingLine, TransactionDraft, post_transaction

User = get_user_model()


def make_business(username="owner", *, currency="AUD", name=None):
    user = User.objects.create_user(username=username, email=f"{username}@example.com", password="testpass123")
    business = Business.objects.create(name=name or f"{username.title()} Pty Ltd", currency=currency, owner_user=user)
    accounts = ensure_default_accounts(business)
    return user, business, accounts


def make_bank_account(business, ledger_account, *, currency=None, name="Operating Account", **settings):
    defaults = {
        "bank_code": "CBA",
        "branch_code": "062-000",
        "account_number": "12345678",
        "user_identifier": "301500",
        "remitter_name": "",
        "file_description": "PAYMENTS",
    }
    defaults.update(settings)
    return BankAccount.objects.create(
        business=business,
        name=name,
        currency=currency or business.currency,
        account=ledger_account,
        **defaults,
    )


def post_simple(business, debit_account, credit_account, amount, *, on=date(2024, 7, 1), description="Test entry", **kwargs):
    return post_transaction(
        TransactionDraft(
            business=business,
            date=on,
            description=description,
            lines=(
                PostingLine(account=debit_account, amount=Decimal(amount), direction=DEBIT),
                PostingLine(account=credit_account, amount=Decimal(amount), direction=CREDIT),
            ),
            entry_type=kwargs.pop("entry_type", JournalEntry.EntryType.MANUAL),
            **kwargs,
        )
    )


def make_feed_item(bank_account, amount, *, on=date(2024, 7, 1), description="Bank line", external_id=None):
    return BankTransaction.objects.create(
        bank_account=bank_account,
        date=on,
        description=description,
        amount=Decimal(amount),
        external_id=external_id,
    )
