from django.conf import settings

from core.models import Account

DEFAULT_ACCOUNTS = [
    ("1010", "Cash at Bank", Account.AccountType.ASSET),
    ("2000", "Accounts Payable", Account.AccountType.LIABILITY),
    ("5010", "Operating Expenses", Account.AccountType.EXPENSE),
]


def ensure_default_accounts(business):
    """Ensure baseline accounts exist for the given business and return a mapping."""
    accounts = {}
    for code, name, type_ in DEFAULT_ACCOUNTS:
        acc, _ = Account.objects.get_or_create(
            business=business,
            code=code,
            defaults={
                "name": name,
                "type": type_,
            },
        )
        accounts[code] = acc
    return {
        "cash": accounts["1010"],
        "ap": accounts["2000"],
        "opex": accounts["5010"],
    }


def get_payables_account(business) -> Account:
    code = getattr(settings, "ACCOUNTS_PAYABLE_CODE", "2000")
    account = Account.objects.filter(business=business, code=code).first()
    if account is None:
        account = ensure_default_accounts(business)["ap"]
    return account
