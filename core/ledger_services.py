from decimal import Decimal

from django.db.models import Sum

from .models import Account, JournalEntry, JournalLine


def get_account_balance(account: Account) -> Decimal:
    """
    Compute the live balance for an account using all journal lines.
    Assets/Expenses return debit - credit; everything else uses credit - debit.
    """
    agg = JournalLine.objects.filter(account=account).aggregate(
        debit_sum=Sum("debit"),
        credit_sum=Sum("credit"),
    )
    debit = agg["debit_sum"] or Decimal("0")
    credit = agg["credit_sum"] or Decimal("0")

    if account.type in (Account.AccountType.ASSET, Account.AccountType.EXPENSE):
        return debit - credit
    return credit - debit


def entry_totals(entry: JournalEntry) -> tuple[Decimal, Decimal]:
    agg = entry.lines.aggregate(total_debit=Sum("debit"), total_credit=Sum("credit"))
    return (agg["total_debit"] or Decimal("0"), agg["total_credit"] or Decimal("0"))


def unbalanced_entries(business):
    """Entries whose persisted lines do not balance. Should always be empty."""
    rows = (
        JournalLine.objects.filter(journal_entry__business=business)
        .values("journal_entry_id")
        .annotate(total_debit=Sum("debit"), total_credit=Sum("credit"))
    )
    return [row["journal_entry_id"] for row in rows if row["total_debit"] != row["total_credit"]]
