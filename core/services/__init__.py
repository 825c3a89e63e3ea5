# Ledger and bank reconciliation services
from .bank_reconciliation import BankReconciliationService
from .posting import PostingLine, TransactionDraft, post_transaction, reverse_transaction
from .reconciliation_engine import ReconciliationEngine, auto_match, auto_match_bank_account

__all__ = [
    "BankReconciliationService",
    "PostingLine",
    "ReconciliationEngine",
    "TransactionDraft",
    "auto_match",
    "auto_match_bank_account",
    "post_transaction",
    "reverse_transaction",
]
