from .encoder import (
    DirectCreditFile,
    SettlementBatch,
    SettlementItem,
    build_settlement_batch,
    decode_records,
    encode_batch,
    export_direct_credit,
)
from .layouts import ABA_FORMAT, CSV_FORMAT, DIRECT_CREDIT_FORMATS

__all__ = [
    "ABA_FORMAT",
    "CSV_FORMAT",
    "DIRECT_CREDIT_FORMATS",
    "DirectCreditFile",
    "SettlementBatch",
    "SettlementItem",
    "build_settlement_batch",
    "decode_records",
    "encode_batch",
    "export_direct_credit",
]
