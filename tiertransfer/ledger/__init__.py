"""Ledger — счётчики покупок, персональные скидки и журнал переводов."""

from .audit_log import TransferAuditLog
from .overrides import CustomDiscountRegistry
from .purchase_ledger import CountChange, PurchaseLedger

__all__ = [
    "CountChange",
    "CustomDiscountRegistry",
    "PurchaseLedger",
    "TransferAuditLog",
]
