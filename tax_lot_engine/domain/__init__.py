# tax_lot_engine/domain/__init__.py
# Convenience re-exports for the most used domain types.
from .enums import TransactionType, TransactionSubType, BuySell, RateSource
from .transactions import CanonicalTransaction, ProcessedTransaction
