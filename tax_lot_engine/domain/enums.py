# tax_lot_engine/domain/enums.py
from enum import Enum, auto


class TransactionType(Enum):
    STOCK = "STOCK"
    OPTION = "OPTION"
    DIVIDEND = "DIVIDEND"
    FEE = "FEE"
    CASH = "CASH"
    PRODUCT_CHANGE = "PRODUCT_CHANGE"

    @classmethod
    def from_value(cls, value: str) -> "TransactionType":
        """Case-insensitive lookup, used when reading stored rows back."""
        return cls(str(value).strip().upper())


class TransactionSubType(Enum):
    NONE = ""
    CALL = "CALL"
    PUT = "PUT"
    TAX = "TAX"
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    INTEREST = "INTEREST"

    @classmethod
    def from_value(cls, value: str) -> "TransactionSubType":
        return cls(str(value or "").strip().upper())


class BuySell(Enum):
    NONE = ""
    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def from_value(cls, value: str) -> "BuySell":
        return cls(str(value or "").strip().upper())


class RateSource(Enum):
    """Where the exchange rate of a processed transaction came from."""
    LIVE = "LIVE"         # Looked up (or EUR, which needs no lookup)
    FALLBACK = "FALLBACK" # Lookup failed, 1.0 substituted


class FeeCategory(Enum):
    BROKERAGE_FEE = "Brokerage Fee"
    INTEREST = "Interest"
    TRADE_COMMISSION = "Trade Commission"


class CashMovementType(Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class PriceStatus(Enum):
    OK = "OK"
    UNAVAILABLE = "UNAVAILABLE"


class ReportKind(Enum):
    STOCK_SALES = auto()
    STOCK_HOLDINGS = auto()
    FEE_DETAILS = auto()
    LATEST_UPLOAD_RESULT = auto()
    DIVIDEND_SUMMARY = auto()
    DIVIDEND_METRICS = auto()


class DeletionMode(Enum):
    ALL = "all"
    SOURCE = "source"
    YEAR = "year"
