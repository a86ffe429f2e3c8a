# tax_lot_engine/domain/transactions.py
from dataclasses import dataclass, KW_ONLY
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from .enums import TransactionType, TransactionSubType, BuySell, RateSource
from tax_lot_engine import config


@dataclass(frozen=True)
class CanonicalTransaction:
    """
    Broker-agnostic transaction produced once by a format parser.

    `amount` is the signed gross amount in `currency` (negative = money leaving the account),
    `source_amount` its unsigned magnitude as found in the export. `quantity` is a magnitude;
    the direction lives in `buy_sell`.
    """
    source: str
    transaction_date: date
    product_name: str
    isin: str
    quantity: Decimal
    price: Decimal
    currency: str

    _: KW_ONLY
    transaction_type: TransactionType
    transaction_subtype: TransactionSubType = TransactionSubType.NONE
    buy_sell: BuySell = BuySell.NONE
    commission: Decimal = Decimal("0")
    commission_currency: Optional[str] = None # Defaults to `currency`
    order_id: str = ""
    description: str = ""
    raw_text: str = ""
    source_amount: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")

    def __post_init__(self):
        if not isinstance(self.transaction_type, TransactionType):
            raise TypeError(f"CanonicalTransaction.transaction_type must be a TransactionType, got {type(self.transaction_type)}")
        if not isinstance(self.transaction_date, date):
            raise TypeError(f"CanonicalTransaction.transaction_date must be a date, got {type(self.transaction_date)}")
        for field_name in ("quantity", "price", "commission", "source_amount", "amount"):
            value = getattr(self, field_name)
            if not isinstance(value, Decimal) or not value.is_finite():
                raise ValueError(f"CanonicalTransaction.{field_name} must be a finite Decimal, got {value!r}")
        if self.quantity < 0:
            raise ValueError(f"CanonicalTransaction.quantity is a magnitude and cannot be negative: {self.quantity}")
        if self.commission < 0:
            raise ValueError(f"CanonicalTransaction.commission cannot be negative: {self.commission}")

    @property
    def effective_commission_currency(self) -> str:
        return (self.commission_currency or self.currency or config.HOME_CURRENCY).upper()


@dataclass
class ProcessedTransaction:
    """
    A canonical transaction plus enrichment, as persisted.

    Invariant: amount_eur == amount / exchange_rate when exchange_rate > 0, else amount_eur == amount.
    `commission` is already in EUR. `id` is assigned by the store and is None until persisted.
    """
    date: str # DD-MM-YYYY
    source: str
    product_name: str
    isin: str
    quantity: int
    original_quantity: Decimal
    price: Decimal
    transaction_type: TransactionType

    _: KW_ONLY
    transaction_subtype: TransactionSubType = TransactionSubType.NONE
    buy_sell: BuySell = BuySell.NONE
    description: str = ""
    amount: Decimal = Decimal("0")
    currency: str = config.HOME_CURRENCY
    commission: Decimal = Decimal("0")
    order_id: str = ""
    exchange_rate: Decimal = Decimal("1")
    rate_source: RateSource = RateSource.LIVE
    amount_eur: Decimal = Decimal("0")
    country_code: str = config.UNKNOWN_COUNTRY_CODE
    input_string: str = ""
    hash_id: str = ""
    id: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.transaction_type, TransactionType):
            raise TypeError(f"ProcessedTransaction.transaction_type must be a TransactionType, got {type(self.transaction_type)}")
        if not isinstance(self.rate_source, RateSource):
            raise TypeError(f"ProcessedTransaction.rate_source must be a RateSource, got {type(self.rate_source)}")
        try:
            datetime.strptime(self.date, config.DATE_FORMAT_PROCESSED)
        except (TypeError, ValueError):
            raise ValueError(f"ProcessedTransaction.date must be DD-MM-YYYY, got '{self.date}'")

    @property
    def date_obj(self) -> date:
        return datetime.strptime(self.date, config.DATE_FORMAT_PROCESSED).date()

    @property
    def year(self) -> int:
        return self.date_obj.year

    @property
    def is_fallback_rate(self) -> bool:
        return self.rate_source is RateSource.FALLBACK

    def sort_key(self) -> tuple:
        """Chronological key with the store id as tie-break; unsaved rows sort after saved ones of the same day."""
        return (self.date_obj, self.id if self.id is not None else float("inf"))
