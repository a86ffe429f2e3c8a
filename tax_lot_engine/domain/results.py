# tax_lot_engine/domain/results.py
from dataclasses import dataclass, field, KW_ONLY
from decimal import Decimal
from typing import Dict, List

from .enums import FeeCategory, CashMovementType, PriceStatus
from .transactions import ProcessedTransaction


@dataclass
class PurchaseLot:
    """Open (or partly consumed) stock buy, as reported in a holdings snapshot."""
    buy_date: str
    product_name: str
    isin: str
    quantity: Decimal
    buy_price: Decimal
    buy_amount: Decimal
    buy_currency: str
    buy_amount_eur: Decimal

    def __post_init__(self):
        if not isinstance(self.quantity, Decimal) or self.quantity <= 0:
            raise ValueError(f"PurchaseLot quantity must be a positive Decimal: {self.quantity}")


@dataclass
class SaleDetail:
    """One FIFO chunk of a stock sale matched against a single buy lot."""
    sale_date: str
    buy_date: str
    product_name: str
    isin: str
    quantity: Decimal

    _: KW_ONLY
    sale_price: Decimal
    sale_amount: Decimal
    sale_currency: str
    sale_exchange_rate: Decimal
    sale_amount_eur: Decimal
    buy_price: Decimal
    buy_amount: Decimal
    buy_currency: str
    buy_exchange_rate: Decimal
    buy_amount_eur: Decimal
    commission: Decimal = Decimal("0") # EUR, pro rata share of the sell commission
    delta: Decimal = Decimal("0")
    country_code: str = ""

    def __post_init__(self):
        if not isinstance(self.quantity, Decimal) or self.quantity <= 0:
            raise ValueError(f"SaleDetail quantity must be a positive Decimal: {self.quantity}")


@dataclass
class OptionHolding:
    """Open option position. Positive quantity = long, negative = short."""
    open_date: str
    product_name: str
    quantity: Decimal
    open_price: Decimal
    open_amount: Decimal
    open_currency: str
    open_amount_eur: Decimal
    open_order_id: str = ""

    def __post_init__(self):
        if not isinstance(self.quantity, Decimal) or self.quantity == 0:
            raise ValueError(f"OptionHolding quantity must be a non-zero Decimal: {self.quantity}")

    @property
    def is_short(self) -> bool:
        return self.quantity < 0


@dataclass
class OptionSaleDetail:
    open_date: str
    close_date: str
    product_name: str
    quantity: Decimal # Signed like the position that was closed

    _: KW_ONLY
    open_price: Decimal
    open_amount: Decimal
    open_currency: str
    open_amount_eur: Decimal
    close_price: Decimal
    close_amount: Decimal
    close_currency: str
    close_amount_eur: Decimal
    commission: Decimal = Decimal("0")
    delta: Decimal = Decimal("0")
    open_order_id: str = ""
    close_order_id: str = ""
    country_code: str = ""


@dataclass
class DividendCountrySummary:
    gross_amount: Decimal = Decimal("0")
    taxed_amount: Decimal = Decimal("0")


# year -> country code -> totals
DividendTaxResult = Dict[int, Dict[str, DividendCountrySummary]]


@dataclass
class FeeDetail:
    date: str
    description: str
    amount_eur: Decimal # Negative = cost
    source: str
    category: FeeCategory


@dataclass
class CashMovement:
    date: str
    type: CashMovementType
    amount: Decimal
    currency: str


@dataclass
class HoldingWithValue:
    isin: str
    product_name: str
    quantity: Decimal
    total_cost_basis_eur: Decimal
    current_price_eur: Decimal
    market_value_eur: Decimal
    status: PriceStatus
    country_code: str = ""


@dataclass
class DividendMetrics:
    total_dividends_ttm: Decimal
    portfolio_yield: Decimal
    yield_on_cost: Decimal
    ttm_dividends_by_isin: Dict[str, Decimal] = field(default_factory=dict)
    has_data: bool = False


@dataclass
class UploadResult:
    stock_sale_details: List[SaleDetail] = field(default_factory=list)
    stock_holdings: Dict[str, List[PurchaseLot]] = field(default_factory=dict)
    option_sale_details: List[OptionSaleDetail] = field(default_factory=list)
    option_holdings: List[OptionHolding] = field(default_factory=list)
    cash_movements: List[CashMovement] = field(default_factory=list)
    dividend_transactions: List[ProcessedTransaction] = field(default_factory=list)
    fee_details: List[FeeDetail] = field(default_factory=list)
