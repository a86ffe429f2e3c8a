# tax_lot_engine/utils/currency_converter.py
import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, Tuple

from tax_lot_engine import config
from tax_lot_engine.domain.enums import RateSource
from tax_lot_engine.domain.errors import RateUnavailable
from .exchange_rate_provider import ExchangeRateProvider

logger = logging.getLogger(__name__)

FALLBACK_RATE = Decimal("1")


class CurrencyConverter:
    def __init__(self, rate_provider: ExchangeRateProvider):
        self.rate_provider = rate_provider

    def rate_for(self, currency: str, date_of_conversion: date) -> Tuple[Decimal, RateSource]:
        """
        Rate (foreign units per 1 EUR) for the currency on the date, plus where it came from.
        A missing rate is not fatal: 1.0 is substituted, logged, and flagged as FALLBACK.
        """
        currency_upper = (currency or "").upper()
        if not currency_upper or currency_upper == config.HOME_CURRENCY:
            return Decimal("1"), RateSource.LIVE

        try:
            rate = self.rate_provider.get_rate(date_of_conversion, currency_upper)
        except RateUnavailable as e:
            logger.warning(f"{e}. Falling back to rate {FALLBACK_RATE}; EUR amounts for this transaction are approximate.")
            return FALLBACK_RATE, RateSource.FALLBACK

        if rate <= Decimal("0"): # Rate must be positive
            logger.warning(f"Exchange rate from provider is zero or negative ({rate}) for {currency_upper} on {date_of_conversion}. Falling back to {FALLBACK_RATE}.")
            return FALLBACK_RATE, RateSource.FALLBACK
        return rate, RateSource.LIVE

    @staticmethod
    def to_eur(amount: Decimal, rate: Decimal) -> Decimal:
        """ECB rate is foreign currency per 1 EUR, so EUR = foreign amount / rate. A non-positive rate leaves the amount as is."""
        if rate > 0:
            return amount / rate
        return amount

    def convert_to_eur(self, original_amount: Decimal, original_currency: str, date_of_conversion: date) -> Decimal:
        rate, _ = self.rate_for(original_currency, date_of_conversion)
        return self.to_eur(original_amount, rate)

    def prefetch(self, start_date: date, end_date: date, currencies: Iterable[str]) -> None:
        """Warms the provider's cache for every foreign currency over the date range."""
        foreign = sorted({(c or "").upper() for c in currencies} - {"", config.HOME_CURRENCY})
        if foreign:
            self.rate_provider.prefetch_rates(start_date, end_date, foreign)
