# tax_lot_engine/services/price_oracle.py
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, Mapping

from tax_lot_engine import config
from tax_lot_engine.domain.enums import PriceStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceInfo:
    status: PriceStatus
    price: Decimal = Decimal("0")
    currency: str = config.HOME_CURRENCY


UNAVAILABLE = PriceInfo(PriceStatus.UNAVAILABLE)


class PriceOracle(ABC):
    """Current market prices by ISIN. Only holding valuation uses it."""

    @abstractmethod
    def get_current_prices(self, isins: Iterable[str]) -> Dict[str, PriceInfo]:
        pass


class StaticPriceOracle(PriceOracle):
    """Fixed EUR prices, e.g. from the command line."""

    def __init__(self, prices: Mapping[str, Decimal]):
        self.prices = {isin.strip().upper(): Decimal(price) for isin, price in prices.items()}

    def get_current_prices(self, isins: Iterable[str]) -> Dict[str, PriceInfo]:
        result: Dict[str, PriceInfo] = {}
        for isin in isins:
            price = self.prices.get(isin.strip().upper())
            if price is None:
                logger.debug(f"No price known for {isin}.")
                result[isin] = UNAVAILABLE
            else:
                result[isin] = PriceInfo(PriceStatus.OK, price, config.HOME_CURRENCY)
        return result
