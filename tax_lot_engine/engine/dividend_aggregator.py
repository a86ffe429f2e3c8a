# tax_lot_engine/engine/dividend_aggregator.py
import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, List

from dateutil.relativedelta import relativedelta

from tax_lot_engine import config
from tax_lot_engine.domain.enums import TransactionType, TransactionSubType
from tax_lot_engine.domain.results import DividendCountrySummary, DividendTaxResult, DividendMetrics, HoldingWithValue
from tax_lot_engine.domain.transactions import ProcessedTransaction
from tax_lot_engine.utils.country_codes import is_known_jurisdiction

logger = logging.getLogger(__name__)


def _is_dividend(tx: ProcessedTransaction) -> bool:
    return tx.transaction_type.value.lower() == TransactionType.DIVIDEND.value.lower()


class DividendTaxAggregator:
    """
    Sums dividend rows per (year, jurisdiction). TAX rows go to taxed_amount, all other
    dividend rows to gross_amount. Amounts are EUR and stay unrounded.
    """

    def aggregate(self, transactions: List[ProcessedTransaction]) -> DividendTaxResult:
        result: DividendTaxResult = {}
        skipped = 0
        for tx in transactions:
            if not _is_dividend(tx):
                continue
            if len(tx.isin.strip()) < 2 or not is_known_jurisdiction(tx.country_code):
                skipped += 1
                logger.debug(f"Dividend row without jurisdiction skipped: {tx.product_name} on {tx.date}.")
                continue

            summary = result.setdefault(tx.year, {}).setdefault(tx.country_code, DividendCountrySummary())
            if tx.transaction_subtype is TransactionSubType.TAX:
                summary.taxed_amount += tx.amount_eur
            else:
                summary.gross_amount += tx.amount_eur

        if skipped:
            logger.warning(f"{skipped} dividend rows had no resolvable jurisdiction and were left out of the tax summary.")
        logger.info(f"Dividend aggregation: {len(result)} years, "
                    f"{sum(len(countries) for countries in result.values())} year/country buckets.")
        return result


def dividend_transactions(transactions: List[ProcessedTransaction]) -> List[ProcessedTransaction]:
    return [tx for tx in transactions if _is_dividend(tx)]


def dividend_metrics(holdings: List[HoldingWithValue],
                     dividend_rows: List[ProcessedTransaction],
                     today: date) -> DividendMetrics:
    """
    Trailing-twelve-month gross dividends of the currently held ISINs, related to the
    portfolio's market value (yield) and cost basis (yield on cost). Percentages, 2 decimals.
    """
    window_start = today - relativedelta(years=1)

    ttm_by_isin: Dict[str, Decimal] = defaultdict(Decimal)
    total_cost_basis = Decimal(0)
    total_market_value = Decimal(0)
    for holding in holdings:
        total_cost_basis += holding.total_cost_basis_eur
        total_market_value += holding.market_value_eur
        held_isin = holding.isin.upper()
        ttm_by_isin[holding.isin] += sum(
            (tx.amount_eur for tx in dividend_rows
             if tx.isin.upper() == held_isin
             and tx.transaction_subtype is not TransactionSubType.TAX
             and tx.date_obj >= window_start),
            Decimal(0))

    total_ttm = sum(ttm_by_isin.values(), Decimal(0))
    portfolio_yield = total_ttm / total_market_value * 100 if total_market_value > 0 else Decimal(0)
    yield_on_cost = total_ttm / total_cost_basis * 100 if total_cost_basis > 0 else Decimal(0)

    q = config.OUTPUT_PRECISION_AMOUNTS
    return DividendMetrics(
        total_dividends_ttm=total_ttm.quantize(q),
        portfolio_yield=portfolio_yield.quantize(q),
        yield_on_cost=yield_on_cost.quantize(q),
        ttm_dividends_by_isin=dict(ttm_by_isin),
        has_data=bool(holdings) or bool(dividend_rows),
    )
