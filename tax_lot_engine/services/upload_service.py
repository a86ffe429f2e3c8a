# tax_lot_engine/services/upload_service.py
import logging
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple

from tax_lot_engine import config
from tax_lot_engine.domain.enums import ReportKind, PriceStatus, DeletionMode
from tax_lot_engine.domain.results import (
    SaleDetail, PurchaseLot, OptionSaleDetail, OptionHolding, DividendTaxResult,
    FeeDetail, HoldingWithValue, DividendMetrics, UploadResult,
)
from tax_lot_engine.domain.transactions import ProcessedTransaction
from tax_lot_engine.engine.stock_lot_resolver import StockLotResolver
from tax_lot_engine.engine.option_lot_resolver import OptionLotResolver
from tax_lot_engine.engine.dividend_aggregator import DividendTaxAggregator, dividend_transactions, dividend_metrics
from tax_lot_engine.engine.fee_aggregator import FeeAggregator
from tax_lot_engine.engine.cash_movements import extract_cash_movements
from tax_lot_engine.parsers import get_parser
from tax_lot_engine.parsers.base_parser import BrokerParser
from tax_lot_engine.processing.enrichment import TransactionEnricher
from tax_lot_engine.storage.transaction_repository import TransactionRepository
from tax_lot_engine.utils.country_codes import country_code_from_isin
from tax_lot_engine.utils.type_utils import parse_date
from .price_oracle import PriceOracle
from .report_cache import ReportCache

logger = logging.getLogger(__name__)


class UploadService:
    """
    Ingests broker files for a user and serves the resolved reports.

    Reports are recomputed from the user's full persisted history and memoized in the
    ReportCache; every write (upload, manual entry, deletion) drops all of the user's entries.
    """
    def __init__(self,
                 repository: TransactionRepository,
                 enricher: TransactionEnricher,
                 report_cache: ReportCache,
                 price_oracle: Optional[PriceOracle] = None,
                 parser_factory: Callable[[str], BrokerParser] = get_parser,
                 today: Callable[[], date] = date.today):
        self.repository = repository
        self.enricher = enricher
        self.report_cache = report_cache
        self.price_oracle = price_oracle
        self.parser_factory = parser_factory
        self.today = today

    # --- Writes ---

    def process_upload(self, user_id: int, file_bytes: bytes, source: str = config.DEFAULT_SOURCE,
                       filename: str = "", filesize: int = 0) -> UploadResult:
        logger.info(f"Processing upload for user {user_id} (source: {source}, file: '{filename}').")
        parser = self.parser_factory(source)
        canonical_txs = parser.parse(file_bytes)  # ParsingFailed propagates: nothing is ingested
        processed_txs = self.enricher.process(canonical_txs)
        if not processed_txs:
            logger.info(f"Upload for user {user_id} contained no transactions.")
            return self.get_latest_upload_result(user_id)

        try:
            inserted = self.repository.insert_upload(user_id, processed_txs, parser.source_name, filename,
                                                     filesize or len(file_bytes))
        finally:
            self.report_cache.invalidate_user(user_id)
        logger.info(f"Upload for user {user_id} done: {inserted} of {len(processed_txs)} transactions were new "
                    f"({self.repository.upload_count(user_id)} uploads recorded).")
        return self.get_latest_upload_result(user_id)

    def add_manual_transaction(self, user_id: int, **fields) -> ProcessedTransaction:
        """
        Stores one hand-entered trade. `fields` are those of TransactionEnricher.build_manual_transaction;
        transaction_date may also be given as a string (DD-MM-YYYY, ISO and other common forms).
        """
        if isinstance(fields.get("transaction_date"), str):
            parsed = parse_date(fields["transaction_date"])
            if parsed is None:
                raise ValueError(f"Unreadable transaction date '{fields['transaction_date']}'.")
            fields["transaction_date"] = parsed
        tx = self.enricher.build_manual_transaction(**fields)
        self.repository.insert_many(user_id, [tx])
        self.report_cache.invalidate_user(user_id)
        return tx

    def delete_transactions(self, user_id: int, mode: DeletionMode,
                            sources: Optional[List[str]] = None, year: Optional[int] = None) -> int:
        mode = DeletionMode(mode)
        if mode is DeletionMode.ALL:
            deleted = self.repository.delete_all(user_id)
        elif mode is DeletionMode.SOURCE:
            if not sources:
                raise ValueError("Deleting by source requires at least one source name.")
            deleted = self.repository.delete_by_sources(user_id, sources)
        else:
            if year is None:
                raise ValueError("Deleting by year requires a year.")
            deleted = self.repository.delete_by_year(user_id, year)
        self.report_cache.invalidate_user(user_id)
        return deleted

    # --- Reads ---

    def _history(self, user_id: int) -> List[ProcessedTransaction]:
        return self.repository.fetch_for_user(user_id)

    def _stock_data(self, user_id: int) -> Tuple[List[SaleDetail], Dict[str, List[PurchaseLot]]]:
        sales = self.report_cache.get(user_id, ReportKind.STOCK_SALES)
        holdings = self.report_cache.get(user_id, ReportKind.STOCK_HOLDINGS)
        if sales is not None and holdings is not None:
            return sales, holdings
        sales, holdings = StockLotResolver().resolve(self._history(user_id))
        self.report_cache.set(user_id, ReportKind.STOCK_SALES, sales)
        self.report_cache.set(user_id, ReportKind.STOCK_HOLDINGS, holdings)
        return sales, holdings

    def get_stock_sale_details(self, user_id: int) -> List[SaleDetail]:
        return self._stock_data(user_id)[0]

    def get_stock_holdings(self, user_id: int) -> Dict[str, List[PurchaseLot]]:
        return self._stock_data(user_id)[1]

    def get_option_sale_details(self, user_id: int) -> List[OptionSaleDetail]:
        return OptionLotResolver().resolve(self._history(user_id))[0]

    def get_option_holdings(self, user_id: int) -> List[OptionHolding]:
        return OptionLotResolver().resolve(self._history(user_id))[1]

    def get_dividend_tax_summary(self, user_id: int) -> DividendTaxResult:
        summary = self.report_cache.get(user_id, ReportKind.DIVIDEND_SUMMARY)
        if summary is None:
            summary = DividendTaxAggregator().aggregate(self._history(user_id))
            self.report_cache.set(user_id, ReportKind.DIVIDEND_SUMMARY, summary)
        return summary

    def get_dividend_transactions(self, user_id: int) -> List[ProcessedTransaction]:
        return dividend_transactions(self._history(user_id))

    def get_fee_details(self, user_id: int) -> List[FeeDetail]:
        fees = self.report_cache.get(user_id, ReportKind.FEE_DETAILS)
        if fees is None:
            fees = FeeAggregator().aggregate(self._history(user_id))
            self.report_cache.set(user_id, ReportKind.FEE_DETAILS, fees)
        return fees

    def get_latest_upload_result(self, user_id: int) -> UploadResult:
        result = self.report_cache.get(user_id, ReportKind.LATEST_UPLOAD_RESULT)
        if result is not None:
            return result

        sales, holdings = self._stock_data(user_id)
        history = self._history(user_id)
        option_sales, option_holdings = OptionLotResolver().resolve(history)
        result = UploadResult(
            stock_sale_details=sales,
            stock_holdings=holdings,
            option_sale_details=option_sales,
            option_holdings=option_holdings,
            cash_movements=extract_cash_movements(history),
            dividend_transactions=dividend_transactions(history),
            fee_details=self.get_fee_details(user_id),
        )
        self.report_cache.set(user_id, ReportKind.LATEST_UPLOAD_RESULT, result)
        return result

    def get_current_holdings_with_value(self, user_id: int) -> List[HoldingWithValue]:
        holdings_by_year = self.get_stock_holdings(user_id)
        if not holdings_by_year:
            return []
        latest_lots = holdings_by_year[max(holdings_by_year, key=int)]

        # isin -> [product_name, quantity, cost basis]
        grouped: Dict[str, list] = {}
        for lot in latest_lots:
            if not lot.isin:
                continue
            entry = grouped.setdefault(lot.isin, [lot.product_name, Decimal(0), Decimal(0)])
            entry[1] += lot.quantity
            entry[2] += lot.buy_amount_eur

        priceable = [isin for isin in grouped if not isin.lower().startswith(config.UNKNOWN_COUNTRY_CODE)]
        prices = self.price_oracle.get_current_prices(priceable) if self.price_oracle and priceable else {}

        valued: List[HoldingWithValue] = []
        for isin, (product_name, quantity, cost_basis) in grouped.items():
            price_info = prices.get(isin)
            cost_basis = cost_basis.copy_abs()
            if price_info is not None and price_info.status is PriceStatus.OK:
                current_price, market_value, status = price_info.price, price_info.price * quantity, PriceStatus.OK
            else:
                current_price, market_value, status = Decimal(0), cost_basis, PriceStatus.UNAVAILABLE
            valued.append(HoldingWithValue(isin, product_name, quantity, cost_basis, current_price,
                                           market_value, status, country_code_from_isin(isin)))

        unavailable = sum(1 for h in valued if h.status is PriceStatus.UNAVAILABLE)
        if unavailable:
            logger.warning(f"User {user_id}: no current price for {unavailable} of {len(valued)} holdings; valued at cost.")
        return valued

    def get_dividend_metrics(self, user_id: int) -> DividendMetrics:
        metrics = self.report_cache.get(user_id, ReportKind.DIVIDEND_METRICS)
        if metrics is None:
            metrics = dividend_metrics(self.get_current_holdings_with_value(user_id),
                                       self.get_dividend_transactions(user_id),
                                       self.today())
            self.report_cache.set(user_id, ReportKind.DIVIDEND_METRICS, metrics)
        return metrics
