# tax_lot_engine/pipeline_runner.py
import logging
from typing import Dict, List

from tax_lot_engine.domain.results import PurchaseLot, DividendTaxResult, UploadResult
from tax_lot_engine.services.upload_service import UploadService

logger = logging.getLogger(__name__)


class ProcessingOutput:
    """
    Encapsulates everything the reports show for one user: the combined upload result
    plus the per-year dividend tax summary.
    """
    def __init__(self, upload_result: UploadResult, dividend_tax_summary: DividendTaxResult):
        self.upload_result = upload_result
        self.stock_sale_details = upload_result.stock_sale_details
        self.stock_holdings_by_year: Dict[str, List[PurchaseLot]] = upload_result.stock_holdings
        self.option_sale_details = upload_result.option_sale_details
        self.option_holdings = upload_result.option_holdings
        self.dividend_transactions = upload_result.dividend_transactions
        self.fee_details = upload_result.fee_details
        self.cash_movements = upload_result.cash_movements
        self.dividend_tax_summary = dividend_tax_summary

    @property
    def latest_holdings(self) -> List[PurchaseLot]:
        """Open lots of the most recent year snapshot, i.e. the current stock holdings."""
        if not self.stock_holdings_by_year:
            return []
        return self.stock_holdings_by_year[max(self.stock_holdings_by_year, key=int)]


def run_resolution_pipeline(service: UploadService, user_id: int) -> ProcessingOutput:
    """
    Collects the report sections of a user from the service. Results come from the
    service's report cache where present, so the history is resolved at most once.
    """
    logger.info(f"Collecting report data for user {user_id}...")
    upload_result = service.get_latest_upload_result(user_id)
    dividend_summary = service.get_dividend_tax_summary(user_id)

    logger.info(f"Report data ready: {len(upload_result.stock_sale_details)} stock sale details, "
                f"{len(upload_result.option_sale_details)} option sale details, "
                f"{len(upload_result.fee_details)} fee entries, {len(upload_result.cash_movements)} cash movements.")
    return ProcessingOutput(upload_result, dividend_summary)
