# tax_lot_engine/main.py
import logging
import os
import sys
from decimal import getcontext

import tax_lot_engine.config as config
from tax_lot_engine.cli import parse_arguments
from tax_lot_engine.domain.enums import DeletionMode
from tax_lot_engine.pipeline_runner import run_resolution_pipeline
from tax_lot_engine.processing.enrichment import TransactionEnricher
from tax_lot_engine.reporting.console_reporter import generate_console_report
from tax_lot_engine.reporting.pdf_generator import PdfReportGenerator
from tax_lot_engine.services.price_oracle import StaticPriceOracle
from tax_lot_engine.services.report_cache import ReportCache
from tax_lot_engine.services.upload_service import UploadService
from tax_lot_engine.storage.database import connect
from tax_lot_engine.storage.transaction_repository import TransactionRepository
from tax_lot_engine.utils.currency_converter import CurrencyConverter
from tax_lot_engine.utils.exchange_rate_provider import ECBExchangeRateProvider, OfflineExchangeRateProvider, RateCache

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def setup_decimal_context():
    """Sets the global decimal precision and rounding mode."""
    getcontext().prec = config.INTERNAL_CALCULATION_PRECISION
    valid_rounding_modes = ["ROUND_CEILING", "ROUND_DOWN", "ROUND_FLOOR", "ROUND_HALF_DOWN",
                            "ROUND_HALF_EVEN", "ROUND_HALF_UP", "ROUND_UP", "ROUND_05UP"]
    rounding_mode_to_set = config.DECIMAL_ROUNDING_MODE
    if rounding_mode_to_set not in valid_rounding_modes:
        logger.warning(f"Invalid DECIMAL_ROUNDING_MODE '{rounding_mode_to_set}' in config. Using ROUND_HALF_UP as fallback.")
        rounding_mode_to_set = "ROUND_HALF_UP"

    getcontext().rounding = rounding_mode_to_set
    logger.info(f"Global decimal precision set to {getcontext().prec}, rounding mode to {getcontext().rounding}.")


def build_service(db_path: str, offline: bool, prices=None) -> UploadService:
    """Wires the store, rate provider, enricher and caches once per process."""
    if offline:
        rate_provider = OfflineExchangeRateProvider()
    else:
        rate_provider = ECBExchangeRateProvider(rate_cache=RateCache(config.EXCHANGE_RATE_CACHE_TTL_SECONDS))
    enricher = TransactionEnricher(CurrencyConverter(rate_provider))
    repository = TransactionRepository(connect(db_path))
    price_oracle = StaticPriceOracle(prices) if prices else None
    return UploadService(repository, enricher, ReportCache(), price_oracle=price_oracle)


def main_application(argv=None):
    """
    Main application entry point.
    Parses arguments, applies deletions and uploads, and generates reports.
    """
    args = parse_arguments(argv)
    setup_decimal_context()

    logger.info("Starting tax lot engine...")

    try:
        service = build_service(args.db, args.offline, args.prices)

        if args.delete_all:
            service.delete_transactions(args.user_id, DeletionMode.ALL)
        if args.delete_source:
            service.delete_transactions(args.user_id, DeletionMode.SOURCE, sources=args.delete_source)
        if args.delete_year:
            service.delete_transactions(args.user_id, DeletionMode.YEAR, year=args.delete_year)

        if args.file:
            with open(args.file, "rb") as f:
                file_bytes = f.read()
            service.process_upload(args.user_id, file_bytes, args.source,
                                   filename=os.path.basename(args.file), filesize=len(file_bytes))
    except Exception as e:
        logger.critical(f"Processing failed: {e}. Exiting.", exc_info=True)
        sys.exit(1)

    if args.report_console or args.pdf_output_file:
        try:
            output = run_resolution_pipeline(service, args.user_id)
            holdings_with_value = service.get_current_holdings_with_value(args.user_id) if args.prices else None
            metrics = service.get_dividend_metrics(args.user_id)
        except Exception as e:
            logger.critical(f"Resolving the transaction history failed: {e}. Exiting.", exc_info=True)
            sys.exit(1)

        if args.report_console:
            generate_console_report(output, holdings_with_value, metrics)
        if args.pdf_output_file:
            try:
                PdfReportGenerator(output, holdings_with_value, metrics).generate_report(args.pdf_output_file)
            except Exception as e:
                logger.error(f"PDF report '{args.pdf_output_file}' could not be generated: {e}", exc_info=True)

    logger.info("Processing finished.")


if __name__ == "__main__":
    main_application()
