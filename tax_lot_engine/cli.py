# tax_lot_engine/cli.py
import argparse
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

import tax_lot_engine.config as config


def parse_price_overrides(values: Optional[List[str]]) -> Dict[str, Decimal]:
    """Turns ['US0378331005=187.5', ...] into {ISIN: Decimal price}."""
    prices: Dict[str, Decimal] = {}
    for item in values or []:
        isin, sep, raw_price = item.partition("=")
        if not sep or not isin.strip():
            raise argparse.ArgumentTypeError(f"Price must be given as ISIN=PRICE, got '{item}'.")
        try:
            prices[isin.strip().upper()] = Decimal(raw_price.strip().replace(",", "."))
        except InvalidOperation:
            raise argparse.ArgumentTypeError(f"Invalid price '{raw_price}' for {isin}.")
    return prices


def parse_arguments(argv: Optional[List[str]] = None):
    """Parses command line arguments for the application."""
    parser = argparse.ArgumentParser(description="Broker export tax lot engine (FIFO sales, holdings, dividends, fees)")

    # Input
    parser.add_argument("--file", type=str, default=None, help="Path to a broker export file to ingest.")
    parser.add_argument("--source", default=config.DEFAULT_SOURCE, choices=config.SUPPORTED_SOURCES, help="Broker format of --file.")
    parser.add_argument("--user-id", type=int, default=1, help="User whose transactions are read and written.")
    parser.add_argument("--db", default=config.DATABASE_FILE_PATH, help="Path to the SQLite transaction store.")
    parser.add_argument("--offline", action="store_true", help="Do not query the ECB; foreign amounts are converted at 1.0.")

    # Deletion
    parser.add_argument("--delete-all", action="store_true", help="Delete all stored transactions of the user.")
    parser.add_argument("--delete-source", nargs="+", metavar="SOURCE", help="Delete the user's transactions from these sources.")
    parser.add_argument("--delete-year", type=int, metavar="YEAR", help="Delete the user's transactions dated in YEAR.")

    # Reporting
    parser.add_argument("--report-console", action="store_true", help="Print the resolved report to the console.")
    parser.add_argument("--pdf-output-file", type=str, default=None, help="Write the resolved report to this PDF file.")
    parser.add_argument("--price", action="append", metavar="ISIN=PRICE", help="Current EUR price of a holding, for valuation. Repeatable.")

    args = parser.parse_args(argv)

    try:
        args.prices = parse_price_overrides(args.price)
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))

    if not (args.file or args.delete_all or args.delete_source or args.delete_year
            or args.report_console or args.pdf_output_file):
        args.report_console = True

    return args
