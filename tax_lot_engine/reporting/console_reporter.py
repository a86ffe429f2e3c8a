# tax_lot_engine/reporting/console_reporter.py
import logging
from collections import defaultdict
from decimal import Decimal
from typing import Dict, List, Optional

from tax_lot_engine.domain.enums import CashMovementType, PriceStatus
from tax_lot_engine.domain.results import DividendMetrics, HoldingWithValue, SaleDetail, OptionSaleDetail
from tax_lot_engine.pipeline_runner import ProcessingOutput
from tax_lot_engine.reporting.reporting_utils import _q, _q_qty, _q_price, format_percent

logger = logging.getLogger(__name__)


def format_quantity(qty: Decimal) -> str:
    if qty == qty.to_integral_value():
        return str(int(qty))
    return str(_q_qty(qty))


def _sales_year(sale_date: str) -> str:
    # DD-MM-YYYY
    return sale_date[6:10]


def _print_stock_sales(sales: List[SaleDetail]) -> None:
    print("\n--- Realized Stock Sales (FIFO, EUR) ---")
    if not sales:
        print("  No stock sales.")
        return
    by_year: Dict[str, List[SaleDetail]] = defaultdict(list)
    for sale in sales:
        by_year[_sales_year(sale.sale_date)].append(sale)
    for year in sorted(by_year):
        year_sales = by_year[year]
        print(f"\n  {year}")
        for s in year_sales:
            print(f"    {s.sale_date}  {s.product_name[:30]:<30} {s.isin:<12}  qty {format_quantity(s.quantity):>8}  "
                  f"bought {s.buy_date} for {_q(s.buy_amount_eur):>10}  sold for {_q(s.sale_amount_eur):>10}  "
                  f"P/L {_q(s.delta):>10}  commission {_q(s.commission)}")
        gains = sum((s.delta for s in year_sales if s.delta > 0), Decimal(0))
        losses = sum((s.delta for s in year_sales if s.delta < 0), Decimal(0))
        print(f"    Total gains: {_q(gains)}  Total losses: {_q(losses)}  Net: {_q(gains + losses)}")


def _print_option_sales(sales: List[OptionSaleDetail]) -> None:
    print("\n--- Closed Option Positions (FIFO, EUR) ---")
    if not sales:
        print("  No closed option positions.")
        return
    for s in sales:
        side = "short" if s.quantity < 0 else "long"
        print(f"  {s.open_date} -> {s.close_date}  {s.product_name[:34]:<34} {side:<5} qty {format_quantity(abs(s.quantity)):>5}  "
              f"open {_q(s.open_amount_eur):>9}  close {_q(s.close_amount_eur):>9}  P/L {_q(s.delta):>9}")
    print(f"  Net option P/L: {_q(sum((s.delta for s in sales), Decimal(0)))}")


def _print_holdings(output: ProcessingOutput, holdings_with_value: Optional[List[HoldingWithValue]]) -> None:
    print("\n--- Current Stock Holdings ---")
    if holdings_with_value is not None:
        if not holdings_with_value:
            print("  No open stock positions.")
        for h in holdings_with_value:
            price = _q_price(h.current_price_eur) if h.status is PriceStatus.OK else "n/a"
            print(f"  {h.product_name[:30]:<30} {h.isin:<12} qty {format_quantity(h.quantity):>8}  cost {_q(h.total_cost_basis_eur):>10}  "
                  f"price {price}  value {_q(h.market_value_eur):>10}  [{h.status.value}]")
        return
    lots = output.latest_holdings
    if not lots:
        print("  No open stock positions.")
    for lot in lots:
        print(f"  {lot.buy_date}  {lot.product_name[:30]:<30} {lot.isin:<12} qty {format_quantity(lot.quantity):>8}  "
              f"@ {_q_price(lot.buy_price)} {lot.buy_currency}  cost {_q(lot.buy_amount_eur)} EUR")


def generate_console_report(output: ProcessingOutput,
                            holdings_with_value: Optional[List[HoldingWithValue]] = None,
                            metrics: Optional[DividendMetrics] = None) -> None:
    logger.info("Generating console report...")
    print("\n=== Portfolio Tax Lot Report (all amounts in EUR unless stated) ===")

    _print_stock_sales(output.stock_sale_details)
    _print_holdings(output, holdings_with_value)
    _print_option_sales(output.option_sale_details)

    print("\n--- Open Option Positions ---")
    if not output.option_holdings:
        print("  No open option positions.")
    for h in output.option_holdings:
        print(f"  {h.open_date}  {h.product_name[:40]:<40} qty {format_quantity(h.quantity):>5}  open amount {_q(h.open_amount_eur)}")

    print("\n--- Dividends by Year and Country ---")
    if not output.dividend_tax_summary:
        print("  No dividends.")
    for year in sorted(output.dividend_tax_summary):
        print(f"  {year}")
        for country, summary in sorted(output.dividend_tax_summary[year].items()):
            print(f"    {country:<45} gross {_q(summary.gross_amount):>10}  withheld tax {_q(summary.taxed_amount):>10}")
    if metrics is not None and metrics.has_data:
        print(f"  Trailing 12 months: {_q(metrics.total_dividends_ttm)}  yield {format_percent(metrics.portfolio_yield)}  "
              f"yield on cost {format_percent(metrics.yield_on_cost)}")

    print("\n--- Fees ---")
    totals: Dict[str, Decimal] = defaultdict(Decimal)
    for fee in output.fee_details:
        totals[fee.category.value] += fee.amount_eur
    if not totals:
        print("  No fees.")
    for category, total in sorted(totals.items()):
        print(f"  {category:<20} {_q(total):>10}")

    print("\n--- Cash Movements ---")
    deposits = sum((m.amount for m in output.cash_movements if m.type is CashMovementType.DEPOSIT), Decimal(0))
    withdrawals = sum((m.amount for m in output.cash_movements if m.type is CashMovementType.WITHDRAWAL), Decimal(0))
    print(f"  Deposits: {_q(deposits)}  Withdrawals: {_q(withdrawals)}  ({len(output.cash_movements)} movements)")
    print("\n=== End of Report ===")
