"""
Stock Lot Resolver Tests

FIFO matching of stock buys and sells: data-driven scenarios from
fixtures/stock_fifo_scenarios.yaml plus targeted checks of grouping, ordering,
commission allocation and the oversell clamp.
"""

import logging
from decimal import Decimal

import pytest

from tax_lot_engine.domain.enums import BuySell, TransactionType
from tax_lot_engine.engine.stock_lot_resolver import StockLotResolver
from tests.fixtures import get_stock_fifo_scenarios, StockFifoScenario
from tests.helpers.csv_creators import stock_buy, stock_sell, make_processed_tx


SCENARIOS = get_stock_fifo_scenarios()


def _build_transactions(scenario: StockFifoScenario):
    txs = []
    for trade in scenario.trades:
        builder = stock_buy if trade.type == "BUY" else stock_sell
        txs.append(builder(trade.date, trade.qty, trade.price, isin=trade.isin,
                           currency=trade.currency, exchange_rate=trade.rate))
    return txs


@pytest.mark.parametrize("scenario", SCENARIOS, ids=[s.name for s in SCENARIOS])
def test_stock_fifo_scenario(scenario: StockFifoScenario):
    sales, holdings = StockLotResolver().resolve(_build_transactions(scenario))

    assert len(sales) == len(scenario.expected_sales)
    for actual, expected in zip(sales, scenario.expected_sales):
        assert actual.quantity == expected.quantity
        assert actual.buy_date == expected.buy_date
        assert actual.sale_date == expected.sale_date
        assert actual.buy_amount_eur == expected.buy_amount_eur
        assert actual.sale_amount_eur == expected.sale_amount_eur
        assert actual.delta == expected.delta

    assert set(holdings) == set(scenario.expected_holdings)
    for year, expected_lots in scenario.expected_holdings.items():
        actual_lots = holdings[year]
        assert len(actual_lots) == len(expected_lots), f"year {year}"
        for actual, expected in zip(actual_lots, expected_lots):
            assert actual.quantity == expected.quantity
            assert actual.buy_date == expected.buy_date
            assert actual.buy_price == expected.buy_price
            if expected.buy_amount_eur is not None:
                assert actual.buy_amount_eur == expected.buy_amount_eur


class TestStockLotResolver:
    """Behaviour beyond the YAML scenarios."""

    def setup_method(self):
        self.resolver = StockLotResolver()

    def test_quantity_is_conserved_for_buy_then_sell_sequences(self):
        txs = [
            stock_buy("02-01-2023", 7, "10"),
            stock_buy("03-01-2023", 3, "11"),
            stock_buy("04-01-2023", 12, "9.5"),
            stock_sell("05-01-2023", 4, "12"),
            stock_sell("06-01-2023", 9, "13"),
        ]
        sales, holdings = self.resolver.resolve(txs)

        sold = sum((s.quantity for s in sales), Decimal(0))
        remaining = sum((lot.quantity for lot in holdings["2023"]), Decimal(0))
        assert sold + remaining == Decimal(22)
        assert sold == Decimal(13)

    def test_isins_are_matched_independently(self):
        apple = "US0378331005"
        sap = "DE0007164600"
        txs = [
            stock_buy("01-02-2023", 10, "100", isin=apple, product_name="APPLE INC"),
            stock_buy("02-02-2023", 5, "50", isin=sap, product_name="SAP SE"),
            stock_sell("03-02-2023", 5, "60", isin=sap, product_name="SAP SE"),
        ]
        sales, holdings = self.resolver.resolve(txs)

        assert len(sales) == 1
        assert sales[0].isin == sap
        assert sales[0].delta == Decimal("50")
        assert [lot.isin for lot in holdings["2023"]] == [apple]
        assert holdings["2023"][0].quantity == Decimal(10)

    def test_same_day_rows_are_ordered_by_id(self):
        # Sell carries the higher id, so the same-day buy is matched first
        buy = stock_buy("10-03-2023", 5, "20", tx_id=100)
        sell = stock_sell("10-03-2023", 5, "25", tx_id=101)
        sales, holdings = self.resolver.resolve([sell, buy])

        assert len(sales) == 1
        assert sales[0].delta == Decimal("25")
        assert holdings["2023"] == []

    def test_input_order_does_not_matter_across_dates(self):
        txs = [
            stock_sell("05-04-2023", 5, "30"),
            stock_buy("01-04-2023", 5, "20"),
        ]
        sales, _ = self.resolver.resolve(txs)
        assert len(sales) == 1
        assert sales[0].buy_date == "01-04-2023"

    def test_sell_commission_is_allocated_pro_rata(self):
        txs = [
            stock_buy("01-03-2023", 10, "100"),
            stock_buy("02-03-2023", 5, "110"),
            stock_sell("03-03-2023", 12, "120", commission="6.00", order_id="S-1"),
        ]
        sales, _ = self.resolver.resolve(txs)

        assert [s.commission for s in sales] == [Decimal("5.00"), Decimal("1.00")]

    def test_country_code_is_carried_to_sale_details(self):
        txs = [stock_buy("01-03-2023", 1, "100"), stock_sell("02-03-2023", 1, "120")]
        sales, _ = self.resolver.resolve(txs)
        assert sales[0].country_code == "840 - United States of America (the)"

    def test_oversell_logs_warning(self, caplog):
        txs = [stock_buy("05-05-2023", 5, "10"), stock_sell("06-05-2023", 8, "12")]
        with caplog.at_level(logging.WARNING, logger="tax_lot_engine.engine.stock_lot_resolver"):
            sales, _ = self.resolver.resolve(txs)

        assert sum((s.quantity for s in sales), Decimal(0)) == Decimal(5)
        assert any("Oversell" in r.message and "US0378331005" in r.message for r in caplog.records)

    def test_sell_without_any_open_lot_produces_no_sale(self):
        sales, holdings = self.resolver.resolve([stock_sell("06-05-2023", 3, "12")])
        assert sales == []
        assert holdings == {"2023": []}

    def test_non_stock_rows_are_ignored(self):
        dividend = make_processed_tx("15-05-2023", TransactionType.DIVIDEND, amount="12.50")
        option = make_processed_tx("16-05-2023", TransactionType.OPTION, BuySell.BUY, 1, "2.5",
                                   product_name="AAPL C150.00 17JAN25", isin="")
        sales, holdings = self.resolver.resolve([dividend, option])
        assert sales == []
        assert holdings == {}

    def test_empty_history(self):
        assert self.resolver.resolve([]) == ([], {})
