"""
Option Lot Resolver Tests

Opening and closing of long and short option positions per contract, including
trades that close more than is open and flip the position.
"""

from decimal import Decimal

from tax_lot_engine.domain.enums import BuySell
from tax_lot_engine.engine.option_lot_resolver import OptionLotResolver
from tests.helpers.csv_creators import option_trade, stock_buy

CALL = "AAPL C150.00 17JAN25"
PUT = "AAPL P140.00 17JAN25"


class TestLongPositions:
    def setup_method(self):
        self.resolver = OptionLotResolver()

    def test_close_long_profit_is_close_minus_open(self):
        txs = [
            option_trade("01-03-2024", BuySell.BUY, 2, "2.5", order_id="O-1"),
            option_trade("15-03-2024", BuySell.SELL, 2, "4", order_id="O-2"),
        ]
        sales, holdings = self.resolver.resolve(txs)

        assert holdings == []
        assert len(sales) == 1
        sale = sales[0]
        assert sale.quantity == Decimal(2)
        assert sale.open_date == "01-03-2024"
        assert sale.close_date == "15-03-2024"
        assert sale.open_amount_eur == Decimal(500)
        assert sale.close_amount_eur == Decimal(800)
        assert sale.delta == Decimal(300)
        assert sale.open_order_id == "O-1"
        assert sale.close_order_id == "O-2"

    def test_partial_close_leaves_long_holding(self):
        txs = [
            option_trade("01-03-2024", BuySell.BUY, 3, "2"),
            option_trade("15-03-2024", BuySell.SELL, 1, "3"),
        ]
        sales, holdings = self.resolver.resolve(txs)

        assert [s.delta for s in sales] == [Decimal(100)]
        assert len(holdings) == 1
        assert holdings[0].quantity == Decimal(2)
        assert not holdings[0].is_short
        assert holdings[0].open_amount_eur == Decimal(400)

    def test_close_commission_is_allocated_per_chunk(self):
        txs = [
            option_trade("01-03-2024", BuySell.BUY, 1, "2"),
            option_trade("02-03-2024", BuySell.BUY, 1, "2"),
            option_trade("03-03-2024", BuySell.SELL, 2, "3", commission="1.50"),
        ]
        sales, _ = self.resolver.resolve(txs)
        assert [s.commission for s in sales] == [Decimal("0.75"), Decimal("0.75")]
        assert [s.open_date for s in sales] == ["01-03-2024", "02-03-2024"]


class TestShortPositions:
    def setup_method(self):
        self.resolver = OptionLotResolver()

    def test_close_short_profit_is_open_minus_close(self):
        txs = [
            option_trade("01-04-2024", BuySell.SELL, 1, "3"),
            option_trade("20-04-2024", BuySell.BUY, 1, "1"),
        ]
        sales, holdings = self.resolver.resolve(txs)

        assert holdings == []
        assert len(sales) == 1
        assert sales[0].quantity == Decimal(-1)
        assert sales[0].open_amount_eur == Decimal(300)
        assert sales[0].close_amount_eur == Decimal(100)
        assert sales[0].delta == Decimal(200)

    def test_short_closed_at_a_loss(self):
        txs = [
            option_trade("01-04-2024", BuySell.SELL, 1, "1"),
            option_trade("20-04-2024", BuySell.BUY, 1, "4"),
        ]
        sales, _ = self.resolver.resolve(txs)
        assert sales[0].delta == Decimal(-300)

    def test_open_short_holding_has_negative_quantity(self):
        sales, holdings = self.resolver.resolve([option_trade("01-04-2024", BuySell.SELL, 2, "1.5", contract=PUT)])

        assert sales == []
        assert len(holdings) == 1
        assert holdings[0].product_name == PUT
        assert holdings[0].quantity == Decimal(-2)
        assert holdings[0].is_short
        assert holdings[0].open_amount_eur == Decimal(300)


class TestPositionFlips:
    def test_overclose_of_long_opens_short_with_remainder(self):
        txs = [
            option_trade("01-05-2024", BuySell.BUY, 1, "2"),
            option_trade("10-05-2024", BuySell.SELL, 3, "3"),
        ]
        sales, holdings = OptionLotResolver().resolve(txs)

        assert len(sales) == 1
        assert sales[0].quantity == Decimal(1)
        assert sales[0].close_amount_eur == Decimal(300)
        assert sales[0].delta == Decimal(100)

        assert len(holdings) == 1
        assert holdings[0].quantity == Decimal(-2)
        assert holdings[0].open_date == "10-05-2024"
        assert holdings[0].open_amount_eur == Decimal(600)

    def test_flipped_short_is_closed_by_later_buy(self):
        txs = [
            option_trade("01-05-2024", BuySell.BUY, 1, "2"),
            option_trade("10-05-2024", BuySell.SELL, 3, "3"),
            option_trade("20-05-2024", BuySell.BUY, 2, "1"),
        ]
        sales, holdings = OptionLotResolver().resolve(txs)

        assert holdings == []
        assert [s.quantity for s in sales] == [Decimal(1), Decimal(-2)]
        assert sales[1].delta == Decimal(400)


class TestContractGrouping:
    def test_contracts_are_matched_by_product_name(self):
        txs = [
            option_trade("01-06-2024", BuySell.BUY, 1, "2", contract=CALL),
            option_trade("02-06-2024", BuySell.SELL, 1, "3", contract=PUT),
        ]
        sales, holdings = OptionLotResolver().resolve(txs)

        assert sales == []
        assert [(h.product_name, h.quantity) for h in holdings] == [(CALL, Decimal(1)), (PUT, Decimal(-1))]

    def test_stock_rows_are_ignored(self):
        sales, holdings = OptionLotResolver().resolve([stock_buy("01-06-2024", 10, "100")])
        assert sales == [] and holdings == []
