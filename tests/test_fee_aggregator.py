"""
Fee Ledger Tests

Broker fees, interest and one commission entry per order.
"""

from decimal import Decimal

from tax_lot_engine.domain.enums import TransactionType, TransactionSubType, FeeCategory
from tax_lot_engine.engine.fee_aggregator import FeeAggregator
from tests.helpers.csv_creators import make_processed_tx, stock_buy, stock_sell


class TestFeeAggregator:
    def setup_method(self):
        self.aggregator = FeeAggregator()

    def test_fee_rows_become_brokerage_fees(self):
        fee = make_processed_tx("03-01-2024", TransactionType.FEE, amount="-2.50", product_name="Custo de Conectividade", isin="")
        details = self.aggregator.aggregate([fee])

        assert len(details) == 1
        assert details[0].date == "03-01-2024"
        assert details[0].description == "Custo de Conectividade"
        assert details[0].amount_eur == Decimal("-2.50")
        assert details[0].source == "degiro"
        assert details[0].category is FeeCategory.BROKERAGE_FEE

    def test_interest_rows_are_categorized_as_interest(self):
        interest = make_processed_tx("31-01-2024", TransactionType.FEE, amount="-0.12", subtype=TransactionSubType.INTEREST, isin="")
        assert self.aggregator.aggregate([interest])[0].category is FeeCategory.INTEREST

    def test_one_commission_entry_per_order(self):
        # Two partial fills of one order both carry the order's commission
        txs = [
            stock_buy("01-02-2024", 6, "10", commission="2.00", order_id="ord-1"),
            stock_buy("01-02-2024", 4, "10", commission="2.00", order_id="ord-1"),
            stock_sell("05-02-2024", 10, "12", commission="1.234", order_id="ord-2"),
        ]
        details = self.aggregator.aggregate(txs)

        assert [d.category for d in details] == [FeeCategory.TRADE_COMMISSION] * 2
        assert [d.amount_eur for d in details] == [Decimal("-2.00"), Decimal("-1.23")]
        assert details[0].description == "Commission for APPLE INC"

    def test_commission_without_order_id_or_amount_is_not_listed(self):
        txs = [
            stock_buy("01-02-2024", 1, "10", commission="2.00"),
            stock_buy("02-02-2024", 1, "10", order_id="ord-9"),
        ]
        assert self.aggregator.aggregate(txs) == []

    def test_ledger_follows_input_order(self):
        txs = [
            stock_buy("01-02-2024", 1, "10", commission="1.00", order_id="ord-1"),
            make_processed_tx("02-02-2024", TransactionType.FEE, amount="-2.50", isin=""),
        ]
        assert [d.category for d in self.aggregator.aggregate(txs)] == [FeeCategory.TRADE_COMMISSION, FeeCategory.BROKERAGE_FEE]
