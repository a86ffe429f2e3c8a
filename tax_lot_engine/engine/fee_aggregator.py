# tax_lot_engine/engine/fee_aggregator.py
import logging
from typing import List, Set

from tax_lot_engine import config
from tax_lot_engine.domain.enums import TransactionType, TransactionSubType, FeeCategory
from tax_lot_engine.domain.results import FeeDetail
from tax_lot_engine.domain.transactions import ProcessedTransaction

logger = logging.getLogger(__name__)


class FeeAggregator:
    """Flat fee ledger: FEE rows plus one commission entry per order id."""

    def aggregate(self, transactions: List[ProcessedTransaction]) -> List[FeeDetail]:
        fee_details: List[FeeDetail] = []
        charged_orders: Set[str] = set()

        for tx in transactions:
            if tx.transaction_type is TransactionType.FEE:
                category = FeeCategory.INTEREST if tx.transaction_subtype is TransactionSubType.INTEREST else FeeCategory.BROKERAGE_FEE
                fee_details.append(FeeDetail(tx.date, tx.product_name, tx.amount_eur, tx.source, category))

            # Partial fills share an order id and each carry the order's full commission
            if tx.commission > 0 and tx.order_id and tx.order_id not in charged_orders:
                fee_details.append(FeeDetail(
                    tx.date,
                    f"Commission for {tx.product_name}",
                    -tx.commission.quantize(config.OUTPUT_PRECISION_AMOUNTS),
                    tx.source,
                    FeeCategory.TRADE_COMMISSION,
                ))
                charged_orders.add(tx.order_id)

        logger.info(f"Fee aggregation: {len(fee_details)} entries, {len(charged_orders)} of them trade commissions.")
        return fee_details
