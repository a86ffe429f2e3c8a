# tax_lot_engine/engine/option_lot_resolver.py
import logging
from decimal import Decimal
from typing import List, Tuple

from tax_lot_engine.domain.enums import TransactionType, BuySell
from tax_lot_engine.domain.results import OptionHolding, OptionSaleDetail
from tax_lot_engine.domain.transactions import ProcessedTransaction
from tax_lot_engine.utils.type_utils import format_processed_date
from .lot_arena import FifoLot, LotArena
from .stock_lot_resolver import trade_quantity, source_id

logger = logging.getLogger(__name__)


def contract_key(tx: ProcessedTransaction) -> str:
    return tx.product_name.strip() or tx.isin.strip()


class OptionLotResolver:
    """
    Matches option opens and closes per contract, FIFO, for long and short positions.

    A BUY against an open short (or a SELL against an open long) closes; anything beyond the open
    quantity opens a new position in the trade's direction. Long profit = close - open,
    short profit = open - close (EUR magnitudes).
    """

    def resolve(self, transactions: List[ProcessedTransaction]) -> Tuple[List[OptionSaleDetail], List[OptionHolding]]:
        option_txs = [tx for tx in transactions if tx.transaction_type is TransactionType.OPTION]
        option_txs.sort(key=lambda tx: tx.sort_key())

        arena = LotArena()
        sale_details: List[OptionSaleDetail] = []

        for tx in option_txs:
            quantity = trade_quantity(tx)
            if quantity == 0 or tx.buy_sell is BuySell.NONE:
                logger.warning(f"Skipping option transaction without quantity or direction: {tx.product_name} on {tx.date}.")
                continue

            key = contract_key(tx)
            selling = tx.buy_sell is BuySell.SELL
            front = arena.front(key)

            if front is None or front.is_short == selling:
                # Flat, or adding to the position in the same direction
                self._open(arena, tx, quantity, quantity, is_short=selling)
                continue

            consumptions, unmatched = arena.consume(key, quantity)
            sale_details.extend(self._close(tx, quantity, consumptions))
            if unmatched > 0:
                logger.info(f"Option {key} on {tx.date}: closing trade exceeds the open position by {unmatched}; "
                            f"opening a {'short' if selling else 'long'} position with the remainder.")
                self._open(arena, tx, unmatched, quantity, is_short=selling)

        holdings = [self._holding(lot) for lot in arena.open_lots()]
        logger.info(f"Option resolution: {len(option_txs)} transactions, {len(sale_details)} closed chunks, {len(holdings)} open holdings.")
        return sale_details, holdings

    @staticmethod
    def _open(arena: LotArena, tx: ProcessedTransaction, lot_quantity: Decimal, trade_quantity_total: Decimal, is_short: bool) -> None:
        arena.push(FifoLot(
            key=contract_key(tx),
            opened_on=tx.date_obj,
            quantity=lot_quantity,
            unit_price=tx.price,
            unit_amount=tx.amount.copy_abs() / trade_quantity_total,
            unit_amount_eur=tx.amount_eur.copy_abs() / trade_quantity_total,
            currency=tx.currency,
            exchange_rate=tx.exchange_rate,
            source_transaction_id=source_id(tx),
            product_name=tx.product_name,
            isin=tx.isin,
            order_id=tx.order_id,
            country_code=tx.country_code,
            is_short=is_short,
        ))

    @staticmethod
    def _close(tx: ProcessedTransaction, trade_quantity_total: Decimal, consumptions) -> List[OptionSaleDetail]:
        unit_close_amount = tx.amount.copy_abs() / trade_quantity_total
        unit_close_amount_eur = tx.amount_eur.copy_abs() / trade_quantity_total
        unit_commission = tx.commission.copy_abs() / trade_quantity_total

        details: List[OptionSaleDetail] = []
        for consumption in consumptions:
            lot = consumption.lot
            chunk = consumption.quantity
            open_amount_eur = lot.unit_amount_eur * chunk
            close_amount_eur = unit_close_amount_eur * chunk
            if lot.is_short:
                delta = open_amount_eur - close_amount_eur
            else:
                delta = close_amount_eur - open_amount_eur
            details.append(OptionSaleDetail(
                format_processed_date(lot.opened_on),
                tx.date,
                lot.product_name,
                -chunk if lot.is_short else chunk,
                open_price=lot.unit_price,
                open_amount=lot.unit_amount * chunk,
                open_currency=lot.currency,
                open_amount_eur=open_amount_eur,
                close_price=tx.price,
                close_amount=unit_close_amount * chunk,
                close_currency=tx.currency,
                close_amount_eur=close_amount_eur,
                commission=unit_commission * chunk,
                delta=delta,
                open_order_id=lot.order_id,
                close_order_id=tx.order_id,
                country_code=lot.country_code or tx.country_code,
            ))
        return details

    @staticmethod
    def _holding(lot: FifoLot) -> OptionHolding:
        remaining = lot.remaining_quantity
        return OptionHolding(
            format_processed_date(lot.opened_on),
            lot.product_name,
            -remaining if lot.is_short else remaining,
            lot.unit_price,
            lot.unit_amount * remaining,
            lot.currency,
            lot.unit_amount_eur * remaining,
            lot.order_id,
        )
