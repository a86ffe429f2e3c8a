# tax_lot_engine/engine/stock_lot_resolver.py
import logging
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from tax_lot_engine.domain.enums import TransactionType, BuySell
from tax_lot_engine.domain.results import PurchaseLot, SaleDetail
from tax_lot_engine.domain.transactions import ProcessedTransaction
from tax_lot_engine.utils.type_utils import format_processed_date
from .lot_arena import FifoLot, LotArena

logger = logging.getLogger(__name__)


def lot_key(tx: ProcessedTransaction) -> str:
    """Stock positions are tracked per ISIN; rows without one fall back to the product name."""
    return tx.isin.strip() or tx.product_name.strip()


def trade_quantity(tx: ProcessedTransaction) -> Decimal:
    quantity = tx.original_quantity if tx.original_quantity else Decimal(tx.quantity)
    return quantity.copy_abs()


def source_id(tx: ProcessedTransaction) -> str:
    return str(tx.id) if tx.id is not None else (tx.hash_id or f"{tx.date}:{tx.product_name}")


class StockLotResolver:
    """
    FIFO matching of stock buys and sells.

    resolve() returns the realized sale chunks and, per calendar year seen in the history, a snapshot
    of the lots still open at the end of that year. The latest year is the current holdings.
    """

    def resolve(self, transactions: List[ProcessedTransaction]) -> Tuple[List[SaleDetail], Dict[str, List[PurchaseLot]]]:
        stock_txs = [tx for tx in transactions if tx.transaction_type is TransactionType.STOCK]
        # Stable: same-day rows without an id keep their input order
        stock_txs.sort(key=lambda tx: tx.sort_key())

        arena = LotArena()
        sale_details: List[SaleDetail] = []
        holdings_by_year: Dict[str, List[PurchaseLot]] = {}
        current_year: Optional[int] = None

        for tx in stock_txs:
            if current_year is not None and tx.year != current_year:
                holdings_by_year[str(current_year)] = self._snapshot(arena)
            current_year = tx.year

            quantity = trade_quantity(tx)
            if quantity == 0:
                logger.warning(f"Skipping stock transaction with zero quantity: {tx.product_name} ({tx.isin}) on {tx.date}.")
                continue

            if tx.buy_sell is BuySell.BUY:
                self._open_lot(arena, tx, quantity)
            elif tx.buy_sell is BuySell.SELL:
                sale_details.extend(self._match_sale(arena, tx, quantity))
            else:
                logger.warning(f"Stock transaction without buy/sell direction ignored: {tx.product_name} on {tx.date}.")

        if current_year is not None:
            holdings_by_year[str(current_year)] = self._snapshot(arena)

        logger.info(f"Stock FIFO resolution: {len(stock_txs)} transactions, {len(sale_details)} sale details, "
                    f"{len(holdings_by_year)} yearly holding snapshots.")
        return sale_details, holdings_by_year

    @staticmethod
    def _open_lot(arena: LotArena, tx: ProcessedTransaction, quantity: Decimal) -> None:
        arena.push(FifoLot(
            key=lot_key(tx),
            opened_on=tx.date_obj,
            quantity=quantity,
            unit_price=tx.price,
            unit_amount=tx.amount.copy_abs() / quantity,
            unit_amount_eur=tx.amount_eur.copy_abs() / quantity,
            currency=tx.currency,
            exchange_rate=tx.exchange_rate,
            source_transaction_id=source_id(tx),
            product_name=tx.product_name,
            isin=tx.isin,
            order_id=tx.order_id,
            country_code=tx.country_code,
        ))

    @staticmethod
    def _match_sale(arena: LotArena, tx: ProcessedTransaction, quantity: Decimal) -> List[SaleDetail]:
        key = lot_key(tx)
        consumptions, unmatched = arena.consume(key, quantity)
        if unmatched > 0:
            # Incomplete history (e.g. an earlier export never uploaded): keep what matched and move on
            logger.warning(f"Oversell of {key} ({tx.product_name}) on {tx.date}: sold {quantity}, only "
                           f"{quantity - unmatched} open. Clamping; {unmatched} units left unmatched.")

        unit_sale_amount = tx.amount.copy_abs() / quantity
        unit_sale_amount_eur = tx.amount_eur.copy_abs() / quantity
        unit_commission = tx.commission.copy_abs() / quantity

        details: List[SaleDetail] = []
        for consumption in consumptions:
            lot = consumption.lot
            chunk = consumption.quantity
            sale_amount_eur = unit_sale_amount_eur * chunk
            buy_amount_eur = lot.unit_amount_eur * chunk
            details.append(SaleDetail(
                tx.date,
                format_processed_date(lot.opened_on),
                tx.product_name or lot.product_name,
                tx.isin or lot.isin,
                chunk,
                sale_price=tx.price,
                sale_amount=unit_sale_amount * chunk,
                sale_currency=tx.currency,
                sale_exchange_rate=tx.exchange_rate,
                sale_amount_eur=sale_amount_eur,
                buy_price=lot.unit_price,
                buy_amount=lot.unit_amount * chunk,
                buy_currency=lot.currency,
                buy_exchange_rate=lot.exchange_rate,
                buy_amount_eur=buy_amount_eur,
                commission=unit_commission * chunk,
                delta=sale_amount_eur - buy_amount_eur,
                country_code=tx.country_code or lot.country_code,
            ))
            logger.debug(f"Matched {chunk} of {key} sold {tx.date} against lot from {lot.opened_on} "
                         f"(delta {sale_amount_eur - buy_amount_eur} EUR).")
        return details

    @staticmethod
    def _snapshot(arena: LotArena) -> List[PurchaseLot]:
        return [
            PurchaseLot(
                format_processed_date(lot.opened_on),
                lot.product_name,
                lot.isin,
                lot.remaining_quantity,
                lot.unit_price,
                lot.unit_amount * lot.remaining_quantity,
                lot.currency,
                lot.unit_amount_eur * lot.remaining_quantity,
            )
            for lot in arena.open_lots()
        ]
