# tax_lot_engine/engine/cash_movements.py
import logging
from typing import List

from tax_lot_engine.domain.enums import TransactionType, TransactionSubType, CashMovementType
from tax_lot_engine.domain.results import CashMovement
from tax_lot_engine.domain.transactions import ProcessedTransaction

logger = logging.getLogger(__name__)

_MOVEMENT_TYPES = {
    TransactionSubType.DEPOSIT: CashMovementType.DEPOSIT,
    TransactionSubType.WITHDRAWAL: CashMovementType.WITHDRAWAL,
}


def extract_cash_movements(transactions: List[ProcessedTransaction]) -> List[CashMovement]:
    movements = [
        CashMovement(tx.date, _MOVEMENT_TYPES[tx.transaction_subtype], tx.amount.copy_abs(), tx.currency)
        for tx in transactions
        if tx.transaction_type is TransactionType.CASH and tx.transaction_subtype in _MOVEMENT_TYPES
    ]
    logger.debug(f"Extracted {len(movements)} cash movements.")
    return movements
