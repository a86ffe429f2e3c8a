# tax_lot_engine/engine/lot_arena.py
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class FifoLot:
    """
    An opened position chunk (a stock buy or an option open) waiting to be matched.
    Per-unit values are kept so any portion can be priced without re-deriving it from totals.
    """
    key: str # ISIN for stocks, contract name for options
    opened_on: date
    quantity: Decimal # Quantity at opening, always positive
    unit_price: Decimal
    unit_amount: Decimal # Per unit, original currency, magnitude
    unit_amount_eur: Decimal # Per unit, EUR, magnitude
    currency: str
    exchange_rate: Decimal
    source_transaction_id: str
    product_name: str = ""
    isin: str = ""
    order_id: str = ""
    country_code: str = ""
    is_short: bool = False
    remaining_quantity: Decimal = field(init=False)

    def __post_init__(self):
        if not isinstance(self.quantity, Decimal) or not self.quantity.is_finite() or self.quantity <= Decimal(0):
            raise ValueError(f"FifoLot quantity must be a positive finite Decimal: {self.quantity} (type: {type(self.quantity)})")
        if not isinstance(self.unit_amount_eur, Decimal) or not self.unit_amount_eur.is_finite() or self.unit_amount_eur < Decimal(0):
            raise ValueError(f"FifoLot unit_amount_eur must be a non-negative finite Decimal: {self.unit_amount_eur}")
        if not self.source_transaction_id:
            raise ValueError("FifoLot requires a non-empty source_transaction_id.")
        self.remaining_quantity = self.quantity

    @property
    def is_exhausted(self) -> bool:
        return self.remaining_quantity <= Decimal(0)


@dataclass(frozen=True)
class LotConsumption:
    """A portion of one lot taken by a closing transaction."""
    lot_index: int
    lot: FifoLot
    quantity: Decimal


class LotArena:
    """
    Arena of FIFO lots. Lots are appended once and never removed; each key has an ordered list of
    lot indices and a cursor pointing at its oldest lot that still has quantity. Consumption
    advances the cursor instead of deleting from a live list.
    """
    def __init__(self):
        self._lots: List[FifoLot] = []
        self._indices_by_key: Dict[str, List[int]] = {}
        self._cursor_by_key: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._lots)

    def keys(self) -> List[str]:
        """Keys in order of first appearance."""
        return list(self._indices_by_key.keys())

    def push(self, lot: FifoLot) -> int:
        index = len(self._lots)
        self._lots.append(lot)
        self._indices_by_key.setdefault(lot.key, []).append(index)
        self._cursor_by_key.setdefault(lot.key, 0)
        return index

    def lot(self, index: int) -> FifoLot:
        return self._lots[index]

    def open_quantity(self, key: str) -> Decimal:
        return sum((lot.remaining_quantity for lot in self.open_lots(key)), Decimal(0))

    def front(self, key: str) -> Optional[FifoLot]:
        for lot in self.open_lots(key):
            return lot
        return None

    def consume(self, key: str, quantity: Decimal) -> Tuple[List[LotConsumption], Decimal]:
        """
        Takes `quantity` from the oldest open lots of `key`.
        Returns the consumed portions in FIFO order and the quantity that could not be matched.
        """
        if quantity < 0:
            raise ValueError(f"Cannot consume a negative quantity ({quantity}) for '{key}'.")
        indices = self._indices_by_key.get(key, [])
        cursor = self._cursor_by_key.get(key, 0)
        remaining_to_consume = quantity
        consumptions: List[LotConsumption] = []

        while remaining_to_consume > 0 and cursor < len(indices):
            lot_index = indices[cursor]
            lot = self._lots[lot_index]
            if lot.is_exhausted:
                cursor += 1
                continue
            taken = min(lot.remaining_quantity, remaining_to_consume)
            lot.remaining_quantity -= taken
            remaining_to_consume -= taken
            consumptions.append(LotConsumption(lot_index, lot, taken))
            if lot.is_exhausted:
                cursor += 1

        if key in self._indices_by_key:
            self._cursor_by_key[key] = cursor
        return consumptions, remaining_to_consume

    def open_lots(self, key: Optional[str] = None) -> Iterator[FifoLot]:
        """Open lots of one key, or of all keys (by first appearance), oldest first."""
        keys = [key] if key is not None else self.keys()
        for k in keys:
            indices = self._indices_by_key.get(k, [])
            for lot_index in indices[self._cursor_by_key.get(k, 0):]:
                lot = self._lots[lot_index]
                if not lot.is_exhausted:
                    yield lot
