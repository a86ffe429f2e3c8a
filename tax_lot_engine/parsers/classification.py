# tax_lot_engine/parsers/classification.py
"""
Rule-based row classification.

A broker parser describes its dialect as an ordered list of ClassificationRule objects.
Each rule pairs a predicate on the normalized description with an extractor that builds a
Classification. The first matching rule wins; when none matches, the classifier returns the
UNKNOWN variant instead of guessing.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum, auto
from typing import Callable, Generic, List, Optional, Sequence, TypeVar

from tax_lot_engine.domain.enums import TransactionType, TransactionSubType, BuySell
from tax_lot_engine.domain.errors import RowUnrecognized

logger = logging.getLogger(__name__)

RowT = TypeVar("RowT")


class ClassificationKind(Enum):
    TRANSACTION = auto() # Becomes a canonical transaction
    COMMISSION = auto()  # Only feeds commission attribution of its order
    UNKNOWN = auto()


@dataclass(frozen=True)
class Classification:
    kind: ClassificationKind
    transaction_type: Optional[TransactionType] = None
    transaction_subtype: TransactionSubType = TransactionSubType.NONE
    buy_sell: BuySell = BuySell.NONE
    product_name: str = ""
    quantity: Decimal = Decimal("0")
    price: Decimal = Decimal("0")
    rule_name: str = ""

    def __post_init__(self):
        if self.kind is ClassificationKind.TRANSACTION and self.transaction_type is None:
            raise ValueError("A TRANSACTION classification needs a transaction_type.")

    @property
    def is_transaction(self) -> bool:
        return self.kind is ClassificationKind.TRANSACTION

    @property
    def is_commission(self) -> bool:
        return self.kind is ClassificationKind.COMMISSION

    @property
    def is_unknown(self) -> bool:
        return self.kind is ClassificationKind.UNKNOWN


UNKNOWN = Classification(kind=ClassificationKind.UNKNOWN, rule_name="unknown")


@dataclass(frozen=True)
class ClassificationRule(Generic[RowT]):
    name: str
    predicate: Callable[[str], bool]
    extractor: Callable[[RowT, str], Optional[Classification]]


class RowClassifier(Generic[RowT]):
    def __init__(self, rules: Sequence[ClassificationRule[RowT]], describe: Callable[[RowT], str]):
        self.rules: List[ClassificationRule[RowT]] = list(rules)
        self._describe = describe

    def classify(self, row: RowT) -> Classification:
        normalized = self._describe(row)
        for rule in self.rules:
            if not rule.predicate(normalized):
                continue
            classification = rule.extractor(row, normalized)
            if classification is None: # Predicate matched but the details could not be extracted
                logger.debug(f"Rule '{rule.name}' matched '{normalized}' but extracted nothing; trying next rule.")
                continue
            logger.debug(f"Row '{normalized}' classified by rule '{rule.name}' as {classification.kind.name}.")
            return classification
        return UNKNOWN

    def classify_or_raise(self, row: RowT, raw_line: str = "") -> Classification:
        classification = self.classify(row)
        if classification.is_unknown:
            raise RowUnrecognized(raw_line, self._describe(row))
        return classification


def equals(phrase: str) -> Callable[[str], bool]:
    return lambda normalized: normalized.strip() == phrase


def contains(*phrases: str) -> Callable[[str], bool]:
    return lambda normalized: any(phrase in normalized for phrase in phrases)
