# tax_lot_engine/parsers/degiro_parser.py
import csv
import io
import logging
import re
from collections import defaultdict
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from tax_lot_engine.domain.enums import TransactionType, TransactionSubType, BuySell
from tax_lot_engine.domain.errors import ParsingFailed, RowUnrecognized
from tax_lot_engine.domain.transactions import CanonicalTransaction
from .base_parser import BrokerParser
from .classification import (
    UNKNOWN, Classification, ClassificationKind, ClassificationRule, RowClassifier, contains, equals,
)
from .raw_models import RawDegiroRow, DEGIRO_MIN_FIELDS

logger = logging.getLogger(__name__)

SOURCE_NAME = "degiro"

COMMISSION_PHRASE = "comissões de transação"

TRADE_PATTERN = re.compile(r"\s*(compra|venda)\s+([\d\s.,]+)\s+(.+?)\s*@([\d,.]+)", re.IGNORECASE)
# e.g. "AAPL C150.00 17JAN25"
OPTION_PRODUCT_PATTERN = re.compile(r"\s+([CP])\d+(\.\d+)?\s+\d{2}[A-Z]{3}\d{2}$")


def _parse_trade_quantity(raw_quantity: str) -> Decimal:
    # "1.000" is one thousand shares; a comma, when present, is the decimal point
    cleaned = raw_quantity.replace(" ", "").replace(".", "").replace(",", ".")
    return Decimal(cleaned)


def _parse_trade_price(raw_price: str) -> Decimal:
    # "3.512,00": dots group thousands once a comma marks the decimals
    cleaned = raw_price.strip()
    if "," in cleaned:
        cleaned = cleaned.replace(".", "").replace(",", ".")
    return Decimal(cleaned)


def _extract_trade(row: RawDegiroRow, normalized: str) -> Optional[Classification]:
    match = TRADE_PATTERN.search(row.description)
    if match is None:
        return None
    direction, raw_quantity, product_name, raw_price = match.groups()
    try:
        quantity = _parse_trade_quantity(raw_quantity)
    except InvalidOperation:
        logger.warning(f"Could not read quantity '{raw_quantity}' from trade description '{row.description}'.")
        return None
    try:
        price = _parse_trade_price(raw_price)
    except InvalidOperation:
        logger.warning(f"Could not read price '{raw_price}' from trade description '{row.description}'; using 0.")
        price = Decimal(0)

    product_name = product_name.strip()
    option_match = OPTION_PRODUCT_PATTERN.search(product_name)
    if option_match:
        transaction_type = TransactionType.OPTION
        subtype = TransactionSubType.CALL if option_match.group(1) == "C" else TransactionSubType.PUT
    else:
        transaction_type = TransactionType.STOCK
        subtype = TransactionSubType.NONE

    return Classification(
        kind=ClassificationKind.TRANSACTION,
        transaction_type=transaction_type,
        transaction_subtype=subtype,
        buy_sell=BuySell.BUY if direction.lower() == "compra" else BuySell.SELL,
        product_name=product_name,
        quantity=quantity.copy_abs(),
        price=price,
        rule_name="trade",
    )


def _fixed(transaction_type: TransactionType,
           subtype: TransactionSubType = TransactionSubType.NONE,
           product_name: Optional[str] = None,
           use_row_name: bool = False,
           rule_name: str = ""):
    """Extractor for rules whose classification does not depend on the row beyond its product name."""
    def extractor(row: RawDegiroRow, normalized: str) -> Classification:
        if product_name is not None:
            name = product_name
        elif use_row_name:
            name = row.product_name
        else:
            name = row.description
        return Classification(
            kind=ClassificationKind.TRANSACTION,
            transaction_type=transaction_type,
            transaction_subtype=subtype,
            product_name=name,
            rule_name=rule_name,
        )
    return extractor


def _commission(row: RawDegiroRow, normalized: str) -> Classification:
    return Classification(kind=ClassificationKind.COMMISSION, rule_name="commission")


# Order matters: the first matching rule wins
DEGIRO_RULES: List[ClassificationRule[RawDegiroRow]] = [
    ClassificationRule("interest", equals("juros"),
                       _fixed(TransactionType.FEE, TransactionSubType.INTEREST, rule_name="interest")),
    ClassificationRule("commission", contains(COMMISSION_PHRASE), _commission),
    ClassificationRule("connectivity_fee", contains("custo de conectividade"),
                       _fixed(TransactionType.FEE, rule_name="connectivity_fee")),
    ClassificationRule("dividend_tax", contains("imposto sobre dividendo"),
                       _fixed(TransactionType.DIVIDEND, TransactionSubType.TAX, use_row_name=True, rule_name="dividend_tax")),
    ClassificationRule("dividend", contains("dividendo"),
                       _fixed(TransactionType.DIVIDEND, use_row_name=True, rule_name="dividend")),
    ClassificationRule("deposit", lambda d: d.strip() == "depósito" or "flatex deposit" in d,
                       _fixed(TransactionType.CASH, TransactionSubType.DEPOSIT, product_name="Cash Deposit", rule_name="deposit")),
    ClassificationRule("withdrawal", lambda d: d.strip() == "levantamento" or "flatex withdrawal" in d,
                       _fixed(TransactionType.CASH, TransactionSubType.WITHDRAWAL, product_name="Cash Withdrawal", rule_name="withdrawal")),
    ClassificationRule("product_change", contains("mudança de produto"),
                       _fixed(TransactionType.PRODUCT_CHANGE, product_name="Product Change", rule_name="product_change")),
    ClassificationRule("trade", lambda d: TRADE_PATTERN.search(d) is not None, _extract_trade),
]


class DegiroParser(BrokerParser):
    """Parser for the DeGiro account statement CSV (Portuguese locale)."""
    source_name = SOURCE_NAME

    def __init__(self, classifier: Optional[RowClassifier[RawDegiroRow]] = None):
        self.classifier = classifier or RowClassifier(DEGIRO_RULES, describe=lambda row: row.normalized_description)

    def _read_records(self, text: str) -> List[List[str]]:
        try:
            reader = csv.reader(io.StringIO(text, newline=""), strict=True)
            records = list(reader)
        except csv.Error as e:
            raise ParsingFailed(f"DeGiro parser: failed to read CSV records: {e}") from e
        if not records:
            raise ParsingFailed("DeGiro parser: failed to read CSV header: file is empty")
        return records[1:] # Header row

    def _load_rows(self, records: List[List[str]]) -> List[RawDegiroRow]:
        rows: List[RawDegiroRow] = []
        for i, record in enumerate(records):
            if not any(field.strip() for field in record):
                continue
            if len(record) < DEGIRO_MIN_FIELDS:
                logger.warning(f"DeGiro parser: skipping row {i + 2} with {len(record)} fields (expected at least {DEGIRO_MIN_FIELDS}): {','.join(record)}")
                continue
            try:
                rows.append(RawDegiroRow.from_record(record, file_index=i))
            except ValidationError as e:
                logger.warning(f"DeGiro parser: skipping row {i + 2} due to invalid data ({e.error_count()} errors, date '{record[0]}', order id '{record[11]}'): {e.errors()[0].get('msg')}")
        return rows

    @staticmethod
    def _commissions_by_order(rows: List[RawDegiroRow], classifications: List[Classification]) -> Dict[str, Tuple[Decimal, str]]:
        totals: Dict[str, Decimal] = defaultdict(Decimal)
        currencies: Dict[str, str] = {}
        for row, classification in zip(rows, classifications):
            if not classification.is_commission or not row.order_id:
                continue
            totals[row.order_id] += row.amount.copy_abs()
            currencies.setdefault(row.order_id, row.currency)
        return {order_id: (total, currencies[order_id]) for order_id, total in totals.items()}

    def parse(self, raw_file: Union[bytes, str]) -> List[CanonicalTransaction]:
        text = self.decode(raw_file)
        records = self._read_records(text)
        rows = self._load_rows(records)

        classifications = [self._classify(row) for row in rows]
        commissions = self._commissions_by_order(rows, classifications)

        ordered = sorted(zip(rows, classifications), key=lambda pair: pair[0].sort_key)

        transactions: List[CanonicalTransaction] = [
            self._to_canonical(row, classification, commissions)
            for row, classification in ordered
            if classification.is_transaction
        ]

        skipped_unknown = sum(1 for c in classifications if c.is_unknown)
        commission_lines = sum(1 for c in classifications if c.is_commission)
        logger.info(f"DeGiro parser: {len(transactions)} transactions from {len(records)} data rows "
                    f"({skipped_unknown} unrecognized, {commission_lines} commission lines).")
        return transactions

    def _classify(self, row: RawDegiroRow) -> Classification:
        try:
            return self.classifier.classify_or_raise(row, row.raw_line)
        except RowUnrecognized as e:
            logger.warning(f"DeGiro parser: skipping unknown transaction type: {e}")
            return UNKNOWN

    def _to_canonical(self, row: RawDegiroRow, classification: Classification,
                      commissions: Dict[str, Tuple[Decimal, str]]) -> CanonicalTransaction:
        source_amount = row.amount
        amount = source_amount # The sign in the export is authoritative
        if classification.transaction_type is TransactionType.FEE or (
                classification.transaction_type is TransactionType.DIVIDEND
                and classification.transaction_subtype is TransactionSubType.TAX):
            amount = -source_amount.copy_abs()

        commission, commission_currency = Decimal("0"), None
        if row.order_id and row.order_id in commissions:
            commission, commission_currency = commissions[row.order_id]

        return CanonicalTransaction(
            SOURCE_NAME,
            row.order_date,
            classification.product_name,
            row.isin,
            classification.quantity,
            classification.price,
            row.currency,
            transaction_type=classification.transaction_type,
            transaction_subtype=classification.transaction_subtype,
            buy_sell=classification.buy_sell,
            commission=commission,
            commission_currency=commission_currency,
            order_id=row.order_id,
            description=row.description,
            raw_text=row.raw_line,
            source_amount=source_amount.copy_abs(),
            amount=amount,
        )
