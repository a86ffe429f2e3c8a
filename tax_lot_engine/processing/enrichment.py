# tax_lot_engine/processing/enrichment.py
import hashlib
import logging
from datetime import date, datetime
from decimal import Decimal, Context
from typing import List, Optional

from tax_lot_engine import config
from tax_lot_engine.domain.enums import TransactionType, TransactionSubType, BuySell, RateSource
from tax_lot_engine.domain.transactions import CanonicalTransaction, ProcessedTransaction
from tax_lot_engine.utils.country_codes import country_code_from_isin
from tax_lot_engine.utils.currency_converter import CurrencyConverter
from tax_lot_engine.utils.type_utils import format_processed_date

logger = logging.getLogger(__name__)


def compute_hash_id(raw_text: str) -> str:
    """Content-addressed dedup key of a transaction: sha256 hex of its raw source text."""
    return hashlib.sha256(raw_text.encode("utf-8")).hexdigest()


class TransactionEnricher:
    """
    Turns canonical transactions into processed ones: exchange rate, EUR amounts,
    jurisdiction and dedup hash. Output preserves input order.
    """
    def __init__(self,
                 currency_converter: CurrencyConverter,
                 internal_calculation_precision: int = config.INTERNAL_CALCULATION_PRECISION,
                 decimal_rounding_mode: str = config.DECIMAL_ROUNDING_MODE):
        self.currency_converter = currency_converter
        self.ctx = Context(prec=internal_calculation_precision, rounding=decimal_rounding_mode)

    def _to_eur(self, amount: Decimal, rate: Decimal) -> Decimal:
        if rate > 0:
            return self.ctx.divide(amount, rate)
        return self.ctx.create_decimal(amount)

    def enrich(self, tx: CanonicalTransaction) -> ProcessedTransaction:
        rate, rate_source = self.currency_converter.rate_for(tx.currency, tx.transaction_date)

        if tx.commission and tx.effective_commission_currency != (tx.currency or "").upper():
            commission_rate, _ = self.currency_converter.rate_for(tx.effective_commission_currency, tx.transaction_date)
        else:
            commission_rate = rate

        return ProcessedTransaction(
            format_processed_date(tx.transaction_date),
            tx.source,
            tx.product_name,
            tx.isin,
            int(tx.quantity),
            tx.quantity,
            tx.price,
            tx.transaction_type,
            transaction_subtype=tx.transaction_subtype,
            buy_sell=tx.buy_sell,
            description=tx.description,
            amount=tx.amount,
            currency=(tx.currency or config.HOME_CURRENCY).upper(),
            commission=self._to_eur(tx.commission, commission_rate),
            order_id=tx.order_id,
            exchange_rate=rate,
            rate_source=rate_source,
            amount_eur=self._to_eur(tx.amount, rate),
            country_code=country_code_from_isin(tx.isin),
            input_string=tx.raw_text,
            hash_id=compute_hash_id(tx.raw_text),
        )

    def process(self, transactions: List[CanonicalTransaction]) -> List[ProcessedTransaction]:
        logger.info(f"Starting enrichment for {len(transactions)} canonical transactions.")
        if transactions:
            dates = [tx.transaction_date for tx in transactions]
            currencies = {tx.currency for tx in transactions} | {tx.effective_commission_currency for tx in transactions if tx.commission}
            self.currency_converter.prefetch(min(dates), max(dates), currencies)

        processed: List[ProcessedTransaction] = []
        live_rates = 0
        fallback_rates = 0
        for tx in transactions:
            processed_tx = self.enrich(tx)
            if processed_tx.rate_source is RateSource.FALLBACK:
                fallback_rates += 1
            else:
                live_rates += 1
            processed.append(processed_tx)

        logger.info(f"Enrichment summary: {live_rates} transactions with a live rate, {fallback_rates} with the fallback rate 1.0.")
        if fallback_rates:
            logger.warning(f"{fallback_rates} transactions were converted with the fallback rate; their EUR amounts are approximate.")
        return processed

    def build_manual_transaction(self,
                                 transaction_date: date,
                                 product_name: str,
                                 isin: str,
                                 quantity: Decimal,
                                 price: Decimal,
                                 currency: str,
                                 buy_sell: BuySell,
                                 transaction_type: TransactionType = TransactionType.STOCK,
                                 transaction_subtype: TransactionSubType = TransactionSubType.NONE,
                                 commission: Decimal = Decimal("0"),
                                 order_id: str = "",
                                 entered_at: Optional[datetime] = None) -> ProcessedTransaction:
        """
        Processed transaction for a trade typed in by the user. The amount is quantity x price,
        negative for buys. The entry time is part of the hashed text, so repeating an identical
        manual entry creates a second row instead of being deduplicated.
        """
        entered_at = entered_at or datetime.now()
        amount = quantity * price
        if buy_sell is BuySell.BUY:
            amount = -amount
        raw_text = (f"{config.MANUAL_SOURCE},{format_processed_date(transaction_date)},{product_name},{isin},"
                    f"{buy_sell.value},{quantity},{price},{currency},{entered_at.isoformat()}")
        canonical = CanonicalTransaction(
            config.MANUAL_SOURCE,
            transaction_date,
            product_name,
            isin,
            quantity.copy_abs(),
            price,
            currency,
            transaction_type=transaction_type,
            transaction_subtype=transaction_subtype,
            buy_sell=buy_sell,
            commission=commission,
            order_id=order_id,
            description=f"Manual {buy_sell.value.lower()} {quantity} {product_name}",
            raw_text=raw_text,
            source_amount=amount.copy_abs(),
            amount=amount,
        )
        logger.info(f"Built manual {buy_sell.value} transaction for {product_name} ({isin}) on {transaction_date}.")
        return self.enrich(canonical)
