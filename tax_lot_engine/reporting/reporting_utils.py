# tax_lot_engine/reporting/reporting_utils.py
import logging
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional

import tax_lot_engine.config as config

logger = logging.getLogger(__name__)


def _to_decimal(val, helper_name: str) -> Optional[Decimal]:
    if isinstance(val, Decimal):
        return val
    try:
        return Decimal(str(val))
    except (InvalidOperation, ValueError, TypeError):
        logger.error(f"Could not convert value '{val}' of type {type(val)} to Decimal in {helper_name}. Returning zero.")
        return None


def _q(val: Optional[Decimal | int | str]) -> Decimal:
    """Quantize a value for total amounts (2 decimals)."""
    dec = _to_decimal(val, "_q") if val is not None else None
    if dec is None:
        return Decimal("0.00")
    return dec.quantize(config.OUTPUT_PRECISION_AMOUNTS, rounding=ROUND_HALF_UP)


def _q_price(val: Optional[Decimal | int | str]) -> Decimal:
    """Quantize a value for per-share prices and exchange rates."""
    dec = _to_decimal(val, "_q_price") if val is not None else None
    if dec is None:
        dec = Decimal("0")
    return dec.quantize(config.OUTPUT_PRECISION_PER_SHARE, rounding=ROUND_HALF_UP)


def _q_qty(val: Optional[Decimal | int | str]) -> Decimal:
    dec = _to_decimal(val, "_q_qty") if val is not None else None
    if dec is None:
        dec = Decimal("0")
    return dec.quantize(config.PRECISION_QUANTITY, rounding=ROUND_HALF_UP)


def format_percent(val: Optional[Decimal]) -> str:
    return f"{_q(val)} %"
