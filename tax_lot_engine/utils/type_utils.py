# tax_lot_engine/utils/type_utils.py
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from datetime import datetime, date

from dateutil import parser as dateutil_parser

from tax_lot_engine import config


def safe_decimal(value: Any, default: Optional[Decimal] = None, raise_error: bool = False) -> Optional[Decimal]:
    """
    Safely converts a value to a Decimal.
    Handles None, empty strings, surrounding quotes and strings with commas (as thousands or decimal).
    If default is provided, returns default on conversion error.
    If raise_error is True, re-raises InvalidOperation instead of returning default.
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))

    s_value = str(value).strip().strip('"').strip()
    if not s_value:
        return default

    try:
        if '.' in s_value and ',' in s_value: # e.g., "1,234.56"
            s_value = s_value.replace(',', '')
        elif ',' in s_value: # e.g., "12,34"
            s_value = s_value.replace(',', '.')
        result = Decimal(s_value)
    except InvalidOperation:
        if raise_error:
            raise
        return default
    if not result.is_finite():
        if raise_error:
            raise InvalidOperation(f"Non-finite decimal value: {value!r}")
        return default
    return result


def parse_date(date_str: Optional[str], default: Optional[date] = None) -> Optional[date]:
    """
    Parses the date formats seen in broker exports (DD-MM-YYYY first, then ISO and a few others).
    Returns a datetime.date object or the default.
    """
    if isinstance(date_str, datetime):
        return date_str.date()
    if isinstance(date_str, date):
        return date_str
    if not date_str or not str(date_str).strip():
        return default

    s_date_str = str(date_str).strip().split(' ')[0] # Drop a trailing time part

    formats_to_try = [
        config.DATE_FORMAT_PROCESSED, # 31-12-2023
        "%Y-%m-%d",                   # 2023-12-31
        "%d/%m/%Y",                   # 31/12/2023
        "%d.%m.%Y",                   # 31.12.2023
        "%Y%m%d",                     # 20231231
    ]
    for fmt in formats_to_try:
        try:
            return datetime.strptime(s_date_str, fmt).date()
        except ValueError:
            continue

    # Day-first, as in the European exports handled here
    try:
        return dateutil_parser.parse(s_date_str, dayfirst=True).date()
    except (ValueError, OverflowError):
        return default


def format_processed_date(value: date) -> str:
    """Renders a date the way processed transactions store it (DD-MM-YYYY)."""
    return value.strftime(config.DATE_FORMAT_PROCESSED)

