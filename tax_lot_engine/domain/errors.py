# tax_lot_engine/domain/errors.py
from datetime import date
from typing import Optional


class TaxLotEngineError(Exception):
    """Base class for all errors raised by the engine."""


class ParsingFailed(TaxLotEngineError, ValueError):
    """The broker file could not be tokenized. Nothing from it is ingested."""


class RowUnrecognized(TaxLotEngineError, ValueError):
    """A single row matched no classification rule. Non-fatal: the row is skipped."""

    def __init__(self, raw_line: str, description: str = ""):
        self.raw_line = raw_line
        self.description = description
        super().__init__(f"Unrecognized row (description: '{description}'): {raw_line}")


class RateUnavailable(TaxLotEngineError, LookupError):
    """No exchange rate was found for a currency within the fallback window."""

    def __init__(self, currency_code: str, date_of_conversion: date, searched_days: Optional[int] = None):
        self.currency_code = currency_code
        self.date_of_conversion = date_of_conversion
        self.searched_days = searched_days
        msg = f"No exchange rate for {currency_code} on {date_of_conversion}"
        if searched_days is not None:
            msg += f" (searched {searched_days} prior days)"
        super().__init__(msg)


class PersistenceFailure(TaxLotEngineError, RuntimeError):
    """A write to the transaction store failed and was rolled back."""


class UnsupportedSource(TaxLotEngineError, ValueError):
    """No parser is registered for the requested broker."""
