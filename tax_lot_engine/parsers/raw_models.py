# tax_lot_engine/parsers/raw_models.py
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tax_lot_engine import config
from tax_lot_engine.utils.type_utils import safe_decimal

DEGIRO_MIN_FIELDS = 12


def normalize_decimal_string(value: Any) -> str:
    """DeGiro number cell -> plain decimal string: trims whitespace and quotes, comma becomes the decimal point."""
    cleaned = str(value if value is not None else "").strip().strip('"').strip()
    return cleaned.replace(",", ".")


class RawDegiroRow(BaseModel):
    """One data row of a DeGiro account statement export (positional columns)."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    order_date: date = Field(alias="Data")
    order_time: Optional[time] = Field(None, alias="Hora")
    value_date: Optional[str] = Field(None, alias="Data Valor")
    product_name: str = Field("", alias="Produto")
    isin: str = Field("", alias="ISIN")
    description: str = Field("", alias="Descrição")
    fx_rate: Optional[Decimal] = Field(None, alias="Taxa de Câmbio")
    currency: str = Field("", alias="Moeda")
    amount: Decimal = Field(Decimal("0"), alias="Montante")
    order_id: str = Field("", alias="ID da Ordem")
    raw_line: str = ""
    file_index: int = 0

    @field_validator("order_date", mode="before")
    @classmethod
    def parse_order_date(cls, v: Any) -> Any:
        if isinstance(v, date):
            return v
        # Strict DD-MM-YYYY; anything else invalidates the row
        return datetime.strptime(str(v).strip(), config.DATE_FORMAT_PROCESSED).date()

    @field_validator("order_time", mode="before")
    @classmethod
    def parse_order_time(cls, v: Any) -> Optional[time]:
        if v is None or isinstance(v, time):
            return v
        s_value = str(v).strip()
        if not s_value:
            return None
        for fmt in ("%H:%M", "%H:%M:%S"):
            try:
                return datetime.strptime(s_value, fmt).time()
            except ValueError:
                continue
        return None

    @field_validator("product_name", "isin", "description", "currency", "order_id", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).replace("\u00a0", " ").strip()

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @field_validator("amount", mode="before")
    @classmethod
    def parse_amount(cls, v: Any) -> Decimal:
        # Unparseable amounts count as zero, like empty cells
        return safe_decimal(normalize_decimal_string(v), default=Decimal("0"))

    @field_validator("fx_rate", mode="before")
    @classmethod
    def parse_fx_rate(cls, v: Any) -> Optional[Decimal]:
        return safe_decimal(normalize_decimal_string(v), default=None)

    @classmethod
    def from_record(cls, record: List[str], file_index: int = 0) -> "RawDegiroRow":
        """Maps a tokenized CSV record (at least 12 fields) onto the model."""
        return cls(
            order_date=record[0],
            order_time=record[1],
            value_date=record[2],
            product_name=record[3],
            isin=record[4],
            description=record[5],
            fx_rate=record[6],
            currency=record[7],
            amount=record[8],
            order_id=record[11],
            raw_line=",".join(record),
            file_index=file_index,
        )

    @property
    def normalized_description(self) -> str:
        return self.description.lower()

    @property
    def sort_key(self) -> tuple:
        # Exports are newest-first: equal timestamps keep reverse file order
        return (self.order_date, self.order_time or time.min, -self.file_index)
