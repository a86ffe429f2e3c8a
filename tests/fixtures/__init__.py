"""
Test Fixtures Module

Data-driven FIFO scenarios in YAML (stock_fifo_scenarios.yaml). Numeric values that must stay
exact are tagged `!decimal`; load them with load_yaml_spec() and turn them into scenario
objects with parse_stock_fifo_scenarios().
"""

from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


FIXTURES_DIR = Path(__file__).parent


@dataclass
class TradeSpec:
    """Parsed trade from a YAML scenario."""
    type: str # BUY or SELL
    qty: Decimal
    price: Decimal
    date: str # DD-MM-YYYY
    isin: str = "US0378331005"
    currency: str = "EUR"
    rate: Decimal = Decimal("1")


@dataclass
class ExpectedSaleSpec:
    quantity: Decimal
    buy_date: str
    sale_date: str
    buy_amount_eur: Decimal
    sale_amount_eur: Decimal
    delta: Decimal


@dataclass
class ExpectedLotSpec:
    quantity: Decimal
    buy_date: str
    buy_price: Decimal
    buy_amount_eur: Optional[Decimal] = None


@dataclass
class StockFifoScenario:
    name: str
    description: str
    trades: List[TradeSpec]
    expected_sales: List[ExpectedSaleSpec]
    expected_holdings: Dict[str, List[ExpectedLotSpec]] = field(default_factory=dict)


def _decimal_constructor(loader: yaml.SafeLoader, node: yaml.ScalarNode) -> Decimal:
    """YAML constructor for Decimal values."""
    value = loader.construct_scalar(node)
    return Decimal(str(value))


def _dec(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _parse_trade(trade_dict: Dict) -> TradeSpec:
    return TradeSpec(
        type=trade_dict["type"],
        qty=_dec(trade_dict["qty"]),
        price=_dec(trade_dict["price"]),
        date=trade_dict["date"],
        isin=trade_dict.get("isin", "US0378331005"),
        currency=trade_dict.get("currency", "EUR"),
        rate=_dec(trade_dict.get("rate", "1")),
    )


def _parse_expected_sale(sale_dict: Dict) -> ExpectedSaleSpec:
    return ExpectedSaleSpec(
        quantity=_dec(sale_dict["quantity"]),
        buy_date=sale_dict["buy_date"],
        sale_date=sale_dict["sale_date"],
        buy_amount_eur=_dec(sale_dict["buy_amount_eur"]),
        sale_amount_eur=_dec(sale_dict["sale_amount_eur"]),
        delta=_dec(sale_dict["delta"]),
    )


def _parse_expected_lot(lot_dict: Dict) -> ExpectedLotSpec:
    return ExpectedLotSpec(
        quantity=_dec(lot_dict["quantity"]),
        buy_date=lot_dict["buy_date"],
        buy_price=_dec(lot_dict["buy_price"]),
        buy_amount_eur=_dec(lot_dict["buy_amount_eur"]) if "buy_amount_eur" in lot_dict else None,
    )


def load_yaml_spec(filename: str) -> Dict[str, Any]:
    """Load a YAML scenario file from the fixtures directory."""
    filepath = FIXTURES_DIR / filename

    # Register Decimal constructor for numeric values
    yaml.add_constructor("!decimal", _decimal_constructor, Loader=yaml.SafeLoader)

    with open(filepath, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def parse_stock_fifo_scenarios(spec_data: Dict[str, Any]) -> List[StockFifoScenario]:
    scenarios = []
    for item in spec_data.get("scenarios", []):
        holdings = {
            str(year): [_parse_expected_lot(lot) for lot in (lots or [])]
            for year, lots in (item.get("expected_holdings") or {}).items()
        }
        scenarios.append(StockFifoScenario(
            name=item["name"],
            description=item.get("description", ""),
            trades=[_parse_trade(t) for t in item["trades"]],
            expected_sales=[_parse_expected_sale(s) for s in item.get("expected_sales") or []],
            expected_holdings=holdings,
        ))
    return scenarios


def get_stock_fifo_scenarios() -> List[StockFifoScenario]:
    return parse_stock_fifo_scenarios(load_yaml_spec("stock_fifo_scenarios.yaml"))
