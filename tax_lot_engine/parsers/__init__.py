# tax_lot_engine/parsers/__init__.py
from typing import Callable, Dict

from tax_lot_engine.domain.errors import UnsupportedSource
from .base_parser import BrokerParser
from .degiro_parser import DegiroParser

PARSER_REGISTRY: Dict[str, Callable[[], BrokerParser]] = {
    DegiroParser.source_name: DegiroParser,
}


def get_parser(source: str) -> BrokerParser:
    """Returns a fresh parser for the broker name (case-insensitive)."""
    key = (source or "").strip().lower()
    factory = PARSER_REGISTRY.get(key)
    if factory is None:
        raise UnsupportedSource(f"No parser available for source '{source}'. Supported: {', '.join(sorted(PARSER_REGISTRY))}")
    return factory()
