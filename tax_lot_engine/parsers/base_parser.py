# tax_lot_engine/parsers/base_parser.py
import logging
from typing import List, Union

from tax_lot_engine.domain.errors import ParsingFailed
from tax_lot_engine.domain.transactions import CanonicalTransaction

logger = logging.getLogger(__name__)


class BrokerParser:
    """
    Interface of a broker-specific format parser.
    parse() returns canonical transactions oldest first and raises ParsingFailed only when the
    file as a whole cannot be read; single bad rows are logged and skipped.
    """
    source_name: str = ""

    def parse(self, raw_file: Union[bytes, str]) -> List[CanonicalTransaction]:
        raise NotImplementedError("Subclasses must implement parse")

    @staticmethod
    def decode(raw_file: Union[bytes, str], encoding: str = "utf-8-sig") -> str:
        if isinstance(raw_file, str):
            return raw_file.lstrip("\ufeff")
        try:
            return raw_file.decode(encoding)
        except UnicodeDecodeError as e:
            raise ParsingFailed(f"File is not valid {encoding} text: {e}") from e
