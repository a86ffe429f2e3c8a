# tax_lot_engine/storage/database.py
import logging
import os
import sqlite3

from tax_lot_engine import config
from tax_lot_engine.domain.errors import PersistenceFailure

logger = logging.getLogger(__name__)

# Decimal columns are TEXT so values round-trip exactly.
SCHEMA = """
CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    date TEXT NOT NULL,
    source TEXT NOT NULL,
    product_name TEXT NOT NULL DEFAULT '',
    isin TEXT NOT NULL DEFAULT '',
    quantity INTEGER NOT NULL DEFAULT 0,
    original_quantity TEXT NOT NULL DEFAULT '0',
    price TEXT NOT NULL DEFAULT '0',
    transaction_type TEXT NOT NULL,
    transaction_subtype TEXT NOT NULL DEFAULT '',
    buy_sell TEXT NOT NULL DEFAULT '',
    description TEXT NOT NULL DEFAULT '',
    amount TEXT NOT NULL DEFAULT '0',
    currency TEXT NOT NULL DEFAULT 'EUR',
    commission TEXT NOT NULL DEFAULT '0',
    order_id TEXT NOT NULL DEFAULT '',
    exchange_rate TEXT NOT NULL DEFAULT '1',
    rate_source TEXT NOT NULL DEFAULT 'LIVE',
    amount_eur TEXT NOT NULL DEFAULT '0',
    country_code TEXT NOT NULL DEFAULT 'unknown',
    input_string TEXT NOT NULL DEFAULT '',
    hash_id TEXT NOT NULL,
    UNIQUE (user_id, hash_id)
);
CREATE INDEX IF NOT EXISTS idx_transactions_user ON transactions (user_id);

CREATE TABLE IF NOT EXISTS uploads_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    source TEXT NOT NULL,
    filename TEXT NOT NULL DEFAULT '',
    filesize INTEGER NOT NULL DEFAULT 0,
    transaction_count INTEGER NOT NULL DEFAULT 0,
    uploaded_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""


def connect(db_path: str = config.DATABASE_FILE_PATH) -> sqlite3.Connection:
    """Opens (and if needed creates) the store. ':memory:' is accepted for tests."""
    if db_path != ":memory:":
        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
    try:
        # Transactions are managed explicitly by the repository
        connection = sqlite3.connect(db_path, isolation_level=None, check_same_thread=False)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA journal_mode=WAL")
        connection.execute("PRAGMA foreign_keys=ON")
        initialize_schema(connection)
    except sqlite3.Error as e:
        raise PersistenceFailure(f"Could not open transaction store at '{db_path}': {e}") from e
    logger.info(f"Transaction store ready at '{db_path}'.")
    return connection


def initialize_schema(connection: sqlite3.Connection) -> None:
    connection.executescript(SCHEMA)
