# tax_lot_engine/storage/transaction_repository.py
import logging
import sqlite3
import threading
from contextlib import contextmanager
from decimal import Decimal
from typing import Iterable, Iterator, List

from tax_lot_engine.domain.enums import TransactionType, TransactionSubType, BuySell, RateSource
from tax_lot_engine.domain.errors import PersistenceFailure
from tax_lot_engine.domain.transactions import ProcessedTransaction

logger = logging.getLogger(__name__)

_COLUMNS = (
    "date", "source", "product_name", "isin", "quantity", "original_quantity", "price",
    "transaction_type", "transaction_subtype", "buy_sell", "description", "amount", "currency",
    "commission", "order_id", "exchange_rate", "rate_source", "amount_eur", "country_code",
    "input_string", "hash_id",
)

_INSERT_SQL = (f"INSERT OR IGNORE INTO transactions (user_id, {', '.join(_COLUMNS)}) "
               f"VALUES (?, {', '.join('?' for _ in _COLUMNS)})")

# Stored dates are DD-MM-YYYY; order by their ISO form
_ISO_DATE_SQL = "substr(date, 7, 4) || '-' || substr(date, 4, 2) || '-' || substr(date, 1, 2)"


def _to_row(user_id: int, tx: ProcessedTransaction) -> tuple:
    return (
        user_id, tx.date, tx.source, tx.product_name, tx.isin, tx.quantity, str(tx.original_quantity),
        str(tx.price), tx.transaction_type.value, tx.transaction_subtype.value, tx.buy_sell.value,
        tx.description, str(tx.amount), tx.currency, str(tx.commission), tx.order_id,
        str(tx.exchange_rate), tx.rate_source.value, str(tx.amount_eur), tx.country_code,
        tx.input_string, tx.hash_id,
    )


def _from_row(row: sqlite3.Row) -> ProcessedTransaction:
    return ProcessedTransaction(
        row["date"],
        row["source"],
        row["product_name"],
        row["isin"],
        int(row["quantity"]),
        Decimal(row["original_quantity"]),
        Decimal(row["price"]),
        TransactionType.from_value(row["transaction_type"]),
        transaction_subtype=TransactionSubType.from_value(row["transaction_subtype"]),
        buy_sell=BuySell.from_value(row["buy_sell"]),
        description=row["description"],
        amount=Decimal(row["amount"]),
        currency=row["currency"],
        commission=Decimal(row["commission"]),
        order_id=row["order_id"],
        exchange_rate=Decimal(row["exchange_rate"]),
        rate_source=RateSource(row["rate_source"]),
        amount_eur=Decimal(row["amount_eur"]),
        country_code=row["country_code"],
        input_string=row["input_string"],
        hash_id=row["hash_id"],
        id=row["id"],
    )


class TransactionRepository:
    """
    Processed transactions per user. Inserts are deduplicated by (user_id, hash_id):
    a row that is already stored is skipped, not an error.
    """
    def __init__(self, connection: sqlite3.Connection):
        self.connection = connection
        self._lock = threading.Lock()

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            cursor = self.connection.cursor()
            try:
                cursor.execute("BEGIN")
                yield cursor
                cursor.execute("COMMIT")
            except sqlite3.Error as e:
                self._rollback()
                logger.error(f"{operation} failed and was rolled back: {e}")
                raise PersistenceFailure(f"{operation} failed: {e}") from e
            except Exception:
                self._rollback()
                raise
            finally:
                cursor.close()

    def _rollback(self) -> None:
        if self.connection.in_transaction:
            self.connection.execute("ROLLBACK")

    @staticmethod
    def _insert_rows(cursor: sqlite3.Cursor, user_id: int, transactions: Iterable[ProcessedTransaction]) -> int:
        inserted = 0
        skipped = 0
        for tx in transactions:
            cursor.execute(_INSERT_SQL, _to_row(user_id, tx))
            if cursor.rowcount > 0:
                inserted += 1
            else:
                skipped += 1
        logger.info(f"User {user_id}: inserted {inserted} transactions, skipped {skipped} duplicates.")
        return inserted

    @staticmethod
    def _insert_history(cursor: sqlite3.Cursor, user_id: int, source: str, filename: str, filesize: int,
                        inserted: int) -> None:
        cursor.execute(
            "INSERT INTO uploads_history (user_id, source, filename, filesize, transaction_count) VALUES (?, ?, ?, ?, ?)",
            (user_id, source, filename, filesize, inserted),
        )

    def insert_many(self, user_id: int, transactions: Iterable[ProcessedTransaction]) -> int:
        """Inserts all rows in one transaction. Returns how many were new."""
        with self._transaction(f"Insert of transactions for user {user_id}") as cursor:
            return self._insert_rows(cursor, user_id, transactions)

    def insert_upload(self, user_id: int, transactions: Iterable[ProcessedTransaction],
                      source: str, filename: str, filesize: int) -> int:
        """
        Inserts an uploaded batch and, when any row was new, its uploads_history entry.
        Both writes share one transaction: a failure in either leaves the store untouched.
        """
        with self._transaction(f"Upload of transactions for user {user_id}") as cursor:
            inserted = self._insert_rows(cursor, user_id, transactions)
            if inserted > 0:
                self._insert_history(cursor, user_id, source, filename, filesize, inserted)
        return inserted
    def fetch_for_user(self, user_id: int) -> List[ProcessedTransaction]:
        with self._lock:
            try:
                rows = self.connection.execute(
                    f"SELECT * FROM transactions WHERE user_id = ? ORDER BY {_ISO_DATE_SQL}, id",
                    (user_id,),
                ).fetchall()
            except sqlite3.Error as e:
                raise PersistenceFailure(f"Reading transactions of user {user_id} failed: {e}") from e
        return [_from_row(row) for row in rows]

    def record_upload(self, user_id: int, source: str, filename: str, filesize: int, inserted: int) -> None:
        with self._transaction(f"Upload history entry for user {user_id}") as cursor:
            self._insert_history(cursor, user_id, source, filename, filesize, inserted)
    def upload_count(self, user_id: int) -> int:
        with self._lock:
            row = self.connection.execute("SELECT COUNT(*) FROM uploads_history WHERE user_id = ?", (user_id,)).fetchone()
        return int(row[0])

    def _delete(self, operation: str, where: str, params: tuple) -> int:
        with self._transaction(operation) as cursor:
            cursor.execute(f"DELETE FROM transactions WHERE {where}", params)
            deleted = cursor.rowcount
        logger.info(f"{operation}: {deleted} rows deleted.")
        return deleted

    def delete_all(self, user_id: int) -> int:
        return self._delete(f"Delete all transactions of user {user_id}", "user_id = ?", (user_id,))

    def delete_by_sources(self, user_id: int, sources: List[str]) -> int:
        if not sources:
            return 0
        placeholders = ", ".join("?" for _ in sources)
        return self._delete(f"Delete {', '.join(sources)} transactions of user {user_id}",
                            f"user_id = ? AND source IN ({placeholders})", (user_id, *sources))

    def delete_by_year(self, user_id: int, year: int) -> int:
        return self._delete(f"Delete {year} transactions of user {user_id}",
                            "user_id = ? AND substr(date, 7, 4) = ?", (user_id, f"{int(year):04d}"))
