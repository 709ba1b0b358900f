import contextlib
import logging
import sqlite3
from typing import Callable, Iterable, List, TypeVar

try:
    import psycopg2
    import psycopg2.extras
except ImportError:  # pragma: no cover - optional dependency for postgres
    psycopg2 = None

from flask import current_app, g

from pharmamarket.errors import AppError, PersistenceFailure


T = TypeVar("T")

_LOGGER = logging.getLogger("pharmamarket.db")

DRIVER_ERRORS: tuple = (sqlite3.Error,) + ((psycopg2.Error,) if psycopg2 is not None else ())
INTEGRITY_ERRORS: tuple = (sqlite3.IntegrityError,) + ((psycopg2.IntegrityError,) if psycopg2 is not None else ())


class Database:
    def __init__(self, backend: str, connection):
        self.backend = backend
        self._conn = connection
        self._tx_depth = 0

    def execute(self, sql: str, params: Iterable | None = None):
        if self.backend == "postgres":
            cursor = self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            if params:
                cursor.execute(_convert_qmark_to_pg(sql), list(params))
            else:
                cursor.execute(sql)
            return cursor
        return self._conn.execute(sql, tuple(params or ()))

    @property
    def in_transaction(self) -> bool:
        return self._tx_depth > 0

    @contextlib.contextmanager
    def transaction(self):
        """All-or-nothing unit of work.

        Nested calls join the outermost transaction. Driver errors are
        rolled back and surfaced as ``PersistenceFailure``; business errors
        raised inside the block roll back and propagate unchanged.
        """
        if self._tx_depth:
            self._tx_depth += 1
            try:
                yield self
            finally:
                self._tx_depth -= 1
            return

        try:
            self.execute("BEGIN IMMEDIATE" if self.backend == "sqlite" else "BEGIN")
        except DRIVER_ERRORS as exc:
            raise PersistenceFailure(details=str(exc)) from exc
        self._tx_depth = 1
        try:
            yield self
        except AppError:
            self._rollback()
            raise
        except DRIVER_ERRORS as exc:
            self._rollback()
            raise PersistenceFailure(details=str(exc)) from exc
        except Exception:
            self._rollback()
            raise
        else:
            try:
                self.execute("COMMIT")
            except DRIVER_ERRORS as exc:
                self._rollback()
                raise PersistenceFailure(details=str(exc)) from exc
        finally:
            self._tx_depth = 0

    def run_in_transaction(self, fn: Callable[["Database"], T]) -> T:
        with self.transaction() as tx:
            return fn(tx)

    def _rollback(self) -> None:
        try:
            self.execute("ROLLBACK")
        except DRIVER_ERRORS:
            _LOGGER.exception("transaction_rollback_failed", extra={"backend": self.backend})

    def commit(self):
        if not self._tx_depth:
            self._conn.commit()

    def close(self):
        self._conn.close()


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def connect_database(db_path: str) -> Database:
    if db_path.lower().startswith("postgres"):
        if psycopg2 is None:
            raise RuntimeError("psycopg2 non installe.")
        conn = psycopg2.connect(db_path)
        conn.autocommit = True
        return Database("postgres", conn)

    # Autocommit mode: transactions are opened explicitly by Database.transaction().
    conn = sqlite3.connect(db_path, timeout=30.0, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return Database("sqlite", conn)


def get_db():
    if "db" not in g:
        g.db = connect_database(current_app.config["DB_PATH"])
    return g.db


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


SCHEMA_STATEMENTS: List[str] = [
    """
    CREATE TABLE IF NOT EXISTS offers (
        id TEXT PRIMARY KEY,
        seller_id TEXT NOT NULL,
        name TEXT NOT NULL,
        type TEXT NOT NULL CHECK (type IN ('pack','threshold')),
        start_date TEXT NOT NULL,
        end_date TEXT NOT NULL,
        min_purchase_amount NUMERIC,
        custom_total_price NUMERIC,
        max_quota_selections INTEGER,
        comment TEXT,
        free_text_products TEXT,
        is_public INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS offer_line_items (
        id TEXT PRIMARY KEY,
        offer_id TEXT NOT NULL REFERENCES offers (id) ON DELETE CASCADE,
        position INTEGER NOT NULL DEFAULT 0,
        product_id TEXT NOT NULL,
        quantity INTEGER NOT NULL CHECK (quantity > 0),
        unit_price NUMERIC NOT NULL CHECK (unit_price >= 0),
        is_priority INTEGER NOT NULL DEFAULT 0,
        free_units_percentage NUMERIC,
        priority_message TEXT,
        UNIQUE (offer_id, product_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tenders (
        id TEXT PRIMARY KEY,
        buyer_id TEXT NOT NULL,
        title TEXT NOT NULL,
        wilaya TEXT NOT NULL,
        deadline TEXT NOT NULL,
        is_public INTEGER NOT NULL DEFAULT 1,
        status TEXT NOT NULL DEFAULT 'open' CHECK (status IN ('open','closed','canceled')),
        public_link TEXT NOT NULL UNIQUE,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tender_items (
        id TEXT PRIMARY KEY,
        tender_id TEXT NOT NULL REFERENCES tenders (id) ON DELETE CASCADE,
        position INTEGER NOT NULL DEFAULT 0,
        product_id TEXT NOT NULL,
        quantity INTEGER NOT NULL CHECK (quantity > 0),
        created_at TEXT NOT NULL,
        UNIQUE (tender_id, product_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tender_responses (
        id TEXT PRIMARY KEY,
        tender_id TEXT NOT NULL REFERENCES tenders (id) ON DELETE CASCADE,
        seller_id TEXT NOT NULL,
        version INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (tender_id, seller_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tender_response_items (
        id TEXT PRIMARY KEY,
        tender_response_id TEXT NOT NULL REFERENCES tender_responses (id) ON DELETE CASCADE,
        tender_item_id TEXT NOT NULL REFERENCES tender_items (id) ON DELETE CASCADE,
        position INTEGER NOT NULL DEFAULT 0,
        price NUMERIC NOT NULL CHECK (price > 0),
        free_units_percentage NUMERIC,
        delivery_date TEXT NOT NULL,
        expiry_date TEXT,
        created_at TEXT NOT NULL,
        UNIQUE (tender_response_id, tender_item_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tender_messages (
        id TEXT PRIMARY KEY,
        tender_id TEXT NOT NULL REFERENCES tenders (id) ON DELETE CASCADE,
        user_id TEXT NOT NULL,
        message TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS orders (
        id TEXT PRIMARY KEY,
        buyer_id TEXT NOT NULL,
        seller_id TEXT NOT NULL,
        source TEXT NOT NULL CHECK (source IN ('offer','tender')),
        offer_id TEXT,
        tender_id TEXT,
        tender_response_id TEXT,
        status TEXT NOT NULL CHECK (status IN ('pending','accepted')),
        delivery_date TEXT,
        total_amount NUMERIC NOT NULL,
        currency TEXT NOT NULL DEFAULT 'DZD',
        metadata TEXT NOT NULL DEFAULT '{}',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS order_lines (
        id TEXT PRIMARY KEY,
        order_id TEXT NOT NULL REFERENCES orders (id) ON DELETE CASCADE,
        position INTEGER NOT NULL DEFAULT 0,
        line_kind TEXT NOT NULL CHECK (line_kind IN ('regular','priority','free_units','adjustment')),
        product_id TEXT,
        quantity INTEGER NOT NULL CHECK (quantity > 0),
        unit_price NUMERIC NOT NULL,
        source_ref TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS status_events (
        id TEXT PRIMARY KEY,
        entity TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        from_status TEXT,
        to_status TEXT,
        reason TEXT,
        actor_id TEXT,
        occurred_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_offer_line_items_offer ON offer_line_items (offer_id)",
    "CREATE INDEX IF NOT EXISTS idx_tender_items_tender ON tender_items (tender_id)",
    "CREATE INDEX IF NOT EXISTS idx_tender_responses_tender ON tender_responses (tender_id)",
    "CREATE INDEX IF NOT EXISTS idx_tender_response_items_response ON tender_response_items (tender_response_id)",
    "CREATE INDEX IF NOT EXISTS idx_tender_messages_tender ON tender_messages (tender_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_order_lines_order ON order_lines (order_id)",
    "CREATE INDEX IF NOT EXISTS idx_orders_buyer ON orders (buyer_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_orders_seller ON orders (seller_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_status_events_entity ON status_events (entity, entity_id)",
]


DROP_ORDER: List[str] = [
    "status_events",
    "order_lines",
    "orders",
    "tender_messages",
    "tender_response_items",
    "tender_responses",
    "tender_items",
    "tenders",
    "offer_line_items",
    "offers",
]


def init_db(db: Database | None = None) -> None:
    target = db or get_db()
    for statement in SCHEMA_STATEMENTS:
        target.execute(statement)
    target.commit()
