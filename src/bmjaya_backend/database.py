"""
SQLite database for orders, employees and production tracking.

This module owns the connection settings, the schema and the one operation
that needs cross-request atomicity: drawing the next order number from the
shared counter row.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

from werkzeug.security import generate_password_hash

from .utils import escape_like

logger = logging.getLogger(__name__)

# Default database path
DEFAULT_DB_PATH = Path("data/bm_jaya_printing.db")

ORDER_NUMBER_PREFIX = "BM-"

# Largest value SQLite stores in an INTEGER column
SQLITE_MAX_INTEGER = 2**63 - 1

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT UNIQUE NOT NULL,
        password TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS employees (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        nama TEXT UNIQUE NOT NULL COLLATE NOCASE,
        no_telpon TEXT,
        email TEXT,
        alamat TEXT,
        status TEXT NOT NULL DEFAULT 'aktif' CHECK (status IN ('aktif', 'nonaktif')),
        username TEXT UNIQUE,
        password TEXT,
        role TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS orders (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        no_order TEXT UNIQUE NOT NULL,
        nama_pemesan TEXT NOT NULL,
        tanggal_order TEXT,
        tanggal_proof TEXT,
        tanggal_selesai TEXT,
        model_kerah TEXT,
        bahan TEXT,
        jaitan TEXT,
        jumlah_xs INTEGER NOT NULL DEFAULT 0,
        jumlah_s INTEGER NOT NULL DEFAULT 0,
        jumlah_m INTEGER NOT NULL DEFAULT 0,
        jumlah_l INTEGER NOT NULL DEFAULT 0,
        jumlah_xl INTEGER NOT NULL DEFAULT 0,
        jumlah_xxl INTEGER NOT NULL DEFAULT 0,
        jumlah_xxxl INTEGER NOT NULL DEFAULT 0,
        total_order INTEGER NOT NULL DEFAULT 0,
        desain_file TEXT,
        pola_file TEXT,
        catatan TEXT,
        deskripsi TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS production_steps (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        order_id INTEGER NOT NULL REFERENCES orders(id) ON DELETE CASCADE,
        step_number INTEGER NOT NULL CHECK (step_number BETWEEN 1 AND 9),
        step_name TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'selesai')),
        tanggal TEXT,
        catatan TEXT,
        berat_sebelum REAL,
        berat_sesudah REAL,
        jenis_jahit TEXT,
        harga_jahit REAL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (order_id, step_number)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS production_step_photos (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        step_id INTEGER NOT NULL REFERENCES production_steps(id) ON DELETE CASCADE,
        filename TEXT NOT NULL,
        position INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS production_steps_employees (
        production_step_id INTEGER NOT NULL REFERENCES production_steps(id) ON DELETE CASCADE,
        employee_id INTEGER NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
        PRIMARY KEY (production_step_id, employee_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS order_counter (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        current_number INTEGER NOT NULL DEFAULT 0
    )
    """,
    "INSERT OR IGNORE INTO order_counter (id, current_number) VALUES (1, 0)",
    "CREATE INDEX IF NOT EXISTS idx_orders_created_at ON orders(created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_step_photos_step ON production_step_photos(step_id, position)",
)


def _ensure_db_dir(db_path: Path) -> None:
    """Ensure the database directory exists."""
    db_path.parent.mkdir(parents=True, exist_ok=True)


def now_iso() -> str:
    """Current local time as stored in created_at/updated_at columns."""
    return datetime.now().isoformat(timespec="seconds")


def format_order_number(number: int) -> str:
    return f"{ORDER_NUMBER_PREFIX}{number:05d}"


def is_row_id(value: int) -> bool:
    """True if ``value`` can be a row id; anything else matches no row."""
    return 1 <= value <= SQLITE_MAX_INTEGER


def fetch_page(
    conn: sqlite3.Connection,
    select_sql: str,
    table: str,
    search_columns: Sequence[str],
    search: str,
    order_by: str,
    page: int,
    page_size: int,
) -> Tuple[List[sqlite3.Row], int]:
    """
    Run a paginated, optionally filtered listing query.

    A non-blank ``search`` filters with a case-insensitive substring match
    over ``search_columns``; the same filter drives the total count.

    Returns:
        (rows for the requested page, total matching rows)
    """
    where = ""
    params: List[object] = []
    if search and search.strip():
        pattern = escape_like(search.strip())
        where = " WHERE " + " OR ".join(f"{column} LIKE ? ESCAPE '\\'" for column in search_columns)
        params = [pattern] * len(search_columns)

    total = conn.execute(f"SELECT COUNT(*) AS total FROM {table}{where}", params).fetchone()["total"]
    offset = (page - 1) * page_size
    if offset >= total:
        return [], total
    rows = conn.execute(
        f"{select_sql}{where} ORDER BY {order_by} LIMIT ? OFFSET ?",
        [*params, page_size, offset],
    ).fetchall()
    return rows, total


class Database:
    """
    SQLite access for the whole application.

    Every operation opens its own connection, so instances are safe to share
    between request threads; SQLite serializes writers.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        _ensure_db_dir(self.db_path)
        self._init_db()

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection with proper settings."""
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Connection holding the write lock from the first statement.

        Used where a read must not interleave with another writer, e.g. the
        order counter together with the order insert.
        """
        with self.connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            yield conn

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self.connection() as conn:
            for statement in SCHEMA:
                conn.execute(statement)

    def next_order_number(self, conn: sqlite3.Connection) -> str:
        """
        Advance the shared counter and format the new order number.

        Increment and read happen in one statement; callers run it inside
        ``transaction()`` so the number and the row that uses it commit or
        roll back together.
        """
        row = conn.execute(
            "UPDATE order_counter SET current_number = current_number + 1 "
            "WHERE id = 1 RETURNING current_number"
        ).fetchone()
        return format_order_number(row["current_number"])

    def current_order_counter(self) -> int:
        with self.connection() as conn:
            row = conn.execute("SELECT current_number FROM order_counter WHERE id = 1").fetchone()
            return row["current_number"]

    def get_admin(self, username: str) -> Optional[sqlite3.Row]:
        with self.connection() as conn:
            return conn.execute(
                "SELECT id, username, password FROM users WHERE username = ?", (username,)
            ).fetchone()

    def ensure_admin(self, username: str, password: str) -> bool:
        """
        Create an admin account if the username is not taken yet.

        Returns:
            True if a new account was created
        """
        with self.connection() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO users (username, password, created_at) VALUES (?, ?, ?)",
                (username, generate_password_hash(password), now_iso()),
            )
            created = cursor.rowcount > 0
        if created:
            logger.info(f"Created admin account {username!r}")
        return created
