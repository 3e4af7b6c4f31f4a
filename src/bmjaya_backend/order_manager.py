"""
Print orders: numbering, CRUD, listing and dashboard counts.

Reference images (design and pattern) are stored by the API layer before the
manager is called; the manager owns their lifecycle from then on. Files that
become unreferenced are deleted only after the database change has been
committed, and a failed database write removes the files it would have
referenced.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import List, Optional, Tuple

from .database import Database, fetch_page, is_row_id, now_iso
from .errors import NotFoundError, ValidationError
from .models import SIZE_FIELDS, DashboardStats, Order, OrderInput, OrderListResponse, Pagination
from .storage import FileStore
from .utils import count_pages

logger = logging.getLogger(__name__)

SEARCH_COLUMNS = ("no_order", "nama_pemesan")

# Columns written from OrderInput, in statement order
ORDER_COLUMNS = (
    "nama_pemesan",
    "tanggal_order",
    "tanggal_proof",
    "tanggal_selesai",
    "model_kerah",
    "bahan",
    "jaitan",
    *SIZE_FIELDS,
    "total_order",
    "desain_file",
    "pola_file",
    "catatan",
    "deskripsi",
)


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


class OrderManager:
    def __init__(self, database: Database, file_store: FileStore, page_size: int = 10) -> None:
        self.database = database
        self.file_store = file_store
        self.page_size = page_size

    def _values(
        self,
        data: OrderInput,
        desain_file: Optional[str],
        pola_file: Optional[str],
        default_order_date: Optional[str],
    ) -> Tuple:
        nama = (data.nama_pemesan or "").strip()
        if not nama:
            raise ValidationError("Nama pemesan harus diisi")
        return (
            nama,
            _iso(data.tanggal_order) or default_order_date,
            _iso(data.tanggal_proof),
            _iso(data.tanggal_selesai),
            data.model_kerah,
            data.bahan,
            data.jaitan,
            *(getattr(data, name) for name in SIZE_FIELDS),
            # Recomputed here; a client-supplied total is never trusted.
            data.total_order,
            desain_file,
            pola_file,
            data.catatan,
            data.deskripsi,
        )

    def list_orders(self, page: int = 1, search: str = "") -> OrderListResponse:
        with self.database.connection() as conn:
            rows, total = fetch_page(
                conn,
                "SELECT * FROM orders",
                "orders",
                SEARCH_COLUMNS,
                search,
                "created_at DESC, id DESC",
                page,
                self.page_size,
            )
        return OrderListResponse(
            orders=[Order.model_validate(dict(row)) for row in rows],
            pagination=Pagination(
                current_page=page,
                total_pages=count_pages(total, self.page_size),
                total_items=total,
                items_per_page=self.page_size,
            ),
        )

    def get_order(self, order_id: int) -> Order:
        if not is_row_id(order_id):
            raise NotFoundError("Order not found")
        with self.database.connection() as conn:
            row = conn.execute("SELECT * FROM orders WHERE id = ?", (order_id,)).fetchone()
        if row is None:
            raise NotFoundError("Order not found")
        return Order.model_validate(dict(row))

    def create_order(
        self,
        data: OrderInput,
        desain_file: Optional[str] = None,
        pola_file: Optional[str] = None,
    ) -> Order:
        """
        Insert a new order under the next order number.

        The counter increment and the insert share one write transaction, so
        concurrent creates get distinct numbers and a failed insert does not
        consume one.
        """
        try:
            values = self._values(data, desain_file, pola_file, date.today().isoformat())
            timestamp = now_iso()
            with self.database.transaction() as conn:
                no_order = self.database.next_order_number(conn)
                placeholders = ", ".join("?" for _ in range(len(ORDER_COLUMNS) + 3))
                cursor = conn.execute(
                    f"INSERT INTO orders (no_order, {', '.join(ORDER_COLUMNS)}, created_at, updated_at) "
                    f"VALUES ({placeholders})",
                    (no_order, *values, timestamp, timestamp),
                )
                order_id = cursor.lastrowid
        except Exception:
            self.file_store.delete_many([desain_file, pola_file])
            raise

        logger.info(f"Created order {no_order} (id={order_id})")
        return self.get_order(order_id)

    def update_order(
        self,
        order_id: int,
        data: OrderInput,
        desain_file: Optional[str] = None,
        pola_file: Optional[str] = None,
    ) -> Order:
        """
        Replace an order's fields; a new design/pattern file replaces the old one.

        Files not supplied keep their current value, as does the order date
        when it is left blank. Replaced files are deleted after the row is
        updated.
        """
        try:
            if not is_row_id(order_id):
                raise NotFoundError("Order not found")
            with self.database.connection() as conn:
                existing = conn.execute(
                    "SELECT desain_file, pola_file, tanggal_order FROM orders WHERE id = ?", (order_id,)
                ).fetchone()
                if existing is None:
                    raise NotFoundError("Order not found")

                values = self._values(
                    data,
                    desain_file or existing["desain_file"],
                    pola_file or existing["pola_file"],
                    existing["tanggal_order"],
                )
                assignments = ", ".join(f"{column} = ?" for column in ORDER_COLUMNS)
                conn.execute(
                    f"UPDATE orders SET {assignments}, updated_at = ? WHERE id = ?",
                    (*values, now_iso(), order_id),
                )
        except Exception:
            self.file_store.delete_many([desain_file, pola_file])
            raise

        replaced: List[Optional[str]] = []
        if desain_file and existing["desain_file"] != desain_file:
            replaced.append(existing["desain_file"])
        if pola_file and existing["pola_file"] != pola_file:
            replaced.append(existing["pola_file"])
        self.file_store.delete_many(replaced)

        logger.info(f"Updated order {order_id}")
        return self.get_order(order_id)

    def delete_order(self, order_id: int) -> None:
        """
        Delete an order with its production steps, photos and assignments.

        Stored files (design, pattern, step photos) are removed after the
        database delete; failures there are only logged.
        """
        if not is_row_id(order_id):
            raise NotFoundError("Order not found")
        with self.database.connection() as conn:
            row = conn.execute(
                "SELECT desain_file, pola_file FROM orders WHERE id = ?", (order_id,)
            ).fetchone()
            if row is None:
                raise NotFoundError("Order not found")

            photos = [
                photo["filename"]
                for photo in conn.execute(
                    """
                    SELECT p.filename
                    FROM production_step_photos p
                    JOIN production_steps s ON s.id = p.step_id
                    WHERE s.order_id = ?
                    """,
                    (order_id,),
                )
            ]
            conn.execute("DELETE FROM orders WHERE id = ?", (order_id,))

        self.file_store.delete_many([row["desain_file"], row["pola_file"], *photos])
        logger.info(f"Deleted order {order_id}")

    def dashboard_stats(self, today: Optional[date] = None) -> DashboardStats:
        """Order counts; an order is pending until it has a completion date."""
        today = today or date.today()
        start, end = today.isoformat(), (today + timedelta(days=1)).isoformat()
        with self.database.connection() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total,
                    COALESCE(SUM(CASE WHEN created_at >= ? AND created_at < ? THEN 1 ELSE 0 END), 0) AS today,
                    COALESCE(SUM(CASE WHEN tanggal_selesai IS NULL THEN 1 ELSE 0 END), 0) AS pending,
                    COALESCE(SUM(CASE WHEN tanggal_selesai IS NOT NULL THEN 1 ELSE 0 END), 0) AS completed
                FROM orders
                """,
                (start, end),
            ).fetchone()
        return DashboardStats(
            total_orders=row["total"],
            today_orders=row["today"],
            pending_orders=row["pending"],
            completed_orders=row["completed"],
        )
