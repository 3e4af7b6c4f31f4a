"""
Production tracking: the fixed nine-step pipeline attached to every order.

Each order gets exactly one row per step number (1-9), created on demand and
never re-created. A step is a two-state toggle (pending / selesai) with no
forbidden transitions, plus a work date and note, step-specific numbers,
an ordered photo list and a set of assigned employees.

Employee assignment is replaced as a whole whenever an employee list is
supplied: all current assignments are deleted and the given ones inserted.
"""

from __future__ import annotations

import logging
import sqlite3
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .database import Database, is_row_id, now_iso
from .errors import NotFoundError, ValidationError
from .models import ProductionStep, StepEmployee, StepStatus, StepUpdate
from .storage import FileStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepDefinition:
    number: int
    name: str
    has_weight: bool = False
    has_jahit: bool = False


PRODUCTION_STEPS = (
    StepDefinition(1, "Desain"),
    StepDefinition(2, "Potong Kertas"),
    StepDefinition(3, "Potong Kain Jersey", has_weight=True),
    StepDefinition(4, "Potong Kain Polos"),
    StepDefinition(5, "Press Jersey"),
    StepDefinition(6, "Sablon"),
    StepDefinition(7, "Bordir"),
    StepDefinition(8, "Jahit", has_jahit=True),
    StepDefinition(9, "Packing & QC"),
)

STEPS_BY_NUMBER: Dict[int, StepDefinition] = {step.number: step for step in PRODUCTION_STEPS}


def get_step_definition(step_number: int) -> StepDefinition:
    definition = STEPS_BY_NUMBER.get(step_number)
    if definition is None:
        raise NotFoundError("Production step not found")
    return definition


class ProductionManager:
    def __init__(self, database: Database, file_store: FileStore) -> None:
        self.database = database
        self.file_store = file_store

    @staticmethod
    def _require_order(conn: sqlite3.Connection, order_id: int) -> None:
        if not is_row_id(order_id):
            raise NotFoundError("Order not found")
        if conn.execute("SELECT 1 FROM orders WHERE id = ?", (order_id,)).fetchone() is None:
            raise NotFoundError("Order not found")

    @staticmethod
    def _insert_missing_steps(conn: sqlite3.Connection, order_id: int) -> int:
        timestamp = now_iso()
        inserted = 0
        for step in PRODUCTION_STEPS:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO production_steps
                    (order_id, step_number, step_name, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (order_id, step.number, step.name, StepStatus.PENDING.value, timestamp, timestamp),
            )
            inserted += cursor.rowcount
        return inserted

    def initialize_steps(self, order_id: int) -> int:
        """
        Create the nine steps for an order; existing steps are left alone.

        Returns:
            Number of steps actually inserted (0 when already initialized)
        """
        with self.database.connection() as conn:
            self._require_order(conn, order_id)
            inserted = self._insert_missing_steps(conn, order_id)
        if inserted:
            logger.info(f"Initialized {inserted} production step(s) for order {order_id}")
        return inserted

    def list_steps(self, order_id: int) -> List[ProductionStep]:
        """All nine steps of an order, initializing them on first access."""
        with self.database.connection() as conn:
            self._require_order(conn, order_id)
            self._insert_missing_steps(conn, order_id)
            return self._load_steps(conn, order_id)

    def get_step(self, order_id: int, step_number: int) -> ProductionStep:
        get_step_definition(step_number)
        with self.database.connection() as conn:
            self._require_order(conn, order_id)
            self._insert_missing_steps(conn, order_id)
            steps = self._load_steps(conn, order_id, step_number)
        if not steps:
            raise NotFoundError("Production step not found")
        return steps[0]

    def update_step(
        self,
        order_id: int,
        step_number: int,
        update: StepUpdate,
        new_photos: Sequence[str] = (),
    ) -> ProductionStep:
        """
        Replace a step's mutable fields.

        ``new_photos`` (already stored) are appended after the current photos;
        names in ``update.delete_photos`` that are on the list are removed and
        their files deleted once the row is saved. Weight fields only apply
        to weighing steps and stitch fields only to the sewing step; they are
        cleared elsewhere.
        """
        definition = get_step_definition(step_number)
        try:
            with self.database.connection() as conn:
                step_id = self._require_step_id(conn, order_id, step_number)
                current = self._load_photos(conn, [step_id])[step_id]

                delete_requested = set(update.delete_photos)
                removed = [name for name in current if name in delete_requested]
                photos = [name for name in [*current, *new_photos] if name not in delete_requested]

                conn.execute(
                    """
                    UPDATE production_steps SET
                        tanggal = ?, status = ?, catatan = ?,
                        berat_sebelum = ?, berat_sesudah = ?,
                        jenis_jahit = ?, harga_jahit = ?,
                        updated_at = ?
                    WHERE id = ?
                    """,
                    (
                        update.tanggal.isoformat() if update.tanggal else None,
                        update.status.value,
                        update.catatan,
                        update.berat_sebelum if definition.has_weight else None,
                        update.berat_sesudah if definition.has_weight else None,
                        update.jenis_jahit if definition.has_jahit else None,
                        update.harga_jahit if definition.has_jahit else None,
                        now_iso(),
                        step_id,
                    ),
                )
                self._replace_photos(conn, step_id, photos)

                if update.employee_ids is not None:
                    self._replace_employees(conn, step_id, update.employee_ids)
        except Exception:
            self.file_store.delete_many(new_photos)
            raise

        self.file_store.delete_many(removed)
        logger.info(
            f"Updated production step {step_number} of order {order_id} "
            f"(status={update.status.value}, +{len(new_photos)}/-{len(removed)} photos)"
        )
        return self.get_step(order_id, step_number)

    def delete_photo(self, order_id: int, step_number: int, photo_name: str) -> ProductionStep:
        """
        Remove one photo from a step's list and delete its file.

        A name that is not on the list changes nothing and touches no file.
        """
        get_step_definition(step_number)
        with self.database.connection() as conn:
            step_id = self._require_step_id(conn, order_id, step_number)
            cursor = conn.execute(
                "DELETE FROM production_step_photos WHERE step_id = ? AND filename = ?",
                (step_id, photo_name),
            )
            removed = cursor.rowcount > 0
            if removed:
                conn.execute(
                    "UPDATE production_steps SET updated_at = ? WHERE id = ?", (now_iso(), step_id)
                )

        if removed:
            self.file_store.delete(photo_name)
            logger.info(f"Deleted photo {photo_name} from step {step_number} of order {order_id}")
        return self.get_step(order_id, step_number)

    @staticmethod
    def _require_step_id(conn: sqlite3.Connection, order_id: int, step_number: int) -> int:
        if not is_row_id(order_id):
            raise NotFoundError("Production step not found")
        row = conn.execute(
            "SELECT id FROM production_steps WHERE order_id = ? AND step_number = ?",
            (order_id, step_number),
        ).fetchone()
        if row is None:
            raise NotFoundError("Production step not found")
        return row["id"]

    @staticmethod
    def _replace_photos(conn: sqlite3.Connection, step_id: int, photos: Sequence[str]) -> None:
        conn.execute("DELETE FROM production_step_photos WHERE step_id = ?", (step_id,))
        conn.executemany(
            "INSERT INTO production_step_photos (step_id, filename, position) VALUES (?, ?, ?)",
            [(step_id, name, position) for position, name in enumerate(photos)],
        )

    @staticmethod
    def _replace_employees(conn: sqlite3.Connection, step_id: int, employee_ids: Sequence[int]) -> None:
        unique_ids = list(dict.fromkeys(employee_ids))
        if unique_ids:
            # Ids outside the INTEGER range cannot exist and are reported as missing
            candidates = [employee_id for employee_id in unique_ids if is_row_id(employee_id)]
            found = set()
            if candidates:
                placeholders = ", ".join("?" for _ in candidates)
                found = {
                    row["id"]
                    for row in conn.execute(
                        f"SELECT id FROM employees WHERE id IN ({placeholders})", candidates
                    )
                }
            missing = [str(employee_id) for employee_id in unique_ids if employee_id not in found]
            if missing:
                raise ValidationError(f"Karyawan tidak ditemukan: {', '.join(missing)}")

        conn.execute("DELETE FROM production_steps_employees WHERE production_step_id = ?", (step_id,))
        conn.executemany(
            "INSERT INTO production_steps_employees (production_step_id, employee_id) VALUES (?, ?)",
            [(step_id, employee_id) for employee_id in unique_ids],
        )

    @staticmethod
    def _load_photos(conn: sqlite3.Connection, step_ids: Sequence[int]) -> Dict[int, List[str]]:
        photos: Dict[int, List[str]] = {step_id: [] for step_id in step_ids}
        if not step_ids:
            return photos
        placeholders = ", ".join("?" for _ in step_ids)
        for row in conn.execute(
            f"SELECT step_id, filename FROM production_step_photos "
            f"WHERE step_id IN ({placeholders}) ORDER BY step_id, position, id",
            list(step_ids),
        ):
            photos[row["step_id"]].append(row["filename"])
        return photos

    @staticmethod
    def _load_employees(conn: sqlite3.Connection, step_ids: Sequence[int]) -> Dict[int, List[StepEmployee]]:
        employees: Dict[int, List[StepEmployee]] = defaultdict(list)
        if not step_ids:
            return employees
        placeholders = ", ".join("?" for _ in step_ids)
        for row in conn.execute(
            f"""
            SELECT pse.production_step_id AS step_id, e.id, e.nama
            FROM production_steps_employees pse
            JOIN employees e ON e.id = pse.employee_id
            WHERE pse.production_step_id IN ({placeholders})
            ORDER BY e.nama
            """,
            list(step_ids),
        ):
            employees[row["step_id"]].append(StepEmployee(id=row["id"], nama=row["nama"]))
        return employees

    def _load_steps(
        self, conn: sqlite3.Connection, order_id: int, step_number: Optional[int] = None
    ) -> List[ProductionStep]:
        query = "SELECT * FROM production_steps WHERE order_id = ?"
        params: List[int] = [order_id]
        if step_number is not None:
            query += " AND step_number = ?"
            params.append(step_number)
        rows = conn.execute(query + " ORDER BY step_number ASC", params).fetchall()

        step_ids = [row["id"] for row in rows]
        photos = self._load_photos(conn, step_ids)
        employees = self._load_employees(conn, step_ids)

        steps = []
        for row in rows:
            definition = STEPS_BY_NUMBER[row["step_number"]]
            steps.append(
                ProductionStep.model_validate(
                    {
                        **dict(row),
                        "photos": photos[row["id"]],
                        "employees": employees[row["id"]],
                        "has_weight": definition.has_weight,
                        "has_jahit": definition.has_jahit,
                    }
                )
            )
        return steps
