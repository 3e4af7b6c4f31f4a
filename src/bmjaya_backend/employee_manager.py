"""
Employee records and their optional login credentials.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import List

from .auth import DEFAULT_EMPLOYEE_ROLE, hash_password
from .database import Database, fetch_page, is_row_id, now_iso
from .errors import ConflictError, NotFoundError, ValidationError
from .models import Employee, EmployeeCredentials, EmployeeInput, EmployeeListResponse, Pagination
from .utils import count_pages, normalize_username

logger = logging.getLogger(__name__)

EMPLOYEE_COLUMNS = "id, nama, no_telpon, email, alamat, status, username, role, created_at, updated_at"
SEARCH_COLUMNS = ("nama", "no_telpon", "email")
TEMP_PASSWORD_SUFFIX = "2024"


class EmployeeManager:
    def __init__(self, database: Database, page_size: int = 10) -> None:
        self.database = database
        self.page_size = page_size

    def list_employees(self, page: int = 1, search: str = "") -> EmployeeListResponse:
        with self.database.connection() as conn:
            rows, total = fetch_page(
                conn,
                f"SELECT {EMPLOYEE_COLUMNS} FROM employees",
                "employees",
                SEARCH_COLUMNS,
                search,
                "nama ASC",
                page,
                self.page_size,
            )
        return EmployeeListResponse(
            employees=[Employee.model_validate(dict(row)) for row in rows],
            pagination=Pagination(
                current_page=page,
                total_pages=count_pages(total, self.page_size),
                total_items=total,
                items_per_page=self.page_size,
            ),
        )

    def get_employee(self, employee_id: int) -> Employee:
        if not is_row_id(employee_id):
            raise NotFoundError("Karyawan tidak ditemukan")
        with self.database.connection() as conn:
            row = conn.execute(
                f"SELECT {EMPLOYEE_COLUMNS} FROM employees WHERE id = ?", (employee_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError("Karyawan tidak ditemukan")
        return Employee.model_validate(dict(row))

    def create_employee(self, data: EmployeeInput) -> int:
        nama = self._require_name(data)
        timestamp = now_iso()
        try:
            with self.database.connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO employees (nama, no_telpon, email, alamat, status, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (nama, data.no_telpon, data.email, data.alamat, data.status.value, timestamp, timestamp),
                )
                employee_id = cursor.lastrowid
        except sqlite3.IntegrityError as exc:
            raise ConflictError("Nama karyawan sudah terdaftar") from exc
        logger.info(f"Created employee {employee_id} ({nama})")
        return employee_id

    def update_employee(self, employee_id: int, data: EmployeeInput) -> None:
        nama = self._require_name(data)
        if not is_row_id(employee_id):
            raise NotFoundError("Karyawan tidak ditemukan")
        try:
            with self.database.connection() as conn:
                cursor = conn.execute(
                    """
                    UPDATE employees
                    SET nama = ?, no_telpon = ?, email = ?, alamat = ?, status = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (nama, data.no_telpon, data.email, data.alamat, data.status.value, now_iso(), employee_id),
                )
                updated = cursor.rowcount
        except sqlite3.IntegrityError as exc:
            raise ConflictError("Nama karyawan sudah terdaftar") from exc
        if updated == 0:
            raise NotFoundError("Karyawan tidak ditemukan")

    def delete_employee(self, employee_id: int) -> None:
        """Delete an employee; their step assignments go with them (FK cascade)."""
        if not is_row_id(employee_id):
            raise NotFoundError("Karyawan tidak ditemukan")
        with self.database.connection() as conn:
            cursor = conn.execute("DELETE FROM employees WHERE id = ?", (employee_id,))
            deleted = cursor.rowcount
        if deleted == 0:
            raise NotFoundError("Karyawan tidak ditemukan")
        logger.info(f"Deleted employee {employee_id}")

    def provision_logins(self) -> List[EmployeeCredentials]:
        """
        Give every employee without a username a default login.

        Username is the name lowercased with whitespace removed (a numeric
        suffix is added if that is already taken), the temporary password is
        the username followed by "2024", and the role is "karyawan".

        Returns:
            The generated credentials; passwords are not recoverable later
        """
        created: List[EmployeeCredentials] = []
        with self.database.transaction() as conn:
            pending = conn.execute(
                "SELECT id, nama FROM employees WHERE username IS NULL ORDER BY id"
            ).fetchall()
            taken = {
                row["username"]
                for row in conn.execute("SELECT username FROM employees WHERE username IS NOT NULL")
            }
            taken.update(row["username"] for row in conn.execute("SELECT username FROM users"))

            for row in pending:
                base = normalize_username(row["nama"])
                username = base
                suffix = 2
                while username in taken:
                    username = f"{base}{suffix}"
                    suffix += 1
                taken.add(username)

                password = f"{username}{TEMP_PASSWORD_SUFFIX}"
                conn.execute(
                    "UPDATE employees SET username = ?, password = ?, role = ?, updated_at = ? WHERE id = ?",
                    (username, hash_password(password), DEFAULT_EMPLOYEE_ROLE, now_iso(), row["id"]),
                )
                created.append(
                    EmployeeCredentials(
                        employee_id=row["id"], nama=row["nama"], username=username, temporary_password=password
                    )
                )
        logger.info(f"Provisioned logins for {len(created)} employee(s)")
        return created

    @staticmethod
    def _require_name(data: EmployeeInput) -> str:
        nama = (data.nama or "").strip()
        if not nama:
            raise ValidationError("Nama karyawan harus diisi")
        return nama
