from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

SIZE_FIELDS = (
    "jumlah_xs",
    "jumlah_s",
    "jumlah_m",
    "jumlah_l",
    "jumlah_xl",
    "jumlah_xxl",
    "jumlah_xxxl",
)

# Upper bound for a single size quantity
MAX_SIZE_QUANTITY = 1_000_000


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class StepStatus(str, Enum):
    PENDING = "pending"
    SELESAI = "selesai"


class OrderStatus(str, Enum):
    PROSES = "proses"
    SELESAI = "selesai"


class EmployeeStatus(str, Enum):
    AKTIF = "aktif"
    NONAKTIF = "nonaktif"


class AccountType(str, Enum):
    ADMIN = "admin"
    EMPLOYEE = "employee"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int


# --- auth -----------------------------------------------------------------


class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""


class UserInfo(BaseModel):
    id: int
    username: str
    role: str
    nama: Optional[str] = None
    email: Optional[str] = None
    no_telpon: Optional[str] = None


class LoginResponse(BaseModel):
    success: bool = True
    token: str
    user: UserInfo


class CurrentUser(BaseModel):
    """Identity decoded from a verified bearer token."""

    id: int
    username: str
    role: str
    type: AccountType
    nama: Optional[str] = None


# --- orders ---------------------------------------------------------------


class OrderInput(BaseModel):
    """Order fields as submitted by the order form (multipart)."""

    nama_pemesan: Optional[str] = None
    tanggal_order: Optional[date] = None
    tanggal_proof: Optional[date] = None
    tanggal_selesai: Optional[date] = None
    model_kerah: Optional[str] = None
    bahan: Optional[str] = None
    jaitan: Optional[str] = None
    jumlah_xs: int = Field(default=0, ge=0, le=MAX_SIZE_QUANTITY)
    jumlah_s: int = Field(default=0, ge=0, le=MAX_SIZE_QUANTITY)
    jumlah_m: int = Field(default=0, ge=0, le=MAX_SIZE_QUANTITY)
    jumlah_l: int = Field(default=0, ge=0, le=MAX_SIZE_QUANTITY)
    jumlah_xl: int = Field(default=0, ge=0, le=MAX_SIZE_QUANTITY)
    jumlah_xxl: int = Field(default=0, ge=0, le=MAX_SIZE_QUANTITY)
    jumlah_xxxl: int = Field(default=0, ge=0, le=MAX_SIZE_QUANTITY)
    catatan: Optional[str] = None
    deskripsi: Optional[str] = None

    @field_validator(
        "nama_pemesan",
        "tanggal_order",
        "tanggal_proof",
        "tanggal_selesai",
        "model_kerah",
        "bahan",
        "jaitan",
        "catatan",
        "deskripsi",
        mode="before",
    )
    @classmethod
    def _empty_as_none(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator(*SIZE_FIELDS, mode="before")
    @classmethod
    def _empty_as_zero(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return 0
        return value

    @property
    def total_order(self) -> int:
        return sum(getattr(self, name) for name in SIZE_FIELDS)


class Order(BaseModel):
    id: int
    no_order: str
    nama_pemesan: str
    tanggal_order: Optional[date] = None
    tanggal_proof: Optional[date] = None
    tanggal_selesai: Optional[date] = None
    model_kerah: Optional[str] = None
    bahan: Optional[str] = None
    jaitan: Optional[str] = None
    jumlah_xs: int = 0
    jumlah_s: int = 0
    jumlah_m: int = 0
    jumlah_l: int = 0
    jumlah_xl: int = 0
    jumlah_xxl: int = 0
    jumlah_xxxl: int = 0
    total_order: int = 0
    desain_file: Optional[str] = None
    pola_file: Optional[str] = None
    catatan: Optional[str] = None
    deskripsi: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @computed_field  # type: ignore[misc]
    @property
    def status(self) -> OrderStatus:
        return OrderStatus.SELESAI if self.tanggal_selesai else OrderStatus.PROSES


class OrderListResponse(BaseModel):
    success: bool = True
    orders: List[Order]
    pagination: Pagination


class OrderDetailResponse(BaseModel):
    success: bool = True
    order: Order


class OrderCreatedResponse(CamelModel):
    success: bool = True
    message: str
    order_id: int
    no_order: str


class DashboardStats(CamelModel):
    total_orders: int
    today_orders: int
    pending_orders: int
    completed_orders: int


class DashboardStatsResponse(BaseModel):
    success: bool = True
    stats: DashboardStats


# --- employees ------------------------------------------------------------


class EmployeeInput(BaseModel):
    nama: Optional[str] = None
    no_telpon: Optional[str] = None
    email: Optional[str] = None
    alamat: Optional[str] = None
    status: EmployeeStatus = EmployeeStatus.AKTIF

    @field_validator("nama", "no_telpon", "email", "alamat", mode="before")
    @classmethod
    def _empty_as_none(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value: Any) -> Any:
        return _blank_to_none(value) or EmployeeStatus.AKTIF


class Employee(BaseModel):
    id: int
    nama: str
    no_telpon: Optional[str] = None
    email: Optional[str] = None
    alamat: Optional[str] = None
    status: EmployeeStatus = EmployeeStatus.AKTIF
    username: Optional[str] = None
    role: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class EmployeeListResponse(BaseModel):
    success: bool = True
    employees: List[Employee]
    pagination: Pagination


class EmployeeDetailResponse(BaseModel):
    success: bool = True
    employee: Employee


class EmployeeCreatedResponse(CamelModel):
    success: bool = True
    message: str
    employee_id: int


class EmployeeCredentials(BaseModel):
    """Generated login for an employee; the password is only ever shown here."""

    employee_id: int
    nama: str
    username: str
    temporary_password: str


# --- production -----------------------------------------------------------


class StepEmployee(BaseModel):
    id: int
    nama: str


class ProductionStep(BaseModel):
    id: int
    order_id: int
    step_number: int
    step_name: str
    status: StepStatus = StepStatus.PENDING
    tanggal: Optional[date] = None
    catatan: Optional[str] = None
    berat_sebelum: Optional[float] = None
    berat_sesudah: Optional[float] = None
    jenis_jahit: Optional[str] = None
    harga_jahit: Optional[float] = None
    photos: List[str] = Field(default_factory=list)
    employees: List[StepEmployee] = Field(default_factory=list)
    has_weight: bool = False
    has_jahit: bool = False
    created_at: datetime
    updated_at: datetime

    @computed_field  # type: ignore[misc]
    @property
    def sisa_kain(self) -> Optional[float]:
        """Cloth remainder (before - after); only when both weights are known."""
        if self.berat_sebelum is None or self.berat_sesudah is None:
            return None
        return round(self.berat_sebelum - self.berat_sesudah, 2)


class StepUpdate(BaseModel):
    """
    Replacement values for a production step.

    ``employee_ids`` is None when the request carried no employee list, in
    which case the current assignments are kept.
    """

    tanggal: Optional[date] = None
    status: StepStatus = StepStatus.PENDING
    catatan: Optional[str] = None
    berat_sebelum: Optional[float] = None
    berat_sesudah: Optional[float] = None
    jenis_jahit: Optional[str] = None
    harga_jahit: Optional[float] = None
    employee_ids: Optional[List[int]] = None
    delete_photos: List[str] = Field(default_factory=list)

    @field_validator(
        "tanggal",
        "catatan",
        "berat_sebelum",
        "berat_sesudah",
        "jenis_jahit",
        "harga_jahit",
        mode="before",
    )
    @classmethod
    def _empty_as_none(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value: Any) -> Any:
        return _blank_to_none(value) or StepStatus.PENDING


class ProductionStepListResponse(BaseModel):
    success: bool = True
    steps: List[ProductionStep]


class ProductionStepResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    step: ProductionStep
