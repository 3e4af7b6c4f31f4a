from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Type, TypeVar

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import FormData, UploadFile

from .auth import authenticate, require_user
from .configuration import Settings, get_settings
from .database import Database
from .employee_manager import EmployeeManager
from .errors import BMJayaError, ValidationError
from .models import (
    DashboardStatsResponse,
    EmployeeCreatedResponse,
    EmployeeDetailResponse,
    EmployeeInput,
    EmployeeListResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    OrderCreatedResponse,
    OrderDetailResponse,
    OrderInput,
    OrderListResponse,
    ProductionStepListResponse,
    ProductionStepResponse,
    StepUpdate,
)
from .order_manager import OrderManager
from .production_manager import ProductionManager
from .storage import FileStore
from .utils import normalize_page

logger = logging.getLogger(__name__)

settings = get_settings()
logging.basicConfig(
    level=settings.logging.level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="BM Jaya Printing API", version="0.1.0")

allowed_origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

database = Database(Path(settings.database.path))
file_store = FileStore(Path(settings.storage.upload_dir), settings.storage.max_upload_bytes)

if settings.auth.bootstrap_admin_username and settings.auth.bootstrap_admin_password:
    database.ensure_admin(settings.auth.bootstrap_admin_username, settings.auth.bootstrap_admin_password)

app.mount("/uploads", StaticFiles(directory=file_store.root), name="uploads")

ModelT = TypeVar("ModelT", bound=BaseModel)


def get_database() -> Database:
    return database


def get_file_store() -> FileStore:
    return file_store


def get_order_manager(
    db: Database = Depends(get_database),
    store: FileStore = Depends(get_file_store),
    config: Settings = Depends(get_settings),
) -> OrderManager:
    return OrderManager(db, store, page_size=config.server.page_size)


def get_employee_manager(
    db: Database = Depends(get_database),
    config: Settings = Depends(get_settings),
) -> EmployeeManager:
    return EmployeeManager(db, page_size=config.server.page_size)


def get_production_manager(
    db: Database = Depends(get_database),
    store: FileStore = Depends(get_file_store),
) -> ProductionManager:
    return ProductionManager(db, store)


@app.exception_handler(BMJayaError)
async def handle_domain_error(request: Request, exc: BMJayaError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"success": False, "message": "Server error"})


# --- multipart helpers ----------------------------------------------------


def _form_values(form: FormData) -> Dict[str, str]:
    return {key: value for key, value in form.multi_items() if isinstance(value, str)}


def _form_list(form: FormData, name: str) -> Optional[List[str]]:
    """
    Collect a list field sent as repeated ``name`` keys or as ``name[0]``,
    ``name[1]``... Returns None when the field is absent altogether.
    """
    present = False
    values: List[str] = []
    for key, value in form.multi_items():
        if key == name or key == f"{name}[]" or (key.startswith(f"{name}[") and key.endswith("]")):
            present = True
            if isinstance(value, str) and value.strip():
                values.append(value.strip())
    return values if present else None


def _form_file(form: FormData, name: str) -> Optional[UploadFile]:
    value = form.get(name)
    if isinstance(value, UploadFile) and value.filename:
        return value
    return None


def _form_files(form: FormData, name: str) -> List[UploadFile]:
    return [value for value in form.getlist(name) if isinstance(value, UploadFile) and value.filename]


def _parse(model: Type[ModelT], data: Dict) -> ModelT:
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        error = exc.errors()[0]
        field = ".".join(str(part) for part in error["loc"])
        raise ValidationError(f"Invalid value for {field}: {error['msg']}") from exc


async def _store_order_files(form: FormData, store: FileStore) -> Dict[str, str]:
    uploads = {name: upload for name in ("desain_file", "pola_file") if (upload := _form_file(form, name))}
    stored = await store.save_uploads(list(uploads.values()))
    return dict(zip(uploads, stored))


# --- routes ---------------------------------------------------------------


@app.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


public = APIRouter()
protected = APIRouter(dependencies=[Depends(require_user)])


@public.post("/login", response_model=LoginResponse)
def login(
    credentials: LoginRequest,
    db: Database = Depends(get_database),
    config: Settings = Depends(get_settings),
) -> LoginResponse:
    return authenticate(db, credentials.username, credentials.password, config.auth)


@protected.get("/dashboard/stats", response_model=DashboardStatsResponse)
def dashboard_stats(manager: OrderManager = Depends(get_order_manager)) -> DashboardStatsResponse:
    return DashboardStatsResponse(stats=manager.dashboard_stats())


@protected.get("/orders", response_model=OrderListResponse)
def list_orders(
    page: Optional[str] = None,
    search: str = "",
    manager: OrderManager = Depends(get_order_manager),
) -> OrderListResponse:
    return manager.list_orders(page=normalize_page(page), search=search)


@protected.post("/orders", response_model=OrderCreatedResponse)
async def create_order(
    request: Request,
    manager: OrderManager = Depends(get_order_manager),
    store: FileStore = Depends(get_file_store),
) -> OrderCreatedResponse:
    form = await request.form()
    data = _parse(OrderInput, _form_values(form))
    stored = await _store_order_files(form, store)
    order = manager.create_order(data, desain_file=stored.get("desain_file"), pola_file=stored.get("pola_file"))
    return OrderCreatedResponse(message="Order created successfully", order_id=order.id, no_order=order.no_order)


@protected.get("/orders/{order_id}", response_model=OrderDetailResponse)
def get_order(order_id: int, manager: OrderManager = Depends(get_order_manager)) -> OrderDetailResponse:
    return OrderDetailResponse(order=manager.get_order(order_id))


@protected.put("/orders/{order_id}", response_model=MessageResponse)
async def update_order(
    order_id: int,
    request: Request,
    manager: OrderManager = Depends(get_order_manager),
    store: FileStore = Depends(get_file_store),
) -> MessageResponse:
    form = await request.form()
    data = _parse(OrderInput, _form_values(form))
    stored = await _store_order_files(form, store)
    manager.update_order(order_id, data, desain_file=stored.get("desain_file"), pola_file=stored.get("pola_file"))
    return MessageResponse(message="Order updated successfully")


@protected.delete("/orders/{order_id}", response_model=MessageResponse)
def delete_order(order_id: int, manager: OrderManager = Depends(get_order_manager)) -> MessageResponse:
    manager.delete_order(order_id)
    return MessageResponse(message="Order deleted successfully")


@protected.post("/orders/{order_id}/production/init", response_model=MessageResponse)
def init_production(
    order_id: int, manager: ProductionManager = Depends(get_production_manager)
) -> MessageResponse:
    manager.initialize_steps(order_id)
    return MessageResponse(message="Production steps initialized")


@protected.get("/orders/{order_id}/production", response_model=ProductionStepListResponse)
def list_production_steps(
    order_id: int, manager: ProductionManager = Depends(get_production_manager)
) -> ProductionStepListResponse:
    return ProductionStepListResponse(steps=manager.list_steps(order_id))


@protected.get("/orders/{order_id}/production/{step_number}", response_model=ProductionStepResponse)
def get_production_step(
    order_id: int, step_number: int, manager: ProductionManager = Depends(get_production_manager)
) -> ProductionStepResponse:
    return ProductionStepResponse(step=manager.get_step(order_id, step_number))


@protected.put("/orders/{order_id}/production/{step_number}", response_model=ProductionStepResponse)
async def update_production_step(
    order_id: int,
    step_number: int,
    request: Request,
    manager: ProductionManager = Depends(get_production_manager),
    store: FileStore = Depends(get_file_store),
    config: Settings = Depends(get_settings),
) -> ProductionStepResponse:
    form = await request.form()
    values: Dict[str, object] = dict(_form_values(form))

    employee_ids = _form_list(form, "employee_ids")
    if employee_ids is not None:
        try:
            values["employee_ids"] = [int(value) for value in employee_ids]
        except ValueError as exc:
            raise ValidationError("Invalid value for employee_ids") from exc
    else:
        values.pop("employee_ids", None)
    values["delete_photos"] = _form_list(form, "deletePhotos") or []

    update = _parse(StepUpdate, values)

    photos = _form_files(form, "photos")
    if len(photos) > config.storage.max_photos_per_request:
        raise ValidationError(f"At most {config.storage.max_photos_per_request} photos per upload")
    new_photos = await store.save_uploads(photos)

    step = manager.update_step(order_id, step_number, update, new_photos)
    return ProductionStepResponse(message="Production step updated successfully", step=step)


@protected.delete(
    "/orders/{order_id}/production/{step_number}/photo/{photo_name}",
    response_model=ProductionStepResponse,
)
def delete_production_photo(
    order_id: int,
    step_number: int,
    photo_name: str,
    manager: ProductionManager = Depends(get_production_manager),
) -> ProductionStepResponse:
    step = manager.delete_photo(order_id, step_number, photo_name)
    return ProductionStepResponse(message="Photo deleted successfully", step=step)


@protected.get("/employees", response_model=EmployeeListResponse)
def list_employees(
    page: Optional[str] = None,
    search: str = "",
    manager: EmployeeManager = Depends(get_employee_manager),
) -> EmployeeListResponse:
    return manager.list_employees(page=normalize_page(page), search=search)


@protected.get("/employees/{employee_id}", response_model=EmployeeDetailResponse)
def get_employee(
    employee_id: int, manager: EmployeeManager = Depends(get_employee_manager)
) -> EmployeeDetailResponse:
    return EmployeeDetailResponse(employee=manager.get_employee(employee_id))


@protected.post("/employees", response_model=EmployeeCreatedResponse)
def create_employee(
    payload: EmployeeInput, manager: EmployeeManager = Depends(get_employee_manager)
) -> EmployeeCreatedResponse:
    employee_id = manager.create_employee(payload)
    return EmployeeCreatedResponse(message="Karyawan berhasil ditambahkan", employee_id=employee_id)


@protected.put("/employees/{employee_id}", response_model=MessageResponse)
def update_employee(
    employee_id: int, payload: EmployeeInput, manager: EmployeeManager = Depends(get_employee_manager)
) -> MessageResponse:
    manager.update_employee(employee_id, payload)
    return MessageResponse(message="Karyawan berhasil diupdate")


@protected.delete("/employees/{employee_id}", response_model=MessageResponse)
def delete_employee(
    employee_id: int, manager: EmployeeManager = Depends(get_employee_manager)
) -> MessageResponse:
    manager.delete_employee(employee_id)
    return MessageResponse(message="Karyawan berhasil dihapus")


app.include_router(public, prefix=settings.server.api_prefix)
app.include_router(protected, prefix=settings.server.api_prefix)
