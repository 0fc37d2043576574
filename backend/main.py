import logging
import random
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from db import close_pool
from errors import (
    DuplicateFieldType,
    InvalidRequest,
    NotFound,
    StorageFailure,
    UnsupportedDataType,
)
from models import (
    EntriesOut,
    EntryCreated,
    EntryIn,
    FieldInput,
    FieldTypeEnvelope,
    FieldTypesOut,
    FieldTypeUpdate,
    SuccessOut,
)
from repo_entries import EntryRepo
from repo_field_types import FieldTypeRepo
from service_entries import EntryService
from service_field_types import FieldTypeRegistry
from settings import settings

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("healthlog.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    close_pool()


app = FastAPI(title="Health Log Backend", lifespan=lifespan)

# Instantiate the repos + services here so the routes remain thin and
# replaceable for testing: tests swap `svc` and `registry` for instances
# built on in-memory repositories.
registry = FieldTypeRegistry(FieldTypeRepo())
svc = EntryService(EntryRepo(), registry)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(RequestValidationError)
async def on_validation_error(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid request")
    return _error(400, f"{where}: {message}" if where else message)


@app.exception_handler(InvalidRequest)
async def on_invalid_request(request: Request, exc: InvalidRequest):
    return _error(400, str(exc))


@app.exception_handler(NotFound)
async def on_not_found(request: Request, exc: NotFound):
    return _error(404, str(exc))


@app.exception_handler(DuplicateFieldType)
async def on_duplicate(request: Request, exc: DuplicateFieldType):
    return _error(409, str(exc))


@app.exception_handler(UnsupportedDataType)
async def on_unsupported(request: Request, exc: UnsupportedDataType):
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return _error(500, str(exc))


@app.exception_handler(StorageFailure)
async def on_storage_failure(request: Request, exc: StorageFailure):
    logger.error("%s %s storage failure", request.method, request.url.path, exc_info=exc)
    return _error(500, "Internal server error")


@app.exception_handler(Exception)
async def on_unexpected_error(request: Request, exc: Exception):
    logger.error("%s %s failed", request.method, request.url.path, exc_info=exc)
    return _error(500, "Internal server error")


@app.get("/health")
def health():
    try:
        svc.health_check()
        return {"ok": True}
    except StorageFailure:
        logger.exception("DB health check failed")
        return JSONResponse(status_code=500, content={"ok": False, "error": "DB health check failed"})


@app.post("/entries", status_code=201, response_model=EntryCreated)
def create_entry(body: EntryIn):
    entry = svc.record_entry(settings.default_user, body.occurred_at, body.fields)
    return {"success": True, "entry_id": entry["id"]}


@app.get("/entries", response_model=EntriesOut)
def list_entries(
    limit: Optional[int] = Query(None, ge=0),
    offset: int = Query(0, ge=0),
):
    return {"entries": svc.list_entries(settings.default_user, limit, offset)}


@app.get("/field-types", response_model=FieldTypesOut)
def list_field_types(
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    category: Optional[str] = None,
):
    return {"field_types": registry.list_field_types(settings.default_user, sort_by, category)}


@app.patch("/field-types", response_model=FieldTypeEnvelope)
def update_field_type(body: FieldTypeUpdate):
    if body.id is None:
        raise InvalidRequest("Field type ID is required")
    changes = body.model_dump(include={"name", "category"}, exclude_unset=True)
    updated = registry.rename(settings.default_user, str(body.id), **changes)
    return {"field_type": updated}


@app.delete("/field-types", response_model=SuccessOut)
def delete_field_type(id: Optional[UUID] = None):
    if id is None:
        raise InvalidRequest("Field type ID is required")
    registry.delete(settings.default_user, str(id))
    return {"success": True}


@app.post("/seed")
def seed(days_ago: int = 0):
    day = (datetime.now(timezone.utc) - timedelta(days=days_ago)).replace(
        hour=0, minute=0, second=0, microsecond=0
    )

    recorded = 0
    for hour in (8, 13, 19, 23):
        if hour < 12:
            fields = [
                FieldInput(name="energy", data_type="scale_1_10", value=random.randint(3, 8)),
                FieldInput(name="coffee", data_type="boolean", value=random.choice([True, False])),
            ]
        elif hour < 18:
            fields = [
                FieldInput(name="lunch", data_type="text", value=random.choice(["salad", "pizza", "sandwich"])),
                FieldInput(name="stress", data_type="scale_1_10", value=random.randint(2, 9)),
            ]
        elif hour < 22:
            fields = [
                FieldInput(name="cramping", data_type="severity", value=random.choice(["mild", "moderate", "severe"])),
                FieldInput(name="ibuprofen", data_type="number", value=random.choice([0, 200, 400])),
            ]
        else:
            fields = [FieldInput(name="sleep quality", data_type="scale_1_10", value=random.randint(4, 9))]

        # NOTE: call the service, NOT the raw repo
        svc.record_entry(settings.default_user, day + timedelta(hours=hour), fields)
        recorded += 1

    return {"recorded": recorded}
