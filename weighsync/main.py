from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from weighsync import reports, store
from weighsync.config import settings
from weighsync.db import get_db
from weighsync.errors import BatchApplyError
from weighsync.schemas import ApiResponse, PushResult, SyncRequest, as_utc, utc_now
from weighsync.sync import (
    ENTITY_KINDS_BY_SLUG,
    EntityKind,
    apply_batch,
    full_sync,
    get_changes_since,
    record_from_row,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def _configure_logging() -> None:
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")


@asynccontextmanager
async def lifespan(_: FastAPI):
    _configure_logging()
    logger.info("%s starting", settings.app_name)
    yield


app = FastAPI(title=settings.app_name, lifespan=lifespan)


def _ok(data: Any, message: Optional[str] = None) -> dict:
    return ApiResponse(success=True, message=message, data=data).model_dump(mode="json", by_alias=True)


def _error(status_code: int, message: str, data: Any = None) -> JSONResponse:
    body = ApiResponse(success=False, message=message, data=data).model_dump(mode="json", by_alias=True)
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(RequestValidationError)
async def handle_invalid_request(_: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = f"Invalid request: {location}: {first.get('msg', 'malformed request')}"
    return _error(400, message)


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(_: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(BatchApplyError)
async def handle_batch_error(_: Request, exc: BatchApplyError) -> JSONResponse:
    logger.error("push batch failed: %s", exc, exc_info=exc.__cause__)
    return _error(500, str(exc), {"syncedCount": exc.applied})


@app.exception_handler(SQLAlchemyError)
async def handle_store_error(_: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("entity store failure", exc_info=exc)
    return _error(500, "entity store failure")


def _entity_kind(kind: str) -> EntityKind:
    entity_kind = ENTITY_KINDS_BY_SLUG.get(kind)
    if entity_kind is None:
        raise HTTPException(status_code=404, detail="entity type not found")
    return entity_kind


@app.get("/", tags=["root"])
def read_root() -> dict:
    return {"status": "ok"}


@app.get("/health", tags=["health"])
def health_check() -> dict:
    return {"status": "healthy"}


@app.get(f"{settings.api_prefix}/sync/changes", tags=["Sync"])
def get_changes(
    last_sync_time: Optional[datetime] = Query(default=None, alias="lastSyncTime"),
    station_id: Optional[str] = Query(default=None, alias="stationId"),
    db: Session = Depends(get_db),
) -> dict:
    cursor = as_utc(last_sync_time) if last_sync_time is not None else None
    changes = get_changes_since(db, cursor, station_id)
    return _ok(changes, f"Found {changes.total_changes} changes")


@app.post(f"{settings.api_prefix}/sync/push", tags=["Sync"])
def push_changes(payload: SyncRequest, db: Session = Depends(get_db)) -> dict:
    logger.info("push from station %s: %d records", payload.station_id or "-", payload.record_count)
    synced = apply_batch(db, payload)
    result = PushResult(synced_count=synced, sync_time=utc_now())
    return _ok(result, f"Synced {synced} items")


@app.post(f"{settings.api_prefix}/sync/full", tags=["Sync"])
def full_sync_changes(payload: SyncRequest, db: Session = Depends(get_db)) -> dict:
    logger.info("full sync from station %s: %d records", payload.station_id or "-", payload.record_count)
    result = full_sync(db, payload)
    return _ok(result)


@app.get(f"{settings.api_prefix}/reports/daily", tags=["Reports"])
def get_daily_summary(
    day: Optional[date] = Query(default=None, alias="date"),
    db: Session = Depends(get_db),
) -> dict:
    return _ok(reports.daily_summary(db, day or utc_now().date()))


@app.get(f"{settings.api_prefix}/reports/statistics", tags=["Reports"])
def get_statistics(
    from_date: Optional[date] = Query(default=None, alias="fromDate"),
    to_date: Optional[date] = Query(default=None, alias="toDate"),
    db: Session = Depends(get_db),
) -> dict:
    default_from, default_to = reports.default_period(utc_now().date())
    return _ok(reports.statistics(db, from_date or default_from, to_date or default_to))


@app.get(f"{settings.api_prefix}/reports/customer/{{customer_id}}", tags=["Reports"])
def get_customer_report(
    customer_id: str,
    from_date: Optional[date] = Query(default=None, alias="fromDate"),
    to_date: Optional[date] = Query(default=None, alias="toDate"),
    db: Session = Depends(get_db),
) -> dict:
    default_from, default_to = reports.default_period(utc_now().date())
    report = reports.customer_report(db, customer_id, from_date or default_from, to_date or default_to)
    if report is None:
        raise HTTPException(status_code=404, detail="Customer not found")
    return _ok(report)


@app.get(f"{settings.api_prefix}/vehicles/plate/{{plate_number}}", tags=["Vehicles"])
def get_vehicle_by_plate(plate_number: str, db: Session = Depends(get_db)) -> dict:
    vehicle = store.get_vehicle_by_plate(db, plate_number)
    if not vehicle:
        raise HTTPException(status_code=404, detail="Vehicle not found")
    return _ok(record_from_row(ENTITY_KINDS_BY_SLUG["vehicles"].schema, vehicle))


@app.get(f"{settings.api_prefix}/{{kind}}/{{record_id}}", tags=["Entities"])
def get_entity(kind: str, record_id: str, db: Session = Depends(get_db)) -> dict:
    entity_kind = _entity_kind(kind)
    row = store.get_by_id(db, entity_kind.model, record_id)
    if not row:
        raise HTTPException(status_code=404, detail=f"{entity_kind.label} not found")
    return _ok(record_from_row(entity_kind.schema, row))


@app.delete(f"{settings.api_prefix}/{{kind}}/{{record_id}}", tags=["Entities"])
def delete_entity(kind: str, record_id: str, db: Session = Depends(get_db)) -> dict:
    entity_kind = _entity_kind(kind)
    deleted = store.soft_delete(db, entity_kind.model, record_id, utc_now())
    if not deleted:
        db.rollback()
        raise HTTPException(status_code=404, detail=f"{entity_kind.label} not found")
    db.commit()
    logger.info("soft-deleted %s %s", entity_kind.field, record_id)
    return _ok(None, f"{entity_kind.label} deleted successfully")
