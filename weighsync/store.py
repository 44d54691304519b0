"""Entity Store data access.

Every write here is a single statement, so two sessions racing on the same id
are serialized by the database rather than by a read in Python.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import case, insert, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from weighsync.models import Vehicle

UPSERT_DIALECTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}

# Kept from the original creation time on whole-record replace.
IMMUTABLE_COLUMNS = ("id", "created_at")


def get_by_id(db: Session, model, record_id: str):
    return db.query(model).filter(model.id == record_id, model.is_deleted.is_(False)).first()


def get_vehicle_by_plate(db: Session, plate_number: str) -> Optional[Vehicle]:
    return db.query(Vehicle).filter(
        Vehicle.plate_number == plate_number,
        Vehicle.is_deleted.is_(False),
    ).first()


def insert_if_absent(db: Session, model, values: dict[str, Any]) -> bool:
    dialect_insert = UPSERT_DIALECTS.get(db.get_bind().dialect.name)
    if dialect_insert is not None:
        stmt = dialect_insert(model.__table__).values(**values).on_conflict_do_nothing(index_elements=["id"])
        return db.execute(stmt).rowcount == 1
    try:
        with db.begin_nested():
            db.execute(insert(model.__table__).values(**values))
    except IntegrityError:
        return False
    return True


def update_if_newer(db: Session, model, values: dict[str, Any]) -> bool:
    """Replace the stored row only if ``values`` carries a strictly newer ``updated_at``."""
    changes = {key: value for key, value in values.items() if key not in IMMUTABLE_COLUMNS}
    stmt = (
        update(model)
        .where(model.id == values["id"], model.updated_at < values["updated_at"])
        .values(**changes)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount == 1


def changed_since(db: Session, model, cursor: Optional[datetime]) -> list[Any]:
    query = db.query(model)
    if cursor is not None:
        query = query.filter(model.updated_at > cursor)
    return query.order_by(model.updated_at, model.id).all()


def soft_delete(db: Session, model, record_id: str, at: datetime) -> bool:
    """Tombstone a live row; ``updated_at`` only moves forward, even past a future-stamped write."""
    stmt = (
        update(model)
        .where(model.id == record_id, model.is_deleted.is_(False))
        .values(
            is_deleted=True,
            updated_at=case((model.updated_at < at, at), else_=model.updated_at),
        )
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount == 1
