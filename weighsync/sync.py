"""Push, pull and full sync over the four entity tables.

Conflicts resolve last-write-wins on the whole record, keyed on ``updated_at``.
Records are independent: each one is committed on its own, so a failure part way
through a batch leaves earlier records applied.
"""

import logging
from datetime import datetime
from typing import NamedTuple, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from weighsync import store
from weighsync.errors import BatchApplyError
from weighsync.models import Customer, Product, Vehicle, WeighingTicket
from weighsync.schemas import (
    ChangeSet,
    CustomerRecord,
    EntityRecord,
    FullSyncResult,
    ProductRecord,
    SyncRequest,
    VehicleRecord,
    WeighingTicketRecord,
    utc_now,
)

logger = logging.getLogger(__name__)


class EntityKind(NamedTuple):
    field: str
    slug: str
    label: str
    model: type
    schema: type[EntityRecord]


ENTITY_KINDS = (
    EntityKind("weighing_tickets", "weighing-tickets", "Weighing ticket", WeighingTicket, WeighingTicketRecord),
    EntityKind("customers", "customers", "Customer", Customer, CustomerRecord),
    EntityKind("vehicles", "vehicles", "Vehicle", Vehicle, VehicleRecord),
    EntityKind("products", "products", "Product", Product, ProductRecord),
)

ENTITY_KINDS_BY_SLUG = {kind.slug: kind for kind in ENTITY_KINDS}


def record_from_row(schema: type[EntityRecord], row) -> EntityRecord:
    values = {column.key: getattr(row, column.key) for column in row.__table__.columns}
    return schema.model_validate(values)


def get_changes_since(db: Session, cursor: Optional[datetime], station_id: Optional[str] = None) -> ChangeSet:
    """Return every row, tombstones included, with ``updated_at`` strictly after ``cursor``.

    Each entity table is scanned independently. ``station_id`` does not narrow the
    result. ``sync_time`` is read before the first scan so a client that adopts it
    as its next cursor cannot skip a row written during the scans.
    """
    sync_time = utc_now()
    changes = {
        kind.field: [record_from_row(kind.schema, row) for row in store.changed_since(db, kind.model, cursor)]
        for kind in ENTITY_KINDS
    }
    total = sum(len(records) for records in changes.values())
    logger.info(
        "change feed since %s for station %s: %d changes",
        cursor.isoformat() if cursor else "beginning",
        station_id or "-",
        total,
    )
    return ChangeSet(sync_time=sync_time, total_changes=total, **changes)


def _merge_record(db: Session, model, record: EntityRecord) -> bool:
    values = record.to_row()
    if store.insert_if_absent(db, model, values):
        return True
    # The row exists now, whoever inserted it, so this guarded update decides the winner.
    return store.update_if_newer(db, model, values)


def apply_batch(db: Session, batch: SyncRequest) -> int:
    """Merge every pushed record and return how many were created or replaced.

    A record whose ``updated_at`` is not strictly newer than the stored one is
    dropped without error.
    """
    applied = 0
    for kind in ENTITY_KINDS:
        for record in getattr(batch, kind.field):
            try:
                accepted = _merge_record(db, kind.model, record)
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                raise BatchApplyError(applied, kind.field, record.id) from exc
            if accepted:
                applied += 1
            else:
                logger.debug("discarded stale %s %s at %s", kind.field, record.id, record.updated_at.isoformat())
    logger.info("applied %d of %d pushed records", applied, batch.record_count)
    return applied


def full_sync(db: Session, request: SyncRequest) -> FullSyncResult:
    # The pull reuses the client's cursor, so freshly pushed records are echoed back.
    pushed = apply_batch(db, request)
    changes = get_changes_since(db, request.last_sync_time, request.station_id)
    return FullSyncResult(
        pushed_count=pushed,
        pulled_count=changes.total_changes,
        sync_time=changes.sync_time,
        server_changes=changes,
    )
