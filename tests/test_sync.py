import logging
import threading
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from weighsync import store
from weighsync.db import Base
from weighsync.models import Customer, Vehicle, WeighingTicket
from weighsync.schemas import SyncRequest, VehicleRecord, utc_now
from weighsync.sync import apply_batch, full_sync, get_changes_since

T0 = datetime(2024, 3, 1, 6, 0, tzinfo=timezone.utc)
T1 = T0 + timedelta(minutes=10)
T2 = T0 + timedelta(minutes=20)
T3 = T0 + timedelta(minutes=30)


def _make_session() -> Session:
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)()


def _ticket(record_id: str, updated_at: datetime, **fields) -> dict:
    ticket = {
        "id": record_id,
        "ticketNumber": f"PC-{record_id}",
        "vehiclePlate": "51A-12345",
        "firstWeight": 30000.0,
        "firstWeighTime": T0.isoformat(),
        "updatedAt": updated_at.isoformat(),
    }
    ticket.update(fields)
    return ticket


def _push(db: Session, **batch) -> int:
    return apply_batch(db, SyncRequest.model_validate(batch))


def _stored_ticket(db: Session, record_id: str) -> WeighingTicket:
    db.expire_all()
    return db.get(WeighingTicket, record_id)


def test_last_write_wins_in_either_order() -> None:
    older = _ticket("T1", T2, netWeight=100.0)
    newer = _ticket("T1", T3, netWeight=200.0, status="completed")
    for first, second in ((older, newer), (newer, older)):
        db = _make_session()
        _push(db, weighingTickets=[first])
        _push(db, weighingTickets=[second])
        stored = _stored_ticket(db, "T1")
        assert stored.net_weight == 200.0
        assert stored.status == "completed"
        db.close()


def test_stale_and_equal_writes_are_discarded() -> None:
    db = _make_session()
    assert _push(db, weighingTickets=[_ticket("T1", T2, notes="kept")]) == 1
    assert _push(db, weighingTickets=[_ticket("T1", T1, notes="older")]) == 0
    assert _push(db, weighingTickets=[_ticket("T1", T2, notes="same instant")]) == 0
    assert _stored_ticket(db, "T1").notes == "kept"


def test_replace_is_whole_record_and_keeps_created_at() -> None:
    db = _make_session()
    _push(db, customers=[{"id": "C1", "name": "Hoa Phat", "phone": "0901", "createdAt": T0.isoformat(), "updatedAt": T1.isoformat()}])
    _push(db, customers=[{"id": "C1", "name": "Hoa Phat JSC", "isDeleted": True, "createdAt": T2.isoformat(), "updatedAt": T2.isoformat()}])
    db.expire_all()
    stored = db.get(Customer, "C1")
    assert stored.name == "Hoa Phat JSC"
    assert stored.phone is None
    assert stored.is_deleted is True
    assert stored.created_at.replace(tzinfo=timezone.utc) == T0
    assert store.get_by_id(db, Customer, "C1") is None


def test_change_feed_is_exclusive_and_ordered() -> None:
    db = _make_session()
    _push(
        db,
        weighingTickets=[_ticket("T3", T3), _ticket("T1", T1), _ticket("T2", T2)],
        vehicles=[{"id": "V1", "plateNumber": "51A-12345", "updatedAt": T1.isoformat()}],
    )

    everything = get_changes_since(db, None)
    assert [t.id for t in everything.weighing_tickets] == ["T1", "T2", "T3"]
    assert everything.total_changes == 4

    after_t1 = get_changes_since(db, T1)
    assert [t.id for t in after_t1.weighing_tickets] == ["T2", "T3"]
    assert after_t1.vehicles == []
    assert after_t1.total_changes == 2
    assert after_t1.weighing_tickets[0].updated_at == T2

    assert get_changes_since(db, everything.sync_time).total_changes == 0


def test_station_filter_does_not_narrow_feed() -> None:
    db = _make_session()
    _push(db, weighingTickets=[_ticket("T1", T1, stationId="station-a"), _ticket("T2", T2, stationId="station-b")])
    scoped = get_changes_since(db, None, "station-a")
    assert [t.id for t in scoped.weighing_tickets] == ["T1", "T2"]


def test_full_sync_pulls_with_client_cursor() -> None:
    db = _make_session()
    _push(db, products=[{"id": "P1", "code": "SAND", "name": "Sand", "updatedAt": T1.isoformat()}])

    request = SyncRequest.model_validate(
        {"lastSyncTime": T0.isoformat(), "vehicles": [{"id": "V1", "plateNumber": "51A-12345", "updatedAt": T2.isoformat()}]}
    )
    result = full_sync(db, request)
    assert result.pushed_count == 1
    assert result.pulled_count == 2
    assert [p.id for p in result.server_changes.products] == ["P1"]
    assert [v.id for v in result.server_changes.vehicles] == ["V1"]

    again = full_sync(db, request)
    assert again.pushed_count == 0
    assert again.pulled_count == 2


def test_naive_timestamps_are_read_as_utc() -> None:
    request = SyncRequest.model_validate(
        {"lastSyncTime": "2024-03-01T06:00:00", "vehicles": [{"id": "V1", "updatedAt": "2024-03-01T13:00:00+07:00"}]}
    )
    assert request.last_sync_time == T0
    assert request.vehicles[0].updated_at == T0


def test_concurrent_pushes_for_same_id_converge(tmp_path) -> None:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'store.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    payloads = [_ticket("T1", T2, netWeight=100.0), _ticket("T1", T3, netWeight=200.0)]
    barrier = threading.Barrier(len(payloads))
    failures: list[BaseException] = []

    def push(payload: dict) -> None:
        db = SessionLocal()
        try:
            barrier.wait()
            _push(db, weighingTickets=[payload])
        except BaseException as exc:  # surfaced through the failures list
            failures.append(exc)
        finally:
            db.close()

    threads = [threading.Thread(target=push, args=(payload,)) for payload in payloads]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert failures == []
    db = SessionLocal()
    stored = db.get(WeighingTicket, "T1")
    assert stored.net_weight == 200.0
    assert stored.updated_at.replace(tzinfo=timezone.utc) == T3
    db.close()
    engine.dispose()


def _customer(record_id: str, updated_at: datetime, **fields) -> dict:
    customer = {"id": record_id, "code": "KH01", "name": "Hoa Phat", "updatedAt": updated_at.isoformat()}
    customer.update(fields)
    return customer


def _stored_customer(db: Session, record_id: str) -> Customer:
    db.expire_all()
    return db.get(Customer, record_id)


def test_updated_at_never_decreases_across_pushes() -> None:
    db = _make_session()
    seen = []
    for updated_at in (T2, T1, T3, T0, T3):
        _push(db, customers=[_customer("C1", updated_at)])
        seen.append(_stored_customer(db, "C1").updated_at.replace(tzinfo=timezone.utc))
    assert seen == [T2, T2, T3, T3, T3]


def test_soft_delete_never_moves_updated_at_back() -> None:
    db = _make_session()
    _push(db, customers=[_customer("C1", T3), _customer("C2", T1)])

    assert store.soft_delete(db, Customer, "C1", T2)
    assert store.soft_delete(db, Customer, "C2", T2)
    db.commit()

    first = _stored_customer(db, "C1")
    assert first.is_deleted is True
    assert first.updated_at.replace(tzinfo=timezone.utc) == T3
    assert _stored_customer(db, "C2").updated_at.replace(tzinfo=timezone.utc) == T2

    assert not store.soft_delete(db, Customer, "C1", T3)


def test_newer_push_revives_tombstone() -> None:
    db = _make_session()
    _push(db, customers=[_customer("C1", T1)])
    store.soft_delete(db, Customer, "C1", T2)
    db.commit()

    assert _push(db, customers=[_customer("C1", T3, name="Hoa Phat JSC")]) == 1
    revived = store.get_by_id(db, Customer, "C1")
    assert revived is not None
    assert revived.name == "Hoa Phat JSC"


def test_stale_push_does_not_revive_tombstone() -> None:
    db = _make_session()
    _push(db, customers=[_customer("C1", T1)])
    store.soft_delete(db, Customer, "C1", T2)
    db.commit()

    assert _push(db, customers=[_customer("C1", T1)]) == 0
    assert _push(db, customers=[_customer("C1", T2)]) == 0
    stored = _stored_customer(db, "C1")
    assert stored.is_deleted is True
    assert stored.updated_at.replace(tzinfo=timezone.utc) == T2


def test_merge_without_native_upsert(monkeypatch) -> None:
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite needs explicit BEGIN for SAVEPOINT to behave.
    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=engine)
    db = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    monkeypatch.setattr(store, "UPSERT_DIALECTS", {})

    assert _push(db, weighingTickets=[_ticket("T1", T1, notes="first")]) == 1
    assert _push(db, weighingTickets=[_ticket("T1", T1, notes="again")]) == 0
    assert _push(db, weighingTickets=[_ticket("T1", T2, notes="newer"), _ticket("T2", T1)]) == 2
    assert _stored_ticket(db, "T1").notes == "newer"
    assert _stored_ticket(db, "T2") is not None
    db.close()


def test_future_stamped_rows_repeat_until_clock_passes() -> None:
    db = _make_session()
    future = utc_now() + timedelta(days=1)
    _push(db, vehicles=[{"id": "V1", "plateNumber": "51A-12345", "updatedAt": future.isoformat()}])

    first = get_changes_since(db, None)
    assert first.sync_time < future
    again = get_changes_since(db, first.sync_time)
    assert [v.id for v in again.vehicles] == ["V1"]
    assert db.get(Vehicle, "V1") is not None


def test_unknown_keys_are_dropped_and_logged(caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="weighsync.schemas")
    record = VehicleRecord.model_validate(
        {"id": "V1", "plateNumber": "51A-12345", "updatedAt": T1.isoformat(), "localRowId": 7}
    )
    assert record.plate_number == "51A-12345"
    assert "localRowId" not in record.model_dump(by_alias=True)
    assert "VehicleRecord ignored keys: localRowId" in caplog.text
