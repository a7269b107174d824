import importlib.util
from pathlib import Path

import pytest
import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations

VERSIONS = Path(__file__).resolve().parents[1] / "services" / "reservation-service" / "alembic" / "versions"


def _load(filename):
    spec = importlib.util.spec_from_file_location(f"migration_{filename[:4]}", VERSIONS / filename)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def migration():
    return _load("0001_create_reservations.py")


@pytest.fixture
def payment_id_migration():
    return _load("0002_gateway_payment_id.py")


def _run(engine, fn):
    with engine.begin() as conn:
        ctx = MigrationContext.configure(conn)
        with Operations.context(ctx):
            fn()


def test_upgrade_creates_tables_and_slot_key(migration):
    engine = sa.create_engine("sqlite://")
    _run(engine, migration.upgrade)

    inspector = sa.inspect(engine)
    assert {"reservations", "slot_claims", "audit_entries"} <= set(inspector.get_table_names())
    uniques = inspector.get_unique_constraints("slot_claims")
    assert any(
        u["column_names"] == ["turf_ref", "date", "start_time", "end_time"] for u in uniques
    )

    with engine.begin() as conn:
        row = {"reservation_id": "r1", "turf_ref": "t", "date": "d", "start_time": "10:00", "end_time": "11:00"}
        conn.execute(sa.text(
            "INSERT INTO slot_claims (reservation_id, turf_ref, date, start_time, end_time) "
            "VALUES (:reservation_id, :turf_ref, :date, :start_time, :end_time)"
        ), row)
    with pytest.raises(sa.exc.IntegrityError):
        with engine.begin() as conn:
            conn.execute(sa.text(
                "INSERT INTO slot_claims (reservation_id, turf_ref, date, start_time, end_time) "
                "VALUES (:reservation_id, :turf_ref, :date, :start_time, :end_time)"
            ), dict(row, reservation_id="r2"))


def test_downgrade_drops_everything(migration):
    engine = sa.create_engine("sqlite://")
    _run(engine, migration.upgrade)
    _run(engine, migration.downgrade)

    assert sa.inspect(engine).get_table_names() == []


def test_payment_id_is_unique_after_upgrade(migration, payment_id_migration):
    assert payment_id_migration.down_revision == migration.revision
    engine = sa.create_engine("sqlite://")
    _run(engine, migration.upgrade)
    _run(engine, payment_id_migration.upgrade)

    indexes = sa.inspect(engine).get_indexes("reservations")
    assert any(
        i["column_names"] == ["gateway_payment_id"] and i["unique"] for i in indexes
    )

    insert = sa.text(
        "INSERT INTO reservations (id, holder_id, turf_ref, date, slots, price, status, "
        "gateway_payment_id, created_at, updated_at) "
        "VALUES (:id, 'u1', 't', 'd', '[]', 1.0, 'paid', :payment_id, '2025-10-19', '2025-10-19')"
    )
    with engine.begin() as conn:
        conn.execute(insert, {"id": "r1", "payment_id": "pay_1"})
        conn.execute(insert, {"id": "r2", "payment_id": None})
        conn.execute(insert, {"id": "r3", "payment_id": None})
    with pytest.raises(sa.exc.IntegrityError):
        with engine.begin() as conn:
            conn.execute(insert, {"id": "r4", "payment_id": "pay_1"})

    _run(engine, payment_id_migration.downgrade)
    columns = {c["name"] for c in sa.inspect(engine).get_columns("reservations")}
    assert "gateway_payment_id" not in columns
    _run(engine, migration.downgrade)
    assert sa.inspect(engine).get_table_names() == []
