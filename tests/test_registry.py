import pytest
from datetime import date
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
from ice.db import create_db_engine, init_db
from ice.errors import AliasConflictError, DuplicateIdentityError
from ice.models import DailyHours, Employee, EmployeeAlias, Source
from ice.registry import EmployeeRegistry
from ice.resolution.snapshot import Provisional


@pytest.fixture(name="session")
def session_fixture():
    engine = create_db_engine("sqlite:///:memory:")
    init_db(engine)
    with Session(engine) as session:
        yield session


def test_create_employee(session: Session):
    registry = EmployeeRegistry(session)
    emp = registry.create_employee("  David   Cohen ", employee_number="17")

    assert emp.id is not None
    assert emp.canonical_name == "David Cohen"
    assert emp.normalized_name == "david cohen"
    assert emp.first_name == "David"
    assert emp.last_name == "Cohen"
    assert emp.employee_number == "17"


def test_duplicate_identity(session: Session):
    registry = EmployeeRegistry(session)
    emp = registry.create_employee("David Cohen")

    with pytest.raises(DuplicateIdentityError) as exc:
        registry.create_employee("david  COHEN")
    assert exc.value.existing_employee_id == emp.id
    assert len(registry.list_employees()) == 1


def test_unique_constraint_enforced_by_storage(session: Session):
    session.add(Employee(canonical_name="A", normalized_name="a"))
    session.commit()
    session.add(Employee(canonical_name="A ", normalized_name="a"))
    with pytest.raises(IntegrityError):
        session.commit()
    session.rollback()


def test_empty_name_rejected(session: Session):
    with pytest.raises(ValueError):
        EmployeeRegistry(session).create_employee("   ")


def test_record_alias_idempotent(session: Session):
    registry = EmployeeRegistry(session)
    emp = registry.create_employee("David Cohen")

    alias, created = registry.record_alias(emp.id, "Dudi Cohen", source=Source.HOURS)
    assert created
    assert alias.normalized_alias == "dudi cohen"
    assert alias.confirmed_at is None

    again, created = registry.record_alias(emp.id, "DUDI  cohen", source=Source.ARTICLES)
    assert not created
    assert again.id == alias.id
    assert len(registry.aliases_for(emp.id)) == 1


def test_record_alias_conflict(session: Session):
    registry = EmployeeRegistry(session)
    david = registry.create_employee("David Cohen")
    moshe = registry.create_employee("Moshe Levi")
    registry.record_alias(david.id, "Dudi")

    with pytest.raises(AliasConflictError) as exc:
        registry.record_alias(moshe.id, "dudi")
    assert exc.value.bound_employee_id == david.id
    assert exc.value.requested_employee_id == moshe.id


def test_confirmed_alias_timestamp(session: Session):
    registry = EmployeeRegistry(session)
    emp = registry.create_employee("David Cohen")
    alias, _ = registry.record_alias(emp.id, "David Cohen", confirmed_by_user=True)
    assert alias.confirmed_by_user
    assert alias.confirmed_at is not None


def test_find_by_alias_falls_back_to_canonical(session: Session):
    registry = EmployeeRegistry(session)
    emp = registry.create_employee("David Cohen")
    registry.record_alias(emp.id, "Dudi")

    assert registry.find_by_alias("dudi") == emp.id
    assert registry.find_by_alias("david cohen") == emp.id
    assert registry.find_by_alias("nobody") is None


def test_snapshot(session: Session):
    registry = EmployeeRegistry(session)
    emp = registry.create_employee("David Cohen")
    registry.record_alias(emp.id, "Dudi Cohen", confirmed_by_user=True)

    snap = registry.snapshot()
    assert len(snap) == 2
    assert snap.lookup("dudi cohen").owner == emp.id
    assert snap.lookup("dudi cohen").first_name == "dudi"
    assert snap.lookup("david cohen").owner == emp.id
    assert snap.canonical_names[emp.id] == "David Cohen"
    assert emp.id in snap.confirmed_employees

    # learned names are visible immediately, provisional owners included
    snap.add("yossi cohen", Provisional("Yossi Cohen"))
    assert "yossi cohen" in snap
    assert snap.lookup("yossi cohen").owner == Provisional("Yossi Cohen")


def test_hours_unique_per_day(session: Session):
    emp = EmployeeRegistry(session).create_employee("David Cohen")
    session.add(DailyHours(employee_id=emp.id, date=date(2025, 1, 1), hours=8))
    session.commit()
    session.add(DailyHours(employee_id=emp.id, date=date(2025, 1, 1), hours=3))
    with pytest.raises(IntegrityError):
        session.commit()
    session.rollback()


def test_hours_range_checked_by_storage(session: Session):
    emp = EmployeeRegistry(session).create_employee("David Cohen")
    session.add(DailyHours(employee_id=emp.id, date=date(2025, 1, 1), hours=25))
    with pytest.raises(IntegrityError):
        session.commit()
    session.rollback()


def test_alias_requires_existing_employee(session: Session):
    session.add(EmployeeAlias(employee_id=999, alias="Ghost", normalized_alias="ghost", source=Source.HOURS))
    with pytest.raises(IntegrityError):
        session.commit()
    session.rollback()
    assert session.exec(select(EmployeeAlias)).all() == []
