"""
Employee registry: canonical identities plus their learned name variants.

Every write commits immediately. The uniqueness of Employee.normalized_name
and EmployeeAlias.normalized_alias is enforced by the database; the checks
here only turn violations into domain errors with a useful payload.
"""
from typing import List, Optional, Tuple
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
from ice.errors import AliasConflictError, DuplicateIdentityError
from ice.logging import logger
from ice.matching.normalize import normalize_for_display, normalize_name, split_name
from ice.models.base import utcnow
from ice.models.employee import Employee, EmployeeAlias, Source
from ice.resolution.snapshot import AliasSnapshot


class EmployeeRegistry:
    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get(self, employee_id: int) -> Optional[Employee]:
        return self.session.get(Employee, employee_id)

    def list_employees(self) -> List[Employee]:
        return list(self.session.exec(select(Employee).order_by(Employee.canonical_name)).all())

    def find_by_normalized_name(self, normalized: str) -> Optional[Employee]:
        return self.session.exec(
            select(Employee).where(Employee.normalized_name == normalized)
        ).first()

    def find_alias(self, normalized: str) -> Optional[EmployeeAlias]:
        return self.session.exec(
            select(EmployeeAlias).where(EmployeeAlias.normalized_alias == normalized)
        ).first()

    def find_by_alias(self, normalized: str) -> Optional[int]:
        """Employee id owning this normalized alias (or canonical name), else None."""
        alias = self.find_alias(normalized)
        if alias:
            return alias.employee_id
        employee = self.find_by_normalized_name(normalized)
        return employee.id if employee else None

    def aliases_for(self, employee_id: int) -> List[EmployeeAlias]:
        return list(self.session.exec(
            select(EmployeeAlias)
            .where(EmployeeAlias.employee_id == employee_id)
            .order_by(EmployeeAlias.created_at)
        ).all())

    def snapshot(self) -> AliasSnapshot:
        """Load every alias and canonical name in two queries."""
        snap = AliasSnapshot()
        for alias in self.session.exec(select(EmployeeAlias)).all():
            snap.add(alias.normalized_alias, alias.employee_id, alias.confirmed_by_user)
        # An employee's own canonical name is always a valid alias
        for employee in self.session.exec(select(Employee)).all():
            snap.add_employee(employee.id, employee.canonical_name, employee.normalized_name)
        logger.debug(f"Alias snapshot: {len(snap)} entries, {len(snap.canonical_names)} employees")
        return snap

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def create_employee(
        self,
        canonical_name: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        employee_number: Optional[str] = None,
    ) -> Employee:
        """Insert a new Employee.

        Raises DuplicateIdentityError if the normalized name is taken, whether
        that is seen up front or only reported by the unique constraint.
        """
        display = normalize_for_display(canonical_name)
        normalized = normalize_name(display)
        if not normalized:
            raise ValueError("Cannot create an employee with an empty name")

        existing = self.find_by_normalized_name(normalized)
        if existing:
            raise DuplicateIdentityError(normalized, existing.id)

        default_first, default_last = split_name(display)
        employee = Employee(
            canonical_name=display,
            normalized_name=normalized,
            first_name=first_name if first_name is not None else default_first,
            last_name=last_name if last_name is not None else default_last,
            employee_number=employee_number,
        )
        self.session.add(employee)
        try:
            self.session.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent upload creating the same person
            self.session.rollback()
            winner = self.find_by_normalized_name(normalized)
            if winner is None:
                raise
            raise DuplicateIdentityError(normalized, winner.id) from e

        self.session.refresh(employee)
        logger.info(f"Created employee {employee.id} '{employee.canonical_name}'")
        return employee

    def record_alias(
        self,
        employee_id: int,
        raw_name: str,
        normalized_name: Optional[str] = None,
        source: Source = Source.HOURS,
        confirmed_by_user: bool = False,
    ) -> Tuple[EmployeeAlias, bool]:
        """Bind a name variant to an employee. Returns (alias, created).

        Idempotent for the same employee; raises AliasConflictError if the
        variant already belongs to someone else. Existing rows are never updated.
        """
        normalized = normalized_name if normalized_name is not None else normalize_name(raw_name)

        existing = self.find_alias(normalized)
        if existing:
            if existing.employee_id != employee_id:
                raise AliasConflictError(normalized, existing.employee_id, employee_id)
            return existing, False

        alias = EmployeeAlias(
            employee_id=employee_id,
            alias=raw_name,
            normalized_alias=normalized,
            source=Source(source),
            confirmed_by_user=confirmed_by_user,
            confirmed_at=utcnow() if confirmed_by_user else None,
        )
        self.session.add(alias)
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            winner = self.find_alias(normalized)
            if winner is None:
                raise
            if winner.employee_id == employee_id:
                return winner, False
            raise AliasConflictError(normalized, winner.employee_id, employee_id) from e

        self.session.refresh(alias)
        logger.info(
            f"Recorded alias '{raw_name}' -> employee {employee_id} "
            f"({'confirmed' if confirmed_by_user else 'auto'}, {alias.source.value})"
        )
        return alias, True
