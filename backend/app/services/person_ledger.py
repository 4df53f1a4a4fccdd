"""
Person Ledger

The only writer of Person rows. Every mutation is a single SQL statement so
that concurrent writers (the live sync loop, a backfill, API requests in
other processes) rely on the database's row-level atomicity instead of
in-process locks:

- create_if_absent: INSERT ... ON CONFLICT (person_hash, organization_id) DO NOTHING,
  then fetch. The insert's rowcount tells the caller whether it created the row.
- record_visit: UPDATE persons SET visit_count = visit_count + 1,
  last_seen = max(last_seen, :seen) ...

The ledger never commits. Callers run it inside their own transaction so a
detection log and its Person update land together.
"""
import logging
import uuid
from datetime import datetime
from typing import Tuple

from sqlalchemy import update, case, literal
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError
from app.models.base import utcnow
from app.models.person import Person

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class PersonLedger:
    """Atomic read/modify operations for the Person aggregate."""

    def get(self, db: Session, person_hash: str, organization_id: str) -> Person:
        """
        Look up a live person.

        Raises:
            NotFoundError: No live row for (person_hash, organization_id)
        """
        person = db.query(Person).filter(
            Person.person_hash == person_hash,
            Person.organization_id == organization_id,
            Person.is_live(),
        ).first()
        if person is None:
            raise NotFoundError(f"Person {person_hash} not found")
        return person

    def create_if_absent(
        self,
        db: Session,
        person_hash: str,
        organization_id: str,
        seen_at: datetime,
    ) -> Tuple[Person, bool]:
        """
        Create the person unless a row already exists.

        Under concurrent callers for the same key exactly one observes
        was_created=True. A soft-deleted row for the key is revived with
        fresh counters and also reported as created.

        Returns:
            (person, was_created)
        """
        was_created = self._conditional_insert(db, person_hash, organization_id, seen_at)

        if not was_created:
            was_created = self._revive_if_deleted(db, person_hash, organization_id, seen_at)

        person = db.query(Person).populate_existing().filter(
            Person.person_hash == person_hash,
            Person.organization_id == organization_id,
        ).one()

        if was_created:
            logger.debug(
                f"Person {person_hash} created",
                extra={
                    "event_type": "person_created",
                    "person_hash": person_hash,
                    "organization_id": organization_id,
                }
            )
        return person, was_created

    def record_visit(
        self,
        db: Session,
        person_hash: str,
        organization_id: str,
        seen_at: datetime,
    ) -> None:
        """
        Count one more visit and widen the first/last seen window.

        Raises:
            NotFoundError: No live row matched
        """
        seen = literal(seen_at, Person.last_seen.type)
        stmt = (
            update(Person)
            .where(
                Person.person_hash == person_hash,
                Person.organization_id == organization_id,
                Person.is_live(),
            )
            .values(
                visit_count=Person.visit_count + 1,
                last_seen=case((Person.last_seen < seen, seen), else_=Person.last_seen),
                first_seen=case((Person.first_seen > seen, seen), else_=Person.first_seen),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = db.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError(f"Person {person_hash} not found")

    def _conditional_insert(
        self,
        db: Session,
        person_hash: str,
        organization_id: str,
        seen_at: datetime,
    ) -> bool:
        now = utcnow()
        values = {
            "id": str(uuid.uuid4()),
            "person_hash": person_hash,
            "organization_id": organization_id,
            "first_seen": seen_at,
            "last_seen": seen_at,
            "visit_count": 1,
            "created_at": now,
            "updated_at": now,
        }

        dialect_insert = _DIALECT_INSERTS.get(db.get_bind().dialect.name)
        if dialect_insert is not None:
            stmt = dialect_insert(Person).values(**values).on_conflict_do_nothing(
                index_elements=["person_hash", "organization_id"]
            )
            return db.execute(stmt).rowcount == 1

        # Engines without ON CONFLICT: let the unique constraint arbitrate
        savepoint = db.begin_nested()
        try:
            db.execute(Person.__table__.insert().values(**values))
            savepoint.commit()
            return True
        except IntegrityError:
            savepoint.rollback()
            return False

    def _revive_if_deleted(
        self,
        db: Session,
        person_hash: str,
        organization_id: str,
        seen_at: datetime,
    ) -> bool:
        stmt = (
            update(Person)
            .where(
                Person.person_hash == person_hash,
                Person.organization_id == organization_id,
                Person.deleted_at.is_not(None),
            )
            .values(
                deleted_at=None,
                first_seen=seen_at,
                last_seen=seen_at,
                visit_count=1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return db.execute(stmt).rowcount == 1


_person_ledger = PersonLedger()


def get_person_ledger() -> PersonLedger:
    return _person_ledger
