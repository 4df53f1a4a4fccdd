"""Person queries and cascading person delete"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError
from app.models.base import utcnow
from app.models.face_image import FaceImage
from app.models.person import Person
from app.models.person_log import PersonLog
from app.services.pagination import Pagination, paginate
from app.services.person_ledger import PersonLedger, get_person_ledger

logger = logging.getLogger(__name__)


@dataclass
class PersonDetailStats:
    """
    Per-person statistics.

    total_logs is recounted from detection logs; visit_count is the ledger
    counter. They agree unless logs were removed out of band.
    """
    person_hash: str
    organization_id: str
    first_seen: datetime
    last_seen: datetime
    visit_count: int
    total_logs: int
    new: int
    repeat: int


class PersonService:
    def __init__(self, ledger: PersonLedger = None):
        self._ledger = ledger or get_person_ledger()

    def get_person(self, db: Session, person_hash: str, organization_id: str) -> Tuple[Person, List[FaceImage]]:
        """Person with its live face images, newest first."""
        person = self._ledger.get(db, person_hash, organization_id)
        faces = db.query(FaceImage).filter(
            FaceImage.person_hash == person_hash,
            FaceImage.organization_id == organization_id,
            FaceImage.is_live(),
        ).order_by(FaceImage.created_at.desc()).all()
        return person, faces

    def list_persons(
        self,
        db: Session,
        organization_id: str,
        page: int = 1,
        page_size: int = 10,
    ) -> Tuple[List[Person], Pagination]:
        query = db.query(Person).filter(
            Person.organization_id == organization_id,
            Person.is_live(),
        ).order_by(Person.last_seen.desc(), Person.id)
        return paginate(query, page, page_size)

    def get_person_stats(self, db: Session, person_hash: str, organization_id: str) -> PersonDetailStats:
        person = self._ledger.get(db, person_hash, organization_id)
        total_logs = db.query(func.count(PersonLog.id)).filter(
            PersonLog.person_hash == person_hash,
            PersonLog.organization_id == organization_id,
            PersonLog.is_live(),
        ).scalar() or 0
        # One person is new exactly once; every further sighting is a repeat
        new = 1 if total_logs > 0 else 0
        return PersonDetailStats(
            person_hash=person.person_hash,
            organization_id=organization_id,
            first_seen=person.first_seen,
            last_seen=person.last_seen,
            visit_count=person.visit_count,
            total_logs=total_logs,
            new=new,
            repeat=total_logs - new,
        )

    def delete_person(self, db: Session, person_hash: str, organization_id: str) -> None:
        """
        Soft-delete a person with its detection logs and face images in one
        transaction.

        Raises:
            NotFoundError: No live person with this hash
        """
        now = utcnow()
        try:
            for model in (FaceImage, PersonLog):
                db.query(model).filter(
                    model.person_hash == person_hash,
                    model.organization_id == organization_id,
                    model.is_live(),
                ).update({model.deleted_at: now}, synchronize_session=False)

            deleted = db.query(Person).filter(
                Person.person_hash == person_hash,
                Person.organization_id == organization_id,
                Person.is_live(),
            ).update({Person.deleted_at: now}, synchronize_session=False)
            if deleted == 0:
                raise NotFoundError(f"Person {person_hash} not found")

            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(
            f"Person deleted: {person_hash}",
            extra={"event_type": "person_deleted", "person_hash": person_hash, "organization_id": organization_id}
        )


_person_service = PersonService()


def get_person_service() -> PersonService:
    return _person_service
