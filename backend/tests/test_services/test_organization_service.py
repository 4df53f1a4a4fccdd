"""Tests for OrganizationService"""
import pytest

from app.core.config import settings
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.models.api_key import APIKey
from app.models.organization import Organization
from app.models.user import User
from app.services.organization_service import DEFAULT_ORGANIZATION_NAME, OrganizationService
from tests.conftest import make_api_key, make_camera, make_organization, make_person_log


@pytest.fixture
def service():
    return OrganizationService()


class TestCrud:
    def test_create_and_get(self, service, db_session):
        org = service.create(db_session, "  Acme  ", "Warehouses")
        fetched = service.get(db_session, org.id)
        assert fetched.name == "Acme"
        assert fetched.description == "Warehouses"

    def test_create_requires_name(self, service, db_session):
        with pytest.raises(ValidationError):
            service.create(db_session, "   ")

    def test_update_only_touches_given_fields(self, service, db_session):
        org = service.create(db_session, "Acme", "old")
        updated = service.update(db_session, org.id, name="Acme Ltd", description=None, id="hijack")
        assert updated.id == org.id
        assert updated.name == "Acme Ltd"
        assert updated.description == "old"

    def test_update_rejects_blank_name(self, service, db_session):
        org = service.create(db_session, "Acme")
        with pytest.raises(ValidationError):
            service.update(db_session, org.id, name=" ")

    def test_list_paginates_live_rows(self, service, db_session):
        for i in range(3):
            service.create(db_session, f"Org {i}")
        gone = service.create(db_session, "Gone")
        service.delete(db_session, gone.id)

        items, pagination = service.list(db_session, page=1, page_size=2)

        assert len(items) == 2
        assert pagination.total == 3
        assert pagination.total_page == 2

    def test_get_unknown(self, service, db_session):
        with pytest.raises(NotFoundError):
            service.get(db_session, "missing")


class TestDelete:
    def test_soft_deletes_keys_and_users(self, service, db_session):
        org = make_organization(db_session=db_session)
        make_api_key(db_session=db_session, organization_id=org.id)
        db_session.add(User(firebase_uid="uid-1", email="a@example.com", organization_id=org.id))
        db_session.commit()

        service.delete(db_session, org.id)

        db_session.expire_all()
        assert db_session.get(Organization, org.id).deleted_at is not None
        assert db_session.query(APIKey).filter(APIKey.is_live()).count() == 0
        assert db_session.query(User).filter(User.is_live()).count() == 0
        with pytest.raises(NotFoundError):
            service.get(db_session, org.id)

    def test_refused_while_cameras_exist(self, service, db_session):
        org = make_organization(db_session=db_session)
        make_camera(db_session=db_session, organization_id=org.id)
        with pytest.raises(ConflictError):
            service.delete(db_session, org.id)

    def test_refused_while_logs_exist(self, service, db_session):
        org = make_organization(db_session=db_session)
        make_person_log(db_session=db_session, organization_id=org.id)
        with pytest.raises(ConflictError):
            service.delete(db_session, org.id)
        assert service.get(db_session, org.id).deleted_at is None


class TestEnsureDefaultOrganization:
    def test_creates_organization_and_key_once(self, service, db_session):
        org, key = service.ensure_default_organization(db_session)

        assert org.name == DEFAULT_ORGANIZATION_NAME
        assert key == settings.API_KEY
        stored = db_session.query(APIKey).one()
        assert stored.organization_id == org.id

        again, key_again = service.ensure_default_organization(db_session)
        assert again.id == org.id
        assert key_again is None
        assert db_session.query(Organization).count() == 1

    def test_existing_organization_is_kept(self, service, db_session):
        existing = make_organization(db_session=db_session, name="Already here")
        org, key = service.ensure_default_organization(db_session)
        assert org.id == existing.id
        assert key is None
