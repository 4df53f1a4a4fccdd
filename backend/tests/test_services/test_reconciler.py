"""Tests for EventReconciler"""
from unittest.mock import MagicMock, patch

import pytest

from app.core.errors import NotFoundError, TransientStoreError, ValidationError
from app.models.person import Person
from app.models.person_log import PersonLog
from app.services.cache_service import CacheService
from app.services.event_source import RawEvent
from app.services.person_ledger import PersonLedger
from app.services.reconciler import EventReconciler, event_time
from app.services.stats_service import StatsService
from tests.conftest import T0_UNIX, make_camera, make_event, make_organization


@pytest.fixture
def org(db_session):
    return make_organization(db_session=db_session)


@pytest.fixture
def camera(db_session, org):
    return make_camera(db_session=db_session, organization_id=org.id)


@pytest.fixture
def reconciler(session_factory):
    return EventReconciler(session_factory=session_factory, ledger=PersonLedger())


def _person(db_session, person_hash, organization_id):
    db_session.expire_all()
    return db_session.query(Person).filter_by(person_hash=person_hash, organization_id=organization_id).one()


class TestScenario:
    def test_event_duplicate_and_revisit(self, reconciler, db_session, org, camera):
        """ts=100, the same event again, then ts=200."""
        first = make_event(timestamp=T0_UNIX + 100, camera_id=camera.id, person_hash="p1")
        result = reconciler.reconcile(first)
        assert result.duplicate is False
        assert result.is_new_person is True
        assert result.person_created is True
        assert _person(db_session, "p1", org.id).visit_count == 1

        again = reconciler.reconcile(first)
        assert again.duplicate is True
        assert _person(db_session, "p1", org.id).visit_count == 1

        later = reconciler.reconcile(make_event(timestamp=T0_UNIX + 200, camera_id=camera.id, person_hash="p1"))
        assert later.duplicate is False
        assert later.is_new_person is False
        assert later.person_created is False
        assert _person(db_session, "p1", org.id).visit_count == 2

        day = event_time(T0_UNIX).strftime("%Y-%m-%d")
        summary = StatsService(cache=CacheService(None)).daily_summary(db_session, org.id, day)
        assert (summary.total, summary.new, summary.repeat) == (2, 1, 1)

    def test_duplicate_with_new_feed_id_is_still_a_duplicate(self, reconciler, org, camera):
        reconciler.reconcile(make_event(id="a", camera_id=camera.id))
        result = reconciler.reconcile(make_event(id="b", camera_id=camera.id))
        assert result.duplicate is True

    def test_fractional_seconds_collapse_to_one_detection(self, reconciler, db_session, camera):
        reconciler.reconcile(make_event(timestamp=T0_UNIX + 0.2, camera_id=camera.id))
        result = reconciler.reconcile(make_event(timestamp=T0_UNIX + 0.7, camera_id=camera.id))
        assert result.duplicate is True
        assert db_session.query(PersonLog).count() == 1

    def test_concurrent_insert_of_the_same_detection_is_a_duplicate(self, reconciler, db_session, org, camera):
        """Another writer stores the detection between the dedup check and the insert."""
        reconciler.reconcile(make_event(id="sync", timestamp=T0_UNIX, camera_id=camera.id, person_hash="p1"))

        checks = []
        real_check = reconciler._is_duplicate

        def stale_first_check(db, event, seen_at):
            checks.append(seen_at)
            if len(checks) == 1:
                return False
            return real_check(db, event, seen_at)

        with patch.object(reconciler, "_is_duplicate", side_effect=stale_first_check):
            result = reconciler.reconcile(
                make_event(id="api", timestamp=T0_UNIX, camera_id=camera.id, person_hash="p1")
            )

        assert result.duplicate is True
        assert len(checks) == 2
        assert db_session.query(PersonLog).count() == 1
        assert _person(db_session, "p1", org.id).visit_count == 1


class TestNewPersonClassification:
    def test_out_of_order_arrival(self, reconciler, db_session, org, camera):
        """The later event lands first; the earlier one takes over the new-person flag."""
        late = reconciler.reconcile(make_event(timestamp=T0_UNIX + 200, camera_id=camera.id, person_hash="p1"))
        early = reconciler.reconcile(make_event(timestamp=T0_UNIX + 100, camera_id=camera.id, person_hash="p1"))

        assert late.is_new_person is True
        assert early.is_new_person is True
        assert [ts.replace(tzinfo=None) for ts in early.demoted] == [event_time(T0_UNIX + 200).replace(tzinfo=None)]
        db_session.expire_all()
        flags = {
            log.timestamp.replace(tzinfo=None): log.is_new_person
            for log in db_session.query(PersonLog).filter(PersonLog.person_hash == "p1")
        }
        assert flags == {
            event_time(T0_UNIX + 100).replace(tzinfo=None): True,
            event_time(T0_UNIX + 200).replace(tzinfo=None): False,
        }
        person = _person(db_session, "p1", org.id)
        assert person.visit_count == 2
        assert person.first_seen.replace(tzinfo=None) == event_time(T0_UNIX + 100).replace(tzinfo=None)
        assert person.last_seen.replace(tzinfo=None) == event_time(T0_UNIX + 200).replace(tzinfo=None)

    def test_same_second_on_two_cameras_are_both_first_sightings(self, reconciler, db_session, org, camera):
        other_camera = make_camera(db_session=db_session, organization_id=org.id)

        a = reconciler.reconcile(make_event(timestamp=T0_UNIX, camera_id=camera.id, person_hash="p1"))
        b = reconciler.reconcile(make_event(timestamp=T0_UNIX, camera_id=other_camera.id, person_hash="p1"))

        assert (a.is_new_person, b.is_new_person) == (True, True)
        assert b.demoted == []
        assert _person(db_session, "p1", org.id).visit_count == 2

        day = event_time(T0_UNIX).strftime("%Y-%m-%d")
        summary = StatsService(cache=CacheService(None)).daily_summary(db_session, org.id, day)
        assert (summary.total, summary.new, summary.repeat) == (2, 2, 0)

    def test_hash_new_per_organization(self, reconciler, db_session, org, camera):
        other_org = make_organization(db_session=db_session, name="Other")
        other_camera = make_camera(db_session=db_session, organization_id=other_org.id)

        reconciler.reconcile(make_event(timestamp=T0_UNIX, camera_id=camera.id, person_hash="p1"))
        result = reconciler.reconcile(make_event(timestamp=T0_UNIX + 10, camera_id=other_camera.id, person_hash="p1"))

        assert result.organization_id == other_org.id
        assert result.is_new_person is True
        assert result.person_created is True

    def test_visit_count_equals_distinct_events(self, reconciler, db_session, org, camera):
        timestamps = [T0_UNIX + offset for offset in (5, 1, 3, 1, 5, 9)]
        for ts in timestamps:
            reconciler.reconcile(make_event(timestamp=ts, camera_id=camera.id, person_hash="p1"))

        assert _person(db_session, "p1", org.id).visit_count == len(set(timestamps))
        assert db_session.query(PersonLog).count() == len(set(timestamps))


class TestOrganizationResolution:
    def test_unknown_camera_falls_back_to_first_organization(self, reconciler, db_session, org):
        make_organization(db_session=db_session, name="Second")

        result = reconciler.reconcile(make_event(camera_id="not-registered"))

        assert result.used_default_organization is True
        assert result.organization_id == org.id
        log = db_session.query(PersonLog).one()
        assert log.camera_id == "not-registered"

    def test_no_organization_at_all(self, reconciler, db_session):
        with pytest.raises(NotFoundError):
            reconciler.reconcile(make_event(camera_id="not-registered"))
        assert db_session.query(PersonLog).count() == 0


class TestValidationAndFailures:
    @pytest.mark.parametrize("event", [
        RawEvent(id="x", timestamp=T0_UNIX, person_hash="", camera_id="c"),
        RawEvent(id="x", timestamp=T0_UNIX, person_hash="p", camera_id=""),
        RawEvent(id="x", timestamp=-1, person_hash="p", camera_id="c"),
        RawEvent(id="x", timestamp="soon", person_hash="p", camera_id="c"),
    ])
    def test_invalid_events_are_rejected_without_writes(self, reconciler, db_session, org, event):
        with pytest.raises(ValidationError):
            reconciler.reconcile(event)
        assert db_session.query(PersonLog).count() == 0

    def test_ledger_failure_rolls_back_the_log_row(self, session_factory, db_session, org, camera):
        ledger = PersonLedger()
        ledger.create_if_absent = MagicMock(side_effect=TransientStoreError("ledger down"))
        reconciler = EventReconciler(session_factory=session_factory, ledger=ledger)

        with pytest.raises(TransientStoreError):
            reconciler.reconcile(make_event(camera_id=camera.id))

        db_session.expire_all()
        assert db_session.query(PersonLog).count() == 0
        assert db_session.query(Person).count() == 0

    def test_store_errors_become_transient(self, session_factory, db_session, org, camera):
        from sqlalchemy.exc import OperationalError

        ledger = PersonLedger()
        ledger.create_if_absent = MagicMock(side_effect=OperationalError("INSERT", {}, Exception("locked")))
        reconciler = EventReconciler(session_factory=session_factory, ledger=ledger)

        with pytest.raises(TransientStoreError):
            reconciler.reconcile(make_event(camera_id=camera.id))
        assert db_session.query(PersonLog).count() == 0

    def test_reconcile_with_retry_recovers_from_transient_error(self, session_factory, db_session, org, camera):
        ledger = PersonLedger()
        real_create = ledger.create_if_absent
        calls = []

        def flaky(*args, **kwargs):
            calls.append(1)
            if len(calls) == 1:
                raise TransientStoreError("database is locked")
            return real_create(*args, **kwargs)

        ledger.create_if_absent = flaky
        reconciler = EventReconciler(session_factory=session_factory, ledger=ledger)

        result = reconciler.reconcile_with_retry(make_event(camera_id=camera.id))

        assert result.duplicate is False
        assert len(calls) == 2
        assert db_session.query(PersonLog).count() == 1

    def test_uses_caller_session(self, db_session, org, camera):
        reconciler = EventReconciler(session_factory=MagicMock(side_effect=AssertionError("unused")))
        result = reconciler.reconcile(make_event(camera_id=camera.id), db=db_session)
        assert result.log_id is not None
        assert db_session.query(PersonLog).count() == 1
