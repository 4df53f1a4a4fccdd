"""
Person ledger under concurrent writers

Each worker runs its own session and transaction, the way the live sync
loop, a backfill and API requests do.
"""
from datetime import timedelta

from app.models.person import Person
from app.services.person_ledger import PersonLedger
from tests.conftest import T0, make_organization

WORKERS = 6


def _create_in_own_session(session_factory, ledger, organization_id, seen_at):
    def run():
        session = session_factory()
        try:
            _, created = ledger.create_if_absent(session, "shared-hash", organization_id, seen_at)
            session.commit()
            return created
        finally:
            session.close()
    return run


def _visit_in_own_session(session_factory, ledger, organization_id, seen_at):
    def run():
        session = session_factory()
        try:
            ledger.record_visit(session, "shared-hash", organization_id, seen_at)
            session.commit()
        finally:
            session.close()
    return run


def test_exactly_one_writer_creates_the_person(file_session_factory, run_threads):
    ledger = PersonLedger()
    with file_session_factory() as session:
        organization_id = make_organization(db_session=session).id

    results = run_threads([
        _create_in_own_session(file_session_factory, ledger, organization_id, T0 + timedelta(seconds=i))
        for i in range(WORKERS)
    ])

    assert not [r for r in results if isinstance(r, Exception)]
    assert results.count(True) == 1
    with file_session_factory() as session:
        assert session.query(Person).count() == 1


def test_concurrent_visits_are_all_counted(file_session_factory, run_threads):
    ledger = PersonLedger()
    with file_session_factory() as session:
        organization_id = make_organization(db_session=session).id
        ledger.create_if_absent(session, "shared-hash", organization_id, T0)
        session.commit()

    results = run_threads([
        _visit_in_own_session(file_session_factory, ledger, organization_id, T0 + timedelta(minutes=i + 1))
        for i in range(WORKERS)
    ])

    assert not [r for r in results if isinstance(r, Exception)]
    with file_session_factory() as session:
        person = session.query(Person).one()
        assert person.visit_count == 1 + WORKERS
        assert person.last_seen.replace(tzinfo=None) == (T0 + timedelta(minutes=WORKERS)).replace(tzinfo=None)
