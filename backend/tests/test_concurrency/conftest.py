"""
Concurrency test fixtures

A file-backed SQLite database so every worker thread gets its own
connection, plus a helper that starts callables on threads at the same time.
"""
import threading
from typing import Any, Callable, List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.database import Base


@pytest.fixture
def file_session_factory(temp_db_file):
    engine = create_engine(
        f"sqlite:///{temp_db_file}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()


@pytest.fixture
def run_threads():
    """
    Run callables on separate threads released by one barrier.

    Usage:
        results = run_threads([fn1, fn2, fn3])

    Returns the results in input order; an exception raised by a callable
    is returned in its slot.
    """
    def _run_threads(funcs: List[Callable[[], Any]], timeout: float = 30.0) -> List[Any]:
        barrier = threading.Barrier(len(funcs))
        results: List[Any] = [None] * len(funcs)

        def worker(index: int, func: Callable[[], Any]):
            barrier.wait()
            try:
                results[index] = func()
            except Exception as e:
                results[index] = e

        threads = [threading.Thread(target=worker, args=(i, f)) for i, f in enumerate(funcs)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout)
        return results

    return _run_threads
