"""Shared fixtures for tests that race real connections against one database file."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import threading
from typing import Any, Callable, List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.database import Base


@pytest.fixture
def file_sessions(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def run_together() -> Callable[[Callable[[int], Any], int], List[Any]]:
    """Run ``fn(index)`` on ``count`` threads released by one barrier."""

    def _run(fn: Callable[[int], Any], count: int) -> List[Any]:
        barrier = threading.Barrier(count)

        def worker(index: int) -> Any:
            barrier.wait()
            return fn(index)

        with ThreadPoolExecutor(max_workers=count) as pool:
            return list(pool.map(worker, range(count)))

    return _run
