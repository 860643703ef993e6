import os
import tempfile

# Point the app at throwaway locations before `tracker` is imported anywhere.
_TMP = tempfile.mkdtemp(prefix="tracker-tests-")
os.environ.setdefault("ENV", "dev")
os.environ.setdefault("DB_PATH", os.path.join(_TMP, "app.db"))
os.environ.setdefault("CORRECTIONS_PATH", os.path.join(_TMP, "corrections"))

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from tracker import main, models
from tracker.config import settings
from tracker.database import create_db_and_tables, get_session, make_engine
from tracker.storage import CorrectionStore
from tracker.tokens import issue_token
from tracker.utils.rate_limit import InMemoryRateLimiter


@pytest.fixture
def engine(tmp_path):
    """A fresh SQLite database file per test."""
    eng = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    create_db_and_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def store(tmp_path):
    return CorrectionStore(tmp_path / "corrections")


@pytest.fixture
def seeded(session):
    """Two students in different groups and two units."""
    alice = models.Student(username="alice", full_name="Alice Martin", in_group_even=True)
    bob = models.Student(username="bob", full_name="Bob Keller", in_group_even=False)
    unit = models.Unit(name="Derivatives", exercise_count=3, deadline_group_even="2026-11-02", deadline_group_odd="2026-11-03")
    other = models.Unit(name="Integrals", exercise_count=1, deadline_group_even="2026-12-01", deadline_group_odd="2026-12-02")
    session.add_all([alice, bob, unit, other])
    session.commit()
    for row in (alice, bob, unit, other):
        session.refresh(row)
    return {"alice": alice, "bob": bob, "unit": unit, "other": other}


@pytest.fixture
def client(engine, store, monkeypatch):
    def _session_override():
        with Session(engine) as s:
            yield s

    main.app.dependency_overrides[get_session] = _session_override
    main.app.dependency_overrides[main.get_store] = lambda: store
    monkeypatch.setattr(main, "_login_limiter", InMemoryRateLimiter(settings.LOGIN_RATE_LIMIT_PER_MIN))
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(seeded):
    def _headers(name: str = "alice") -> dict:
        token = issue_token(seeded[name].id, settings.APP_SECRET)
        return {"Authorization": f"Bearer {token}"}
    return _headers
