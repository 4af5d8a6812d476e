import os
import sys

import pytest

# In-memory database shared by every session; must be set before config is imported
os.environ["DB_URL"] = "sqlite://"

PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from services.db import SessionLocal, drop_db, init_db  # noqa: E402
from models.content import Content  # noqa: E402
from models.user import User  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_db():
    drop_db()
    init_db()
    yield
    drop_db()


@pytest.fixture
def session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def make_content(session, dubbing=None, **overrides):
    """Insert one active content record and return its id"""
    fields = dict(
        platform="Netflix",
        title="Sample",
        primary_language="Hindi",
        year=2021,
        assigned_genre="Drama",
        assigned_format="Movie",
        source="In-House",
        age_rating="U/A 13+",
        seasons=1,
        is_active=True,
    )
    fields.update(overrides)
    content = Content(**fields)
    content.dubbing = dubbing or {}
    session.add(content)
    session.commit()
    return content.id


@pytest.fixture
def add_content(session):
    def _add(dubbing=None, **overrides):
        return make_content(session, dubbing=dubbing, **overrides)
    return _add


@pytest.fixture
def user(session):
    account = User(username="editor", email="editor@example.com", role="user")
    session.add(account)
    session.commit()
    return account.id


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from api_main import app

    with TestClient(app) as test_client:
        yield test_client
