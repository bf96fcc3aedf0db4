from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.config import settings
from app.database import Base, build_engine
from app.dependencies import get_db
from app.main import app
from app.models.connection import Connection
from app.models.user import User

test_engine = build_engine(settings.test_database_url)
TestSession = sessionmaker(bind=test_engine)


def make_token(sub: str, **claims) -> str:
    payload = {
        "sub": sub,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=30),
        **claims,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def db():
    connection = test_engine.connect()
    transaction = connection.begin()
    session = TestSession(bind=connection)
    yield session
    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def token_for():
    return make_token


@pytest.fixture
def viewer_user(db):
    user = User(sub="auth0|viewer", username="viewer", name="Viewer", title="Engineer")
    db.add(user)
    db.flush()
    return user


@pytest.fixture
def other_user(db):
    user = User(sub="auth0|other", username="other", name="Other User")
    db.add(user)
    db.flush()
    return user


@pytest.fixture
def third_user(db):
    user = User(sub="auth0|third", username="third", name="Third User")
    db.add(user)
    db.flush()
    return user


@pytest.fixture
def viewer_headers(viewer_user):
    return {"Authorization": f"Bearer {make_token(viewer_user.sub)}"}


@pytest.fixture
def other_headers(other_user):
    return {"Authorization": f"Bearer {make_token(other_user.sub)}"}


@pytest.fixture
def connection(db, viewer_user, other_user):
    conn = Connection(
        requester_id=other_user.id,
        addressee_id=viewer_user.id,
        status="connected",
    )
    db.add(conn)
    db.flush()
    return conn


@pytest.fixture
def invitation(db, viewer_user, other_user):
    conn = Connection(requester_id=other_user.id, addressee_id=viewer_user.id)
    db.add(conn)
    db.flush()
    return conn
