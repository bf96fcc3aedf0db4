import httpx
import pytest
from sqlalchemy.orm import sessionmaker

from app.client.api import ApiClient
from app.client.cache import QueryCache
from app.database import Base, build_engine
from app.dependencies import get_db
from app.main import app
from app.models.connection import Connection
from app.models.post import Post
from app.models.user import User


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def live_sessions(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'live.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine)
    engine.dispose()


@pytest.fixture
def live_app(live_sessions):
    """The real app with one committed session per request."""

    def override_get_db():
        session = live_sessions()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def api(live_app):
    return ApiClient("http://testserver", transport=httpx.ASGITransport(app=live_app))


@pytest.fixture
def cache():
    return QueryCache(stale_after=60.0)


class Seeder:
    def __init__(self, sessions):
        self._sessions = sessions

    def user(self, sub: str, name: str, username: str) -> int:
        with self._sessions() as session:
            user = User(sub=sub, name=name, username=username)
            session.add(user)
            session.commit()
            return user.id

    def connection(self, requester_id: int, addressee_id: int, status="pending") -> int:
        with self._sessions() as session:
            conn = Connection(
                requester_id=requester_id, addressee_id=addressee_id, status=status
            )
            session.add(conn)
            session.commit()
            return conn.id

    def post(self, author_id: int, content: str) -> int:
        with self._sessions() as session:
            post = Post(author_id=author_id, content=content)
            session.add(post)
            session.commit()
            return post.id

    def connection_count(self, user_a: int, user_b: int) -> int:
        with self._sessions() as session:
            return session.query(Connection).filter(
                ((Connection.requester_id == user_a) & (Connection.addressee_id == user_b))
                | ((Connection.requester_id == user_b) & (Connection.addressee_id == user_a))
            ).count()


@pytest.fixture
def seed(live_sessions):
    return Seeder(live_sessions)


@pytest.fixture
def people(seed):
    """Viewer, Ann and Bob, all unrelated."""
    return {
        "viewer": seed.user("auth0|viewer", "Viewer", "viewer"),
        "ann": seed.user("auth0|ann", "Ann", "ann"),
        "bob": seed.user("auth0|bob", "Bob", "bob"),
    }


@pytest.fixture
def token_provider_for(token_for):
    def build(sub: str):
        async def provider() -> str:
            return token_for(sub)

        return provider

    return build


@pytest.fixture
def viewer_tokens(token_provider_for):
    return token_provider_for("auth0|viewer")
