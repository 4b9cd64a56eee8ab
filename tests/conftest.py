import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="mypack-tests-")
os.environ["MYPACK_DATABASE_URL"] = "sqlite:///" + os.path.join(_DB_DIR, "test.db")
os.environ["MYPACK_SECRET_KEY"] = "test-secret"

import pytest  # noqa: E402

from database import Base, SessionLocal, engine  # noqa: E402
from models import init_db  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def flask_app():
    from app import app

    app.config.update(TESTING=True)
    return app


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()


def register(client, email="alpha@wolfpack.com", password="howling", name="Alpha Hunter"):
    return client.post(
        "/register",
        data={"email": email, "password": password, "display_name": name},
    )


@pytest.fixture
def logged_in(client):
    register(client)
    return client
