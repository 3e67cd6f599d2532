import os
import tempfile

# Configure before the application modules read the environment.
os.environ.setdefault("ADMISSION_LOG_FILE", os.path.join(tempfile.gettempdir(), "tempmail-tests.log"))
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from tempmail.db import Base, get_db  # noqa: E402
from tempmail.main import app  # noqa: E402

from helpers import FakeClock, FakeVerifier, make_gate  # noqa: E402


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture()
def gate(clock, verifier):
    previous = app.state.admission_gate
    gate = make_gate(clock, verifier)
    app.state.admission_gate = gate
    yield gate
    app.state.admission_gate = previous


@pytest.fixture()
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def _override():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _override
    session = TestingSession()
    yield session
    session.close()
    app.dependency_overrides.pop(get_db, None)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def client(db_session, gate):
    limiter = getattr(app.state, "limiter", None)
    if limiter is not None:
        limiter.reset()
    return TestClient(app)
