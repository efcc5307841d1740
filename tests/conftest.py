import pytest
import os
import tempfile
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
import jwt

# Set test secret key before any imports
os.environ["SECRET_KEY"] = "test-secret-key"

from database.models import Base
from server.board import AuctionBoard
from server.executor import BidExecutor
from server.models import DomainAuction

ENDING_AT = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def build_auction(**overrides) -> DomainAuction:
    """A well-formed mid-range auction; override any field."""
    fields = dict(
        id="a-1",
        domain="greenhosting.com",
        marketplace="GoDaddy",
        niche="Hosting",
        ending_at=ENDING_AT,
        current_bid=Decimal("1200"),
        bid_increment=Decimal("25"),
        bids=12,
        domain_authority=45,
        backlinks=800,
        est_traffic=5000,
        est_revenue=Decimal("300"),
        spam_score=2,
        keywords=("green", "hosting", "eco"),
    )
    fields.update(overrides)
    return DomainAuction(**fields)


@pytest.fixture
def make_auction():
    return build_auction


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine on a temporary SQLite file."""
    test_db = tempfile.NamedTemporaryFile(delete=False, suffix='.db')
    test_db.close()
    test_db_url = f"sqlite:///{test_db.name}"

    engine = create_engine(test_db_url, connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    try:
        os.unlink(test_db.name)
    except OSError:
        pass


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """Create a test database session."""
    session = session_factory()
    try:
        yield session
        session.rollback()
    finally:
        session.close()


@pytest.fixture
def executor():
    """Execution boundary stand-in that records every place_bid call."""
    mock = MagicMock(spec=BidExecutor)
    mock.place_bid.return_value = True
    return mock


@pytest.fixture
def board(executor):
    return AuctionBoard(executor=executor)


@pytest.fixture
def override_deps(db_session, board):
    """Point the API at the test database session and a fresh board."""
    from server.api import app, get_board
    from database.session import get_db

    def _get_test_db():
        yield db_session

    app.dependency_overrides.clear()
    app.dependency_overrides[get_db] = _get_test_db
    app.dependency_overrides[get_board] = lambda: board
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def auth_token():
    """Generate a test JWT token."""
    secret_key = os.getenv("SECRET_KEY", "test-secret-key")
    payload = {"sub": "testuser", "exp": datetime.now(timezone.utc) + timedelta(days=30)}
    return jwt.encode(payload, secret_key, algorithm="HS256")


@pytest.fixture
def auth_headers(auth_token):
    """Get authorization headers."""
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture
def client(override_deps):
    """Create a test client with database and board overrides."""
    from fastapi.testclient import TestClient
    from server.api import app
    return TestClient(app)
