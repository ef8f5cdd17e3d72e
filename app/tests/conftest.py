"""Test configuration and fixtures."""

import os
import tempfile

# Keep the app's default database and log files out of the working tree.
_TEST_ROOT = tempfile.mkdtemp(prefix="record-shop-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TEST_ROOT}/app.db")
os.environ.setdefault("LOGS_DIR", os.path.join(_TEST_ROOT, "logs"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.core.db import Base  # noqa: E402
from app.core.deps import (  # noqa: E402
    get_knowledge_store,
    get_voice_completion_service,
    get_voice_transcript_sink,
)
from app.main import app  # noqa: E402
from app.models.conversation import CompletionDelta  # noqa: E402
from app.models.schema import Customer, Order, StockItem, Store  # noqa: E402
from app.services.knowledge_store import SqlKnowledgeStore  # noqa: E402
from app.services.voice.session_manager import clear_voice_sessions  # noqa: E402
from app.tests.fakes import FakeCompletionService, RecordingTranscriptSink  # noqa: E402

KNOWN_CALLER_NUMBER = "123"


@pytest.fixture(autouse=True)
def reset_voice_sessions():
    """Isolate the process-wide session registry per test."""

    clear_voice_sessions()
    yield
    clear_voice_sessions()


@pytest.fixture
def test_db():
    """Create a test database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(test_db):
    """Session factory bound to a seeded test database."""
    factory = sessionmaker(autocommit=False, autoflush=False, bind=test_db)
    session = factory()
    try:
        session.add_all(
            [
                StockItem(
                    id=1,
                    record_title="Abbey Road",
                    artist="The Beatles",
                    genre="Rock",
                    price="24.99",
                    quantity=3,
                ),
                StockItem(
                    id=2,
                    record_title="Kind of Blue",
                    artist="Miles Davis",
                    genre="Jazz",
                    price="19.99",
                    quantity=5,
                ),
                StockItem(
                    id=3,
                    record_title="Blue Train",
                    artist="John Coltrane",
                    genre="Jazz",
                    price="21.50",
                    quantity=2,
                ),
                StockItem(
                    id=4,
                    record_title="Rumours",
                    artist="Fleetwood Mac",
                    genre="Rock",
                    price="22.00",
                    quantity=1,
                ),
                Store(
                    id=1,
                    name="Northern Quarter Records",
                    address="1 Oldham Street",
                    city="Manchester",
                    county="Greater Manchester",
                    phone_number="0161 000 0000",
                ),
                Customer(
                    id=1,
                    customer_name="Jane Doe",
                    address="2 Tib Street",
                    city="Manchester",
                    county="Greater Manchester",
                    phone_number=KNOWN_CALLER_NUMBER,
                ),
            ]
        )
        session.flush()
        session.add(Order(id=1, customer_id=1, stock_item_id=2, price="19.99"))
        session.commit()
    finally:
        session.close()
    return factory


@pytest.fixture
def knowledge_store(session_factory):
    """Knowledge store over the seeded test database."""
    return SqlKnowledgeStore(session_factory, max_stock_results=50)


@pytest.fixture
def transcript_sink():
    return RecordingTranscriptSink()


@pytest.fixture
def completion_service():
    """Completion service answering every prompt with one short sentence."""
    return FakeCompletionService(
        [
            [
                CompletionDelta(text="We are open "),
                CompletionDelta(text="until six.", finish_reason="stop"),
            ]
        ]
    )


@pytest.fixture
def client(knowledge_store, completion_service, transcript_sink):
    """Create a test client with the voice collaborators overridden."""
    app.dependency_overrides[get_knowledge_store] = lambda: knowledge_store
    app.dependency_overrides[get_voice_completion_service] = lambda: completion_service
    app.dependency_overrides[get_voice_transcript_sink] = lambda: transcript_sink

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
