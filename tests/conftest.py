import os
from datetime import date
from decimal import Decimal
from uuid import uuid4

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-jwt-signing-only")
os.environ.setdefault("AI_CATEGORIZER_URL", "")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from batchflow.api.deps import get_ai_categorizer, get_job_queue
from batchflow.core.exceptions import CategorizerError, ExtractionError
from batchflow.db.session import get_db
from batchflow.main import app
from batchflow.schemas.categorization import AISuggestion
from batchflow.schemas.internal import EnqueueReceipt, ExtractedTransaction, ImportJobPayload
from batchflow.services.processor import ItemProcessor

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

# One shared connection so the in-memory database survives across sessions.
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False} if TEST_DATABASE_URL.startswith("sqlite") else {},
    poolclass=StaticPool if TEST_DATABASE_URL.startswith("sqlite") else None,
)
TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def setup_database():
    """Create tables for tests that need the database, and drop them after.

    Not autouse, so pure unit tests (matchers, flags, status math) run without
    touching a database.
    """
    from batchflow.models.base import BaseModel

    async with test_engine.begin() as conn:
        await conn.run_sync(BaseModel.metadata.create_all)

    yield

    async with test_engine.begin() as conn:
        await conn.run_sync(BaseModel.metadata.drop_all)


@pytest.fixture
async def db_session(setup_database):
    """Provide test database session with fresh connection per test."""
    async with TestSessionLocal() as session:
        yield session
        await session.rollback()


@pytest.fixture
def owner_id():
    return uuid4()


@pytest.fixture
def other_owner_id():
    return uuid4()


@pytest.fixture
def auth_headers(owner_id):
    """Provide authentication headers with valid JWT token."""
    from batchflow.core.security import create_access_token

    token = create_access_token(owner_id=owner_id)
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class RecordingJobQueue:
    """Collects payloads instead of running them; tests drain it explicitly."""

    def __init__(self):
        self.payloads: list[ImportJobPayload] = []
        self.fail = False
        self.submitted = 0

    async def enqueue(self, payload: ImportJobPayload) -> EnqueueReceipt:
        if self.fail:
            raise ConnectionError("queue unavailable")
        self.submitted += 1
        self.payloads.append(payload)
        return EnqueueReceipt(event_id=f"evt-{self.submitted}")


class FakeStorage:
    """Returns the URL itself as file content unless told otherwise."""

    def __init__(self):
        self.content: dict[str, bytes] = {}

    async def fetch(self, url: str) -> bytes:
        return self.content.get(url, url.encode())


class FakeExtraction:
    """Per-URL canned results. A URL mapped to an exception raises it on every call."""

    def __init__(self):
        self.results: dict[str, ExtractedTransaction | Exception] = {}
        self.calls: list[str] = []

    def returns(self, url: str, merchant_name: str, amount: str = "-12.50", **kwargs):
        self.results[url] = ExtractedTransaction(
            merchant_name=merchant_name,
            amount=Decimal(amount),
            txn_date=kwargs.pop("txn_date", date(2026, 3, 14)),
            **kwargs,
        )

    def fails(self, url: str, reason: str = "unreadable document"):
        self.results[url] = ExtractionError("EXTRACT_001", {"reason": reason})

    async def extract(self, file_url, file_format, content=None):
        self.calls.append(file_url)
        result = self.results.get(file_url)
        if result is None:
            raise ExtractionError("EXTRACT_001", {"reason": "no canned result"})
        if isinstance(result, Exception):
            raise result
        return result


class FakeAI:
    def __init__(self, category_id=None, confidence: float | None = 0.9, error: bool = False):
        self.category_id = category_id
        self.confidence = confidence
        self.error = error
        self.calls = 0

    async def suggest_category(self, merchant_name, description, amount):
        self.calls += 1
        if self.error:
            raise CategorizerError("AI_001")
        if self.category_id is None:
            return None
        return AISuggestion(category_id=self.category_id, confidence=self.confidence)


@pytest.fixture
def job_queue():
    return RecordingJobQueue()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def extraction():
    return FakeExtraction()


@pytest.fixture
def run_jobs(db_session, job_queue, extraction, storage):
    """Process queued jobs one at a time until the queue is empty.

    Re-enqueued retries are picked up in the same drain.
    """

    async def _run(ai_categorizer=None, **processor_kwargs):
        results = []
        while job_queue.payloads:
            payload = job_queue.payloads.pop(0)
            processor = ItemProcessor(
                db_session,
                extraction=extraction,
                storage=storage,
                queue=job_queue,
                ai_categorizer=ai_categorizer,
                **processor_kwargs,
            )
            results.append(await processor.process_item(payload))
        return results

    return _run


@pytest.fixture
async def category_factory(db_session):
    from batchflow.models.category import Category

    async def _create(name: str, owner_id=None, is_system: bool = False) -> Category:
        category = Category(name=name, owner_id=owner_id, is_system=is_system)
        db_session.add(category)
        await db_session.commit()
        await db_session.refresh(category)
        return category

    return _create


@pytest.fixture
async def client(db_session: AsyncSession, job_queue):
    """Provide test client with database and collaborator overrides."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_job_queue] = lambda: job_queue
    app.dependency_overrides[get_ai_categorizer] = lambda: None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_ai():
    """Factory for AI categorizer fakes."""
    return FakeAI
