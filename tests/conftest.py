import os
from collections.abc import AsyncGenerator
from datetime import UTC, date, datetime, time, timedelta
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Load environment variables from .env file
load_dotenv()

# Settings are read at import time; these must exist before the app is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")
os.environ["BOOKING_LOCK_BACKEND"] = "local"
os.environ["EVENT_PUBLISHER"] = "log"
os.environ["SCHEDULING_TIMEZONE"] = "UTC"

from app.config import settings  # noqa: E402
from app.core.locks import LocalLockManager, get_lock_manager  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.database import get_db, to_async_url  # noqa: E402
from app.dependencies import get_cache_manager  # noqa: E402
from app.main import app  # noqa: E402
from app.models import metadata  # noqa: E402
from app.schemas.availability import AvailabilityCreate, ScheduleType  # noqa: E402
from app.schemas.common import Actor, PatientSnapshot  # noqa: E402
from app.schemas.events import TransitionEvent  # noqa: E402
from app.services.event_service import WorkflowEventRecorder, get_event_publisher  # noqa: E402

# Test database URL - MUST be different from production.
# Without TEST_DATABASE_URL each test gets its own SQLite file.
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

if TEST_DATABASE_URL and TEST_DATABASE_URL == settings.database_url:
    raise RuntimeError(
        "TEST_DATABASE_URL is the same as DATABASE_URL; tests drop every table they create"
    )


class RecordingPublisher:
    """Collects published events instead of sending them anywhere."""

    def __init__(self, fail: bool = False):
        self.events: list[TransitionEvent] = []
        self.fail = fail

    async def publish(self, event: TransitionEvent) -> None:
        if self.fail:
            raise ConnectionError("publisher unavailable")
        self.events.append(event)

    def types(self) -> list[str]:
        return [event.event_type for event in self.events]


@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a test engine with fresh tables."""
    url = to_async_url(TEST_DATABASE_URL or f"sqlite:///{tmp_path / 'workflow.db'}")

    # Use NullPool to avoid event loop issues between tests
    engine = create_async_engine(url, echo=False, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def locks() -> LocalLockManager:
    return LocalLockManager(wait_seconds=5)


@pytest.fixture
def events(db_session: AsyncSession, publisher: RecordingPublisher) -> WorkflowEventRecorder:
    return WorkflowEventRecorder(db_session, publisher)


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    publisher: RecordingPublisher,
    locks: LocalLockManager,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_publisher] = lambda: publisher
    app.dependency_overrides[get_lock_manager] = lambda: locks
    app.dependency_overrides[get_cache_manager] = lambda: None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def clinician() -> Actor:
    return Actor(id=uuid4(), role="clinician")


@pytest.fixture
def auth_headers(clinician: Actor) -> dict:
    """Create authentication headers for testing protected endpoints."""
    token_data = {"sub": str(clinician.id), "role": clinician.role}
    token = create_access_token(data=token_data, expires_delta=timedelta(minutes=30))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def doctor_id() -> UUID:
    return uuid4()


@pytest.fixture
def facility_id() -> UUID:
    return uuid4()


@pytest.fixture
def clinic_day() -> date:
    """A Monday at least a week ahead, so every slot on it is in the future."""
    today = datetime.now(UTC).date()
    return today + timedelta(days=7 + (7 - today.weekday()) % 7)


@pytest.fixture
def patient() -> PatientSnapshot:
    return PatientSnapshot(first_name="Amara", last_name="Okafor", phone="+2348012345678")


@pytest.fixture
def regular_hours(doctor_id: UUID, facility_id: UUID) -> AvailabilityCreate:
    """Mondays 09:00-17:00 in 30 minute slots."""
    return AvailabilityCreate(
        doctor_id=doctor_id,
        facility_id=facility_id,
        schedule_type=ScheduleType.REGULAR,
        day_of_week=1,
        start_time=time(9, 0),
        end_time=time(17, 0),
        slot_duration_minutes=30,
    )

