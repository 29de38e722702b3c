"""Pytest configuration and shared fixtures.

Service tests run against a temporary SQLite database per test. Every
transaction is opened with ``BEGIN IMMEDIATE`` so that concurrent sessions
serialize on the write lock, the way row locks serialize them on PostgreSQL.
"""

import os
import tempfile

# Settings are read at import time, so configure the environment first
_TEST_DIR = tempfile.mkdtemp(prefix="classroll-tests-")
os.environ.setdefault("APP_SECRET_KEY", "test-secret-key-for-testing-only")
os.environ["APP_ENV"] = "development"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/classroll.db"
os.environ["EMAIL_PROVIDER"] = "disabled"
os.environ.pop("ADMIN_NOTIFICATION_EMAIL", None)

from collections.abc import AsyncGenerator  # noqa: E402
from dataclasses import dataclass  # noqa: E402
from typing import Any  # noqa: E402
from uuid import UUID  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool  # noqa: E402

from classroll.models import Base, Course, School, User  # noqa: E402
from classroll.models.user import Role  # noqa: E402
from classroll.services.onboarding_service import OnboardingService  # noqa: E402

# A syntactically valid bcrypt hash; seeded users never log in
SEED_PASSWORD_HASH = "$2b$12$KIXQJ8Z1u5m0rQ5y7yq6UuJ0C1Zb9GqYw2m9m7m3N8m5t8Yv1Q6lG"


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh SQLite database with the full schema."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'classroll.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself instead of the driver
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """Session used by a test body."""
    async with session_factory() as session:
        yield session


# =============================================================================
# Seed Data
# =============================================================================


@dataclass
class SeedData:
    """IDs of the rows every onboarding test starts from.

    Plain values rather than ORM objects: a rolled-back session expires its
    objects, and expired attributes can't be loaded lazily under asyncio.
    """

    school_id: UUID
    other_school_id: UUID
    admin_id: UUID
    course_id: UUID
    second_course_id: UUID
    other_school_course_id: UUID
    existing_student_id: UUID


def make_user(school: School, role: Role, email: str, first_name: str, last_name: str, **kwargs: Any) -> User:
    """Build a user row with a placeholder password hash."""
    return User(
        school_id=school.id,
        email=email,
        password_hash=SEED_PASSWORD_HASH,
        first_name=first_name,
        last_name=last_name,
        role=role.value,
        is_active=kwargs.pop("is_active", True),
        **kwargs,
    )


@pytest_asyncio.fixture
async def seed(db: AsyncSession) -> SeedData:
    """A school with an admin, two courses and one enrolled student, plus a second school."""
    school = School(name="Colegio San Martín")
    other_school = School(name="Liceo del Norte")
    db.add_all([school, other_school])
    await db.flush()

    admin = make_user(school, Role.SCHOOL_ADMIN, "admin@sanmartin.edu", "Laura", "Gómez")
    course = Course(school_id=school.id, name="Cuarto A", grade="4", section="A")
    second_course = Course(school_id=school.id, name="Quinto B", grade="5", section="B")
    other_school_course = Course(school_id=other_school.id, name="Sexto C", grade="6", section="C")
    existing_student = make_user(
        school,
        Role.STUDENT,
        "mateo.rios@sanmartin.edu",
        "Mateo",
        "Ríos",
        student_code="ESTMR25ABCDEF",
        grade="5",
        section="B",
    )
    db.add_all([admin, course, second_course, other_school_course, existing_student])
    await db.commit()

    return SeedData(
        school_id=school.id,
        other_school_id=other_school.id,
        admin_id=admin.id,
        course_id=course.id,
        second_course_id=second_course.id,
        other_school_course_id=other_school_course.id,
        existing_student_id=existing_student.id,
    )


# =============================================================================
# Collaborator Doubles
# =============================================================================


class RecordingMailer:
    """Mailer double that records every call.

    With ``fail=True`` every send raises, which the onboarding service must
    tolerate.
    """

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def _record(self, name: str, kwargs: dict[str, Any]) -> str:
        self.calls.append((name, kwargs))
        if self.fail:
            raise RuntimeError("mail server unavailable")
        return f"msg-{len(self.calls)}"

    def sent(self, name: str) -> list[dict[str, Any]]:
        """Payloads of all calls to ``name``."""
        return [kwargs for call, kwargs in self.calls if call == name]

    async def notify_admins(self, db, school_id, **kwargs) -> None:
        self._record("notify_admins", {"school_id": school_id, **kwargs})

    async def send_registration_received(self, **kwargs) -> str:
        return self._record("send_registration_received", kwargs)

    async def send_registration_approved(self, **kwargs) -> str:
        return self._record("send_registration_approved", kwargs)

    async def send_registration_rejected(self, **kwargs) -> str:
        return self._record("send_registration_rejected", kwargs)


@pytest.fixture
def mailer() -> RecordingMailer:
    """Recording mailer."""
    return RecordingMailer()


@pytest.fixture
def onboarding(mailer: RecordingMailer) -> OnboardingService:
    """Onboarding service wired to the recording mailer."""
    return OnboardingService(mailer=mailer)


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test (uses a database)")
