import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"

from dataclasses import dataclass
from typing import AsyncGenerator, Dict

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from schooltime.auth.models import User
from schooltime.auth.security import create_access_token
from schooltime.core.models import School, SchoolClass, Section, Student, Teacher
from schooltime.db.session import build_engine, create_tables, get_db
from schooltime.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@dataclass
class SchoolFixture:
    school: School
    other_school: School
    class_a: SchoolClass
    class_b: SchoolClass
    section_a: Section
    section_b: Section
    teacher_1: Teacher
    teacher_2: Teacher
    admin: User
    teacher_user: User
    student_user: User
    other_admin: User
    student: Student


@pytest.fixture()
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory SQLite database per test."""
    test_engine = build_engine(TEST_DATABASE_URL)
    await create_tables(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture()
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for a test and override the FastAPI dependency."""
    session_factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
async def seeded(db_session: AsyncSession) -> SchoolFixture:
    school = School(name="Springfield Elementary")
    other_school = School(name="Shelbyville Elementary")
    db_session.add_all([school, other_school])
    await db_session.flush()

    class_a = SchoolClass(school_id=school.id, name="1st", display_order=1)
    class_b = SchoolClass(school_id=school.id, name="2nd", display_order=2)
    db_session.add_all([class_a, class_b])
    await db_session.flush()

    section_a = Section(school_id=school.id, class_id=class_a.id, name="A")
    section_b = Section(school_id=school.id, class_id=class_b.id, name="B")
    db_session.add_all([section_a, section_b])

    admin = User(school_id=school.id, full_name="Alice Admin", email="admin@example.com", role="ADMIN")
    teacher_user = User(school_id=school.id, full_name="Tom Teacher", email="tom@example.com", role="TEACHER")
    student_user = User(school_id=school.id, full_name="Sam Student", email="sam@example.com", role="STUDENT")
    other_admin = User(school_id=other_school.id, full_name="Oscar Other", email="oscar@example.com", role="ADMIN")
    db_session.add_all([admin, teacher_user, student_user, other_admin])
    await db_session.flush()

    teacher_1 = Teacher(school_id=school.id, user_id=teacher_user.id, first_name="Tom", last_name="Teacher")
    teacher_2 = Teacher(school_id=school.id, first_name="Anna", last_name="Baker")
    db_session.add_all([teacher_1, teacher_2])
    await db_session.flush()

    student = Student(
        school_id=school.id,
        user_id=student_user.id,
        class_id=class_a.id,
        section_id=section_a.id,
        first_name="Sam",
        last_name="Student",
        email="sam@example.com",
    )
    db_session.add(student)
    await db_session.commit()

    return SchoolFixture(
        school=school,
        other_school=other_school,
        class_a=class_a,
        class_b=class_b,
        section_a=section_a,
        section_b=section_b,
        teacher_1=teacher_1,
        teacher_2=teacher_2,
        admin=admin,
        teacher_user=teacher_user,
        student_user=student_user,
        other_admin=other_admin,
        student=student,
    )


def auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token(subject={"sub": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def auth():
    """Bearer headers for a seeded user: ``client.get(url, headers=auth(seeded.admin))``."""
    return auth_headers
