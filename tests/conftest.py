"""Shared fixtures: an in-memory database per test and a seeded school."""

import os

os.environ.setdefault("SCHOOL_DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHOOL_JWT_SECRET", "test-secret")
os.environ.setdefault("SCHOOL_ADMIN_EMAIL", "admin@school.test")
os.environ.setdefault("SCHOOL_ADMIN_PASSWORD", "AdminPass123")

from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from backend.backend import app  # noqa: E402
from backend.school_module import services  # noqa: E402
from backend.school_module.database import Base, SessionLocal, engine  # noqa: E402
from backend.school_module.models import ScheduleSlot, User, UserRole  # noqa: E402
from backend.school_module.scheduling import parse_clock  # noqa: E402
from backend.school_module.security import create_access_token  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client():
    with TestClient(app) as test_client:
        yield test_client


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(subject=user.email, role=user.role.value, user_id=user.id)
    return {"Authorization": f"Bearer {token}"}


def add_slot(db, *, term, school_class, teacher, subject, day=1, start="07:00", end="08:30") -> ScheduleSlot:
    slot = ScheduleSlot(
        term_id=term.id,
        class_id=school_class.id,
        teacher_id=teacher.id,
        subject_id=subject.id,
        day_of_week=day,
        start_minute=parse_clock(start),
        end_minute=parse_clock(end),
    )
    db.add(slot)
    db.commit()
    db.refresh(slot)
    return slot


@pytest.fixture()
def school(db):
    """Two terms, two classes, two teachers (one homeroom), two subjects, a student and a parent."""
    admin = services.create_user(
        db, name="Admin", email="root@school.test", raw_password="AdminPass123", role=UserRole.ADMIN
    )
    principal = services.create_user(
        db, name="Principal", email="principal@school.test", raw_password="Principal123", role=UserRole.PRINCIPAL
    )
    year = services.create_academic_year(db, name="2024/2025", is_active=True)
    term = services.create_term(db, academic_year_id=year.id, name="Odd", is_active=True)
    other_term = services.create_term(db, academic_year_id=year.id, name="Even", is_active=False)
    math = services.create_subject(db, code="MTH", name="Mathematics", passing_grade=75)
    physics = services.create_subject(db, code="PHY", name="Physics", passing_grade=70)
    teacher = services.create_teacher(
        db,
        name="Budi Santoso",
        email="budi@school.test",
        raw_password="Teacher123",
        employee_number="T-001",
        phone=None,
        homeroom=False,
    )
    homeroom = services.create_teacher(
        db,
        name="Siti Rahma",
        email="siti@school.test",
        raw_password="Teacher123",
        employee_number="T-002",
        phone=None,
        homeroom=True,
    )
    class_a = services.create_class(
        db, name="X-1", grade_level="X", academic_year_id=year.id, homeroom_teacher_id=homeroom.id
    )
    class_b = services.create_class(db, name="X-2", grade_level="X", academic_year_id=year.id, homeroom_teacher_id=None)
    student = services.create_student(
        db,
        name="Andi",
        email="andi@school.test",
        raw_password="Student123",
        student_number="S-001",
        class_id=class_a.id,
    )
    parent = services.create_parent(
        db,
        name="Parent Andi",
        email="parent@school.test",
        raw_password="Parent1234",
        phone=None,
        student_ids=[student.id],
    )
    return SimpleNamespace(
        admin=admin,
        principal=principal,
        year=year,
        term=term,
        other_term=other_term,
        math=math,
        physics=physics,
        teacher=teacher,
        homeroom=homeroom,
        class_a=class_a,
        class_b=class_b,
        student=student,
        parent=parent,
    )
