import logging
import re
from datetime import datetime
from typing import TypeVar

from fastapi import HTTPException, status
from sqlalchemy.orm import Query, Session

from .config import settings
from .models import (
    AcademicYear,
    Grade,
    Parent,
    ReportCard,
    ScheduleSlot,
    SchoolClass,
    Student,
    Subject,
    Teacher,
    Term,
    User,
    UserRole,
)
from .security import WeakPasswordError, check_password_policy, hash_password, issue_token, verify_password

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")

ModelT = TypeVar("ModelT")


def _normalize_email(value: str) -> str:
    normalized = value.lower().strip()
    if not EMAIL_PATTERN.match(normalized):
        raise HTTPException(status_code=400, detail="Invalid email format")
    return normalized


def get_or_404(db: Session, model: type[ModelT], object_id: int, label: str) -> ModelT:
    obj = db.get(model, object_id)
    if obj is None:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return obj


def require_reference(db: Session, model: type[ModelT], object_id: int, label: str) -> ModelT:
    obj = db.get(model, object_id)
    if obj is None:
        raise HTTPException(status_code=400, detail=f"{label} not found")
    return obj


# ── Accounts ─────────────────────────────────────────────────────────


def login_user(db: Session, *, email: str, password: str) -> tuple[User, str]:
    # No format check here: a malformed email is just another unknown account.
    email = email.strip().lower()
    user = db.query(User).filter(User.email == email).first()
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        logger.warning(f"Failed login for {email}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    user.last_login = datetime.utcnow()
    db.commit()
    return user, issue_token(user)


def _enforce_password_policy(password: str) -> None:
    try:
        check_password_policy(password)
    except WeakPasswordError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def change_password(db: Session, *, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    if current_password == new_password:
        raise HTTPException(status_code=400, detail="New password must differ from the current one")
    _enforce_password_policy(new_password)
    user.password_hash = hash_password(new_password)
    db.commit()
    logger.info(f"Password changed for user {user.id}")


def _new_user(db: Session, *, name: str, email: str, raw_password: str, role: UserRole) -> User:
    email = _normalize_email(email)
    _enforce_password_policy(raw_password)
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=409, detail="Email already in use")
    user = User(
        name=name.strip(),
        email=email,
        password_hash=hash_password(raw_password),
        role=role,
        is_active=True,
    )
    db.add(user)
    db.flush()
    return user


def create_user(db: Session, *, name: str, email: str, raw_password: str, role: UserRole) -> User:
    user = _new_user(db, name=name, email=email, raw_password=raw_password, role=role)
    db.commit()
    db.refresh(user)
    return user


def set_user_active(db: Session, *, user_id: int, is_active: bool, actor: User) -> User:
    user = get_or_404(db, User, user_id, "User")
    if user.id == actor.id and not is_active:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")
    user.is_active = is_active
    db.commit()
    db.refresh(user)
    return user


def seed_default_admin(db: Session) -> None:
    email = settings.admin_email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        return
    db.add(
        User(
            name="Administrator",
            email=email,
            role=UserRole.ADMIN,
            password_hash=hash_password(settings.admin_password),
            is_active=True,
        )
    )
    db.commit()
    logger.info(f"Seeded default admin account {email}")


# ── Academic reference data ──────────────────────────────────────────


def create_academic_year(db: Session, *, name: str, is_active: bool) -> AcademicYear:
    name = name.strip()
    if db.query(AcademicYear).filter(AcademicYear.name == name).first():
        raise HTTPException(status_code=409, detail="Academic year already exists")
    if is_active:
        db.query(AcademicYear).update({AcademicYear.is_active: False})
    year = AcademicYear(name=name, is_active=is_active)
    db.add(year)
    db.commit()
    db.refresh(year)
    return year


def create_term(db: Session, *, academic_year_id: int, name: str, is_active: bool) -> Term:
    require_reference(db, AcademicYear, academic_year_id, "Academic year")
    if is_active:
        db.query(Term).update({Term.is_active: False})
    term = Term(academic_year_id=academic_year_id, name=name.strip(), is_active=is_active)
    db.add(term)
    db.commit()
    db.refresh(term)
    return term


def activate_term(db: Session, *, term_id: int) -> Term:
    term = get_or_404(db, Term, term_id, "Term")
    db.query(Term).filter(Term.id != term_id).update({Term.is_active: False})
    term.is_active = True
    db.commit()
    db.refresh(term)
    return term


def create_subject(db: Session, *, code: str, name: str, passing_grade: float) -> Subject:
    code = code.strip().upper()
    if db.query(Subject).filter(Subject.code == code).first():
        raise HTTPException(status_code=409, detail="Subject code already exists")
    subject = Subject(code=code, name=name.strip(), passing_grade=passing_grade)
    db.add(subject)
    db.commit()
    db.refresh(subject)
    return subject


def create_class(
    db: Session,
    *,
    name: str,
    grade_level: str,
    academic_year_id: int,
    homeroom_teacher_id: int | None,
) -> SchoolClass:
    require_reference(db, AcademicYear, academic_year_id, "Academic year")
    if homeroom_teacher_id is not None:
        require_reference(db, Teacher, homeroom_teacher_id, "Teacher")
    school_class = SchoolClass(
        name=name.strip(),
        grade_level=grade_level.strip(),
        academic_year_id=academic_year_id,
        homeroom_teacher_id=homeroom_teacher_id,
    )
    db.add(school_class)
    db.commit()
    db.refresh(school_class)
    return school_class


def _ensure_unused(label: str, usages: list[tuple[str, Query]]) -> None:
    for what, query in usages:
        count = query.count()
        if count:
            raise HTTPException(status_code=400, detail=f"{label} is still used by {count} {what}")


def update_academic_year(db: Session, *, year_id: int, changes: dict) -> AcademicYear:
    year = get_or_404(db, AcademicYear, year_id, "Academic year")
    if changes.get("name"):
        name = changes["name"].strip()
        clash = db.query(AcademicYear).filter(AcademicYear.name == name, AcademicYear.id != year.id).first()
        if clash:
            raise HTTPException(status_code=409, detail="Academic year already exists")
        year.name = name
    if changes.get("is_active") is not None:
        if changes["is_active"]:
            db.query(AcademicYear).filter(AcademicYear.id != year.id).update({AcademicYear.is_active: False})
        year.is_active = changes["is_active"]
    db.commit()
    db.refresh(year)
    return year


def delete_academic_year(db: Session, *, year_id: int) -> None:
    year = get_or_404(db, AcademicYear, year_id, "Academic year")
    _ensure_unused(
        "Academic year",
        [
            ("term(s)", db.query(Term).filter(Term.academic_year_id == year.id)),
            ("class(es)", db.query(SchoolClass).filter(SchoolClass.academic_year_id == year.id)),
        ],
    )
    db.delete(year)
    db.commit()
    logger.info(f"Deleted academic year {year_id}")


def active_term(db: Session) -> Term:
    term = db.query(Term).filter(Term.is_active.is_(True)).order_by(Term.id.desc()).first()
    if term is None:
        raise HTTPException(status_code=404, detail="No active term")
    return term


def update_term(db: Session, *, term_id: int, changes: dict) -> Term:
    term = get_or_404(db, Term, term_id, "Term")
    if changes.get("name"):
        term.name = changes["name"].strip()
    if changes.get("is_active") is not None:
        if changes["is_active"]:
            db.query(Term).filter(Term.id != term.id).update({Term.is_active: False})
        term.is_active = changes["is_active"]
    db.commit()
    db.refresh(term)
    return term


def delete_term(db: Session, *, term_id: int) -> None:
    term = get_or_404(db, Term, term_id, "Term")
    _ensure_unused(
        "Term",
        [
            ("schedule slot(s)", db.query(ScheduleSlot).filter(ScheduleSlot.term_id == term.id)),
            ("grade(s)", db.query(Grade).filter(Grade.term_id == term.id)),
            ("report card(s)", db.query(ReportCard).filter(ReportCard.term_id == term.id)),
        ],
    )
    db.delete(term)
    db.commit()
    logger.info(f"Deleted term {term_id}")


def update_subject(db: Session, *, subject_id: int, changes: dict) -> Subject:
    subject = get_or_404(db, Subject, subject_id, "Subject")
    if changes.get("code"):
        code = changes["code"].strip().upper()
        if db.query(Subject).filter(Subject.code == code, Subject.id != subject.id).first():
            raise HTTPException(status_code=409, detail="Subject code already exists")
        subject.code = code
    if changes.get("name"):
        subject.name = changes["name"].strip()
    if changes.get("passing_grade") is not None:
        subject.passing_grade = changes["passing_grade"]
    db.commit()
    db.refresh(subject)
    return subject


def delete_subject(db: Session, *, subject_id: int) -> None:
    subject = get_or_404(db, Subject, subject_id, "Subject")
    _ensure_unused(
        "Subject",
        [
            ("schedule slot(s)", db.query(ScheduleSlot).filter(ScheduleSlot.subject_id == subject.id)),
            ("grade(s)", db.query(Grade).filter(Grade.subject_id == subject.id)),
        ],
    )
    db.delete(subject)
    db.commit()
    logger.info(f"Deleted subject {subject_id}")


def update_class(db: Session, *, class_id: int, changes: dict) -> SchoolClass:
    school_class = get_or_404(db, SchoolClass, class_id, "Class")
    if changes.get("name"):
        school_class.name = changes["name"].strip()
    if changes.get("grade_level"):
        school_class.grade_level = changes["grade_level"].strip()
    # An explicit null clears the homeroom teacher.
    if "homeroom_teacher_id" in changes:
        if changes["homeroom_teacher_id"] is not None:
            require_reference(db, Teacher, changes["homeroom_teacher_id"], "Teacher")
        school_class.homeroom_teacher_id = changes["homeroom_teacher_id"]
    db.commit()
    db.refresh(school_class)
    return school_class


def delete_class(db: Session, *, class_id: int) -> None:
    school_class = get_or_404(db, SchoolClass, class_id, "Class")
    _ensure_unused(
        "Class",
        [
            ("student(s)", db.query(Student).filter(Student.class_id == school_class.id)),
            ("schedule slot(s)", db.query(ScheduleSlot).filter(ScheduleSlot.class_id == school_class.id)),
        ],
    )
    db.delete(school_class)
    db.commit()
    logger.info(f"Deleted class {class_id}")


# ── People ───────────────────────────────────────────────────────────


def create_teacher(
    db: Session,
    *,
    name: str,
    email: str,
    raw_password: str,
    employee_number: str | None,
    phone: str | None,
    homeroom: bool,
) -> Teacher:
    if employee_number and db.query(Teacher).filter(Teacher.employee_number == employee_number).first():
        raise HTTPException(status_code=409, detail="Employee number already exists")
    role = UserRole.HOMEROOM_TEACHER if homeroom else UserRole.TEACHER
    user = _new_user(db, name=name, email=email, raw_password=raw_password, role=role)
    teacher = Teacher(user_id=user.id, name=user.name, employee_number=employee_number, phone=phone)
    db.add(teacher)
    db.commit()
    db.refresh(teacher)
    return teacher


def create_student(
    db: Session,
    *,
    name: str,
    email: str,
    raw_password: str,
    student_number: str,
    class_id: int | None,
) -> Student:
    student_number = student_number.strip()
    if db.query(Student).filter(Student.student_number == student_number).first():
        raise HTTPException(status_code=409, detail="Student number already exists")
    if class_id is not None:
        require_reference(db, SchoolClass, class_id, "Class")
    user = _new_user(db, name=name, email=email, raw_password=raw_password, role=UserRole.STUDENT)
    student = Student(user_id=user.id, name=user.name, student_number=student_number, class_id=class_id)
    db.add(student)
    db.commit()
    db.refresh(student)
    return student


def update_student_class(db: Session, *, student_id: int, class_id: int | None) -> Student:
    student = get_or_404(db, Student, student_id, "Student")
    if class_id is not None:
        require_reference(db, SchoolClass, class_id, "Class")
    student.class_id = class_id
    db.commit()
    db.refresh(student)
    return student


def create_parent(
    db: Session,
    *,
    name: str,
    email: str,
    raw_password: str,
    phone: str | None,
    student_ids: list[int],
) -> Parent:
    children = [require_reference(db, Student, student_id, "Student") for student_id in dict.fromkeys(student_ids)]
    user = _new_user(db, name=name, email=email, raw_password=raw_password, role=UserRole.PARENT)
    parent = Parent(user_id=user.id, name=user.name, phone=phone, children=children)
    db.add(parent)
    db.commit()
    db.refresh(parent)
    return parent


def teacher_for_user(db: Session, user: User) -> Teacher:
    teacher = db.query(Teacher).filter(Teacher.user_id == user.id).first()
    if not teacher:
        raise HTTPException(status_code=404, detail="Teacher record not found")
    return teacher


def student_for_user(db: Session, user: User) -> Student:
    student = db.query(Student).filter(Student.user_id == user.id).first()
    if not student:
        raise HTTPException(status_code=404, detail="Student record not found")
    return student


def parent_for_user(db: Session, user: User) -> Parent:
    parent = db.query(Parent).filter(Parent.user_id == user.id).first()
    if not parent:
        raise HTTPException(status_code=404, detail="Parent record not found")
    return parent
