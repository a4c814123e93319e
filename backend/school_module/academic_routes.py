from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from .database import get_db_session
from .middleware import STAFF_ROLES, require_roles
from .models import AcademicYear, Parent, SchoolClass, Student, Subject, Teacher, Term, User, UserRole
from .schemas import (
    AcademicYearCreateRequest,
    AcademicYearOut,
    AcademicYearUpdateRequest,
    ClassCreateRequest,
    ClassOut,
    ClassUpdateRequest,
    ParentCreateRequest,
    ParentOut,
    StudentClassUpdateRequest,
    StudentCreateRequest,
    StudentOut,
    SubjectCreateRequest,
    SubjectOut,
    SubjectUpdateRequest,
    TeacherCreateRequest,
    TeacherOut,
    TermCreateRequest,
    TermOut,
    TermUpdateRequest,
)
from .services import (
    activate_term,
    active_term,
    create_academic_year,
    create_class,
    create_parent,
    create_student,
    create_subject,
    create_teacher,
    create_term,
    delete_academic_year,
    delete_class,
    delete_subject,
    delete_term,
    get_or_404,
    parent_for_user,
    update_academic_year,
    update_class,
    update_student_class,
    update_subject,
    update_term,
)

router = APIRouter(prefix="/api/v1", tags=["Academics"])

admin_only = require_roles(UserRole.ADMIN)
staff_only = require_roles(*STAFF_ROLES)
signed_in = require_roles(*UserRole)


def term_out(term: Term) -> TermOut:
    return TermOut(
        id=term.id,
        academic_year_id=term.academic_year_id,
        academic_year=term.academic_year.name,
        name=term.name,
        is_active=term.is_active,
    )


def subject_out(subject: Subject) -> SubjectOut:
    return SubjectOut(id=subject.id, code=subject.code, name=subject.name, passing_grade=subject.passing_grade)


def class_out(school_class: SchoolClass) -> ClassOut:
    return ClassOut(
        id=school_class.id,
        name=school_class.name,
        grade_level=school_class.grade_level,
        academic_year_id=school_class.academic_year_id,
        homeroom_teacher_id=school_class.homeroom_teacher_id,
    )


def teacher_out(teacher: Teacher) -> TeacherOut:
    return TeacherOut(
        id=teacher.id,
        user_id=teacher.user_id,
        name=teacher.name,
        email=teacher.user.email,
        employee_number=teacher.employee_number,
        phone=teacher.phone,
    )


def student_out(student: Student) -> StudentOut:
    return StudentOut(
        id=student.id,
        user_id=student.user_id,
        name=student.name,
        email=student.user.email,
        student_number=student.student_number,
        class_id=student.class_id,
    )


def parent_out(parent: Parent) -> ParentOut:
    return ParentOut(
        id=parent.id,
        user_id=parent.user_id,
        name=parent.name,
        email=parent.user.email,
        phone=parent.phone,
        student_ids=[child.id for child in parent.children],
    )


# ── Academic years & terms ───────────────────────────────────────────


@router.post("/academic-years", response_model=AcademicYearOut, status_code=status.HTTP_201_CREATED)
def add_academic_year(
    payload: AcademicYearCreateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(admin_only),
):
    year = create_academic_year(db, name=payload.name, is_active=payload.is_active)
    return AcademicYearOut(id=year.id, name=year.name, is_active=year.is_active)


@router.get("/academic-years", response_model=list[AcademicYearOut])
def list_academic_years(db: Session = Depends(get_db_session), _: User = Depends(staff_only)):
    years = db.query(AcademicYear).order_by(AcademicYear.name.desc()).all()
    return [AcademicYearOut(id=year.id, name=year.name, is_active=year.is_active) for year in years]


@router.put("/academic-years/{year_id}", response_model=AcademicYearOut)
def edit_academic_year(
    year_id: int,
    payload: AcademicYearUpdateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(admin_only),
):
    year = update_academic_year(db, year_id=year_id, changes=payload.model_dump(exclude_unset=True))
    return AcademicYearOut(id=year.id, name=year.name, is_active=year.is_active)


@router.delete("/academic-years/{year_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_academic_year(year_id: int, db: Session = Depends(get_db_session), _: User = Depends(admin_only)):
    delete_academic_year(db, year_id=year_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/terms", response_model=TermOut, status_code=status.HTTP_201_CREATED)
def add_term(payload: TermCreateRequest, db: Session = Depends(get_db_session), _: User = Depends(admin_only)):
    term = create_term(db, academic_year_id=payload.academic_year_id, name=payload.name, is_active=payload.is_active)
    return term_out(term)


@router.get("/terms", response_model=list[TermOut])
def list_terms(db: Session = Depends(get_db_session), _: User = Depends(staff_only)):
    return [term_out(term) for term in db.query(Term).order_by(Term.id.asc()).all()]


@router.get("/terms/active", response_model=TermOut)
def get_active_term(db: Session = Depends(get_db_session), _: User = Depends(signed_in)):
    return term_out(active_term(db))


@router.post("/terms/{term_id}/activate", response_model=TermOut)
def activate(term_id: int, db: Session = Depends(get_db_session), _: User = Depends(admin_only)):
    return term_out(activate_term(db, term_id=term_id))


@router.put("/terms/{term_id}", response_model=TermOut)
def edit_term(
    term_id: int,
    payload: TermUpdateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(admin_only),
):
    return term_out(update_term(db, term_id=term_id, changes=payload.model_dump(exclude_unset=True)))


@router.delete("/terms/{term_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_term(term_id: int, db: Session = Depends(get_db_session), _: User = Depends(admin_only)):
    delete_term(db, term_id=term_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Subjects & classes ───────────────────────────────────────────────


@router.post("/subjects", response_model=SubjectOut, status_code=status.HTTP_201_CREATED)
def add_subject(payload: SubjectCreateRequest, db: Session = Depends(get_db_session), _: User = Depends(admin_only)):
    subject = create_subject(db, code=payload.code, name=payload.name, passing_grade=payload.passing_grade)
    return subject_out(subject)


@router.get("/subjects", response_model=list[SubjectOut])
def list_subjects(db: Session = Depends(get_db_session), _: User = Depends(staff_only)):
    return [subject_out(subject) for subject in db.query(Subject).order_by(Subject.code.asc()).all()]


@router.put("/subjects/{subject_id}", response_model=SubjectOut)
def edit_subject(
    subject_id: int,
    payload: SubjectUpdateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(admin_only),
):
    return subject_out(update_subject(db, subject_id=subject_id, changes=payload.model_dump(exclude_unset=True)))


@router.delete("/subjects/{subject_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_subject(subject_id: int, db: Session = Depends(get_db_session), _: User = Depends(admin_only)):
    delete_subject(db, subject_id=subject_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/classes", response_model=ClassOut, status_code=status.HTTP_201_CREATED)
def add_class(payload: ClassCreateRequest, db: Session = Depends(get_db_session), _: User = Depends(admin_only)):
    school_class = create_class(
        db,
        name=payload.name,
        grade_level=payload.grade_level,
        academic_year_id=payload.academic_year_id,
        homeroom_teacher_id=payload.homeroom_teacher_id,
    )
    return class_out(school_class)


@router.get("/classes", response_model=list[ClassOut])
def list_classes(
    academic_year_id: int | None = None,
    db: Session = Depends(get_db_session),
    _: User = Depends(staff_only),
):
    query = db.query(SchoolClass)
    if academic_year_id is not None:
        query = query.filter(SchoolClass.academic_year_id == academic_year_id)
    return [class_out(school_class) for school_class in query.order_by(SchoolClass.name.asc()).all()]


@router.get("/classes/{class_id}", response_model=ClassOut)
def get_class(class_id: int, db: Session = Depends(get_db_session), _: User = Depends(staff_only)):
    return class_out(get_or_404(db, SchoolClass, class_id, "Class"))


@router.put("/classes/{class_id}", response_model=ClassOut)
def edit_class(
    class_id: int,
    payload: ClassUpdateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(admin_only),
):
    return class_out(update_class(db, class_id=class_id, changes=payload.model_dump(exclude_unset=True)))


@router.delete("/classes/{class_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_class(class_id: int, db: Session = Depends(get_db_session), _: User = Depends(admin_only)):
    delete_class(db, class_id=class_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/classes/{class_id}/students", response_model=list[StudentOut])
def list_class_students(class_id: int, db: Session = Depends(get_db_session), _: User = Depends(staff_only)):
    get_or_404(db, SchoolClass, class_id, "Class")
    students = db.query(Student).filter(Student.class_id == class_id).order_by(Student.name.asc()).all()
    return [student_out(student) for student in students]


# ── People ───────────────────────────────────────────────────────────


@router.post("/teachers", response_model=TeacherOut, status_code=status.HTTP_201_CREATED)
def add_teacher(payload: TeacherCreateRequest, db: Session = Depends(get_db_session), _: User = Depends(admin_only)):
    teacher = create_teacher(
        db,
        name=payload.name,
        email=payload.email,
        raw_password=payload.password,
        employee_number=payload.employee_number,
        phone=payload.phone,
        homeroom=payload.homeroom,
    )
    return teacher_out(teacher)


@router.get("/teachers", response_model=list[TeacherOut])
def list_teachers(db: Session = Depends(get_db_session), _: User = Depends(staff_only)):
    return [teacher_out(teacher) for teacher in db.query(Teacher).order_by(Teacher.name.asc()).all()]


@router.get("/teachers/{teacher_id}", response_model=TeacherOut)
def get_teacher(teacher_id: int, db: Session = Depends(get_db_session), _: User = Depends(staff_only)):
    return teacher_out(get_or_404(db, Teacher, teacher_id, "Teacher"))


@router.post("/students", response_model=StudentOut, status_code=status.HTTP_201_CREATED)
def add_student(payload: StudentCreateRequest, db: Session = Depends(get_db_session), _: User = Depends(admin_only)):
    student = create_student(
        db,
        name=payload.name,
        email=payload.email,
        raw_password=payload.password,
        student_number=payload.student_number,
        class_id=payload.class_id,
    )
    return student_out(student)


@router.get("/students/{student_id}", response_model=StudentOut)
def get_student(student_id: int, db: Session = Depends(get_db_session), _: User = Depends(staff_only)):
    return student_out(get_or_404(db, Student, student_id, "Student"))


@router.patch("/students/{student_id}/class", response_model=StudentOut)
def move_student(
    student_id: int,
    payload: StudentClassUpdateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(admin_only),
):
    return student_out(update_student_class(db, student_id=student_id, class_id=payload.class_id))


@router.post("/parents", response_model=ParentOut, status_code=status.HTTP_201_CREATED)
def add_parent(payload: ParentCreateRequest, db: Session = Depends(get_db_session), _: User = Depends(admin_only)):
    parent = create_parent(
        db,
        name=payload.name,
        email=payload.email,
        raw_password=payload.password,
        phone=payload.phone,
        student_ids=payload.student_ids,
    )
    return parent_out(parent)


@router.get("/parents/me/children", response_model=list[StudentOut])
def my_children(
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_roles(UserRole.PARENT)),
):
    parent = parent_for_user(db, current_user)
    return [student_out(child) for child in parent.children]
