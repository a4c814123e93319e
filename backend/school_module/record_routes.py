from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from .database import get_db_session
from .middleware import STAFF_ROLES, has_role, require_roles
from .models import Attendance, AttendanceStatus, Grade, ReportCard, SchoolClass, Student, Term, User, UserRole
from .records import (
    AttendanceRecap,
    attendance_recap,
    average_score,
    class_attendance_recap,
    delete_attendance,
    delete_grade,
    delete_report_card,
    generate_report_card,
    grades_for,
    letter_for,
    record_attendance,
    record_bulk_attendance,
    record_grade,
    update_attendance,
    update_grade,
)
from .schemas import (
    AttendanceBulkOut,
    AttendanceBulkRequest,
    AttendanceCreateRequest,
    AttendanceOut,
    AttendanceRecapOut,
    AttendanceUpdateRequest,
    ClassAttendanceRecapOut,
    GradeCreateRequest,
    GradeOut,
    GradeSummaryOut,
    GradeUpdateRequest,
    ReportCardCreateRequest,
    ReportCardOut,
)
from .services import get_or_404, parent_for_user, student_for_user

router = APIRouter(prefix="/api/v1", tags=["Attendance, Grades & Report Cards"])

teachers_only = require_roles(UserRole.ADMIN, UserRole.TEACHER)
students_only = require_roles(UserRole.STUDENT)
anyone = require_roles(*STAFF_ROLES, UserRole.STUDENT, UserRole.PARENT)


def ensure_can_view_student(db: Session, user: User, student_id: int) -> None:
    if has_role(user, *STAFF_ROLES):
        return
    if user.role == UserRole.STUDENT and student_for_user(db, user).id == student_id:
        return
    if user.role == UserRole.PARENT and student_id in {child.id for child in parent_for_user(db, user).children}:
        return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to view this student")


def attendance_out(record: Attendance) -> AttendanceOut:
    return AttendanceOut(
        id=record.id,
        slot_id=record.slot_id,
        student_id=record.student_id,
        attended_on=record.attended_on,
        status=record.status,
        note=record.note,
    )


def recap_out(
    recap: AttendanceRecap,
    *,
    student_id: int,
    term_id: int,
    student_name: str | None = None,
) -> AttendanceRecapOut:
    return AttendanceRecapOut(
        student_id=student_id,
        student_name=student_name,
        term_id=term_id,
        present=recap.counts[AttendanceStatus.PRESENT],
        excused=recap.counts[AttendanceStatus.EXCUSED],
        sick=recap.counts[AttendanceStatus.SICK],
        absent=recap.counts[AttendanceStatus.ABSENT],
        total=recap.total,
        presence_percentage=recap.presence_percentage,
    )


def grade_out(grade: Grade) -> GradeOut:
    return GradeOut(
        id=grade.id,
        student_id=grade.student_id,
        subject_id=grade.subject_id,
        subject_name=grade.subject.name,
        term_id=grade.term_id,
        daily_score=grade.daily_score,
        midterm_score=grade.midterm_score,
        final_exam_score=grade.final_exam_score,
        final_score=grade.final_score,
        letter=grade.letter,
        passed=grade.final_score >= grade.subject.passing_grade,
    )


def grade_summary(db: Session, *, student_id: int, term_id: int) -> GradeSummaryOut:
    grades = grades_for(db, student_id=student_id, term_id=term_id)
    average = average_score(grades)
    return GradeSummaryOut(
        student_id=student_id,
        term_id=term_id,
        grades=[grade_out(grade) for grade in grades],
        average_score=average,
        letter=letter_for(average),
    )


def report_card_out(db: Session, report_card: ReportCard) -> ReportCardOut:
    student = report_card.student
    # Listed grades, average and letter all come from the same read.
    summary = grade_summary(db, student_id=student.id, term_id=report_card.term_id)
    recap = attendance_recap(db, student_id=student.id, term_id=report_card.term_id)
    return ReportCardOut(
        id=report_card.id,
        student_id=student.id,
        student_name=student.name,
        class_name=student.school_class.name if student.school_class else None,
        term_id=report_card.term_id,
        term_name=f"{report_card.term.name} {report_card.term.academic_year.name}",
        status=report_card.status,
        grades=summary.grades,
        average_score=summary.average_score,
        letter=summary.letter,
        attendance=recap_out(recap, student_id=student.id, term_id=report_card.term_id),
        created_at=report_card.created_at,
    )


def _report_cards_of(db: Session, student_id: int, term_id: int | None) -> list[ReportCardOut]:
    query = db.query(ReportCard).filter(ReportCard.student_id == student_id)
    if term_id is not None:
        get_or_404(db, Term, term_id, "Term")
        query = query.filter(ReportCard.term_id == term_id)
    return [report_card_out(db, card) for card in query.order_by(ReportCard.created_at.desc()).all()]


# ── Attendance ───────────────────────────────────────────────────────


@router.post("/attendance", response_model=AttendanceOut, status_code=status.HTTP_201_CREATED)
def add_attendance(
    payload: AttendanceCreateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(teachers_only),
):
    record = record_attendance(
        db,
        slot_id=payload.slot_id,
        student_id=payload.student_id,
        attended_on=payload.attended_on,
        status=payload.status,
        note=payload.note,
    )
    return attendance_out(record)


@router.post("/attendance/bulk", response_model=AttendanceBulkOut, status_code=status.HTTP_201_CREATED)
def add_bulk_attendance(
    payload: AttendanceBulkRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(teachers_only),
):
    created, skipped = record_bulk_attendance(
        db,
        slot_id=payload.slot_id,
        attended_on=payload.attended_on,
        entries=[(entry.student_id, entry.status, entry.note) for entry in payload.entries],
    )
    return AttendanceBulkOut(created=[attendance_out(record) for record in created], skipped_student_ids=skipped)


@router.get("/attendance", response_model=list[AttendanceOut])
def list_attendance(
    slot_id: int,
    attended_on: date | None = None,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_roles(*STAFF_ROLES)),
):
    query = db.query(Attendance).filter(Attendance.slot_id == slot_id)
    if attended_on is not None:
        query = query.filter(Attendance.attended_on == attended_on)
    records = query.order_by(Attendance.attended_on.asc(), Attendance.student_id.asc()).all()
    return [attendance_out(record) for record in records]


@router.get("/attendance/mine", response_model=AttendanceRecapOut)
def my_attendance(
    term_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(students_only),
):
    student = student_for_user(db, current_user)
    recap = attendance_recap(db, student_id=student.id, term_id=term_id)
    return recap_out(recap, student_id=student.id, term_id=term_id, student_name=student.name)


@router.get("/attendance/recap", response_model=AttendanceRecapOut)
def get_attendance_recap(
    student_id: int,
    term_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(anyone),
):
    student = get_or_404(db, Student, student_id, "Student")
    ensure_can_view_student(db, current_user, student_id)
    recap = attendance_recap(db, student_id=student_id, term_id=term_id)
    return recap_out(recap, student_id=student_id, term_id=term_id, student_name=student.name)


@router.get("/attendance/recap/classes/{class_id}", response_model=ClassAttendanceRecapOut)
def get_class_attendance_recap(
    class_id: int,
    term_id: int,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_roles(*STAFF_ROLES)),
):
    school_class = get_or_404(db, SchoolClass, class_id, "Class")
    get_or_404(db, Term, term_id, "Term")
    rows = class_attendance_recap(db, class_id=class_id, term_id=term_id)
    return ClassAttendanceRecapOut(
        class_id=school_class.id,
        class_name=school_class.name,
        term_id=term_id,
        students=[
            recap_out(recap, student_id=student.id, term_id=term_id, student_name=student.name)
            for student, recap in rows
        ],
    )


@router.patch("/attendance/{attendance_id}", response_model=AttendanceOut)
def change_attendance(
    attendance_id: int,
    payload: AttendanceUpdateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(teachers_only),
):
    record = update_attendance(db, attendance_id=attendance_id, changes=payload.model_dump(exclude_unset=True))
    return attendance_out(record)


@router.delete("/attendance/{attendance_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_attendance(attendance_id: int, db: Session = Depends(get_db_session), _: User = Depends(teachers_only)):
    delete_attendance(db, attendance_id=attendance_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Grades ───────────────────────────────────────────────────────────


@router.post("/grades", response_model=GradeOut, status_code=status.HTTP_201_CREATED)
def add_grade(payload: GradeCreateRequest, db: Session = Depends(get_db_session), _: User = Depends(teachers_only)):
    grade = record_grade(
        db,
        student_id=payload.student_id,
        subject_id=payload.subject_id,
        term_id=payload.term_id,
        daily_score=payload.daily_score,
        midterm_score=payload.midterm_score,
        final_exam_score=payload.final_exam_score,
    )
    return grade_out(grade)


@router.patch("/grades/{grade_id}", response_model=GradeOut)
def change_grade(
    grade_id: int,
    payload: GradeUpdateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(teachers_only),
):
    grade = update_grade(
        db,
        grade_id=grade_id,
        daily_score=payload.daily_score,
        midterm_score=payload.midterm_score,
        final_exam_score=payload.final_exam_score,
    )
    return grade_out(grade)


@router.delete("/grades/{grade_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_grade(grade_id: int, db: Session = Depends(get_db_session), _: User = Depends(require_roles(UserRole.ADMIN))):
    delete_grade(db, grade_id=grade_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/grades/summary", response_model=GradeSummaryOut)
def get_grade_summary(
    student_id: int,
    term_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(anyone),
):
    get_or_404(db, Student, student_id, "Student")
    ensure_can_view_student(db, current_user, student_id)
    return grade_summary(db, student_id=student_id, term_id=term_id)


@router.get("/grades/mine", response_model=GradeSummaryOut)
def my_grades(term_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(students_only)):
    student = student_for_user(db, current_user)
    return grade_summary(db, student_id=student.id, term_id=term_id)


# ── Report cards ─────────────────────────────────────────────────────


@router.post("/report-cards", response_model=ReportCardOut, status_code=status.HTTP_201_CREATED)
def create_report_card(
    payload: ReportCardCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_roles(UserRole.ADMIN, UserRole.HOMEROOM_TEACHER)),
):
    report_card = generate_report_card(db, student_id=payload.student_id, term_id=payload.term_id, actor=current_user)
    return report_card_out(db, report_card)


@router.get("/report-cards/mine", response_model=list[ReportCardOut])
def my_report_cards(
    term_id: int | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(students_only),
):
    student = student_for_user(db, current_user)
    return _report_cards_of(db, student.id, term_id)


@router.get("/report-cards/{report_card_id}", response_model=ReportCardOut)
def get_report_card(
    report_card_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(anyone),
):
    report_card = get_or_404(db, ReportCard, report_card_id, "Report card")
    ensure_can_view_student(db, current_user, report_card.student_id)
    return report_card_out(db, report_card)


@router.delete("/report-cards/{report_card_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_report_card(
    report_card_id: int,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_roles(UserRole.ADMIN)),
):
    delete_report_card(db, report_card_id=report_card_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/report-cards", response_model=list[ReportCardOut])
def list_report_cards(
    student_id: int,
    term_id: int | None = None,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(anyone),
):
    get_or_404(db, Student, student_id, "Student")
    ensure_can_view_student(db, current_user, student_id)
    return _report_cards_of(db, student_id, term_id)
