import logging
from dataclasses import dataclass, field
from datetime import date

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from .models import (
    Attendance,
    AttendanceStatus,
    Grade,
    ReportCard,
    ReportCardStatus,
    ScheduleSlot,
    Student,
    Subject,
    Term,
    User,
)
from .services import get_or_404, require_reference

logger = logging.getLogger(__name__)

# Daily work 40%, midterm 30%, final exam 30%.
SCORE_WEIGHTS = (0.4, 0.3, 0.3)

LETTER_THRESHOLDS = ((90, "A"), (80, "B"), (70, "C"), (60, "D"))


def compute_final_score(daily_score: float, midterm_score: float, final_exam_score: float) -> float:
    daily_weight, midterm_weight, final_weight = SCORE_WEIGHTS
    return round(daily_score * daily_weight + midterm_score * midterm_weight + final_exam_score * final_weight, 2)


def letter_for(score: float) -> str:
    for threshold, letter in LETTER_THRESHOLDS:
        if score >= threshold:
            return letter
    return "E"


# ── Attendance ───────────────────────────────────────────────────────


@dataclass
class AttendanceRecap:
    counts: dict[AttendanceStatus, int] = field(default_factory=lambda: {s: 0 for s in AttendanceStatus})

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def presence_percentage(self) -> float:
        if not self.total:
            return 0.0
        return round(self.counts[AttendanceStatus.PRESENT] / self.total * 100, 2)


def _existing_attendance(db: Session, *, slot_id: int, student_id: int, attended_on: date) -> Attendance | None:
    return (
        db.query(Attendance)
        .filter(
            Attendance.slot_id == slot_id,
            Attendance.student_id == student_id,
            Attendance.attended_on == attended_on,
        )
        .first()
    )


def record_attendance(
    db: Session,
    *,
    slot_id: int,
    student_id: int,
    attended_on: date,
    status: AttendanceStatus,
    note: str | None,
) -> Attendance:
    require_reference(db, ScheduleSlot, slot_id, "Schedule slot")
    require_reference(db, Student, student_id, "Student")
    if _existing_attendance(db, slot_id=slot_id, student_id=student_id, attended_on=attended_on):
        raise HTTPException(status_code=409, detail="Attendance already recorded for this slot and date")
    record = Attendance(slot_id=slot_id, student_id=student_id, attended_on=attended_on, status=status, note=note)
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def record_bulk_attendance(
    db: Session,
    *,
    slot_id: int,
    attended_on: date,
    entries: list[tuple[int, AttendanceStatus, str | None]],
) -> tuple[list[Attendance], list[int]]:
    require_reference(db, ScheduleSlot, slot_id, "Schedule slot")
    created: list[Attendance] = []
    skipped: list[int] = []
    for student_id, status, note in entries:
        require_reference(db, Student, student_id, "Student")
        if _existing_attendance(db, slot_id=slot_id, student_id=student_id, attended_on=attended_on):
            skipped.append(student_id)
            continue
        record = Attendance(slot_id=slot_id, student_id=student_id, attended_on=attended_on, status=status, note=note)
        db.add(record)
        # Keeps a student listed twice in one request from being inserted twice.
        db.flush()
        created.append(record)
    db.commit()
    for record in created:
        db.refresh(record)
    return created, skipped


def update_attendance(db: Session, *, attendance_id: int, changes: dict) -> Attendance:
    record = get_or_404(db, Attendance, attendance_id, "Attendance record")
    if changes.get("status") is not None:
        record.status = changes["status"]
    if "note" in changes:
        record.note = changes["note"]
    db.commit()
    db.refresh(record)
    return record


def delete_attendance(db: Session, *, attendance_id: int) -> None:
    record = get_or_404(db, Attendance, attendance_id, "Attendance record")
    db.delete(record)
    db.commit()


def attendance_recap(db: Session, *, student_id: int, term_id: int) -> AttendanceRecap:
    rows = (
        db.query(Attendance.status)
        .join(ScheduleSlot, ScheduleSlot.id == Attendance.slot_id)
        .filter(Attendance.student_id == student_id, ScheduleSlot.term_id == term_id)
        .all()
    )
    recap = AttendanceRecap()
    for (status,) in rows:
        recap.counts[status] += 1
    return recap


def class_attendance_recap(db: Session, *, class_id: int, term_id: int) -> list[tuple[Student, AttendanceRecap]]:
    """Recap every student currently in the class, ordered by name."""
    students = db.query(Student).filter(Student.class_id == class_id).order_by(Student.name.asc()).all()
    recaps = {student.id: AttendanceRecap() for student in students}
    rows = (
        db.query(Attendance.student_id, Attendance.status, func.count(Attendance.id))
        .join(ScheduleSlot, ScheduleSlot.id == Attendance.slot_id)
        .filter(Attendance.student_id.in_(list(recaps)), ScheduleSlot.term_id == term_id)
        .group_by(Attendance.student_id, Attendance.status)
        .all()
    )
    for student_id, status, count in rows:
        recaps[student_id].counts[status] = count
    return [(student, recaps[student.id]) for student in students]


# ── Grades ───────────────────────────────────────────────────────────


def record_grade(
    db: Session,
    *,
    student_id: int,
    subject_id: int,
    term_id: int,
    daily_score: float,
    midterm_score: float,
    final_exam_score: float,
) -> Grade:
    require_reference(db, Student, student_id, "Student")
    require_reference(db, Subject, subject_id, "Subject")
    require_reference(db, Term, term_id, "Term")
    exists = (
        db.query(Grade)
        .filter(Grade.student_id == student_id, Grade.subject_id == subject_id, Grade.term_id == term_id)
        .first()
    )
    if exists:
        raise HTTPException(status_code=409, detail="Grade already recorded for this subject and term")

    final_score = compute_final_score(daily_score, midterm_score, final_exam_score)
    grade = Grade(
        student_id=student_id,
        subject_id=subject_id,
        term_id=term_id,
        daily_score=daily_score,
        midterm_score=midterm_score,
        final_exam_score=final_exam_score,
        final_score=final_score,
        letter=letter_for(final_score),
    )
    db.add(grade)
    db.commit()
    db.refresh(grade)
    return grade


def update_grade(
    db: Session,
    *,
    grade_id: int,
    daily_score: float | None,
    midterm_score: float | None,
    final_exam_score: float | None,
) -> Grade:
    grade = get_or_404(db, Grade, grade_id, "Grade")
    if daily_score is not None:
        grade.daily_score = daily_score
    if midterm_score is not None:
        grade.midterm_score = midterm_score
    if final_exam_score is not None:
        grade.final_exam_score = final_exam_score
    grade.final_score = compute_final_score(grade.daily_score, grade.midterm_score, grade.final_exam_score)
    grade.letter = letter_for(grade.final_score)
    db.commit()
    db.refresh(grade)
    return grade


def delete_grade(db: Session, *, grade_id: int) -> None:
    grade = get_or_404(db, Grade, grade_id, "Grade")
    db.delete(grade)
    db.commit()


def grades_for(db: Session, *, student_id: int, term_id: int) -> list[Grade]:
    return (
        db.query(Grade)
        .options(joinedload(Grade.subject))
        .filter(Grade.student_id == student_id, Grade.term_id == term_id)
        .order_by(Grade.subject_id.asc())
        .all()
    )


def average_score(grades: list[Grade]) -> float:
    if not grades:
        return 0.0
    return round(sum(grade.final_score for grade in grades) / len(grades), 2)


# ── Report cards ─────────────────────────────────────────────────────


def generate_report_card(db: Session, *, student_id: int, term_id: int, actor: User) -> ReportCard:
    require_reference(db, Student, student_id, "Student")
    require_reference(db, Term, term_id, "Term")
    grades = grades_for(db, student_id=student_id, term_id=term_id)
    if not grades:
        raise HTTPException(status_code=400, detail="No grades recorded for this student in this term")

    report_card = ReportCard(
        student_id=student_id,
        term_id=term_id,
        status=ReportCardStatus.PUBLISHED,
        created_by_user_id=actor.id,
    )
    db.add(report_card)
    db.commit()
    db.refresh(report_card)
    logger.info(f"Generated report card {report_card.id} for student {student_id} term {term_id}")
    return report_card


def delete_report_card(db: Session, *, report_card_id: int) -> None:
    report_card = get_or_404(db, ReportCard, report_card_id, "Report card")
    db.delete(report_card)
    db.commit()
    logger.info(f"Deleted report card {report_card_id}")
