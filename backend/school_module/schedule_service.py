import logging
import threading
from dataclasses import dataclass

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from .models import Attendance, SchoolClass, ScheduleSlot, Subject, Teacher, Term
from .schemas import ScheduleSlotCreateRequest, ScheduleSlotUpdateRequest
from .scheduling import (
    ConflictResult,
    InvalidTimeRangeError,
    SlotRequest,
    detect_conflicts,
    ensure_valid_range,
    parse_clock,
)
from .services import get_or_404, require_reference

logger = logging.getLogger(__name__)

# Check-then-write must not interleave between requests, otherwise two
# writers can both pass validation against the same snapshot.
_schedule_write_lock = threading.Lock()


class ScheduleConflictError(Exception):
    def __init__(self, message: str, result: ConflictResult):
        super().__init__(message)
        self.message = message
        self.result = result


@dataclass
class BulkItemResult:
    index: int
    created: bool
    message: str
    conflict: ConflictResult | None = None
    slot: ScheduleSlot | None = None


def _slot_request(payload: ScheduleSlotCreateRequest, exclude_id: int | None = None) -> SlotRequest:
    start_minute = parse_clock(payload.start_time)
    end_minute = parse_clock(payload.end_time)
    ensure_valid_range(start_minute, end_minute)
    return SlotRequest(
        term_id=payload.term_id,
        class_id=payload.class_id,
        teacher_id=payload.teacher_id,
        day_of_week=payload.day_of_week,
        start_minute=start_minute,
        end_minute=end_minute,
        exclude_id=exclude_id,
    )


def _check_references(db: Session, payload: ScheduleSlotCreateRequest) -> None:
    require_reference(db, SchoolClass, payload.class_id, "Class")
    require_reference(db, Teacher, payload.teacher_id, "Teacher")
    require_reference(db, Subject, payload.subject_id, "Subject")
    require_reference(db, Term, payload.term_id, "Term")


def get_slot(db: Session, slot_id: int) -> ScheduleSlot:
    return get_or_404(db, ScheduleSlot, slot_id, "Schedule slot")


def list_slots(
    db: Session,
    *,
    term_id: int | None = None,
    class_id: int | None = None,
    teacher_id: int | None = None,
    day_of_week: int | None = None,
) -> list[ScheduleSlot]:
    query = db.query(ScheduleSlot).options(
        joinedload(ScheduleSlot.school_class),
        joinedload(ScheduleSlot.teacher),
        joinedload(ScheduleSlot.subject),
    )
    if term_id is not None:
        query = query.filter(ScheduleSlot.term_id == term_id)
    if class_id is not None:
        query = query.filter(ScheduleSlot.class_id == class_id)
    if teacher_id is not None:
        query = query.filter(ScheduleSlot.teacher_id == teacher_id)
    if day_of_week is not None:
        query = query.filter(ScheduleSlot.day_of_week == day_of_week)
    return query.order_by(ScheduleSlot.day_of_week.asc(), ScheduleSlot.start_minute.asc(), ScheduleSlot.id.asc()).all()


def validate_slot(db: Session, payload: ScheduleSlotCreateRequest) -> ConflictResult:
    return detect_conflicts(db, _slot_request(payload))


def _insert_slot(db: Session, payload: ScheduleSlotCreateRequest, request: SlotRequest) -> ScheduleSlot:
    result = detect_conflicts(db, request)
    if result.has_conflict:
        raise ScheduleConflictError("Schedule not saved, conflicting slots found", result)
    slot = ScheduleSlot(
        class_id=payload.class_id,
        teacher_id=payload.teacher_id,
        subject_id=payload.subject_id,
        term_id=payload.term_id,
        day_of_week=payload.day_of_week,
        start_minute=request.start_minute,
        end_minute=request.end_minute,
    )
    db.add(slot)
    db.commit()
    db.refresh(slot)
    logger.info(
        f"Created schedule slot {slot.id} (term={slot.term_id} class={slot.class_id} "
        f"teacher={slot.teacher_id} day={slot.day_of_week})"
    )
    return slot


def create_slot(db: Session, payload: ScheduleSlotCreateRequest) -> ScheduleSlot:
    request = _slot_request(payload)
    _check_references(db, payload)
    with _schedule_write_lock:
        return _insert_slot(db, payload, request)


def update_slot(db: Session, *, slot_id: int, payload: ScheduleSlotUpdateRequest) -> ScheduleSlot:
    slot = get_slot(db, slot_id)

    teacher_id = payload.teacher_id or slot.teacher_id
    subject_id = payload.subject_id or slot.subject_id
    day_of_week = payload.day_of_week or slot.day_of_week
    start_minute = parse_clock(payload.start_time) if payload.start_time else slot.start_minute
    end_minute = parse_clock(payload.end_time) if payload.end_time else slot.end_minute
    ensure_valid_range(start_minute, end_minute)

    if teacher_id != slot.teacher_id:
        require_reference(db, Teacher, teacher_id, "Teacher")
    if subject_id != slot.subject_id:
        require_reference(db, Subject, subject_id, "Subject")

    request = SlotRequest(
        term_id=slot.term_id,
        class_id=slot.class_id,
        teacher_id=teacher_id,
        day_of_week=day_of_week,
        start_minute=start_minute,
        end_minute=end_minute,
        exclude_id=slot.id,
    )
    with _schedule_write_lock:
        result = detect_conflicts(db, request)
        if result.has_conflict:
            raise ScheduleConflictError("Update rejected, the new schedule conflicts", result)
        slot.teacher_id = teacher_id
        slot.subject_id = subject_id
        slot.day_of_week = day_of_week
        slot.start_minute = start_minute
        slot.end_minute = end_minute
        db.commit()
    db.refresh(slot)
    logger.info(f"Updated schedule slot {slot.id}")
    return slot


def delete_slot(db: Session, *, slot_id: int) -> None:
    slot = get_slot(db, slot_id)
    attendance_count = db.query(Attendance).filter(Attendance.slot_id == slot.id).count()
    if attendance_count:
        raise HTTPException(
            status_code=400,
            detail=f"Schedule slot cannot be deleted, it has {attendance_count} attendance record(s)",
        )
    db.delete(slot)
    db.commit()
    logger.info(f"Deleted schedule slot {slot_id}")


def bulk_create_slots(db: Session, payloads: list[ScheduleSlotCreateRequest]) -> list[BulkItemResult]:
    """Create slots one by one; each item succeeds or fails on its own.

    Items are checked in order, so a later item is also checked against the
    slots created earlier in the same batch.
    """
    results: list[BulkItemResult] = []
    for index, payload in enumerate(payloads, start=1):
        try:
            request = _slot_request(payload)
            _check_references(db, payload)
            with _schedule_write_lock:
                slot = _insert_slot(db, payload, request)
        except InvalidTimeRangeError as exc:
            results.append(BulkItemResult(index=index, created=False, message=str(exc)))
        except HTTPException as exc:
            results.append(BulkItemResult(index=index, created=False, message=str(exc.detail)))
        except ScheduleConflictError as exc:
            results.append(BulkItemResult(index=index, created=False, message="Schedule conflict", conflict=exc.result))
        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Failed to save bulk schedule item {index}")
            results.append(BulkItemResult(index=index, created=False, message="Failed to save"))
        else:
            results.append(BulkItemResult(index=index, created=True, message="Saved", slot=slot))
    return results
