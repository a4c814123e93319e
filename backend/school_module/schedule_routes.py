from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from .database import get_db_session
from .middleware import STAFF_ROLES, has_role, require_roles
from .models import SchoolClass, ScheduleSlot, Teacher, User, UserRole
from .schedule_service import (
    ScheduleConflictError,
    bulk_create_slots,
    create_slot,
    delete_slot,
    get_slot,
    list_slots,
    update_slot,
    validate_slot,
)
from .scheduling import (
    ConflictResult,
    InvalidTimeRangeError,
    ScheduleOwner,
    day_name,
    format_clock,
    weekly_schedule_for,
)
from .schemas import (
    BulkScheduleItemOut,
    BulkScheduleOut,
    BulkScheduleRequest,
    ConflictOut,
    ConflictResultOut,
    ScheduleSlotCreateRequest,
    ScheduleSlotOut,
    ScheduleSlotUpdateRequest,
    WeeklyScheduleOut,
)
from .services import get_or_404, student_for_user, teacher_for_user

router = APIRouter(prefix="/api/v1/schedules", tags=["Schedules"])

admin_only = require_roles(UserRole.ADMIN)
readers = require_roles(*STAFF_ROLES, UserRole.STUDENT)


def slot_out(slot: ScheduleSlot) -> ScheduleSlotOut:
    return ScheduleSlotOut(
        id=slot.id,
        class_id=slot.class_id,
        class_name=slot.school_class.name,
        teacher_id=slot.teacher_id,
        teacher_name=slot.teacher.name,
        subject_id=slot.subject_id,
        subject_name=slot.subject.name,
        term_id=slot.term_id,
        day_of_week=slot.day_of_week,
        day_name=day_name(slot.day_of_week),
        start_time=format_clock(slot.start_minute),
        end_time=format_clock(slot.end_minute),
    )


def conflict_result_out(result: ConflictResult) -> ConflictResultOut:
    return ConflictResultOut(
        has_conflict=result.has_conflict,
        conflicts=[
            ConflictOut(
                type=conflict.type.value,
                blocking_slot_id=conflict.blocking_slot_id,
                message=conflict.message,
                blocking_slot=slot_out(conflict.slot),
            )
            for conflict in result.conflicts
        ],
    )


def _weekly_out(
    db: Session,
    *,
    owner: ScheduleOwner,
    owner_id: int,
    owner_name: str,
    term_id: int,
) -> WeeklyScheduleOut:
    grouped = weekly_schedule_for(db, owner=owner, owner_id=owner_id, term_id=term_id)
    return WeeklyScheduleOut(
        owner=owner.value,
        owner_id=owner_id,
        owner_name=owner_name,
        term_id=term_id,
        days={day: [slot_out(slot) for slot in slots] for day, slots in grouped.items()},
        total_slots=sum(len(slots) for slots in grouped.values()),
    )


def _bad_range(exc: InvalidTimeRangeError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _conflict(exc: ScheduleConflictError) -> HTTPException:
    detail = {"message": exc.message, **conflict_result_out(exc.result).model_dump(mode="json")}
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


@router.get("", response_model=list[ScheduleSlotOut])
def list_schedule(
    term_id: int | None = None,
    class_id: int | None = None,
    teacher_id: int | None = None,
    day_of_week: int | None = Query(default=None, ge=1, le=6),
    db: Session = Depends(get_db_session),
    _: User = Depends(readers),
):
    slots = list_slots(db, term_id=term_id, class_id=class_id, teacher_id=teacher_id, day_of_week=day_of_week)
    return [slot_out(slot) for slot in slots]


@router.get("/mine", response_model=WeeklyScheduleOut)
def my_schedule(
    term_id: int,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_roles(UserRole.TEACHER, UserRole.STUDENT)),
):
    if has_role(current_user, UserRole.TEACHER):
        teacher = teacher_for_user(db, current_user)
        return _weekly_out(
            db, owner=ScheduleOwner.TEACHER, owner_id=teacher.id, owner_name=teacher.name, term_id=term_id
        )

    student = student_for_user(db, current_user)
    if student.school_class is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Student is not assigned to a class")
    return _weekly_out(
        db,
        owner=ScheduleOwner.CLASS,
        owner_id=student.school_class.id,
        owner_name=student.school_class.name,
        term_id=term_id,
    )


@router.get("/classes/{class_id}", response_model=WeeklyScheduleOut)
def class_schedule(
    class_id: int,
    term_id: int,
    db: Session = Depends(get_db_session),
    _: User = Depends(readers),
):
    school_class = get_or_404(db, SchoolClass, class_id, "Class")
    return _weekly_out(
        db, owner=ScheduleOwner.CLASS, owner_id=school_class.id, owner_name=school_class.name, term_id=term_id
    )


@router.get("/teachers/{teacher_id}", response_model=WeeklyScheduleOut)
def teacher_schedule(
    teacher_id: int,
    term_id: int,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_roles(*STAFF_ROLES)),
):
    teacher = get_or_404(db, Teacher, teacher_id, "Teacher")
    return _weekly_out(db, owner=ScheduleOwner.TEACHER, owner_id=teacher.id, owner_name=teacher.name, term_id=term_id)


@router.post("/validate", response_model=ConflictResultOut)
def dry_run(
    payload: ScheduleSlotCreateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(admin_only),
):
    try:
        result = validate_slot(db, payload)
    except InvalidTimeRangeError as exc:
        raise _bad_range(exc) from exc
    return conflict_result_out(result)


@router.post("/bulk", response_model=BulkScheduleOut, status_code=status.HTTP_201_CREATED)
def bulk_create(
    payload: BulkScheduleRequest,
    response: Response,
    db: Session = Depends(get_db_session),
    _: User = Depends(admin_only),
):
    results = bulk_create_slots(db, payload.slots)
    created_count = sum(1 for item in results if item.created)
    if created_count < len(results):
        response.status_code = status.HTTP_207_MULTI_STATUS
    return BulkScheduleOut(
        message=f"Batch finished: {created_count}/{len(results)} slots created",
        created_count=created_count,
        results=[
            BulkScheduleItemOut(
                index=item.index,
                created=item.created,
                message=item.message,
                conflict=conflict_result_out(item.conflict) if item.conflict else None,
                slot=slot_out(item.slot) if item.slot else None,
            )
            for item in results
        ],
    )


@router.post("", response_model=ScheduleSlotOut, status_code=status.HTTP_201_CREATED)
def create_schedule(
    payload: ScheduleSlotCreateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(admin_only),
):
    try:
        slot = create_slot(db, payload)
    except InvalidTimeRangeError as exc:
        raise _bad_range(exc) from exc
    except ScheduleConflictError as exc:
        raise _conflict(exc) from exc
    return slot_out(slot)


@router.get("/{slot_id}", response_model=ScheduleSlotOut)
def get_schedule(slot_id: int, db: Session = Depends(get_db_session), _: User = Depends(readers)):
    return slot_out(get_slot(db, slot_id))


@router.put("/{slot_id}", response_model=ScheduleSlotOut)
def update_schedule(
    slot_id: int,
    payload: ScheduleSlotUpdateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(admin_only),
):
    try:
        slot = update_slot(db, slot_id=slot_id, payload=payload)
    except InvalidTimeRangeError as exc:
        raise _bad_range(exc) from exc
    except ScheduleConflictError as exc:
        raise _conflict(exc) from exc
    return slot_out(slot)


@router.delete("/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_schedule(slot_id: int, db: Session = Depends(get_db_session), _: User = Depends(admin_only)):
    delete_slot(db, slot_id=slot_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
