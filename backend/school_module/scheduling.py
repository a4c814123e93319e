"""Timetable conflict detection and weekly grouping.

Two slots conflict when they share a term and a day, their ``[start, end)``
ranges overlap, and they share either the teacher or the class. Touching
ranges (one ends exactly when the other begins) do not overlap.

Times are minutes since midnight. ``parse_clock``/``format_clock`` convert
to and from the ``"HH:MM"`` strings used on the wire.
"""

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy.orm import Query, Session, joinedload

from .models import ScheduleSlot

logger = logging.getLogger(__name__)

DAY_NAMES = {
    1: "Monday",
    2: "Tuesday",
    3: "Wednesday",
    4: "Thursday",
    5: "Friday",
    6: "Saturday",
}
UNKNOWN_DAY = "Unknown"

MINUTES_PER_DAY = 24 * 60

CLOCK_PATTERN = re.compile(r"^(\d{2}):(\d{2})$")


class InvalidTimeRangeError(ValueError):
    pass


class ScheduleOwner(str, enum.Enum):
    CLASS = "class"
    TEACHER = "teacher"


class ConflictType(str, enum.Enum):
    TEACHER = "teacher"
    CLASS = "class"


def day_name(day_of_week: int) -> str:
    return DAY_NAMES.get(day_of_week, UNKNOWN_DAY)


def parse_clock(value: str) -> int:
    """Convert a zero-padded ``"HH:MM"`` string to minutes since midnight.

    ``"24:00"`` is accepted as the end of the day so a slot may run until
    midnight.
    """
    match = CLOCK_PATTERN.match(value.strip())
    if not match:
        raise InvalidTimeRangeError(f"Invalid time {value!r}, expected HH:MM")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if minutes > 59 or hours > 24 or (hours == 24 and minutes):
        raise InvalidTimeRangeError(f"Invalid time {value!r}, expected HH:MM")
    return hours * 60 + minutes


def format_clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def ensure_valid_range(start_minute: int, end_minute: int) -> None:
    if not 0 <= start_minute < end_minute <= MINUTES_PER_DAY:
        raise InvalidTimeRangeError("Start time must be earlier than end time")


@dataclass(frozen=True)
class SlotRequest:
    """A proposed slot, as checked before a create, an update or a dry run.

    ``exclude_id`` is the id of the slot being updated so it is never
    compared with itself; it stays ``None`` when creating.
    """

    term_id: int
    class_id: int
    teacher_id: int
    day_of_week: int
    start_minute: int
    end_minute: int
    exclude_id: int | None = None


@dataclass
class Conflict:
    type: ConflictType
    slot: ScheduleSlot
    message: str

    @property
    def blocking_slot_id(self) -> int:
        return self.slot.id


@dataclass
class ConflictResult:
    conflicts: list[Conflict] = field(default_factory=list)

    @property
    def has_conflict(self) -> bool:
        return bool(self.conflicts)

    def of_type(self, conflict_type: ConflictType) -> list[Conflict]:
        return [conflict for conflict in self.conflicts if conflict.type == conflict_type]


def _time_range(slot: ScheduleSlot) -> str:
    return f"{day_name(slot.day_of_week)} {format_clock(slot.start_minute)}-{format_clock(slot.end_minute)}"


def _teacher_message(slot: ScheduleSlot) -> str:
    return (
        f"Teacher already teaches {slot.subject.name} in class {slot.school_class.name} "
        f"on {_time_range(slot)}"
    )


def _class_message(slot: ScheduleSlot) -> str:
    return (
        f"Class already has {slot.subject.name} taught by {slot.teacher.name} "
        f"on {_time_range(slot)}"
    )


def overlapping_slots_query(db: Session, request: SlotRequest) -> Query:
    """Slots in the same term and day whose range overlaps the request.

    One indexed range query covers both the teacher and the class axis;
    ``classify_conflicts`` tells them apart afterwards.
    """
    query = (
        db.query(ScheduleSlot)
        .options(
            joinedload(ScheduleSlot.school_class),
            joinedload(ScheduleSlot.teacher),
            joinedload(ScheduleSlot.subject),
        )
        .filter(
            ScheduleSlot.term_id == request.term_id,
            ScheduleSlot.day_of_week == request.day_of_week,
            ScheduleSlot.start_minute < request.end_minute,
            ScheduleSlot.end_minute > request.start_minute,
        )
    )
    if request.exclude_id:
        query = query.filter(ScheduleSlot.id != request.exclude_id)
    return query.order_by(ScheduleSlot.start_minute.asc(), ScheduleSlot.id.asc())


def classify_conflicts(request: SlotRequest, candidates: Iterable[ScheduleSlot]) -> ConflictResult:
    """Turn overlapping slots into teacher and class conflict records.

    ``candidates`` must already be restricted to overlapping slots of the
    same term and day. A slot booked for both the same teacher and the same
    class yields two records.
    """
    result = ConflictResult()
    for slot in candidates:
        if slot.teacher_id == request.teacher_id:
            result.conflicts.append(Conflict(ConflictType.TEACHER, slot, _teacher_message(slot)))
        if slot.class_id == request.class_id:
            result.conflicts.append(Conflict(ConflictType.CLASS, slot, _class_message(slot)))
    return result


def detect_conflicts(db: Session, request: SlotRequest) -> ConflictResult:
    """Check a proposed slot against every stored slot of its term and day.

    Read only and safe to repeat. A reversed or empty range raises
    ``InvalidTimeRangeError`` rather than matching nothing.
    """
    ensure_valid_range(request.start_minute, request.end_minute)
    result = classify_conflicts(request, overlapping_slots_query(db, request).all())
    if result.has_conflict:
        logger.info(
            f"Schedule conflict for term={request.term_id} class={request.class_id} "
            f"teacher={request.teacher_id} day={request.day_of_week}: "
            f"{len(result.conflicts)} record(s)"
        )
    return result


def group_by_day(slots: Iterable[ScheduleSlot]) -> dict[str, list[ScheduleSlot]]:
    grouped: dict[str, list[ScheduleSlot]] = {}
    for slot in slots:
        grouped.setdefault(day_name(slot.day_of_week), []).append(slot)
    return grouped


def weekly_schedule_for(
    db: Session,
    *,
    owner: ScheduleOwner,
    owner_id: int,
    term_id: int,
) -> dict[str, list[ScheduleSlot]]:
    owner_column = ScheduleSlot.class_id if owner == ScheduleOwner.CLASS else ScheduleSlot.teacher_id
    slots = (
        db.query(ScheduleSlot)
        .options(
            joinedload(ScheduleSlot.school_class),
            joinedload(ScheduleSlot.teacher),
            joinedload(ScheduleSlot.subject),
        )
        .filter(owner_column == owner_id, ScheduleSlot.term_id == term_id)
        .order_by(ScheduleSlot.day_of_week.asc(), ScheduleSlot.start_minute.asc(), ScheduleSlot.id.asc())
        .all()
    )
    return group_by_day(slots)
