from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator

from .models import AttendanceStatus, ReportCardStatus, UserRole
from .scheduling import parse_clock


class LoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: UserRole


class UserCreateRequest(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=8)
    role: UserRole


class UserActiveUpdateRequest(BaseModel):
    is_active: bool


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8)


class UserOut(BaseModel):
    id: int
    name: str
    email: str
    role: UserRole
    is_active: bool = True


# ── Academic reference data ──────────────────────────────────────────


class AcademicYearCreateRequest(BaseModel):
    name: str = Field(min_length=4, max_length=20)
    is_active: bool = False


class AcademicYearUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=4, max_length=20)
    is_active: bool | None = None


class AcademicYearOut(BaseModel):
    id: int
    name: str
    is_active: bool


class TermCreateRequest(BaseModel):
    academic_year_id: int
    name: str = Field(min_length=2, max_length=20)
    is_active: bool = False


class TermUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=20)
    is_active: bool | None = None


class TermOut(BaseModel):
    id: int
    academic_year_id: int
    academic_year: str
    name: str
    is_active: bool


class SubjectCreateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=2, max_length=100)
    passing_grade: float = Field(default=75, ge=0, le=100)


class SubjectUpdateRequest(BaseModel):
    code: str | None = Field(default=None, min_length=1, max_length=20)
    name: str | None = Field(default=None, min_length=2, max_length=100)
    passing_grade: float | None = Field(default=None, ge=0, le=100)


class SubjectOut(BaseModel):
    id: int
    code: str
    name: str
    passing_grade: float


class ClassCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=20)
    grade_level: str = Field(min_length=1, max_length=5)
    academic_year_id: int
    homeroom_teacher_id: int | None = None


class ClassUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=20)
    grade_level: str | None = Field(default=None, min_length=1, max_length=5)
    homeroom_teacher_id: int | None = None


class ClassOut(BaseModel):
    id: int
    name: str
    grade_level: str
    academic_year_id: int
    homeroom_teacher_id: int | None = None


# ── People ───────────────────────────────────────────────────────────


class AccountFields(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=8)
    phone: str | None = Field(default=None, max_length=20)


class TeacherCreateRequest(AccountFields):
    employee_number: str | None = Field(default=None, max_length=30)
    homeroom: bool = False


class TeacherOut(BaseModel):
    id: int
    user_id: int
    name: str
    email: str
    employee_number: str | None = None
    phone: str | None = None


class StudentCreateRequest(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=8)
    student_number: str = Field(min_length=1, max_length=20)
    class_id: int | None = None


class StudentClassUpdateRequest(BaseModel):
    class_id: int | None = None


class StudentOut(BaseModel):
    id: int
    user_id: int
    name: str
    email: str
    student_number: str
    class_id: int | None = None


class ParentCreateRequest(AccountFields):
    student_ids: list[int] = Field(default_factory=list)


class ParentOut(BaseModel):
    id: int
    user_id: int
    name: str
    email: str
    phone: str | None = None
    student_ids: list[int] = Field(default_factory=list)


# ── Schedules ────────────────────────────────────────────────────────


def _check_clock(value: str) -> str:
    parse_clock(value)
    return value.strip()


class ScheduleSlotCreateRequest(BaseModel):
    class_id: int
    teacher_id: int
    subject_id: int
    term_id: int
    day_of_week: int = Field(ge=1, le=6)
    start_time: str = Field(examples=["07:00"])
    end_time: str = Field(examples=["08:30"])

    @field_validator("start_time", "end_time")
    @classmethod
    def _valid_clock(cls, value: str) -> str:
        return _check_clock(value)


class ScheduleSlotUpdateRequest(BaseModel):
    teacher_id: int | None = None
    subject_id: int | None = None
    day_of_week: int | None = Field(default=None, ge=1, le=6)
    start_time: str | None = None
    end_time: str | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _valid_clock(cls, value: str | None) -> str | None:
        return None if value is None else _check_clock(value)


class BulkScheduleRequest(BaseModel):
    slots: list[ScheduleSlotCreateRequest] = Field(min_length=1, max_length=50)


class ScheduleSlotOut(BaseModel):
    id: int
    class_id: int
    class_name: str
    teacher_id: int
    teacher_name: str
    subject_id: int
    subject_name: str
    term_id: int
    day_of_week: int
    day_name: str
    start_time: str
    end_time: str


class ConflictOut(BaseModel):
    type: str
    blocking_slot_id: int
    message: str
    blocking_slot: ScheduleSlotOut


class ConflictResultOut(BaseModel):
    has_conflict: bool
    conflicts: list[ConflictOut] = Field(default_factory=list)


class BulkScheduleItemOut(BaseModel):
    index: int
    created: bool
    message: str
    conflict: ConflictResultOut | None = None
    slot: ScheduleSlotOut | None = None


class BulkScheduleOut(BaseModel):
    message: str
    created_count: int
    results: list[BulkScheduleItemOut]


class WeeklyScheduleOut(BaseModel):
    owner: str
    owner_id: int
    owner_name: str
    term_id: int
    days: dict[str, list[ScheduleSlotOut]]
    total_slots: int


# ── Attendance, grades, report cards ─────────────────────────────────


class AttendanceCreateRequest(BaseModel):
    slot_id: int
    student_id: int
    attended_on: date
    status: AttendanceStatus
    note: str | None = None


class AttendanceBulkEntry(BaseModel):
    student_id: int
    status: AttendanceStatus
    note: str | None = None


class AttendanceBulkRequest(BaseModel):
    slot_id: int
    attended_on: date
    entries: list[AttendanceBulkEntry] = Field(min_length=1)


class AttendanceUpdateRequest(BaseModel):
    status: AttendanceStatus | None = None
    note: str | None = None


class AttendanceOut(BaseModel):
    id: int
    slot_id: int
    student_id: int
    attended_on: date
    status: AttendanceStatus
    note: str | None = None


class AttendanceBulkOut(BaseModel):
    created: list[AttendanceOut]
    skipped_student_ids: list[int]


class AttendanceRecapOut(BaseModel):
    student_id: int
    student_name: str | None = None
    term_id: int
    present: int = 0
    excused: int = 0
    sick: int = 0
    absent: int = 0
    total: int = 0
    presence_percentage: float = 0.0


class ClassAttendanceRecapOut(BaseModel):
    class_id: int
    class_name: str
    term_id: int
    students: list[AttendanceRecapOut]


class GradeCreateRequest(BaseModel):
    student_id: int
    subject_id: int
    term_id: int
    daily_score: float = Field(ge=0, le=100)
    midterm_score: float = Field(ge=0, le=100)
    final_exam_score: float = Field(ge=0, le=100)


class GradeUpdateRequest(BaseModel):
    daily_score: float | None = Field(default=None, ge=0, le=100)
    midterm_score: float | None = Field(default=None, ge=0, le=100)
    final_exam_score: float | None = Field(default=None, ge=0, le=100)


class GradeOut(BaseModel):
    id: int
    student_id: int
    subject_id: int
    subject_name: str
    term_id: int
    daily_score: float
    midterm_score: float
    final_exam_score: float
    final_score: float
    letter: str
    passed: bool


class GradeSummaryOut(BaseModel):
    student_id: int
    term_id: int
    grades: list[GradeOut]
    average_score: float
    letter: str


class ReportCardCreateRequest(BaseModel):
    student_id: int
    term_id: int


class ReportCardOut(BaseModel):
    id: int
    student_id: int
    student_name: str
    class_name: str | None = None
    term_id: int
    term_name: str
    status: ReportCardStatus
    grades: list[GradeOut]
    average_score: float
    letter: str
    attendance: AttendanceRecapOut
    created_at: datetime
