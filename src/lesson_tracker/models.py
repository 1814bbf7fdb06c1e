"""
Pure data models; no sqlite, EDS or file-system access.
"""

import enum
import math
import uuid
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from datetime import timedelta
from pathlib import Path

DEFAULT_DB = Path.home() / ".local/share/lesson-tracker.db"
DEFAULT_CONFIG = Path.home() / ".config/lesson-tracker.conf"

CURRENCY = "PLN"
DATE_FORMAT = "%d.%m.%Y %H:%M"


class LessonTrackerError(Exception):
    """Base exception for lesson tracker errors."""

    pass


class ValidationError(LessonTrackerError):
    """Input rejected before anything was persisted."""

    pass


class StorageError(LessonTrackerError):
    """Unrecoverable persistence failure."""

    pass


class CalendarError(LessonTrackerError):
    """The calendar backend could not be reached or used."""

    pass


class ReportExportError(LessonTrackerError):
    """The report file could not be written."""

    pass


class LessonStatus(str, enum.Enum):
    UPCOMING = "upcoming"
    COMPLETED = "completed"
    UNPAID = "unpaid"


class ReportGrouping(str, enum.Enum):
    BILLING_ID = "billing-id"
    STUDENT = "student"


def _new_id() -> str:
    return str(uuid.uuid4())


def _clean(value: str | None) -> str:
    return (value or "").strip()


@dataclass
class Lesson:
    """A single scheduled or past billable session tied to one student."""

    student_id: str
    date: datetime
    duration: float
    hourly_rate: float
    is_paid: bool = False
    notes: str = ""
    calendar_event_id: str | None = None
    synced_with_calendar: bool = False
    id: str = field(default_factory=_new_id)
    # Resolved by the store; not part of equality.
    student: "Student | None" = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        if not self.student_id:
            raise ValidationError("A lesson needs a student")
        if not isinstance(self.date, datetime):
            raise ValidationError(f"Lesson date must be a datetime, got {self.date!r}")
        if not math.isfinite(self.duration) or self.duration <= 0:
            raise ValidationError(f"Duration must be a positive number of hours: {self.duration}")
        if not math.isfinite(self.hourly_rate) or self.hourly_rate < 0:
            raise ValidationError(f"Hourly rate must not be negative: {self.hourly_rate}")
        if self.synced_with_calendar and not self.calendar_event_id:
            raise ValidationError("A synced lesson must carry a calendar event id")
        self.notes = self.notes or ""

    @property
    def total_value(self) -> float:
        return self.duration * self.hourly_rate

    @property
    def end(self) -> datetime:
        return self.date + timedelta(hours=self.duration)

    @property
    def formatted_date(self) -> str:
        return self.date.strftime(DATE_FORMAT)

    def status(self, now: datetime | None = None) -> LessonStatus:
        """Classify the lesson against ``now`` (recomputed on every call)."""
        if now is None:
            now = datetime.now()
        if self.date >= now:
            return LessonStatus.UPCOMING
        return LessonStatus.COMPLETED if self.is_paid else LessonStatus.UNPAID

    def mark_synced(self, event_id: str):
        self.calendar_event_id = event_id
        self.synced_with_calendar = True

    def clear_calendar_link(self):
        self.calendar_event_id = None
        self.synced_with_calendar = False


def classify_lessons(lessons, now: datetime | None = None) -> dict[str, LessonStatus]:
    """Classify a batch of lessons against a single ``now`` snapshot.

    Returns a mapping of lesson id to status.
    """
    if now is None:
        now = datetime.now()
    return {lesson.id: lesson.status(now) for lesson in lessons}


@dataclass
class Student:
    """A person receiving lessons; billing and contact entity."""

    name: str = ""
    first_name: str = ""
    last_name: str = ""
    phone_number: str = ""
    email: str = ""
    billing_id: str = ""
    lesson_link: str = ""
    id: str = field(default_factory=_new_id)
    lessons: list[Lesson] = field(default_factory=list, repr=False, compare=False)

    def __post_init__(self):
        self.name = _clean(self.name)
        self.first_name = _clean(self.first_name)
        self.last_name = _clean(self.last_name)
        self.phone_number = _clean(self.phone_number)
        self.email = _clean(self.email)
        self.billing_id = _clean(self.billing_id)
        self.lesson_link = _clean(self.lesson_link)
        if not (self.name or self.first_name or self.last_name):
            raise ValidationError("A student needs a name, first name or last name")

    # ------------------------------------------------------------------ #
    # Names                                                                #
    # ------------------------------------------------------------------ #

    @property
    def full_name(self) -> str:
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        if self.first_name:
            return self.first_name
        if self.last_name:
            return self.last_name
        return self.name or ""

    @property
    def display_name(self) -> str:
        return self.full_name or self.name or "unknown"

    @property
    def initials(self) -> str:
        if self.first_name and self.last_name:
            return self.first_name[0] + self.last_name[0]
        name = self.full_name
        return name[0] if name else "?"

    @property
    def billing_key(self) -> str:
        """Key used to merge students into one invoice."""
        return self.billing_id or self.display_name

    # ------------------------------------------------------------------ #
    # Totals                                                               #
    # ------------------------------------------------------------------ #

    @property
    def lesson_list(self) -> list[Lesson]:
        return sorted(self.lessons, key=lambda lesson: lesson.date, reverse=True)

    @property
    def total_lessons(self) -> int:
        return len(self.lessons)

    @property
    def total_hours(self) -> float:
        return math.fsum(lesson.duration for lesson in self.lessons)

    @property
    def total_value(self) -> float:
        return math.fsum(lesson.total_value for lesson in self.lessons)

    @property
    def total_paid(self) -> float:
        return math.fsum(lesson.total_value for lesson in self.lessons if lesson.is_paid)

    @property
    def total_unpaid(self) -> float:
        return self.total_value - self.total_paid

    @property
    def unpaid_lessons(self) -> list[Lesson]:
        return [lesson for lesson in self.lesson_list if not lesson.is_paid]

    def upcoming_lessons(self, now: datetime | None = None) -> list[Lesson]:
        if now is None:
            now = datetime.now()
        upcoming = [lesson for lesson in self.lessons if lesson.date >= now]
        return sorted(upcoming, key=lambda lesson: lesson.date)


@dataclass
class CalendarInfo:
    """A writable calendar offered by the calendar backend."""

    uid: str
    name: str
    account: str = ""


@dataclass
class CalendarEvent:
    """Minimal view of an event read back from the calendar backend."""

    uid: str
    summary: str
    start: datetime
    end: datetime
    managed: bool = False


@dataclass
class TrackerConfig:
    """Configuration for the tracker and its collaborators."""

    db_path: Path = field(default_factory=lambda: DEFAULT_DB)
    calendar_id: str | None = None
    calendar_enabled: bool = True
    auto_sync_on_create: bool = True
    week_start: int = 0  # 0 = Monday, as datetime.weekday()
    report_grouping: ReportGrouping = ReportGrouping.BILLING_ID
    default_hourly_rate: float = 50.0
    reminder_minutes: int = 15
    verbose: bool = False
