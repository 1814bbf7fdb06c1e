"""
LessonTracker: thin orchestrator over the store, the reconciler and reports.

The only component that talks to more than one collaborator. Calls are made
one at a time; a cascading delete fully handles one lesson before the next.
"""

import logging
from datetime import date
from datetime import datetime
from datetime import timedelta
from pathlib import Path

from lesson_tracker.db import CALENDAR_PREFERENCE
from lesson_tracker.db import LessonStore
from lesson_tracker.models import CalendarEvent
from lesson_tracker.models import CalendarInfo
from lesson_tracker.models import Lesson
from lesson_tracker.models import ReportExportError
from lesson_tracker.models import ReportGrouping
from lesson_tracker.models import Student
from lesson_tracker.models import TrackerConfig
from lesson_tracker.models import ValidationError
from lesson_tracker.report import MonthlyReport
from lesson_tracker.report import build_monthly_report
from lesson_tracker.report import write_report
from lesson_tracker.sync import CalendarReconciler

_STUDENT_FIELDS = frozenset(
    {"name", "first_name", "last_name", "phone_number", "email", "billing_id", "lesson_link"}
)


class LessonTracker:
    """Student and lesson operations with calendar sync and reporting."""

    def __init__(self, store: LessonStore, reconciler: CalendarReconciler, config: TrackerConfig):
        self.store = store
        self.reconciler = reconciler
        self.config = config
        self.logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------ #
    # Students                                                             #
    # ------------------------------------------------------------------ #

    def students(self) -> list[Student]:
        return self.store.list_students()

    def get_student(self, student_id: str) -> Student:
        student = self.store.get_student(student_id)
        if student is None:
            raise ValidationError(f"No student with id {student_id}")
        return student

    def add_student(
        self,
        name: str = "",
        first_name: str = "",
        last_name: str = "",
        phone_number: str = "",
        email: str = "",
        billing_id: str = "",
        lesson_link: str = "",
    ) -> Student:
        student = Student(
            name=name,
            first_name=first_name,
            last_name=last_name,
            phone_number=phone_number,
            email=email,
            billing_id=billing_id,
            lesson_link=lesson_link,
        )
        self.store.save_student(student)
        self.store.commit()
        self.logger.info("Added student %s", student.display_name)
        return student

    def update_student(self, student_id: str, **changes) -> Student:
        """Change student fields; None values are left as they are."""
        unknown = set(changes) - _STUDENT_FIELDS
        if unknown:
            raise ValidationError(f"Unknown student field(s): {', '.join(sorted(unknown))}")
        current = self.get_student(student_id)
        values = {name: getattr(current, name) for name in _STUDENT_FIELDS}
        values.update({k: v for k, v in changes.items() if v is not None})
        # Re-validate through the constructor before anything is written.
        updated = Student(id=current.id, **values)
        updated.lessons = current.lessons
        self.store.save_student(updated)
        self.store.commit()
        return updated

    def delete_student(self, student_id: str):
        """Delete a student and, one by one, all of its lessons."""
        student = self.get_student(student_id)
        for lesson in student.lesson_list:
            self._delete_lesson(lesson)
        self.store.delete_student(student.id)
        self.store.commit()
        self.logger.info("Deleted student %s", student.display_name)

    # ------------------------------------------------------------------ #
    # Lessons                                                              #
    # ------------------------------------------------------------------ #

    def get_lesson(self, lesson_id: str) -> Lesson:
        lesson = self.store.get_lesson(lesson_id)
        if lesson is None:
            raise ValidationError(f"No lesson with id {lesson_id}")
        return lesson

    def lessons(self, unpaid_only: bool = False, search: str | None = None) -> list[Lesson]:
        return self.store.list_lessons(unpaid_only=unpaid_only, search=search)

    def lessons_for_month(self, year: int, month: int) -> list[Lesson]:
        return self.store.lessons_for_month(year, month)

    def lessons_between(self, start: datetime, end: datetime) -> list[Lesson]:
        return self.store.lessons_between(start, end)

    def lessons_for_day(self, day: date) -> list[Lesson]:
        start = datetime.combine(day, datetime.min.time())
        return self.store.lessons_between(start, start + timedelta(days=1))

    def suggested_hourly_rate(self) -> float:
        """Rate of the latest lesson, used to prefill new lessons."""
        last = self.store.last_lesson()
        return last.hourly_rate if last else self.config.default_hourly_rate

    def add_lesson(
        self,
        student_id: str | None,
        date: datetime,
        duration: float,
        hourly_rate: float,
        notes: str = "",
        sync: bool | None = None,
    ) -> Lesson:
        """Create a lesson; calendar sync failure never fails the creation.

        ``sync`` defaults to the ``auto_sync_on_create`` setting.
        """
        if not student_id:
            raise ValidationError("No student selected for the lesson")
        student = self.get_student(student_id)
        lesson = Lesson(
            student_id=student.id,
            date=date,
            duration=duration,
            hourly_rate=hourly_rate,
            notes=notes,
        )
        lesson.student = student
        self.store.save_lesson(lesson)
        self.store.commit()

        if sync is None:
            sync = self.config.auto_sync_on_create
        if sync and self.reconciler.on_lesson_created(lesson):
            self.store.save_lesson(lesson)
            self.store.commit()
        return lesson

    def edit_lesson(
        self,
        lesson_id: str,
        date: datetime | None = None,
        duration: float | None = None,
        hourly_rate: float | None = None,
        notes: str | None = None,
        student_id: str | None = None,
    ) -> Lesson:
        """Change lesson fields and push the change to the calendar."""
        current = self.get_lesson(lesson_id)
        student = self.get_student(student_id) if student_id else current.student
        lesson = Lesson(
            id=current.id,
            student_id=student.id if student else current.student_id,
            date=date if date is not None else current.date,
            duration=duration if duration is not None else current.duration,
            hourly_rate=hourly_rate if hourly_rate is not None else current.hourly_rate,
            is_paid=current.is_paid,
            notes=notes if notes is not None else current.notes,
            calendar_event_id=current.calendar_event_id,
            synced_with_calendar=current.synced_with_calendar,
        )
        lesson.student = student
        self.store.save_lesson(lesson)
        self.store.commit()

        if lesson.synced_with_calendar or self.config.auto_sync_on_create:
            if self.reconciler.on_lesson_updated(lesson):
                self.store.save_lesson(lesson)
                self.store.commit()
        return lesson

    def set_paid(self, lesson_id: str, paid: bool) -> Lesson:
        lesson = self.get_lesson(lesson_id)
        lesson.is_paid = paid
        self.store.save_lesson(lesson)
        self.store.commit()
        return lesson

    def toggle_paid(self, lesson_id: str) -> Lesson:
        lesson = self.get_lesson(lesson_id)
        return self.set_paid(lesson.id, not lesson.is_paid)

    def _delete_lesson(self, lesson: Lesson):
        # Calendar removal is attempted first but never blocks the delete.
        self.reconciler.on_lesson_deleted(lesson)
        self.store.delete_lesson(lesson.id)
        self.store.commit()

    def delete_lesson(self, lesson_id: str):
        self._delete_lesson(self.get_lesson(lesson_id))

    def sync_lesson(self, lesson_id: str) -> bool:
        """Manually (re)sync one lesson with the calendar."""
        lesson = self.get_lesson(lesson_id)
        synced = self.reconciler.sync_now(lesson)
        if synced:
            self.store.save_lesson(lesson)
            self.store.commit()
        return synced

    def unsync_lesson(self, lesson_id: str) -> bool:
        lesson = self.get_lesson(lesson_id)
        removed = self.reconciler.unsync(lesson)
        if removed:
            self.store.save_lesson(lesson)
            self.store.commit()
        return removed

    # ------------------------------------------------------------------ #
    # Calendar                                                             #
    # ------------------------------------------------------------------ #

    def available_calendars(self) -> list[CalendarInfo]:
        if self.reconciler.calendar is None:
            return []
        return self.reconciler.calendar.list_calendars()

    def default_calendar_id(self) -> str | None:
        return self.store.get_preference(CALENDAR_PREFERENCE) or self.config.calendar_id

    def set_default_calendar(self, calendar_uid: str):
        """Remember ``calendar_uid`` as the calendar lessons are written to."""
        known = {calendar.uid for calendar in self.available_calendars()}
        if calendar_uid not in known:
            raise ValidationError(f"Unknown or read-only calendar: {calendar_uid}")
        self.reconciler.calendar.set_default_calendar(calendar_uid)
        self.store.set_preference(CALENDAR_PREFERENCE, calendar_uid)
        self.store.commit()

    def upcoming_events(self, days_ahead: int = 14, now: datetime | None = None) -> list[CalendarEvent]:
        """Lesson events in the calendar over the next ``days_ahead`` days."""
        if not self.reconciler.has_access():
            return []
        if now is None:
            now = datetime.now()
        events = self.reconciler.calendar.query_events(now, now + timedelta(days=days_ahead))
        return [event for event in events if event.managed]

    # ------------------------------------------------------------------ #
    # Reports                                                              #
    # ------------------------------------------------------------------ #

    def monthly_report(
        self, year: int, month: int, grouping: ReportGrouping | None = None
    ) -> MonthlyReport:
        if not 1 <= month <= 12:
            raise ValidationError(f"Month must be 1-12, got {month}")
        return build_monthly_report(
            self.store.lessons_for_month(year, month),
            year,
            month,
            grouping or self.config.report_grouping,
        )

    def export_report(
        self,
        year: int,
        month: int,
        directory: Path | None = None,
        grouping: ReportGrouping | None = None,
    ) -> Path | None:
        """Write the monthly report file; None when it could not be written."""
        report = self.monthly_report(year, month, grouping)
        try:
            return write_report(report, directory)
        except ReportExportError as e:
            self.logger.error("Report export failed: %s", e)
            return None
