"""
Unit tests for the Student and Lesson models: name fallbacks, validation,
time-based status and money totals.
"""

import math
from datetime import datetime
from datetime import timedelta

import pytest

from lesson_tracker.models import Lesson
from lesson_tracker.models import LessonStatus
from lesson_tracker.models import Student
from lesson_tracker.models import ValidationError
from lesson_tracker.models import classify_lessons
from tests.conftest import NOW
from tests.conftest import make_lesson


class TestStudentNames:
    def test_full_name_joins_first_and_last(self):
        assert Student(first_name="Anna", last_name="Nowak").full_name == "Anna Nowak"

    def test_full_name_uses_whichever_part_is_present(self):
        assert Student(first_name="Anna").full_name == "Anna"
        assert Student(last_name="Nowak").full_name == "Nowak"

    def test_full_name_falls_back_to_raw_name(self):
        assert Student(name="Kasia").full_name == "Kasia"

    def test_blank_name_stays_derived(self):
        """A blank name is shown from the parts but never stored."""
        student = Student(first_name="  Anna ", last_name="Nowak")
        assert student.name == ""
        assert student.first_name == "Anna"
        assert student.display_name == "Anna Nowak"

        student.first_name = "Zofia"
        assert student.display_name == "Zofia Nowak"
        assert student.initials == "ZN"

    def test_display_name_never_empty(self):
        assert Student(name="x").display_name == "x"
        assert Student(last_name="Nowak").display_name == "Nowak"

    def test_initials(self):
        assert Student(first_name="anna", last_name="Nowak").initials == "aN"
        assert Student(name="Kasia").initials == "K"

    def test_initials_placeholder(self):
        student = Student(name="x")
        student.name = ""
        assert student.initials == "?"

    def test_student_without_any_name_is_rejected(self):
        with pytest.raises(ValidationError):
            Student(name="   ", email="a@example.com")

    def test_billing_key_falls_back_to_display_name(self):
        assert Student(name="Kasia").billing_key == "Kasia"
        assert Student(name="Kasia", billing_id="INV-7").billing_key == "INV-7"


class TestLessonValidation:
    def test_requires_student(self):
        with pytest.raises(ValidationError):
            Lesson(student_id="", date=NOW, duration=1.0, hourly_rate=50.0)

    @pytest.mark.parametrize("duration", [0, -1.0, math.inf, math.nan])
    def test_rejects_bad_duration(self, duration):
        with pytest.raises(ValidationError):
            Lesson(student_id="s1", date=NOW, duration=duration, hourly_rate=50.0)

    def test_rejects_negative_rate(self):
        with pytest.raises(ValidationError):
            Lesson(student_id="s1", date=NOW, duration=1.0, hourly_rate=-5.0)

    def test_free_lesson_is_allowed(self):
        assert Lesson(student_id="s1", date=NOW, duration=1.0, hourly_rate=0.0).total_value == 0.0

    def test_rejects_missing_date(self):
        with pytest.raises(ValidationError):
            Lesson(student_id="s1", date=None, duration=1.0, hourly_rate=50.0)

    def test_synced_requires_event_id(self):
        with pytest.raises(ValidationError):
            Lesson(student_id="s1", date=NOW, duration=1.0, hourly_rate=50.0, synced_with_calendar=True)

    def test_event_id_without_sync_is_allowed(self):
        lesson = Lesson(
            student_id="s1", date=NOW, duration=1.0, hourly_rate=50.0, calendar_event_id="E1"
        )
        assert not lesson.synced_with_calendar

    def test_derived_values(self):
        lesson = Lesson(student_id="s1", date=datetime(2025, 3, 3, 10, 0), duration=1.5, hourly_rate=60.0)
        assert lesson.total_value == 90.0
        assert lesson.end == datetime(2025, 3, 3, 11, 30)
        assert lesson.formatted_date == "03.03.2025 10:00"

    def test_mark_synced_and_clear(self):
        lesson = Lesson(student_id="s1", date=NOW, duration=1.0, hourly_rate=50.0)
        lesson.mark_synced("E1")
        assert (lesson.calendar_event_id, lesson.synced_with_calendar) == ("E1", True)
        lesson.clear_calendar_link()
        assert (lesson.calendar_event_id, lesson.synced_with_calendar) == (None, False)


class TestLessonStatus:
    @pytest.mark.parametrize(
        "offset, paid, expected",
        [
            (timedelta(hours=-1), True, LessonStatus.COMPLETED),
            (timedelta(hours=-1), False, LessonStatus.UNPAID),
            (timedelta(0), False, LessonStatus.UPCOMING),
            (timedelta(hours=1), False, LessonStatus.UPCOMING),
            (timedelta(hours=1), True, LessonStatus.UPCOMING),
        ],
    )
    def test_status_against_now(self, anna, offset, paid, expected):
        lesson = make_lesson(anna, NOW + offset, paid=paid)
        assert lesson.status(NOW) == expected

    @pytest.mark.parametrize("paid", [True, False])
    def test_tomorrow_is_upcoming_regardless_of_payment(self, anna, paid):
        lesson = make_lesson(anna, datetime.now() + timedelta(days=1), paid=paid)
        assert lesson.status() == LessonStatus.UPCOMING

    def test_status_is_recomputed(self, anna):
        lesson = make_lesson(anna, NOW)
        assert lesson.status(NOW - timedelta(minutes=1)) == LessonStatus.UPCOMING
        assert lesson.status(NOW + timedelta(minutes=1)) == LessonStatus.UNPAID

    def test_batch_uses_one_snapshot(self, anna):
        early = make_lesson(anna, NOW - timedelta(seconds=1))
        late = make_lesson(anna, NOW)
        statuses = classify_lessons([early, late], now=NOW)
        assert statuses == {early.id: LessonStatus.UNPAID, late.id: LessonStatus.UPCOMING}


class TestStudentTotals:
    def test_value_splits_into_paid_and_unpaid(self, anna):
        make_lesson(anna, NOW, duration=1.0, rate=60.0, paid=False)
        make_lesson(anna, NOW, duration=1.5, rate=60.0, paid=True)
        make_lesson(anna, NOW, duration=0.1, rate=33.3, paid=True)
        assert math.isclose(anna.total_value, anna.total_paid + anna.total_unpaid, abs_tol=1e-9)
        assert anna.total_unpaid == pytest.approx(60.0)

    def test_totals_for_student_without_lessons(self):
        student = Student(name="Kasia")
        assert student.total_lessons == 0
        assert student.total_hours == 0
        assert student.total_value == student.total_paid == student.total_unpaid == 0

    def test_lesson_list_newest_first(self, anna):
        older = make_lesson(anna, NOW - timedelta(days=2))
        newer = make_lesson(anna, NOW)
        assert anna.lesson_list == [newer, older]

    def test_unpaid_and_upcoming(self, anna):
        past_unpaid = make_lesson(anna, NOW - timedelta(days=1))
        make_lesson(anna, NOW - timedelta(days=2), paid=True)
        later = make_lesson(anna, NOW + timedelta(days=3), paid=True)
        soon = make_lesson(anna, NOW + timedelta(days=1))
        assert anna.upcoming_lessons(NOW) == [soon, later]
        assert past_unpaid in anna.unpaid_lessons
        assert all(not lesson.is_paid for lesson in anna.unpaid_lessons)
