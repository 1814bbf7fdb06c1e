"""
Shared pytest fixtures and lesson helpers.
"""

from datetime import datetime

import pytest

from lesson_tracker.db import LessonStore
from lesson_tracker.models import Lesson
from lesson_tracker.models import Student
from lesson_tracker.models import TrackerConfig
from lesson_tracker.sync import CalendarReconciler
from lesson_tracker.tracker import LessonTracker
from tests.fake_calendar import FakeCalendar

NOW = datetime(2025, 3, 15, 12, 0)


def make_lesson(student: Student, when: datetime, duration=1.0, rate=60.0, paid=False, **kwargs):
    """Return a Lesson already linked to ``student`` (not persisted)."""
    lesson = Lesson(
        student_id=student.id,
        date=when,
        duration=duration,
        hourly_rate=rate,
        is_paid=paid,
        **kwargs,
    )
    lesson.student = student
    student.lessons.append(lesson)
    return lesson


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "lessons.db"


@pytest.fixture
def store(db_path):
    with LessonStore(db_path) as db:
        yield db


@pytest.fixture
def fake_calendar():
    return FakeCalendar()


@pytest.fixture
def reconciler(fake_calendar):
    return CalendarReconciler(fake_calendar)


@pytest.fixture
def config(db_path):
    return TrackerConfig(db_path=db_path)


@pytest.fixture
def tracker(store, reconciler, config):
    return LessonTracker(store, reconciler, config)


@pytest.fixture
def anna():
    return Student(first_name="Anna", last_name="Nowak", billing_id="A1")
