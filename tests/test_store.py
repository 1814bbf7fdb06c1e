"""
Unit tests for LessonStore: upserts, query paths, legacy rows and migration.
"""

import sqlite3
from datetime import datetime

import pytest

from lesson_tracker.db import CALENDAR_PREFERENCE
from lesson_tracker.db import LessonStore
from lesson_tracker.models import Lesson
from lesson_tracker.models import StorageError
from lesson_tracker.models import Student


def _save(store, student, when, duration=1.0, rate=60.0, paid=False, **kwargs):
    lesson = Lesson(
        student_id=student.id, date=when, duration=duration, hourly_rate=rate, is_paid=paid, **kwargs
    )
    store.save_lesson(lesson)
    return lesson


class TestStudents:
    def test_round_trip_keeps_all_fields(self, store):
        student = Student(
            first_name="Anna",
            last_name="Nowak",
            phone_number="+48 600 000 000",
            email="anna@example.com",
            billing_id="A1",
            lesson_link="https://meet.example.com/anna",
        )
        store.save_student(student)
        store.commit()

        loaded = store.get_student(student.id)
        assert loaded == student

    def test_upsert_updates_in_place(self, store):
        student = Student(name="Kasia")
        store.save_student(student)
        student.billing_id = "K9"
        store.save_student(student)
        store.commit()

        assert len(store.list_students()) == 1
        assert store.get_student(student.id).billing_id == "K9"

    def test_list_sorted_by_name_case_insensitive(self, store):
        for name in ("zenon", "Anna", "bartek"):
            store.save_student(Student(name=name))
        store.commit()
        assert [s.name for s in store.list_students()] == ["Anna", "bartek", "zenon"]

    def test_lessons_attached_newest_first(self, store):
        student = Student(name="Kasia")
        store.save_student(student)
        first = _save(store, student, datetime(2025, 3, 1, 10))
        second = _save(store, student, datetime(2025, 3, 8, 10))
        store.commit()

        loaded = store.get_student(student.id)
        assert [lesson.id for lesson in loaded.lessons] == [second.id, first.id]
        assert all(lesson.student is loaded for lesson in loaded.lessons)

    def test_missing_student_is_none(self, store):
        assert store.get_student("nope") is None

    def test_nameless_legacy_row_gets_placeholder(self, store):
        store.conn.execute("INSERT INTO students (id, name) VALUES ('legacy', NULL)")
        store.commit()
        assert store.get_student("legacy").display_name == "unknown"


class TestLessons:
    @pytest.fixture
    def students(self, store):
        anna = Student(first_name="Anna", last_name="Nowak")
        kasia = Student(name="Kasia")
        store.save_student(anna)
        store.save_student(kasia)
        return anna, kasia

    def test_round_trip(self, store, students):
        anna, _ = students
        lesson = _save(store, anna, datetime(2025, 3, 3, 10), notes="verbs", calendar_event_id="E1",
                       synced_with_calendar=True)
        store.commit()

        loaded = store.get_lesson(lesson.id)
        assert loaded == lesson
        assert loaded.student.display_name == "Anna Nowak"

    def test_filters(self, store, students):
        anna, kasia = students
        _save(store, anna, datetime(2025, 3, 3, 10), paid=True)
        unpaid = _save(store, anna, datetime(2025, 3, 4, 10))
        other = _save(store, kasia, datetime(2025, 3, 5, 10))
        store.commit()

        assert [lesson.id for lesson in store.list_lessons(unpaid_only=True)] == [other.id, unpaid.id]
        assert {lesson.id for lesson in store.list_lessons(search="NOWAK", unpaid_only=True)} == {unpaid.id}
        assert len(store.list_lessons(student_id=anna.id)) == 2

    def test_month_range_is_half_open(self, store, students):
        anna, _ = students
        inside_first = _save(store, anna, datetime(2025, 3, 1, 0, 0))
        inside_last = _save(store, anna, datetime(2025, 3, 31, 21, 30))
        _save(store, anna, datetime(2025, 4, 1, 0, 0))
        _save(store, anna, datetime(2025, 2, 28, 23, 59))
        store.commit()

        lessons = store.lessons_for_month(2025, 3)
        assert [lesson.id for lesson in lessons] == [inside_first.id, inside_last.id]

    def test_december_rolls_into_next_year(self, store, students):
        anna, _ = students
        lesson = _save(store, anna, datetime(2024, 12, 31, 18))
        store.commit()
        assert [l.id for l in store.lessons_for_month(2024, 12)] == [lesson.id]

    def test_last_lesson(self, store, students):
        anna, _ = students
        assert store.last_lesson() is None
        _save(store, anna, datetime(2025, 3, 1), rate=40.0)
        _save(store, anna, datetime(2025, 3, 9), rate=70.0)
        store.commit()
        assert store.last_lesson().hourly_rate == 70.0

    def test_delete(self, store, students):
        anna, _ = students
        lesson = _save(store, anna, datetime(2025, 3, 1))
        store.commit()
        store.delete_lesson(lesson.id)
        store.commit()
        assert store.get_lesson(lesson.id) is None

    def test_dateless_legacy_row_is_skipped(self, store, students):
        anna, _ = students
        store.conn.execute(
            "INSERT INTO lessons (id, student_id, date, duration, hourly_rate) VALUES (?, ?, NULL, 1, 50)",
            ("legacy", anna.id),
        )
        store.commit()
        assert store.get_lesson("legacy") is None
        assert store.list_lessons() == []

    def test_synced_flag_without_event_id_is_dropped(self, store, students):
        anna, _ = students
        store.conn.execute(
            "INSERT INTO lessons (id, student_id, date, duration, hourly_rate, synced_with_calendar) "
            "VALUES (?, ?, '2025-03-01T10:00:00', 1, 50, 1)",
            ("half-synced", anna.id),
        )
        store.commit()
        assert store.get_lesson("half-synced").synced_with_calendar is False


class TestPreferences:
    def test_set_and_get(self, store):
        assert store.get_preference(CALENDAR_PREFERENCE) is None
        store.set_preference(CALENDAR_PREFERENCE, "cal-1")
        store.set_preference(CALENDAR_PREFERENCE, "cal-2")
        store.commit()
        assert store.get_preference(CALENDAR_PREFERENCE) == "cal-2"

    def test_survives_reopen(self, db_path):
        with LessonStore(db_path) as store:
            store.set_preference("k", "v")
            store.commit()
        with LessonStore(db_path) as store:
            assert store.get_preference("k") == "v"


class TestMigration:
    def test_old_schema_gains_late_columns(self, db_path):
        conn = sqlite3.connect(db_path)
        conn.executescript("""
            CREATE TABLE students (id TEXT PRIMARY KEY, name TEXT,
                first_name TEXT NOT NULL DEFAULT '', last_name TEXT NOT NULL DEFAULT '',
                phone_number TEXT NOT NULL DEFAULT '', email TEXT NOT NULL DEFAULT '',
                billing_id TEXT NOT NULL DEFAULT '');
            CREATE TABLE lessons (id TEXT PRIMARY KEY, student_id TEXT NOT NULL, date TEXT,
                duration REAL NOT NULL, hourly_rate REAL NOT NULL,
                is_paid INTEGER NOT NULL DEFAULT 0, notes TEXT NOT NULL DEFAULT '');
            INSERT INTO students (id, name) VALUES ('s1', 'Kasia');
            INSERT INTO lessons (id, student_id, date, duration, hourly_rate)
                VALUES ('l1', 's1', '2025-03-01T10:00:00', 1, 50);
        """)
        conn.commit()
        conn.close()

        with LessonStore(db_path) as store:
            lesson = store.get_lesson("l1")
            assert lesson.calendar_event_id is None
            assert lesson.synced_with_calendar is False
            assert store.get_student("s1").lesson_link == ""


class TestFailures:
    def test_unopenable_database_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(StorageError):
            LessonStore(blocker / "lessons.db").connect()
