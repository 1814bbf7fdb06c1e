"""
SQLite persistence for students, lessons and preferences.
"""

import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from lesson_tracker.grid import month_bounds
from lesson_tracker.models import Lesson
from lesson_tracker.models import StorageError
from lesson_tracker.models import Student
from lesson_tracker.models import ValidationError

logger = logging.getLogger(__name__)

CALENDAR_PREFERENCE = "lesson_calendar_id"

# Columns added after the first schema; older databases get them via
# migrate_if_needed().
_STUDENT_LATE_COLUMNS = {
    "lesson_link": "TEXT NOT NULL DEFAULT ''",
}
_LESSON_LATE_COLUMNS = {
    "calendar_event_id": "TEXT",
    "synced_with_calendar": "INTEGER NOT NULL DEFAULT 0",
}


class LessonStore:
    """Manages the SQLite database holding students and lessons."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self):
        """Open the database, creating and migrating the schema as needed."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(str(self.db_path))
            self.conn.row_factory = sqlite3.Row
            self._init_schema()
            self.migrate_if_needed()
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Cannot open lesson database {self.db_path}: {e}") from e

    def _init_schema(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS students (
                id TEXT PRIMARY KEY,
                name TEXT,
                first_name TEXT NOT NULL DEFAULT '',
                last_name TEXT NOT NULL DEFAULT '',
                phone_number TEXT NOT NULL DEFAULT '',
                email TEXT NOT NULL DEFAULT '',
                billing_id TEXT NOT NULL DEFAULT '',
                lesson_link TEXT NOT NULL DEFAULT ''
            );
            CREATE TABLE IF NOT EXISTS lessons (
                id TEXT PRIMARY KEY,
                student_id TEXT NOT NULL REFERENCES students(id),
                date TEXT,
                duration REAL NOT NULL,
                hourly_rate REAL NOT NULL,
                is_paid INTEGER NOT NULL DEFAULT 0,
                notes TEXT NOT NULL DEFAULT '',
                calendar_event_id TEXT,
                synced_with_calendar INTEGER NOT NULL DEFAULT 0
            );
            CREATE INDEX IF NOT EXISTS lessons_by_date ON lessons(date);
            CREATE INDEX IF NOT EXISTS lessons_by_student ON lessons(student_id);
            CREATE TABLE IF NOT EXISTS preferences (
                key TEXT PRIMARY KEY,
                value TEXT
            );
        """)
        self.conn.commit()

    def migrate_if_needed(self):
        """Add columns that databases written by older versions lack."""
        for table, late_columns in (
            ("students", _STUDENT_LATE_COLUMNS),
            ("lessons", _LESSON_LATE_COLUMNS),
        ):
            cursor = self.conn.execute(f"PRAGMA table_info({table})")
            columns = {row["name"] for row in cursor.fetchall()}
            for column, ddl in late_columns.items():
                if column not in columns:
                    logger.info("Migrating lesson database: adding %s.%s", table, column)
                    self.conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")
        self.conn.commit()

    # ------------------------------------------------------------------ #
    # Row adapters                                                         #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _student_from_row(row: sqlite3.Row) -> Student:
        name = row["name"] or ""
        first_name = row["first_name"] or ""
        last_name = row["last_name"] or ""
        if not (name.strip() or first_name.strip() or last_name.strip()):
            # Legacy rows may have lost every name field.
            name = "unknown"
        return Student(
            id=row["id"],
            name=name,
            first_name=first_name,
            last_name=last_name,
            phone_number=row["phone_number"] or "",
            email=row["email"] or "",
            billing_id=row["billing_id"] or "",
            lesson_link=row["lesson_link"] or "",
        )

    @staticmethod
    def _lesson_from_row(row: sqlite3.Row) -> Lesson | None:
        if not row["date"]:
            logger.warning("Skipping lesson %s: no date recorded", row["id"])
            return None
        event_id = row["calendar_event_id"]
        try:
            return Lesson(
                id=row["id"],
                student_id=row["student_id"],
                date=datetime.fromisoformat(row["date"]),
                duration=row["duration"],
                hourly_rate=row["hourly_rate"],
                is_paid=bool(row["is_paid"]),
                notes=row["notes"] or "",
                calendar_event_id=event_id,
                synced_with_calendar=bool(row["synced_with_calendar"]) and bool(event_id),
            )
        except ValidationError as e:
            logger.warning("Skipping lesson %s: %s", row["id"], e)
            return None

    def _lessons(self, sql: str, params: tuple = ()) -> list[Lesson]:
        """Run a lesson query and attach each lesson's student."""
        lessons = []
        students: dict[str, Student | None] = {}
        for row in self.conn.execute(sql, params).fetchall():
            lesson = self._lesson_from_row(row)
            if lesson is None:
                continue
            if lesson.student_id not in students:
                students[lesson.student_id] = self.get_student(lesson.student_id, with_lessons=False)
            lesson.student = students[lesson.student_id]
            lessons.append(lesson)
        return lessons

    # ------------------------------------------------------------------ #
    # Students                                                             #
    # ------------------------------------------------------------------ #

    def save_student(self, student: Student):
        """Insert or update a student; in-memory values win."""
        self.conn.execute(
            "INSERT INTO students "
            "(id, name, first_name, last_name, phone_number, email, billing_id, lesson_link) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET "
            "name = excluded.name, first_name = excluded.first_name, "
            "last_name = excluded.last_name, phone_number = excluded.phone_number, "
            "email = excluded.email, billing_id = excluded.billing_id, "
            "lesson_link = excluded.lesson_link",
            (
                student.id,
                student.name,
                student.first_name,
                student.last_name,
                student.phone_number,
                student.email,
                student.billing_id,
                student.lesson_link,
            ),
        )

    def get_student(self, student_id: str, with_lessons: bool = True) -> Student | None:
        row = self.conn.execute("SELECT * FROM students WHERE id = ?", (student_id,)).fetchone()
        if row is None:
            return None
        student = self._student_from_row(row)
        if with_lessons:
            self._attach_lessons(student)
        return student

    def list_students(self) -> list[Student]:
        """All students sorted by display name, each with its lessons attached."""
        rows = self.conn.execute("SELECT * FROM students").fetchall()
        students = sorted(
            (self._student_from_row(row) for row in rows),
            key=lambda s: (s.display_name.casefold(), s.id),
        )
        for student in students:
            self._attach_lessons(student)
        return students

    def _attach_lessons(self, student: Student):
        rows = self.conn.execute(
            "SELECT * FROM lessons WHERE student_id = ? ORDER BY date DESC, id", (student.id,)
        ).fetchall()
        lessons = []
        for row in rows:
            lesson = self._lesson_from_row(row)
            if lesson is not None:
                lesson.student = student
                lessons.append(lesson)
        student.lessons = lessons

    def delete_student(self, student_id: str):
        """Delete a student row and every lesson row that references it."""
        self.conn.execute("DELETE FROM lessons WHERE student_id = ?", (student_id,))
        self.conn.execute("DELETE FROM students WHERE id = ?", (student_id,))

    # ------------------------------------------------------------------ #
    # Lessons                                                              #
    # ------------------------------------------------------------------ #

    def save_lesson(self, lesson: Lesson):
        """Insert or update a lesson; in-memory values win."""
        self.conn.execute(
            "INSERT INTO lessons "
            "(id, student_id, date, duration, hourly_rate, is_paid, notes, "
            " calendar_event_id, synced_with_calendar) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET "
            "student_id = excluded.student_id, date = excluded.date, "
            "duration = excluded.duration, hourly_rate = excluded.hourly_rate, "
            "is_paid = excluded.is_paid, notes = excluded.notes, "
            "calendar_event_id = excluded.calendar_event_id, "
            "synced_with_calendar = excluded.synced_with_calendar",
            (
                lesson.id,
                lesson.student_id,
                lesson.date.isoformat(timespec="seconds"),
                lesson.duration,
                lesson.hourly_rate,
                int(lesson.is_paid),
                lesson.notes,
                lesson.calendar_event_id,
                int(lesson.synced_with_calendar),
            ),
        )

    def get_lesson(self, lesson_id: str) -> Lesson | None:
        lessons = self._lessons("SELECT * FROM lessons WHERE id = ?", (lesson_id,))
        return lessons[0] if lessons else None

    def list_lessons(
        self,
        student_id: str | None = None,
        unpaid_only: bool = False,
        search: str | None = None,
    ) -> list[Lesson]:
        """Lessons newest first, optionally filtered.

        ``search`` matches the student's display name case-insensitively.
        """
        sql = "SELECT * FROM lessons"
        clauses, params = [], []
        if student_id is not None:
            clauses.append("student_id = ?")
            params.append(student_id)
        if unpaid_only:
            clauses.append("is_paid = 0")
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY date DESC, id"
        lessons = self._lessons(sql, tuple(params))
        if search:
            needle = search.casefold()
            lessons = [
                lesson
                for lesson in lessons
                if lesson.student and needle in lesson.student.display_name.casefold()
            ]
        return lessons

    def lessons_between(self, start: datetime, end: datetime) -> list[Lesson]:
        """Lessons with start <= date < end, ascending by date."""
        return self._lessons(
            "SELECT * FROM lessons WHERE date >= ? AND date < ? ORDER BY date, id",
            (start.isoformat(timespec="seconds"), end.isoformat(timespec="seconds")),
        )

    def lessons_for_month(self, year: int, month: int) -> list[Lesson]:
        start, end = month_bounds(year, month)
        return self.lessons_between(start, end)

    def last_lesson(self) -> Lesson | None:
        """The most recently scheduled lesson, if any."""
        lessons = self._lessons("SELECT * FROM lessons ORDER BY date DESC, id LIMIT 1")
        return lessons[0] if lessons else None

    def delete_lesson(self, lesson_id: str):
        self.conn.execute("DELETE FROM lessons WHERE id = ?", (lesson_id,))

    # ------------------------------------------------------------------ #
    # Preferences                                                          #
    # ------------------------------------------------------------------ #

    def get_preference(self, key: str) -> str | None:
        row = self.conn.execute("SELECT value FROM preferences WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_preference(self, key: str, value: str | None):
        self.conn.execute(
            "INSERT INTO preferences (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )

    # ------------------------------------------------------------------ #
    # Unit of work                                                         #
    # ------------------------------------------------------------------ #

    def commit(self):
        """Commit pending changes. Failure here is fatal."""
        if self.conn:
            try:
                self.conn.commit()
            except sqlite3.Error as e:
                raise StorageError(f"Failed to save changes to {self.db_path}: {e}") from e

    save = commit

    def rollback(self):
        if self.conn:
            self.conn.rollback()

    def close(self):
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
