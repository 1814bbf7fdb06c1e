"""
Monthly billing report: grouping, totals and the semicolon-delimited export.

Output is deterministic for identical input: groups are ordered by key using
plain code-point comparison, students by display name then id, and lessons by
date then id.
"""

import csv
import io
import logging
import math
import os
import tempfile
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from pathlib import Path

from lesson_tracker.grid import month_bounds
from lesson_tracker.models import CURRENCY
from lesson_tracker.models import Lesson
from lesson_tracker.models import ReportExportError
from lesson_tracker.models import ReportGrouping
from lesson_tracker.models import Student

logger = logging.getLogger(__name__)

MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

LINE_DATE_FORMAT = "%Y-%m-%d %H:%M"
COLUMNS = "date;durationHours;hourlyRate;amount;status"
DELIMITER = ";"


@dataclass
class LessonLine:
    lesson_id: str
    date: datetime
    duration: float
    hourly_rate: float
    is_paid: bool

    @property
    def amount(self) -> float:
        return self.duration * self.hourly_rate


@dataclass
class StudentSection:
    student: Student
    lines: list[LessonLine] = field(default_factory=list)

    @property
    def hours(self) -> float:
        return math.fsum(line.duration for line in self.lines)

    @property
    def amount(self) -> float:
        return math.fsum(line.amount for line in self.lines)


@dataclass
class ReportGroup:
    key: str
    students: list[StudentSection] = field(default_factory=list)

    @property
    def hours(self) -> float:
        return math.fsum(section.hours for section in self.students)

    @property
    def amount(self) -> float:
        return math.fsum(section.amount for section in self.students)


@dataclass
class MonthlyReport:
    year: int
    month: int
    grouping: ReportGrouping
    groups: list[ReportGroup] = field(default_factory=list)

    @property
    def total_hours(self) -> float:
        return math.fsum(group.hours for group in self.groups)

    @property
    def total_amount(self) -> float:
        return math.fsum(group.amount for group in self.groups)

    @property
    def paid_amount(self) -> float:
        return math.fsum(
            line.amount
            for group in self.groups
            for section in group.students
            for line in section.lines
            if line.is_paid
        )

    @property
    def lesson_count(self) -> int:
        return sum(len(section.lines) for group in self.groups for section in group.students)

    @property
    def title(self) -> str:
        return f"Lesson report for {MONTH_NAMES[self.month - 1]} {self.year}"

    @property
    def file_name(self) -> str:
        return f"lesson-report-{self.year:04d}-{self.month:02d}.csv"


def _group_key(student: Student, grouping: ReportGrouping) -> str:
    if grouping == ReportGrouping.BILLING_ID:
        return student.billing_key
    return student.display_name


def build_monthly_report(
    lessons: list[Lesson],
    year: int,
    month: int,
    grouping: ReportGrouping = ReportGrouping.BILLING_ID,
) -> MonthlyReport:
    """Partition one month of lessons into billing groups with totals.

    Each lesson must have its ``student`` resolved; lessons without one, or
    dated outside the month, are left out.
    """
    start, end = month_bounds(year, month)

    # 1. partition by student
    sections: dict[str, StudentSection] = {}
    for lesson in lessons:
        if lesson.student is None:
            logger.debug("Report skips lesson %s: no student", lesson.id)
            continue
        if not start <= lesson.date < end:
            logger.debug("Report skips lesson %s: outside %04d-%02d", lesson.id, year, month)
            continue
        section = sections.setdefault(lesson.student.id, StudentSection(lesson.student))
        section.lines.append(
            LessonLine(
                lesson_id=lesson.id,
                date=lesson.date,
                duration=lesson.duration,
                hourly_rate=lesson.hourly_rate,
                is_paid=lesson.is_paid,
            )
        )

    # 2. re-partition students into groups
    groups: dict[str, ReportGroup] = {}
    for section in sections.values():
        key = _group_key(section.student, grouping)
        groups.setdefault(key, ReportGroup(key)).students.append(section)

    # 3. stable ordering everywhere
    for group in groups.values():
        group.students.sort(key=lambda s: (s.student.display_name, s.student.id))
        for section in group.students:
            section.lines.sort(key=lambda line: (line.date, line.lesson_id))

    ordered = [groups[key] for key in sorted(groups)]
    return MonthlyReport(year=year, month=month, grouping=grouping, groups=ordered)


def _num(value: float) -> str:
    return f"{value:.2f}"


def render_report(report: MonthlyReport) -> str:
    """Render the report as semicolon-delimited text.

    Free text containing the delimiter, quotes or line breaks is quoted
    rather than altered.
    """
    grouped = report.grouping == ReportGrouping.BILLING_ID
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=DELIMITER, lineterminator="\n")
    writer.writerow([report.title])
    writer.writerow([])

    for group in report.groups:
        if grouped:
            writer.writerow([f"Billing ID: {group.key}"])
        for section in group.students:
            name = section.student.display_name
            writer.writerow([f"Student: {name}"])
            writer.writerow(COLUMNS.split(DELIMITER))
            for line in section.lines:
                writer.writerow(
                    [
                        line.date.strftime(LINE_DATE_FORMAT),
                        _num(line.duration),
                        _num(line.hourly_rate),
                        _num(line.amount),
                        "paid" if line.is_paid else "unpaid",
                    ]
                )
            writer.writerow(
                [f"Subtotal {name}", f"{_num(section.hours)} h", f"{_num(section.amount)} {CURRENCY}"]
            )
        if grouped:
            writer.writerow(
                [f"Total for {group.key}", f"{_num(group.hours)} h", f"{_num(group.amount)} {CURRENCY}"]
            )
        writer.writerow([])

    writer.writerow(["MONTH SUMMARY"])
    writer.writerow(["Total hours", _num(report.total_hours)])
    writer.writerow(["Total amount", f"{_num(report.total_amount)} {CURRENCY}"])
    return buf.getvalue()


def write_report(report: MonthlyReport, directory: Path | None = None) -> Path:
    """Write the rendered report atomically; returns the file path.

    The content goes to a temporary sibling first and is renamed into place,
    so a failed write never leaves a truncated report behind.
    """
    directory = Path(directory) if directory is not None else Path(tempfile.gettempdir())
    target = directory / report.file_name
    content = render_report(report)

    tmp_name = None
    try:
        directory.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=directory, prefix=".lesson-report-", delete=False
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(content)
        os.replace(tmp_name, target)
    except OSError as e:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise ReportExportError(f"Cannot write report {target}: {e}") from e

    logger.info("Report written to %s", target)
    return target
