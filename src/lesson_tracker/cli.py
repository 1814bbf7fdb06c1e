"""
Command-line interface for lesson-tracker.
"""

import logging
from configparser import ConfigParser
from contextlib import contextmanager
from dataclasses import dataclass
from dataclasses import field
from datetime import date
from datetime import datetime
from datetime import timedelta
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from lesson_tracker.db import CALENDAR_PREFERENCE
from lesson_tracker.db import LessonStore
from lesson_tracker.grid import GridView
from lesson_tracker.grid import bucket_by_day
from lesson_tracker.grid import bucket_by_hour
from lesson_tracker.grid import day_hours
from lesson_tracker.grid import grid_for
from lesson_tracker.grid import month_bounds
from lesson_tracker.grid import month_grid
from lesson_tracker.models import CURRENCY
from lesson_tracker.models import DEFAULT_CONFIG
from lesson_tracker.models import DEFAULT_DB
from lesson_tracker.models import Lesson
from lesson_tracker.models import LessonStatus
from lesson_tracker.models import LessonTrackerError
from lesson_tracker.models import ReportGrouping
from lesson_tracker.models import StorageError
from lesson_tracker.models import Student
from lesson_tracker.models import TrackerConfig
from lesson_tracker.models import ValidationError
from lesson_tracker.models import classify_lessons
from lesson_tracker.report import render_report
from lesson_tracker.sync import CalendarReconciler
from lesson_tracker.tracker import LessonTracker

# ---------------------------------------------------------------------------
# Typer apps
# ---------------------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Track students, lessons and billing, synced with your desktop calendar.",
)
student_app = typer.Typer(no_args_is_help=True, help="Manage students.")
lesson_app = typer.Typer(no_args_is_help=True, help="Schedule, bill and sync lessons.")
calendar_app = typer.Typer(no_args_is_help=True, help="Calendar views and calendar selection.")
app.add_typer(student_app, name="student")
app.add_typer(lesson_app, name="lesson")
app.add_typer(calendar_app, name="calendar")

console = Console()

CONFIG_SECTION = "lesson-tracker"
WEEKDAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
DATE_FORMATS = ["%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M", "%Y-%m-%d"]


# ---------------------------------------------------------------------------
# Global state shared across subcommands
# ---------------------------------------------------------------------------


@dataclass
class _State:
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG)
    db_path: Path | None = None
    verbose: bool = False


state = _State()


@app.callback()
def _global(
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help=f"Config file path (default: {DEFAULT_CONFIG})"),
    ] = DEFAULT_CONFIG,
    db: Annotated[
        Path | None,
        typer.Option("--db", help=f"Lesson database path (default: {DEFAULT_DB})"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose debug output"),
    ] = False,
) -> None:
    state.config_path = config
    state.db_path = db
    state.verbose = verbose
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False, console=console)],
    )


def _load_config_file(config_path: Path) -> dict[str, str]:
    if not config_path.exists():
        return {}
    parser = ConfigParser()
    parser.read(config_path)
    if CONFIG_SECTION not in parser:
        return {}
    return dict(parser[CONFIG_SECTION])


def _parse_bool(raw: str, key: str) -> bool:
    value = raw.strip().lower()
    if value in ConfigParser.BOOLEAN_STATES:
        return ConfigParser.BOOLEAN_STATES[value]
    raise typer.BadParameter(f"{key} must be true or false, got {raw!r}")


def _build_config() -> TrackerConfig:
    """Merge the config file with command-line overrides."""
    config_file = _load_config_file(state.config_path)
    cfg = TrackerConfig(verbose=state.verbose)

    if state.db_path is not None:
        cfg.db_path = state.db_path
    elif config_file.get("database"):
        cfg.db_path = Path(config_file["database"]).expanduser()

    cfg.calendar_id = config_file.get("calendar_id") or None
    if "calendar_enabled" in config_file:
        cfg.calendar_enabled = _parse_bool(config_file["calendar_enabled"], "calendar_enabled")
    if "auto_sync_on_create" in config_file:
        cfg.auto_sync_on_create = _parse_bool(
            config_file["auto_sync_on_create"], "auto_sync_on_create"
        )

    try:
        if "week_start" in config_file:
            cfg.week_start = int(config_file["week_start"])
        if "default_hourly_rate" in config_file:
            cfg.default_hourly_rate = float(config_file["default_hourly_rate"])
        if "reminder_minutes" in config_file:
            cfg.reminder_minutes = int(config_file["reminder_minutes"])
        if "report_grouping" in config_file:
            cfg.report_grouping = ReportGrouping(config_file["report_grouping"].strip())
    except ValueError as e:
        raise typer.BadParameter(f"Invalid value in {state.config_path}: {e}") from None

    if not 0 <= cfg.week_start <= 6:
        raise typer.BadParameter("week_start must be between 0 (Monday) and 6 (Sunday)")
    return cfg


def _make_calendar(cfg: TrackerConfig, store: LessonStore):
    """The EDS backend, or None when calendar integration is disabled."""
    if not cfg.calendar_enabled:
        return None
    from lesson_tracker.eds_client import EDSCalendarClient

    return EDSCalendarClient(store.get_preference(CALENDAR_PREFERENCE) or cfg.calendar_id)


@contextmanager
def _open_tracker():
    """Yield a LessonTracker; turn domain errors into clean exits."""
    cfg = _build_config()
    try:
        with LessonStore(cfg.db_path) as store:
            reconciler = CalendarReconciler(_make_calendar(cfg, store), cfg.reminder_minutes)
            yield LessonTracker(store, reconciler, cfg)
    except (typer.Exit, typer.Abort):
        raise
    except ValidationError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None
    except StorageError as e:
        console.print(f"[bold red]Storage failure:[/] {e}")
        raise typer.Exit(1) from None
    except LessonTrackerError as e:
        console.print(f"[bold red]Failed:[/] {e}")
        raise typer.Exit(1) from None
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted by user[/]")
        raise typer.Exit(130) from None
    except Exception as e:
        console.print_exception()
        console.print(f"[bold red]Unexpected error:[/] {e}")
        raise typer.Exit(1) from e


def _resolve(items, ref: str, describe, kind: str):
    """Find one item by exact id, id prefix or (students) display name."""
    for item in items:
        if item.id == ref:
            return item
    needle = ref.casefold()
    matches = [item for item in items if item.id.startswith(ref)]
    if not matches:
        matches = [item for item in items if describe(item).casefold() == needle]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise ValidationError(f"No {kind} matches {ref!r}")
    raise ValidationError(f"{ref!r} matches {len(matches)} {kind}s, use a longer id")


def _find_student(tracker: LessonTracker, ref: str) -> Student:
    return _resolve(tracker.students(), ref, lambda s: s.display_name, "student")


def _find_lesson(tracker: LessonTracker, ref: str) -> Lesson:
    return _resolve(tracker.lessons(), ref, lambda lesson: lesson.id, "lesson")


def _short(uid: str) -> str:
    return uid[:8]


def _money(value: float) -> str:
    return f"{value:.2f} {CURRENCY}"


_STATUS_STYLE = {
    LessonStatus.UPCOMING: "cyan",
    LessonStatus.COMPLETED: "green",
    LessonStatus.UNPAID: "bold red",
}


def _status_text(lesson: Lesson, now: datetime) -> Text:
    status = lesson.status(now)
    return Text(status.value, style=_STATUS_STYLE[status])


def _lesson_label(lesson: Lesson) -> str:
    name = lesson.student.display_name if lesson.student else "?"
    return f"{lesson.date:%H:%M} {name}"


def _print_lessons(lessons: list[Lesson], title: str) -> None:
    now = datetime.now()
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Date")
    table.add_column("Student", style="bold")
    table.add_column("Hours", justify="right")
    table.add_column("Rate", justify="right")
    table.add_column("Amount", justify="right")
    table.add_column("Status")
    table.add_column("Cal", justify="center")
    for lesson in lessons:
        table.add_row(
            _short(lesson.id),
            lesson.formatted_date,
            lesson.student.display_name if lesson.student else "?",
            f"{lesson.duration:.1f}",
            f"{lesson.hourly_rate:.2f}",
            f"{lesson.total_value:.2f}",
            _status_text(lesson, now),
            Text("✓", style="green") if lesson.synced_with_calendar else "",
        )
    console.print(table)


def _confirm(what: str, yes: bool) -> None:
    if not yes:
        typer.confirm(f"Delete {what}?", abort=True)


# ---------------------------------------------------------------------------
# Subcommands: student
# ---------------------------------------------------------------------------

_NAME_OPT = Annotated[str | None, typer.Option("--name", help="Display name")]
_FIRST_OPT = Annotated[str | None, typer.Option("--first-name", "-f", help="First name")]
_LAST_OPT = Annotated[str | None, typer.Option("--last-name", "-l", help="Last name")]
_PHONE_OPT = Annotated[str | None, typer.Option("--phone", help="Phone number")]
_EMAIL_OPT = Annotated[str | None, typer.Option("--email", help="E-mail address")]
_BILLING_OPT = Annotated[
    str | None,
    typer.Option("--billing-id", help="Invoice id shared by students billed together"),
]
_LINK_OPT = Annotated[
    str | None, typer.Option("--link", help="Video-call link reused for every lesson")
]
_YES = Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")]


@student_app.command("add")
def student_add(
    name: Annotated[str, typer.Argument(help="Display name")] = "",
    first_name: _FIRST_OPT = None,
    last_name: _LAST_OPT = None,
    phone: _PHONE_OPT = None,
    email: _EMAIL_OPT = None,
    billing_id: _BILLING_OPT = None,
    link: _LINK_OPT = None,
) -> None:
    """Add a student. Needs a name, a first name or a last name."""
    with _open_tracker() as tracker:
        student = tracker.add_student(
            name=name,
            first_name=first_name or "",
            last_name=last_name or "",
            phone_number=phone or "",
            email=email or "",
            billing_id=billing_id or "",
            lesson_link=link or "",
        )
    console.print(f"Added [bold]{student.display_name}[/] [dim]({_short(student.id)})[/dim]")


@student_app.command("list")
def student_list() -> None:
    """List students with their totals."""
    with _open_tracker() as tracker:
        students = tracker.students()

    if not students:
        console.print("[yellow]No students yet. Add one with[/] [cyan]lesson-tracker student add[/]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("", width=2)
    table.add_column("Name", style="bold")
    table.add_column("Billing ID")
    table.add_column("Lessons", justify="right")
    table.add_column("Hours", justify="right")
    table.add_column("Unpaid", justify="right")
    for student in students:
        unpaid = Text(_money(student.total_unpaid))
        if student.total_unpaid > 0:
            unpaid.stylize("bold red")
        table.add_row(
            _short(student.id),
            student.initials,
            student.display_name,
            student.billing_id,
            str(student.total_lessons),
            f"{student.total_hours:.1f}",
            unpaid,
        )
    console.print(table)


@student_app.command("show")
def student_show(
    student: Annotated[str, typer.Argument(help="Student id, id prefix or name")],
) -> None:
    """Show contact details, totals, upcoming and unpaid lessons."""
    with _open_tracker() as tracker:
        found = _find_student(tracker, student)

    now = datetime.now()
    info = Text()
    for label, value in (
        ("Name", found.display_name),
        ("Phone", found.phone_number),
        ("E-mail", found.email),
        ("Billing ID", found.billing_id),
        ("Lesson link", found.lesson_link),
    ):
        if value:
            info.append(f"  {label + ':':<13}", style="bold")
            info.append(f"{value}\n")
    info.append(f"  {'ID:':<13}", style="bold")
    info.append(found.id, style="dim")
    console.print(Panel(info, title=f"[bold]{found.initials}[/bold]  {found.display_name}"))

    stats = Table.grid(padding=(0, 2))
    stats.add_column(style="bold")
    stats.add_column(justify="right")
    stats.add_row("Lessons", str(found.total_lessons))
    stats.add_row("Hours", f"{found.total_hours:.1f}")
    stats.add_row("Total value", _money(found.total_value))
    stats.add_row("Paid", _money(found.total_paid))
    stats.add_row("Unpaid", Text(_money(found.total_unpaid), style="bold red" if found.total_unpaid else ""))
    console.print(Panel(stats, title="[bold]Totals[/bold]", expand=False))

    upcoming = found.upcoming_lessons(now)[:5]
    if upcoming:
        _print_lessons(upcoming, "Upcoming lessons")
    unpaid = [lesson for lesson in found.unpaid_lessons if lesson.date < now][:5]
    if unpaid:
        _print_lessons(unpaid, "Unpaid lessons")


@student_app.command("edit")
def student_edit(
    student: Annotated[str, typer.Argument(help="Student id, id prefix or name")],
    name: _NAME_OPT = None,
    first_name: _FIRST_OPT = None,
    last_name: _LAST_OPT = None,
    phone: _PHONE_OPT = None,
    email: _EMAIL_OPT = None,
    billing_id: _BILLING_OPT = None,
    link: _LINK_OPT = None,
) -> None:
    """Change student details. Pass an empty string to clear a field."""
    with _open_tracker() as tracker:
        found = _find_student(tracker, student)
        updated = tracker.update_student(
            found.id,
            name=name,
            first_name=first_name,
            last_name=last_name,
            phone_number=phone,
            email=email,
            billing_id=billing_id,
            lesson_link=link,
        )
    console.print(f"Updated [bold]{updated.display_name}[/]")


@student_app.command("delete")
def student_delete(
    student: Annotated[str, typer.Argument(help="Student id, id prefix or name")],
    yes: _YES = False,
) -> None:
    """Delete a student with all of their lessons and calendar events."""
    with _open_tracker() as tracker:
        found = _find_student(tracker, student)
        _confirm(f"{found.display_name} and {found.total_lessons} lesson(s)", yes)
        tracker.delete_student(found.id)
    console.print(f"Deleted [bold]{found.display_name}[/]")


# ---------------------------------------------------------------------------
# Subcommands: lesson
# ---------------------------------------------------------------------------

_DATE_OPT = Annotated[
    datetime | None,
    typer.Option("--date", "-d", formats=DATE_FORMATS, help="Start, e.g. '2025-03-03 10:00'"),
]
_DURATION_OPT = Annotated[float | None, typer.Option("--hours", "-h", help="Duration in hours")]
_RATE_OPT = Annotated[float | None, typer.Option("--rate", "-r", help=f"Hourly rate ({CURRENCY})")]
_NOTES_OPT = Annotated[str | None, typer.Option("--notes", help="Free-text notes")]
_LESSON_ARG = Annotated[str, typer.Argument(help="Lesson id or id prefix")]


@lesson_app.command("add")
def lesson_add(
    student: Annotated[str, typer.Argument(help="Student id, id prefix or name")],
    when: Annotated[
        datetime,
        typer.Option("--date", "-d", formats=DATE_FORMATS, help="Start, e.g. '2025-03-03 10:00'"),
    ],
    hours: Annotated[float, typer.Option("--hours", "-h", help="Duration in hours")] = 1.0,
    rate: _RATE_OPT = None,
    notes: Annotated[str, typer.Option("--notes", help="Free-text notes")] = "",
    sync: Annotated[
        bool | None,
        typer.Option(
            "--sync/--no-sync",
            help="Add to the calendar (default: auto_sync_on_create from the config)",
        ),
    ] = None,
) -> None:
    """Schedule a lesson. The rate defaults to the one used last."""
    with _open_tracker() as tracker:
        found = _find_student(tracker, student)
        if rate is None:
            rate = tracker.suggested_hourly_rate()
        lesson = tracker.add_lesson(found.id, when, hours, rate, notes=notes, sync=sync)

    console.print(
        f"Added lesson [dim]{_short(lesson.id)}[/dim] for [bold]{found.display_name}[/] "
        f"on {lesson.formatted_date}, {_money(lesson.total_value)}"
    )
    if lesson.synced_with_calendar:
        console.print("[green]Added to calendar ✓[/]")
    elif tracker.reconciler.calendar is not None and (
        sync or (sync is None and tracker.config.auto_sync_on_create)
    ):
        console.print("[yellow]Not added to calendar[/] [dim](see log; retry with lesson sync)[/dim]")


@lesson_app.command("list")
def lesson_list(
    unpaid: Annotated[bool, typer.Option("--unpaid", help="Only unpaid lessons")] = False,
    search: Annotated[
        str | None, typer.Option("--search", "-s", help="Filter by student name")
    ] = None,
    month: Annotated[
        str | None, typer.Option("--month", "-m", help="Only this month, YYYY-MM")
    ] = None,
) -> None:
    """List lessons, newest first."""
    with _open_tracker() as tracker:
        lessons = tracker.lessons(unpaid_only=unpaid, search=search)

    if month:
        try:
            parsed = datetime.strptime(month, "%Y-%m")
            start, end = month_bounds(parsed.year, parsed.month)
        except ValueError:
            console.print(f"[bold red]Error:[/] Invalid month: {month!r} (expected YYYY-MM)")
            raise typer.Exit(1) from None
        lessons = [lesson for lesson in lessons if start <= lesson.date < end]

    if not lessons:
        console.print("[yellow]No lessons found.[/]")
        return
    _print_lessons(lessons, "Lessons")


@lesson_app.command("edit")
def lesson_edit(
    lesson: _LESSON_ARG,
    when: _DATE_OPT = None,
    hours: _DURATION_OPT = None,
    rate: _RATE_OPT = None,
    notes: _NOTES_OPT = None,
    student: Annotated[
        str | None, typer.Option("--student", help="Move the lesson to another student")
    ] = None,
) -> None:
    """Change a lesson and update its calendar event."""
    with _open_tracker() as tracker:
        found = _find_lesson(tracker, lesson)
        student_id = _find_student(tracker, student).id if student else None
        updated = tracker.edit_lesson(
            found.id,
            date=when,
            duration=hours,
            hourly_rate=rate,
            notes=notes,
            student_id=student_id,
        )
    console.print(f"Updated lesson [dim]{_short(updated.id)}[/dim] on {updated.formatted_date}")


@lesson_app.command("pay")
def lesson_pay(lesson: _LESSON_ARG) -> None:
    """Mark a lesson as paid."""
    with _open_tracker() as tracker:
        updated = tracker.set_paid(_find_lesson(tracker, lesson).id, True)
    console.print(f"Lesson [dim]{_short(updated.id)}[/dim] marked [green]paid[/]")


@lesson_app.command("unpay")
def lesson_unpay(lesson: _LESSON_ARG) -> None:
    """Mark a lesson as not paid."""
    with _open_tracker() as tracker:
        updated = tracker.set_paid(_find_lesson(tracker, lesson).id, False)
    console.print(f"Lesson [dim]{_short(updated.id)}[/dim] marked [red]unpaid[/]")


@lesson_app.command("delete")
def lesson_delete(lesson: _LESSON_ARG, yes: _YES = False) -> None:
    """Delete a lesson and its calendar event."""
    with _open_tracker() as tracker:
        found = _find_lesson(tracker, lesson)
        _confirm(f"lesson {_short(found.id)} on {found.formatted_date}", yes)
        tracker.delete_lesson(found.id)
    console.print(f"Deleted lesson [dim]{_short(found.id)}[/dim]")


@lesson_app.command("sync")
def lesson_sync(lesson: _LESSON_ARG) -> None:
    """Create or refresh the calendar event of a lesson."""
    with _open_tracker() as tracker:
        synced = tracker.sync_lesson(_find_lesson(tracker, lesson).id)
    if not synced:
        console.print("[bold red]Calendar sync failed[/] [dim](run with -v for details)[/dim]")
        raise typer.Exit(1)
    console.print("[green]Synced with calendar ✓[/]")


@lesson_app.command("unsync")
def lesson_unsync(lesson: _LESSON_ARG) -> None:
    """Remove the calendar event of a lesson, keeping the lesson."""
    with _open_tracker() as tracker:
        removed = tracker.unsync_lesson(_find_lesson(tracker, lesson).id)
    if not removed:
        console.print("[bold red]Could not remove the calendar event[/]")
        raise typer.Exit(1)
    console.print("Calendar event removed")


# ---------------------------------------------------------------------------
# Subcommands: calendar
# ---------------------------------------------------------------------------

_ON_OPT = Annotated[
    datetime | None,
    typer.Option("--date", "-d", formats=DATE_FORMATS, help="Reference date (default: today)"),
]


def _weekday_headers(week_start: int) -> list[str]:
    return [WEEKDAY_NAMES[(week_start + i) % 7] for i in range(7)]


def _lessons_in_view(tracker: LessonTracker, reference: date, view: GridView):
    """Dates shown by ``view`` and the lessons on them, bucketed by day."""
    days = grid_for(reference, view, tracker.config.week_start)
    start = datetime.combine(days[0], datetime.min.time())
    end = datetime.combine(days[-1] + timedelta(days=1), datetime.min.time())
    return days, bucket_by_day(tracker.lessons_between(start, end))


@calendar_app.command("month")
def calendar_month(on: _ON_OPT = None) -> None:
    """Month grid with the lessons of each day."""
    reference = (on or datetime.now()).date()
    with _open_tracker() as tracker:
        _, buckets = _lessons_in_view(tracker, reference, GridView.MONTH)
        cells = month_grid(reference, tracker.config.week_start)
        headers = _weekday_headers(tracker.config.week_start)

    today = date.today()
    table = Table(title=f"{reference:%B %Y}", show_lines=True, header_style="bold cyan")
    for header in headers:
        table.add_column(header, width=14, overflow="ellipsis")

    for row_start in range(0, len(cells), 7):
        row = []
        for cell in cells[row_start : row_start + 7]:
            text = Text()
            style = "dim" if not cell.in_month else ("bold reverse" if cell.day == today else "bold")
            text.append(str(cell.day.day), style=style)
            day_lessons = buckets.get(cell.day, [])
            for lesson in day_lessons[:3]:
                text.append(f"\n{_lesson_label(lesson)}", style="dim" if not cell.in_month else "")
            if len(day_lessons) > 3:
                text.append(f"\n+{len(day_lessons) - 3} more", style="italic")
            row.append(text)
        table.add_row(*row)
    console.print(table)


@calendar_app.command("week")
def calendar_week(on: _ON_OPT = None) -> None:
    """The week around a date, lessons per day."""
    reference = (on or datetime.now()).date()
    with _open_tracker() as tracker:
        days, buckets = _lessons_in_view(tracker, reference, GridView.WEEK)

    table = Table(show_header=True, header_style="bold cyan")
    for day in days:
        table.add_column(f"{day:%a %d.%m}", overflow="fold")
    table.add_row(
        *[
            "\n".join(_lesson_label(lesson) for lesson in buckets.get(day, [])) or Text("—", style="dim")
            for day in days
        ]
    )
    console.print(table)


@calendar_app.command("day")
def calendar_day(on: _ON_OPT = None) -> None:
    """Hour-by-hour timeline of one day."""
    day = (on or datetime.now()).date()
    with _open_tracker() as tracker:
        _, buckets = _lessons_in_view(tracker, day, GridView.DAY)

    lessons = buckets.get(day, [])
    hours = bucket_by_hour(lessons, day)
    table = Table(title=f"{day:%A %d.%m.%Y}", show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold", justify="right")
    table.add_column()
    for hour in day_hours():
        entries = hours[hour]
        label = ", ".join(
            f"{_lesson_label(lesson)} ({lesson.duration:.1f} h)" for lesson in entries
        )
        table.add_row(f"{hour:02d}:00", label or Text("·", style="dim"))
    console.print(table)
    outside = [lesson for lesson in lessons if lesson.date.hour not in hours]
    if outside:
        console.print(f"[dim]{len(outside)} lesson(s) outside 08:00–22:00[/dim]")


@calendar_app.command("upcoming")
def calendar_upcoming(
    days: Annotated[int, typer.Option("--days", help="How far ahead to look")] = 14,
) -> None:
    """Lesson events found in the desktop calendar."""
    with _open_tracker() as tracker:
        if not tracker.reconciler.has_access():
            console.print("[bold red]Error:[/] No calendar access.")
            raise typer.Exit(1)
        events = tracker.upcoming_events(days)

    if not events:
        console.print(f"[yellow]No lesson events in the next {days} days.[/]")
        return
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Title", style="bold")
    for event in events:
        table.add_row(f"{event.start:%d.%m.%Y %H:%M}", f"{event.end:%H:%M}", event.summary)
    console.print(table)


@calendar_app.command("list")
def calendar_list() -> None:
    """List writable calendars."""
    with _open_tracker() as tracker:
        calendars = tracker.available_calendars()
        selected = tracker.default_calendar_id()

    if not calendars:
        console.print("[yellow]No writable calendars available.[/]")
        return
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Display Name", style="bold")
    table.add_column("Account")
    table.add_column("UID", style="dim")
    table.add_column("")
    for calendar in calendars:
        mark = Text("selected", style="green") if calendar.uid == selected else ""
        table.add_row(calendar.name, calendar.account, calendar.uid, mark)
    console.print(table)


@calendar_app.command("use")
def calendar_use(
    calendar_uid: Annotated[str, typer.Argument(help="Calendar UID from 'calendar list'")],
) -> None:
    """Choose the calendar new lesson events are written to."""
    with _open_tracker() as tracker:
        tracker.set_default_calendar(calendar_uid)
    console.print(f"Lessons will be written to [cyan]{calendar_uid}[/]")


# ---------------------------------------------------------------------------
# Subcommand: report
# ---------------------------------------------------------------------------


@app.command()
def report(
    year: Annotated[int | None, typer.Argument(help="Year (default: current)")] = None,
    month: Annotated[int | None, typer.Argument(help="Month 1-12 (default: current)")] = None,
    grouping: Annotated[
        ReportGrouping | None,
        typer.Option("--grouping", "-g", help="Group by billing id or per student"),
    ] = None,
    output_dir: Annotated[
        Path | None,
        typer.Option("--output-dir", "-o", help="Directory for the CSV (default: temp dir)"),
    ] = None,
    open_file: Annotated[
        bool, typer.Option("--open/--no-open", help="Open the CSV in the default application")
    ] = True,
    show: Annotated[bool, typer.Option("--print", help="Also print the report")] = False,
) -> None:
    """Export the monthly billing report as a semicolon-delimited CSV."""
    today = date.today()
    year = year or today.year
    month = month or today.month

    with _open_tracker() as tracker:
        monthly = tracker.monthly_report(year, month, grouping)
        path = tracker.export_report(year, month, output_dir, grouping)

    if show:
        console.print(render_report(monthly), markup=False, highlight=False)

    summary = Table.grid(padding=(0, 2))
    summary.add_column(style="bold")
    summary.add_column(justify="right")
    summary.add_row("Lessons", str(monthly.lesson_count))
    summary.add_row("Hours", f"{monthly.total_hours:.2f}")
    summary.add_row("Amount", _money(monthly.total_amount))
    summary.add_row("Paid", _money(monthly.paid_amount))
    summary.add_row(
        "Unpaid", Text(_money(monthly.total_amount - monthly.paid_amount), style="bold red")
    )
    console.print(Panel(summary, title=f"[bold]{monthly.title}[/bold]", expand=False))

    if path is None:
        console.print("[bold red]Export failed:[/] the report file could not be written.")
        raise typer.Exit(1)
    console.print(f"Saved to [cyan]{path}[/]")
    if open_file:
        typer.launch(str(path))


# ---------------------------------------------------------------------------
# Subcommand: status
# ---------------------------------------------------------------------------


@app.command()
def status() -> None:
    """Show configuration, database and calendar health."""
    from lesson_tracker.preflight import run_preflight_checks

    cfg = _build_config()
    config_exists = state.config_path.exists()

    info = Text()
    info.append("  Config:     ", style="bold")
    info.append(str(state.config_path) + " ")
    info.append("✓" if config_exists else "(not found)", style="green" if config_exists else "yellow")
    info.append("\n  Database:   ", style="bold")
    info.append(str(cfg.db_path))
    info.append("\n  Calendar:   ", style="bold")
    info.append("enabled" if cfg.calendar_enabled else "disabled", style="green" if cfg.calendar_enabled else "yellow")
    info.append("\n  Auto sync:  ", style="bold")
    info.append("on" if cfg.auto_sync_on_create else "off")
    info.append("\n  Grouping:   ", style="bold")
    info.append(cfg.report_grouping.value)
    console.print(Panel(info, title="[bold]lesson-tracker status[/bold]"))

    with _open_tracker() as tracker:
        calendar = tracker.reconciler.calendar
        ok = run_preflight_checks(cfg, calendar, console)
        students = tracker.students()
        lessons = tracker.lessons()
        statuses = classify_lessons(lessons, datetime.now())
        unsynced = [
            lesson
            for lesson in lessons
            if not lesson.synced_with_calendar and statuses[lesson.id] == LessonStatus.UPCOMING
        ]

    results = Table.grid(padding=(0, 2))
    results.add_column(style="bold")
    results.add_column(justify="right")
    results.add_row("Students", str(len(students)))
    results.add_row("Lessons", str(sum(s.total_lessons for s in students)))
    results.add_row("Unpaid", _money(sum(s.total_unpaid for s in students)))
    results.add_row("Upcoming, not in calendar", str(len(unsynced)))
    console.print(Panel(results, title="[bold]Summary[/bold]", expand=False))

    if not ok:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    app()
