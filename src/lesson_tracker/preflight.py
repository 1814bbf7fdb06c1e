"""
Environment checks shown by ``lesson-tracker status``.
"""

import logging
import sqlite3

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from lesson_tracker.models import TrackerConfig

logger = logging.getLogger(__name__)


def check_database(cfg: TrackerConfig) -> list[tuple[str, str, str]]:
    """Return (label, detail, hint) issues for the lesson database."""
    db_path = cfg.db_path
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Cannot create database directory %s: %s", db_path.parent, e)
        return [("Lesson database", f"{db_path}: {e}", f"Check permissions on {db_path.parent}")]

    if not db_path.exists():
        return []
    try:
        conn = sqlite3.connect(db_path)
        try:
            conn.execute("SELECT 1")
            # BEGIN IMMEDIATE needs a journal file next to the database,
            # so this also proves the directory is writable.
            conn.execute("BEGIN IMMEDIATE")
            conn.execute("ROLLBACK")
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.error("Lesson database not readable/writable (%s): %s", db_path, e)
        return [
            (
                "Lesson database",
                f"{db_path}: {e}",
                f"Check permissions on {db_path.parent}",
            )
        ]
    return []


def check_calendar(calendar) -> list[tuple[str, str, str]]:
    """Return issues for the calendar backend (None means disabled)."""
    if calendar is None:
        return []
    if calendar.request_authorization():
        return []
    return [
        (
            "Calendar",
            "No access to a writable calendar",
            "Is evolution-data-server running? Pick one with: lesson-tracker calendar use",
        )
    ]


def run_preflight_checks(cfg: TrackerConfig, calendar, console: Console) -> bool:
    """Return True when everything is usable; print issues otherwise."""
    issues = check_database(cfg) + check_calendar(calendar)
    if issues:
        _print_issues(issues, console)
        return False
    return True


def _print_issues(issues: list[tuple[str, str, str]], console: Console) -> None:
    body = Text()
    for i, (label, detail, hint) in enumerate(issues):
        if i:
            body.append("\n")
        body.append(f"  ✗  {label}: ", style="bold red")
        body.append(detail, style="bold red")
        body.append(f"\n       → {hint}", style="yellow")

    console.print(Panel(body, title="[bold red]Preflight checks failed[/bold red]"))
