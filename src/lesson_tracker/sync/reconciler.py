"""
Keeps each lesson's calendar linkage consistent with the lesson itself.

The calendar backend is treated as unreliable: every operation here reports
success as a bool and never raises for calendar failures. The backend is
duck-typed (see EDSCalendarClient); ``None`` means calendar integration is
switched off, which behaves like denied access.
"""

import logging

from lesson_tracker.models import Lesson

logger = logging.getLogger(__name__)

DEFAULT_REMINDER_MINUTES = 15


def event_title(lesson: Lesson) -> str:
    name = lesson.student.display_name if lesson.student else "unknown student"
    return f"Lesson: {name}"


def event_notes(lesson: Lesson) -> str | None:
    parts = []
    link = lesson.student.lesson_link if lesson.student else ""
    if link:
        parts.append(f"Lesson link: {link}")
    if lesson.notes:
        parts.append(lesson.notes)
    return "\n\n".join(parts) or None


def event_url(lesson: Lesson) -> str | None:
    if lesson.student and lesson.student.lesson_link:
        return lesson.student.lesson_link
    return None


class CalendarReconciler:
    """Create, update and remove the calendar event paired with a lesson."""

    def __init__(self, calendar, reminder_minutes: int = DEFAULT_REMINDER_MINUTES):
        self.calendar = calendar
        self.reminder_minutes = reminder_minutes

    def has_access(self) -> bool:
        if self.calendar is None:
            return False
        return self.calendar.request_authorization()

    # ------------------------------------------------------------------ #
    # Calendar calls                                                       #
    # ------------------------------------------------------------------ #

    def _create(self, lesson: Lesson) -> bool:
        event_id = self.calendar.create_event(
            event_title(lesson),
            event_notes(lesson),
            event_url(lesson),
            lesson.date,
            lesson.end,
            self.reminder_minutes,
        )
        if not event_id:
            return False
        lesson.mark_synced(event_id)
        logger.debug("Lesson %s linked to calendar event %s", lesson.id, event_id)
        return True

    def _update(self, lesson: Lesson) -> bool:
        return self.calendar.update_event(
            lesson.calendar_event_id,
            event_title(lesson),
            event_notes(lesson),
            event_url(lesson),
            lesson.date,
            lesson.end,
        )

    def _reconcile(self, lesson: Lesson) -> bool:
        """Update the linked event, falling back to a fresh one."""
        if not self.has_access():
            return False

        if lesson.synced_with_calendar and lesson.calendar_event_id:
            if self._update(lesson):
                return True
            # The event may have been deleted out-of-band; recreate it.
            stale_id = lesson.calendar_event_id
            logger.warning(
                "Update of calendar event %s failed for lesson %s, recreating",
                stale_id,
                lesson.id,
            )
            if not self._create(lesson):
                return False
            # Usually already gone; drop it in case it only refused the update.
            self.calendar.remove_event(stale_id)
            return True

        return self._create(lesson)

    # ------------------------------------------------------------------ #
    # Lifecycle hooks                                                      #
    # ------------------------------------------------------------------ #

    def on_lesson_created(self, lesson: Lesson) -> bool:
        """Create the event for a new lesson. Failure leaves it unsynced."""
        if not self.has_access():
            return False
        if self._create(lesson):
            return True
        logger.warning("Could not add lesson %s to the calendar", lesson.id)
        return False

    def on_lesson_updated(self, lesson: Lesson) -> bool:
        """Push edits to the calendar; failures are logged only."""
        synced = self._reconcile(lesson)
        if not synced:
            logger.warning("Calendar not updated for lesson %s", lesson.id)
        return synced

    def on_lesson_deleted(self, lesson: Lesson) -> bool:
        """Remove the linked event before the lesson record goes away.

        Returns whether the calendar side is clean. The caller deletes the
        record regardless; an orphaned event is logged and not retried.
        """
        if not (lesson.synced_with_calendar and lesson.calendar_event_id):
            return True
        if self.has_access() and self.calendar.remove_event(lesson.calendar_event_id):
            logger.debug("Removed calendar event %s", lesson.calendar_event_id)
            return True
        logger.warning(
            "Calendar event %s left orphaned by deleted lesson %s",
            lesson.calendar_event_id,
            lesson.id,
        )
        return False

    def sync_now(self, lesson: Lesson) -> bool:
        """Manual sync: same as an update, but the caller sees the result."""
        return self._reconcile(lesson)

    def unsync(self, lesson: Lesson) -> bool:
        """Remove the event; the link is cleared only when removal succeeds."""
        if not lesson.calendar_event_id:
            lesson.clear_calendar_link()
            return True
        if not self.has_access():
            return False
        if not self.calendar.remove_event(lesson.calendar_event_id):
            logger.warning(
                "Could not remove calendar event %s, lesson %s stays linked",
                lesson.calendar_event_id,
                lesson.id,
            )
            return False
        lesson.clear_calendar_link()
        return True
