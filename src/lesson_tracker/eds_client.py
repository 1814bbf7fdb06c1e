"""
Evolution Data Server calendar backend for lesson events.

Every public operation returns a failure value instead of raising, so the
reconciler can treat the desktop calendar as an unreliable collaborator.
"""

import logging
import uuid
from datetime import datetime
from datetime import timezone

import gi

gi.require_version("EDataServer", "1.2")
gi.require_version("ECal", "2.0")
gi.require_version("ICalGLib", "3.0")
from gi.repository import EDataServer, ECal, ICalGLib, GLib  # noqa: F401

from lesson_tracker.events import apply_lesson_details
from lesson_tracker.events import build_lesson_event
from lesson_tracker.events import parse_component
from lesson_tracker.events import to_calendar_event
from lesson_tracker.models import CalendarError
from lesson_tracker.models import CalendarEvent
from lesson_tracker.models import CalendarInfo

logger = logging.getLogger(__name__)

# E_CAL_CLIENT_ERROR_OBJECT_NOT_FOUND = 1  (from e-cal-client-error-quark)
_EDS_NOT_FOUND_CODE = 1
_EDS_CLIENT_ERROR_DOMAIN = "e-cal-client-error-quark"


def is_not_found_error(e: Exception) -> bool:
    """Return True when EDS reports that a calendar object does not exist."""
    if isinstance(e, GLib.Error):
        domain = e.domain or ""
        if e.code == _EDS_NOT_FOUND_CODE and _EDS_CLIENT_ERROR_DOMAIN in domain:
            return True
    return "object not found" in str(e).lower()


def _time_range_sexp(start: datetime, end: datetime) -> str:
    fmt = "%Y%m%dT%H%M%SZ"
    start_utc = start.astimezone(timezone.utc).strftime(fmt)
    end_utc = end.astimezone(timezone.utc).strftime(fmt)
    return f'(occur-in-time-range? (make-time "{start_utc}") (make-time "{end_utc}"))'


class EDSCalendarClient:
    """Calendar backend writing lesson events into one EDS calendar."""

    def __init__(self, calendar_uid: str | None = None, timeout: int = 10):
        self.calendar_uid = calendar_uid
        self.timeout = timeout
        self.registry: EDataServer.SourceRegistry | None = None
        self.client: ECal.Client | None = None
        self._authorized: bool | None = None

    # ------------------------------------------------------------------ #
    # Connection                                                           #
    # ------------------------------------------------------------------ #

    def _registry(self) -> EDataServer.SourceRegistry:
        if self.registry is None:
            self.registry = EDataServer.SourceRegistry.new_sync(None)
        return self.registry

    def _connect_source(self, calendar_uid: str) -> ECal.Client:
        source = self._registry().ref_source(calendar_uid)
        if not source:
            raise CalendarError(f"Calendar with UID '{calendar_uid}' not found in EDS")
        try:
            return ECal.Client.connect_sync(
                source, ECal.ClientSourceType.EVENTS, self.timeout, None
            )
        except GLib.Error as e:
            raise CalendarError(f"Failed to connect to calendar {calendar_uid}: {e.message}")

    def _connect(self):
        """Connect to the chosen calendar, or the first writable one."""
        if self.calendar_uid is None:
            calendars = self.list_calendars()
            if not calendars:
                raise CalendarError("No writable calendars found in EDS")
            self.calendar_uid = calendars[0].uid
            logger.info("No calendar selected, using %s", calendars[0].name)
        self.client = self._connect_source(self.calendar_uid)

    def request_authorization(self) -> bool:
        """Connect lazily; the outcome is cached for the session."""
        if self._authorized is not None:
            return self._authorized
        try:
            self._connect()
            self._authorized = True
        except (GLib.Error, CalendarError) as e:
            logger.warning("Calendar not available: %s", e)
            self._authorized = False
        return self._authorized

    def list_calendars(self) -> list[CalendarInfo]:
        """Writable EDS calendars."""
        registry = self._registry()
        calendars = []
        for source in registry.list_sources(EDataServer.SOURCE_EXTENSION_CALENDAR):
            try:
                client = ECal.Client.connect_sync(source, ECal.ClientSourceType.EVENTS, 5, None)
            except GLib.Error as e:
                logger.debug("Skipping calendar %s: %s", source.get_uid(), e.message)
                continue
            if client.is_readonly():
                continue
            account = ""
            parent = source.get_parent()
            if parent:
                parent_source = registry.ref_source(parent)
                if parent_source:
                    account = parent_source.get_display_name() or ""
            calendars.append(
                CalendarInfo(
                    uid=source.get_uid() or "",
                    name=source.get_display_name() or "(unnamed)",
                    account=account,
                )
            )
        return calendars

    def set_default_calendar(self, calendar_uid: str):
        """Write future lesson events to ``calendar_uid``."""
        self.calendar_uid = calendar_uid
        self.client = None
        self._authorized = None

    # ------------------------------------------------------------------ #
    # Events                                                               #
    # ------------------------------------------------------------------ #

    def _get_event(self, uid: str) -> ICalGLib.Component | None:
        try:
            success, icalcomp = self.client.get_object_sync(uid, None, None)
        except GLib.Error as e:
            if not is_not_found_error(e):
                logger.warning("Failed to read event %s: %s", uid, e.message)
            return None
        if success and icalcomp:
            return parse_component(icalcomp)
        return None

    def create_event(
        self,
        title: str,
        notes: str | None,
        url: str | None,
        start: datetime,
        end: datetime,
        reminder_offset_minutes: int = 15,
    ) -> str | None:
        """Create an event; returns the server-assigned UID or None."""
        if not self.request_authorization():
            return None

        uid = str(uuid.uuid4())
        component = build_lesson_event(uid, title, notes, url, start, end, reminder_offset_minutes)
        try:
            success, out_uid = self.client.create_object_sync(
                component, ECal.OperationFlags.NONE, None
            )
        except GLib.Error as e:
            logger.warning("Failed to create calendar event '%s': %s", title, e.message)
            return None
        if not success:
            logger.warning("Failed to create calendar event '%s'", title)
            return None
        return out_uid or uid

    def update_event(
        self,
        event_id: str,
        title: str,
        notes: str | None,
        url: str | None,
        start: datetime,
        end: datetime,
    ) -> bool:
        """Rewrite an existing event; False when it is gone or cannot be saved."""
        if not self.request_authorization():
            return False

        event = self._get_event(event_id)
        if event is None:
            logger.debug("Calendar event %s not found", event_id)
            return False

        apply_lesson_details(event, title, notes, url, start, end)
        try:
            return bool(
                self.client.modify_object_sync(
                    event, ECal.ObjModType.THIS, ECal.OperationFlags.NONE, None
                )
            )
        except GLib.Error as e:
            logger.warning("Failed to update calendar event %s: %s", event_id, e.message)
            return False

    def remove_event(self, event_id: str) -> bool:
        if not self.request_authorization():
            return False
        try:
            return bool(
                self.client.remove_object_sync(
                    event_id,
                    None,  # rid (recurrence-id)
                    ECal.ObjModType.THIS,
                    ECal.OperationFlags.NONE,
                    None,  # cancellable
                )
            )
        except GLib.Error as e:
            if is_not_found_error(e):
                logger.debug("Calendar event %s already gone", event_id)
            else:
                logger.warning("Failed to remove calendar event %s: %s", event_id, e.message)
            return False

    def query_events(
        self,
        start: datetime,
        end: datetime,
        calendar_uids: list[str] | None = None,
    ) -> list[CalendarEvent]:
        """Events overlapping [start, end) in the given calendars (default: ours)."""
        if not self.request_authorization():
            return []

        sexp = _time_range_sexp(start, end)
        events = []
        for calendar_uid in calendar_uids or [self.calendar_uid]:
            try:
                client = (
                    self.client
                    if calendar_uid == self.calendar_uid
                    else self._connect_source(calendar_uid)
                )
                _, objects = client.get_object_list_sync(sexp, None)
            except (GLib.Error, CalendarError) as e:
                logger.warning("Failed to query calendar %s: %s", calendar_uid, e)
                continue
            for obj in objects:
                event = to_calendar_event(obj)
                if event is not None:
                    events.append(event)
        events.sort(key=lambda event: (event.start, event.uid))
        return events
