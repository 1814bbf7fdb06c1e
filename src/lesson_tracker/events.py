"""
iCal VEVENT construction and parsing for lesson events.
"""

from datetime import datetime

import gi

gi.require_version("ICalGLib", "3.0")
from gi.repository import ICalGLib

from lesson_tracker.models import CalendarEvent

# Marks events created by this tool so they can be told apart from the
# user's own appointments.
MANAGED_CATEGORY = "LESSON-TRACKER-MANAGED"

_UTC = ICalGLib.Timezone.get_utc_timezone()


def to_ical_time(value: datetime) -> ICalGLib.Time:
    """Naive local datetime -> UTC ICalGLib.Time."""
    return ICalGLib.Time.new_from_timet_with_zone(int(value.timestamp()), 0, _UTC)


def from_ical_time(value: ICalGLib.Time) -> datetime:
    """ICalGLib.Time -> naive local datetime."""
    return datetime.fromtimestamp(value.as_timet_with_zone(_UTC))


def _remove_all_properties(component: ICalGLib.Component, prop_kind: ICalGLib.PropertyKind):
    """Remove all instances of a specific property from a component."""
    prop = component.get_first_property(prop_kind)
    while prop:
        component.remove_property(prop)
        prop = component.get_first_property(prop_kind)


def is_managed_event(component: ICalGLib.Component) -> bool:
    """Check if an event was created by lesson-tracker."""
    prop = component.get_first_property(ICalGLib.PropertyKind.CATEGORIES_PROPERTY)
    while prop:
        categories = prop.get_categories() or ""
        if MANAGED_CATEGORY in (c.strip() for c in categories.split(",")):
            return True
        prop = component.get_next_property(ICalGLib.PropertyKind.CATEGORIES_PROPERTY)
    return False


def apply_lesson_details(
    event: ICalGLib.Component,
    title: str,
    notes: str | None,
    url: str | None,
    start: datetime,
    end: datetime,
):
    """Overwrite the lesson-owned properties of a VEVENT in place.

    Alarms and server-added properties are left untouched.
    """
    for prop_kind in (
        ICalGLib.PropertyKind.SUMMARY_PROPERTY,
        ICalGLib.PropertyKind.DESCRIPTION_PROPERTY,
        ICalGLib.PropertyKind.URL_PROPERTY,
        ICalGLib.PropertyKind.DTSTART_PROPERTY,
        ICalGLib.PropertyKind.DTEND_PROPERTY,
    ):
        _remove_all_properties(event, prop_kind)

    event.add_property(ICalGLib.Property.new_summary(title))
    if notes:
        event.add_property(ICalGLib.Property.new_description(notes))
    if url:
        event.add_property(ICalGLib.Property.new_url(url))
    event.add_property(ICalGLib.Property.new_dtstart(to_ical_time(start)))
    event.add_property(ICalGLib.Property.new_dtend(to_ical_time(end)))


def build_lesson_event(
    uid: str,
    title: str,
    notes: str | None,
    url: str | None,
    start: datetime,
    end: datetime,
    reminder_offset_minutes: int,
) -> ICalGLib.Component:
    """Build a new VEVENT for a lesson, with a display reminder before it starts."""
    event = ICalGLib.Component.new_vevent()
    event.add_property(ICalGLib.Property.new_uid(uid))
    event.add_property(ICalGLib.Property.new_dtstamp(to_ical_time(datetime.now())))
    event.add_property(ICalGLib.Property.new_categories(MANAGED_CATEGORY))
    apply_lesson_details(event, title, notes, url, start, end)

    if reminder_offset_minutes > 0:
        alarm = ICalGLib.Component.new_valarm()
        alarm.add_property(ICalGLib.Property.new_action(ICalGLib.PropertyAction.DISPLAY))
        alarm.add_property(ICalGLib.Property.new_description(title))
        duration = ICalGLib.Duration.new_from_int(-60 * reminder_offset_minutes)
        alarm.add_property(ICalGLib.Property.new_trigger(ICalGLib.Trigger.new_relduration(duration)))
        event.add_component(alarm)

    return event


def parse_component(obj) -> ICalGLib.Component | None:
    """Return the VEVENT of a string or component, unwrapping VCALENDAR."""
    comp = ICalGLib.Component.new_from_string(obj) if isinstance(obj, str) else obj
    if comp is None:
        return None
    if comp.isa() == ICalGLib.ComponentKind.VCALENDAR_COMPONENT:
        return comp.get_first_component(ICalGLib.ComponentKind.VEVENT_COMPONENT)
    return comp


def to_calendar_event(obj) -> CalendarEvent | None:
    """Read the fields lesson-tracker cares about from a VEVENT."""
    vevent = parse_component(obj)
    if vevent is None:
        return None
    start = vevent.get_dtstart()
    end = vevent.get_dtend()
    if start is None or start.is_null_time():
        return None
    start_dt = from_ical_time(start)
    end_dt = from_ical_time(end) if end is not None and not end.is_null_time() else start_dt
    return CalendarEvent(
        uid=vevent.get_uid() or "",
        summary=vevent.get_summary() or "",
        start=start_dt,
        end=end_dt,
        managed=is_managed_event(vevent),
    )
