"""
Calendar synchronisation for lessons.
"""

from lesson_tracker.sync.reconciler import CalendarReconciler
from lesson_tracker.sync.reconciler import event_notes
from lesson_tracker.sync.reconciler import event_title
from lesson_tracker.sync.reconciler import event_url

__all__ = ["CalendarReconciler", "event_notes", "event_title", "event_url"]
