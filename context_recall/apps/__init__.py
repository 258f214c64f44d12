from context_recall.apps.base import (
    AppAdapter,
    AppConfidence,
    AppContextData,
    DashboardAppProvider,
)
from context_recall.apps.habits import Habit, HabitsAdapter
from context_recall.apps.notes import Note, NotesAdapter
from context_recall.apps.service import DashboardAppService

__all__ = [
    "AppAdapter",
    "AppConfidence",
    "AppContextData",
    "DashboardAppProvider",
    "DashboardAppService",
    "Habit",
    "HabitsAdapter",
    "Note",
    "NotesAdapter",
]
