"""Cadence - recurring check-in engine package."""

from .models import AppState, Cycle, Milestone, Project, Selection, Task, Workstream
from .periods import PeriodRange
from .workflow import CheckinManager
from .workspace import Workspace

__all__ = [
    "AppState",
    "CheckinManager",
    "Cycle",
    "Milestone",
    "PeriodRange",
    "Project",
    "Selection",
    "Task",
    "Workspace",
    "Workstream",
]
