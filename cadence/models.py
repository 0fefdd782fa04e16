"""Data models for Cadence check-in tracking.

This module contains the core data structures used throughout the engine:
projects, workstreams, milestones, tasks and their per-period cycles, plus
the ``AppState`` snapshot that every reducer receives and returns.

All models are frozen. Changes are made by building a replacement with
``dataclasses.replace`` so a published snapshot is never mutated.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import UnknownEntityError
from .periods import CADENCES, format_iso_date, parse_iso_date

ACTIVE = "active"
INACTIVE = "inactive"
LIFECYCLES = (ACTIVE, INACTIVE)

OPEN = "open"
CLOSED = "closed"
CYCLE_STATUSES = (OPEN, CLOSED)

STATE_VERSION = 1


def utc_timestamp() -> str:
    return datetime.utcnow().isoformat(timespec="seconds") + "Z"


def generate_id(kind: str) -> str:
    """Generate a unique identifier such as ``TASK-1A2B3C4D``."""
    return f"{kind.upper()}-{uuid.uuid4().hex[:8].upper()}"


def _optional_date(value: Optional[str]) -> Optional[date]:
    return parse_iso_date(value) if value else None


def _optional_iso(value: Optional[date]) -> Optional[str]:
    return format_iso_date(value) if value else None


@dataclass(frozen=True, slots=True)
class Cycle:
    """One period's Plan / Actuals / Next-Plan record for a single task."""

    index: int
    status: str
    start_date: date
    end_date: date
    previous_plan: str = ""
    actuals: str = ""
    next_plan: str = ""
    owner: str = ""
    reviewed: bool = False

    @property
    def is_open(self) -> bool:
        return self.status == OPEN

    @property
    def is_prepared(self) -> bool:
        """Both Actuals and Next-Plan have been written."""
        return bool(self.actuals.strip()) and bool(self.next_plan.strip())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "index": self.index,
            "status": self.status,
            "start_date": format_iso_date(self.start_date),
            "end_date": format_iso_date(self.end_date),
            "previous_plan": self.previous_plan,
            "actuals": self.actuals,
            "next_plan": self.next_plan,
            "owner": self.owner,
            "reviewed": self.reviewed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Cycle":
        """Create from dictionary representation."""
        return cls(
            index=int(data["index"]),
            status=data["status"],
            start_date=parse_iso_date(data["start_date"]),
            end_date=parse_iso_date(data["end_date"]),
            previous_plan=data.get("previous_plan", ""),
            actuals=data.get("actuals", ""),
            next_plan=data.get("next_plan", ""),
            owner=data.get("owner", ""),
            reviewed=bool(data.get("reviewed", False)),
        )

    def validate(self) -> List[str]:
        issues = []
        if self.index < 0:
            issues.append(f"Cycle index must be >= 0, got {self.index}")
        if self.status not in CYCLE_STATUSES:
            issues.append(f"Invalid cycle status: {self.status}")
        if self.end_date < self.start_date:
            issues.append(f"Cycle {self.index} ends before it starts")
        return issues


@dataclass(frozen=True, slots=True)
class Project:
    """Pure grouping of workstreams."""

    id: str
    name: str
    created_at: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "created_at": self.created_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        return cls(
            id=data["id"],
            name=data["name"],
            created_at=data.get("created_at", utc_timestamp()),
        )

    def validate(self) -> List[str]:
        issues = []
        if not self.id:
            issues.append("Project ID is required")
        if not self.name or not self.name.strip():
            issues.append("Project name is required")
        return issues


@dataclass(frozen=True, slots=True)
class Workstream:
    """A cadence-driven stream of work inside a project.

    ``first_cycle_start_date`` anchors every period boundary of every task in
    the workstream and is never changed after creation.
    """

    id: str
    project_id: str
    name: str
    cadence: str
    first_cycle_start_date: date
    lead: str = ""
    created_at: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "cadence": self.cadence,
            "first_cycle_start_date": format_iso_date(self.first_cycle_start_date),
            "lead": self.lead,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Workstream":
        """Create from dictionary representation."""
        return cls(
            id=data["id"],
            project_id=data["project_id"],
            name=data["name"],
            cadence=data["cadence"],
            first_cycle_start_date=parse_iso_date(data["first_cycle_start_date"]),
            lead=data.get("lead", ""),
            created_at=data.get("created_at", utc_timestamp()),
        )

    def validate(self) -> List[str]:
        """Validate the workstream and return any issues."""
        issues = []
        if not self.id:
            issues.append("Workstream ID is required")
        if not self.project_id:
            issues.append("Project ID is required")
        if not self.name or not self.name.strip():
            issues.append("Workstream name is required")
        if self.cadence not in CADENCES:
            issues.append(f"Invalid cadence: {self.cadence}")
        return issues


@dataclass(frozen=True, slots=True)
class Milestone:
    id: str
    workstream_id: str
    title: str
    due_date: Optional[date] = None
    lifecycle: str = ACTIVE
    created_at: str = field(default_factory=utc_timestamp)

    @property
    def is_active(self) -> bool:
        return self.lifecycle == ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "workstream_id": self.workstream_id,
            "title": self.title,
            "due_date": _optional_iso(self.due_date),
            "lifecycle": self.lifecycle,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Milestone":
        return cls(
            id=data["id"],
            workstream_id=data["workstream_id"],
            title=data["title"],
            due_date=_optional_date(data.get("due_date")),
            lifecycle=data.get("lifecycle", ACTIVE),
            created_at=data.get("created_at", utc_timestamp()),
        )

    def validate(self) -> List[str]:
        issues = []
        if not self.id:
            issues.append("Milestone ID is required")
        if not self.workstream_id:
            issues.append("Workstream ID is required")
        if not self.title or not self.title.strip():
            issues.append("Milestone title is required")
        if self.lifecycle not in LIFECYCLES:
            issues.append(f"Invalid lifecycle: {self.lifecycle}")
        return issues


@dataclass(frozen=True, slots=True)
class Task:
    """A recurring commitment and its exclusively owned cycle history.

    ``first_index`` is the index of the first materialized cycle. It is 0 for
    ordinary tasks and later than 0 only for follow-ups created mid-stream.
    """

    id: str
    workstream_id: str
    name: str
    owner: str = ""
    milestone_id: Optional[str] = None
    lifecycle: str = ACTIVE
    cycles: Tuple[Cycle, ...] = ()
    first_index: int = 0
    created_at: str = field(default_factory=utc_timestamp)

    @property
    def is_active(self) -> bool:
        return self.lifecycle == ACTIVE

    @property
    def last_index(self) -> Optional[int]:
        return self.cycles[-1].index if self.cycles else None

    @property
    def open_cycle(self) -> Optional[Cycle]:
        for cycle in self.cycles:
            if cycle.is_open:
                return cycle
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "workstream_id": self.workstream_id,
            "name": self.name,
            "owner": self.owner,
            "milestone_id": self.milestone_id,
            "lifecycle": self.lifecycle,
            "cycles": [cycle.to_dict() for cycle in self.cycles],
            "first_index": self.first_index,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Create from dictionary representation."""
        return cls(
            id=data["id"],
            workstream_id=data["workstream_id"],
            name=data["name"],
            owner=data.get("owner", ""),
            milestone_id=data.get("milestone_id"),
            lifecycle=data.get("lifecycle", ACTIVE),
            cycles=tuple(Cycle.from_dict(item) for item in data.get("cycles", [])),
            first_index=int(data.get("first_index", 0)),
            created_at=data.get("created_at", utc_timestamp()),
        )

    def validate(self) -> List[str]:
        """Validate task data, including the cycle-list invariants."""
        issues = []

        if not self.id:
            issues.append("Task ID is required")
        if not self.workstream_id:
            issues.append("Workstream ID is required")
        if not self.name or not self.name.strip():
            issues.append("Task name is required")
        if self.lifecycle not in LIFECYCLES:
            issues.append(f"Invalid lifecycle: {self.lifecycle}")
        if self.first_index < 0:
            issues.append(f"First index must be >= 0, got {self.first_index}")

        open_count = sum(1 for cycle in self.cycles if cycle.is_open)
        if open_count > 1:
            issues.append(f"Task has {open_count} open cycles")

        indices = [cycle.index for cycle in self.cycles]
        expected = list(range(self.first_index, self.first_index + len(indices)))
        if indices != expected:
            issues.append(f"Cycle indices {indices} are not contiguous from {self.first_index}")

        for previous, cycle in zip(self.cycles, self.cycles[1:]):
            if cycle.previous_plan != previous.next_plan:
                issues.append(f"Cycle {cycle.index} does not carry forward the plan of cycle {previous.index}")

        for cycle in self.cycles:
            issues.extend(cycle.validate())

        return issues


@dataclass(frozen=True, slots=True)
class Selection:
    """The persisted scope pointers."""

    project_id: Optional[str] = None
    workstream_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"project_id": self.project_id, "workstream_id": self.workstream_id}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Selection":
        data = data or {}
        return cls(project_id=data.get("project_id"), workstream_id=data.get("workstream_id"))


@dataclass(frozen=True, slots=True)
class AppState:
    """Arena-style snapshot of the whole workspace."""

    projects: Tuple[Project, ...] = ()
    workstreams: Tuple[Workstream, ...] = ()
    milestones: Tuple[Milestone, ...] = ()
    tasks: Tuple[Task, ...] = ()
    selection: Selection = field(default_factory=Selection)

    @property
    def is_empty(self) -> bool:
        return not self.projects

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def project(self, project_id: str) -> Project:
        for project in self.projects:
            if project.id == project_id:
                return project
        raise UnknownEntityError("project", project_id)

    def workstream(self, workstream_id: str) -> Workstream:
        for workstream in self.workstreams:
            if workstream.id == workstream_id:
                return workstream
        raise UnknownEntityError("workstream", workstream_id)

    def milestone(self, milestone_id: str) -> Milestone:
        for milestone in self.milestones:
            if milestone.id == milestone_id:
                return milestone
        raise UnknownEntityError("milestone", milestone_id)

    def task(self, task_id: str) -> Task:
        for task in self.tasks:
            if task.id == task_id:
                return task
        raise UnknownEntityError("task", task_id)

    def find_project(self, project_id: Optional[str]) -> Optional[Project]:
        return next((p for p in self.projects if p.id == project_id), None)

    def find_workstream(self, workstream_id: Optional[str]) -> Optional[Workstream]:
        return next((w for w in self.workstreams if w.id == workstream_id), None)

    # ------------------------------------------------------------------
    # Replacement helpers
    # ------------------------------------------------------------------

    def replace_task(self, task: Task) -> "AppState":
        return self.replace_tasks([task])

    def replace_tasks(self, tasks: Iterable[Task]) -> "AppState":
        """Swap in updated tasks by id in one publish."""
        updates = {task.id: task for task in tasks}
        unknown = set(updates) - {task.id for task in self.tasks}
        if unknown:
            raise UnknownEntityError("task", ", ".join(sorted(unknown)))
        return replace(self, tasks=tuple(updates.get(task.id, task) for task in self.tasks))

    def replace_milestone(self, milestone: Milestone) -> "AppState":
        self.milestone(milestone.id)
        return replace(
            self,
            milestones=tuple(milestone if m.id == milestone.id else m for m in self.milestones),
        )

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted document."""
        return {
            "version": STATE_VERSION,
            "projects": [project.to_dict() for project in self.projects],
            "workstreams": [workstream.to_dict() for workstream in self.workstreams],
            "milestones": [milestone.to_dict() for milestone in self.milestones],
            "tasks": [task.to_dict() for task in self.tasks],
            "selection": self.selection.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppState":
        """Create from the persisted document."""
        return cls(
            projects=tuple(Project.from_dict(item) for item in data.get("projects", [])),
            workstreams=tuple(Workstream.from_dict(item) for item in data.get("workstreams", [])),
            milestones=tuple(Milestone.from_dict(item) for item in data.get("milestones", [])),
            tasks=tuple(Task.from_dict(item) for item in data.get("tasks", [])),
            selection=Selection.from_dict(data.get("selection")),
        )

    def validate(self) -> List[str]:
        """Validate every entity and the references between them."""
        issues: List[str] = []
        project_ids = {p.id for p in self.projects}
        workstream_ids = {w.id for w in self.workstreams}
        milestone_ids = {m.id for m in self.milestones}

        for project in self.projects:
            issues.extend(project.validate())
        for workstream in self.workstreams:
            issues.extend(workstream.validate())
            if workstream.project_id not in project_ids:
                issues.append(f"Workstream {workstream.id} references unknown project {workstream.project_id}")
        for milestone in self.milestones:
            issues.extend(milestone.validate())
            if milestone.workstream_id not in workstream_ids:
                issues.append(f"Milestone {milestone.id} references unknown workstream {milestone.workstream_id}")
        for task in self.tasks:
            issues.extend(f"{task.id}: {issue}" for issue in task.validate())
            if task.workstream_id not in workstream_ids:
                issues.append(f"Task {task.id} references unknown workstream {task.workstream_id}")
            if task.milestone_id and task.milestone_id not in milestone_ids:
                issues.append(f"Task {task.id} references unknown milestone {task.milestone_id}")
        return issues
