"""Read-side projections of the workspace.

Every function here derives its result from the state it is given on each
call; nothing is cached, so a projection can never go stale relative to the
cycle store.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from .cycles import current_cycle, visible_cycle
from .models import CLOSED, AppState, Cycle, Milestone, Project, Selection, Task, Workstream
from .periods import DUE_STATES, DUESOON, OVERDUE, DateLike, due_state, format_human_range, format_iso_date

ALL_OWNERS = "all"
UNASSIGNED = "unassigned"
UNASSIGNED_LABEL = "Unassigned"


# ----------------------------------------------------------------------
# Hierarchy
# ----------------------------------------------------------------------

def projects(state: AppState) -> List[Project]:
    return list(state.projects)


def workstreams_for_project(state: AppState, project_id: str) -> List[Workstream]:
    return [ws for ws in state.workstreams if ws.project_id == project_id]


def tasks_for_workstream(state: AppState, workstream_id: str, include_inactive: bool = False) -> List[Task]:
    return [
        task
        for task in state.tasks
        if task.workstream_id == workstream_id and (include_inactive or task.is_active)
    ]


def tasks_for_project(state: AppState, project_id: str, include_inactive: bool = False) -> List[Task]:
    workstream_ids = {ws.id for ws in workstreams_for_project(state, project_id)}
    return [
        task
        for task in state.tasks
        if task.workstream_id in workstream_ids and (include_inactive or task.is_active)
    ]


def tasks_in_scope(
    state: AppState,
    project_id: Optional[str] = None,
    workstream_id: Optional[str] = None,
    include_inactive: bool = False,
) -> List[Task]:
    """Tasks under the most specific scope given; every task when none is."""
    if workstream_id:
        return tasks_for_workstream(state, workstream_id, include_inactive)
    if project_id:
        return tasks_for_project(state, project_id, include_inactive)
    return [task for task in state.tasks if include_inactive or task.is_active]


# ----------------------------------------------------------------------
# Selection
# ----------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ResolvedSelection:
    project: Optional[Project] = None
    workstream: Optional[Workstream] = None

    @property
    def label(self) -> str:
        if self.workstream is not None:
            return f"Workstream: {self.workstream.name}"
        if self.project is not None:
            return f"Project: {self.project.name}"
        return "All tasks"

    def to_selection(self) -> Selection:
        return Selection(
            project_id=self.project.id if self.project else None,
            workstream_id=self.workstream.id if self.workstream else None,
        )


def resolve_selection(state: AppState, selection: Optional[Selection] = None) -> ResolvedSelection:
    """Resolve scope pointers to entities.

    Dangling pointers resolve to ``None``. A selected workstream implies its
    project, overriding a project pointer that disagrees with it.
    """
    selection = selection or state.selection
    workstream = state.find_workstream(selection.workstream_id)
    if workstream is not None:
        return ResolvedSelection(project=state.find_project(workstream.project_id), workstream=workstream)
    return ResolvedSelection(project=state.find_project(selection.project_id))


def select_scope(
    state: AppState,
    project_id: Optional[str] = None,
    workstream_id: Optional[str] = None,
) -> AppState:
    if project_id is not None:
        state.project(project_id)
    if workstream_id is not None:
        state.workstream(workstream_id)
    resolved = resolve_selection(state, Selection(project_id=project_id, workstream_id=workstream_id))
    return replace(state, selection=resolved.to_selection())


# ----------------------------------------------------------------------
# Owner filter
# ----------------------------------------------------------------------

def normalize_owner(owner: Optional[str]) -> str:
    return (owner or "").strip()


def is_unassigned(owner: Optional[str]) -> bool:
    normalized = normalize_owner(owner)
    return not normalized or normalized == UNASSIGNED_LABEL


def matches_owner(owner: Optional[str], owner_filter: Optional[str]) -> bool:
    """Exact, case-sensitive match on the trimmed owner.

    ``"all"`` (or no filter) matches everyone; ``"unassigned"`` matches empty
    owners and the literal ``"Unassigned"``.
    """
    if owner_filter is None or owner_filter == ALL_OWNERS:
        return True
    if owner_filter == UNASSIGNED:
        return is_unassigned(owner)
    return normalize_owner(owner) == normalize_owner(owner_filter)


def task_owner(task: Task) -> str:
    cycle = current_cycle(task)
    return normalize_owner(cycle.owner if cycle else task.owner)


def owners_in(tasks: Iterable[Task]) -> List[str]:
    return sorted({task_owner(task) for task in tasks if not is_unassigned(task_owner(task))})


def filter_by_owner(tasks: Iterable[Task], owner_filter: Optional[str]) -> List[Task]:
    return [task for task in tasks if matches_owner(task_owner(task), owner_filter)]


# ----------------------------------------------------------------------
# Milestone grouping
# ----------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class MilestoneGroup:
    milestone: Optional[Milestone]
    tasks: List[Task]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "milestone": self.milestone.to_dict() if self.milestone else None,
            "tasks": [task.id for task in self.tasks],
        }


def _milestone_order(milestone: Milestone):
    # Dated milestones first, earliest due date first
    return (milestone.due_date is None, milestone.due_date or date.max, milestone.title)


def group_by_milestone(state: AppState, tasks: Iterable[Task], workstream_id: Optional[str] = None) -> List[MilestoneGroup]:
    """Bucket active tasks by their active milestone.

    A link to a retired or missing milestone counts as no milestone. Buckets
    are ordered by due date with the no-milestone bucket last.
    """
    milestones = [
        m for m in state.milestones
        if m.is_active and (workstream_id is None or m.workstream_id == workstream_id)
    ]
    buckets: Dict[str, List[Task]] = {m.id: [] for m in milestones}
    loose: List[Task] = []
    for task in tasks:
        if not task.is_active:
            continue
        if task.milestone_id in buckets:
            buckets[task.milestone_id].append(task)
        else:
            loose.append(task)

    groups = [MilestoneGroup(m, buckets[m.id]) for m in sorted(milestones, key=_milestone_order)]
    groups.append(MilestoneGroup(None, loose))
    return groups


# ----------------------------------------------------------------------
# Rows
# ----------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class TaskRow:
    """A task with the cycle shown for it and that cycle's due state."""

    task: Task
    cycle: Cycle
    workstream: Workstream
    due: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task.id,
            "task_name": self.task.name,
            "workstream_id": self.workstream.id,
            "workstream_name": self.workstream.name,
            "cadence": self.workstream.cadence,
            "milestone_id": self.task.milestone_id,
            "lifecycle": self.task.lifecycle,
            "due": self.due,
            "period_label": format_human_range(self.cycle.start_date, self.cycle.end_date),
            "cycle": self.cycle.to_dict(),
        }


def _row(state: AppState, task: Task, cycle: Cycle, today: DateLike) -> TaskRow:
    due = due_state(cycle.end_date, today) if cycle.is_open else CLOSED
    return TaskRow(task=task, cycle=cycle, workstream=state.workstream(task.workstream_id), due=due)


def review_rows(
    state: AppState,
    today: DateLike,
    *,
    project_id: Optional[str] = None,
    workstream_id: Optional[str] = None,
    owner: Optional[str] = ALL_OWNERS,
    milestone_id: Optional[str] = None,
    offset: int = 0,
) -> List[TaskRow]:
    """Rows for the review table, ``offset`` periods back from the latest."""
    rows = []
    for task in filter_by_owner(tasks_in_scope(state, project_id, workstream_id), owner):
        if milestone_id is not None and task.milestone_id != milestone_id:
            continue
        cycle = visible_cycle(task, offset)
        if cycle is None:
            continue
        rows.append(_row(state, task, cycle, today))
    return rows


@dataclass(frozen=True, slots=True)
class OwnerSummary:
    owner: str
    rows: List[TaskRow]

    def to_dict(self) -> Dict[str, Any]:
        return {"owner": self.owner, "rows": [row.to_dict() for row in self.rows]}


def owner_summaries(state: AppState, today: DateLike) -> List[OwnerSummary]:
    """Active tasks' current cycles grouped by owner, sorted by owner."""
    grouped: Dict[str, List[TaskRow]] = {}
    for task in state.tasks:
        if not task.is_active:
            continue
        cycle = current_cycle(task)
        if cycle is None:
            continue
        owner = normalize_owner(cycle.owner)
        if not owner:
            continue
        grouped.setdefault(owner, []).append(_row(state, task, cycle, today))
    return [OwnerSummary(owner, grouped[owner]) for owner in sorted(grouped)]


def open_items(
    state: AppState,
    today: DateLike,
    *,
    owner: Optional[str] = None,
    cadence: Optional[str] = None,
    due: Optional[str] = None,
) -> List[TaskRow]:
    """Every active task with an open cycle, filterable by owner, cadence and due state."""
    if due is not None and due not in DUE_STATES:
        raise ValueError(f"Unknown due state {due!r}; expected one of {', '.join(DUE_STATES)}")
    items = []
    for task in state.tasks:
        if not task.is_active or task.open_cycle is None:
            continue
        row = _row(state, task, task.open_cycle, today)
        if owner is not None and not matches_owner(row.cycle.owner, owner):
            continue
        if cadence is not None and row.workstream.cadence != cadence:
            continue
        if due is not None and row.due != due:
            continue
        items.append(row)
    return items


def due_counts(items: Iterable[TaskRow]) -> Dict[str, Any]:
    items = list(items)
    ends = [row.cycle.end_date for row in items]
    return {
        "total": len(items),
        "overdue": sum(1 for row in items if row.due == OVERDUE),
        "duesoon": sum(1 for row in items if row.due == DUESOON),
        "earliest_end": format_iso_date(min(ends)) if ends else None,
    }
