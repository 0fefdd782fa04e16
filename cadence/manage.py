"""Manage operations: creating and editing projects, workstreams, milestones and tasks."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional, Tuple

from .cycles import sync_task, update_cycle, workstream_index
from .lifecycle import assign_milestone
from .models import AppState, Milestone, Project, Task, Workstream, generate_id
from .periods import DateLike, aligned_period_start, parse_iso_date, validate_cadence

logger = logging.getLogger("cadence.manage")

_UNSET = object()


def _required_name(value: str, label: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{label} cannot be empty")
    return value.strip()


def create_project(state: AppState, name: str, *, project_id: Optional[str] = None) -> Tuple[AppState, Project]:
    project = Project(id=project_id or generate_id("proj"), name=_required_name(name, "Project name"))
    logger.info(f"Created project {project.id}")
    return replace(state, projects=state.projects + (project,)), project


def create_workstream(
    state: AppState,
    project_id: str,
    name: str,
    cadence: str,
    today: DateLike,
    *,
    first_cycle_start_date: Optional[DateLike] = None,
    lead: str = "",
    workstream_id: Optional[str] = None,
) -> Tuple[AppState, Workstream]:
    """Create a workstream anchored at ``first_cycle_start_date``.

    Without an explicit anchor the workstream starts at the natural start of
    the period containing ``today`` for its cadence.
    """
    state.project(project_id)
    validate_cadence(cadence)
    anchor = (
        parse_iso_date(first_cycle_start_date)
        if first_cycle_start_date
        else aligned_period_start(cadence, today)
    )
    workstream = Workstream(
        id=workstream_id or generate_id("ws"),
        project_id=project_id,
        name=_required_name(name, "Workstream name"),
        cadence=cadence,
        first_cycle_start_date=anchor,
        lead=(lead or "").strip(),
    )
    logger.info(f"Created {cadence} workstream {workstream.id} anchored at {anchor.isoformat()}")
    return replace(state, workstreams=state.workstreams + (workstream,)), workstream


def add_task(
    state: AppState,
    workstream_id: str,
    name: str,
    owner: str,
    target_index: int,
    *,
    first_index: int = 0,
    milestone_id: Optional[str] = None,
    task_id: Optional[str] = None,
) -> Tuple[AppState, Task]:
    """Add a task and materialize its cycles through ``target_index``."""
    state.workstream(workstream_id)
    task = Task(
        id=task_id or generate_id("task"),
        workstream_id=workstream_id,
        name=_required_name(name, "Task name"),
        owner=(owner or "").strip(),
        first_index=first_index,
    )
    task = sync_task(state, task, target_index)
    state = replace(state, tasks=state.tasks + (task,))
    if milestone_id:
        state = assign_milestone(state, task.id, milestone_id)
    return state, state.task(task.id)


def create_task(
    state: AppState,
    workstream_id: str,
    name: str,
    owner: str,
    today: DateLike,
    *,
    milestone_id: Optional[str] = None,
    task_id: Optional[str] = None,
) -> Tuple[AppState, Task]:
    """Create a task whose history starts at period 0 of its workstream.

    Periods that elapsed before the task existed are materialized as closed,
    empty cycles so the history stays gap-free.
    """
    index = workstream_index(state, workstream_id, today)
    state, task = add_task(
        state, workstream_id, name, owner, index, milestone_id=milestone_id, task_id=task_id
    )
    logger.info(f"Created task {task.id} in {workstream_id} at period {index}")
    return state, task


def create_milestone(
    state: AppState,
    workstream_id: str,
    title: str,
    *,
    due_date: Optional[DateLike] = None,
    milestone_id: Optional[str] = None,
) -> Tuple[AppState, Milestone]:
    state.workstream(workstream_id)
    milestone = Milestone(
        id=milestone_id or generate_id("ms"),
        workstream_id=workstream_id,
        title=_required_name(title, "Milestone title"),
        due_date=parse_iso_date(due_date) if due_date else None,
    )
    logger.info(f"Created milestone {milestone.id} in {workstream_id}")
    return replace(state, milestones=state.milestones + (milestone,)), milestone


def update_milestone(
    state: AppState,
    milestone_id: str,
    *,
    title: Optional[str] = None,
    due_date: object = _UNSET,
) -> AppState:
    """Edit a milestone's title or due date; ``due_date=None`` clears it."""
    milestone = state.milestone(milestone_id)
    changes = {}
    if title is not None:
        changes["title"] = _required_name(title, "Milestone title")
    if due_date is not _UNSET:
        changes["due_date"] = parse_iso_date(due_date) if due_date else None
    if not changes:
        return state
    return state.replace_milestone(replace(milestone, **changes))


def rename_task(state: AppState, task_id: str, name: str) -> AppState:
    task = state.task(task_id)
    name = _required_name(name, "Task name")
    if name == task.name:
        return state
    return state.replace_task(replace(task, name=name))


def reassign_owner(state: AppState, task_id: str, owner: str) -> AppState:
    """Change a task's owner and the owner of its open cycle.

    Closed cycles keep the owner recorded when they were generated.
    """
    task = state.task(task_id)
    owner = (owner or "").strip()
    updated = replace(task, owner=owner)
    open_cycle = updated.open_cycle
    if open_cycle is not None:
        updated = update_cycle(updated, open_cycle.index, {"owner": owner})
    if updated == task:
        return state
    return state.replace_task(updated)
