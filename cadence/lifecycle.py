"""Active/inactive lifecycle for tasks and milestones.

Nothing is ever deleted: retiring is the deletion substitute and keeps the
cycle history. A retired task drops out of cycle materialization and of the
closing workflow; its cycles, including an open one, stay exactly as they
were.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import List, Optional, Union

from .errors import LifecycleError
from .models import ACTIVE, INACTIVE, AppState, Milestone, Task

logger = logging.getLogger("cadence.lifecycle")


def is_active(entity: Union[Task, Milestone]) -> bool:
    return entity.lifecycle == ACTIVE


def active_tasks(state: AppState, workstream_id: Optional[str] = None) -> List[Task]:
    return [
        task
        for task in state.tasks
        if task.is_active and (workstream_id is None or task.workstream_id == workstream_id)
    ]


def active_milestones(state: AppState, workstream_id: Optional[str] = None) -> List[Milestone]:
    return [
        milestone
        for milestone in state.milestones
        if milestone.is_active and (workstream_id is None or milestone.workstream_id == workstream_id)
    ]


def retire_task(state: AppState, task_id: str) -> AppState:
    task = state.task(task_id)
    if not task.is_active:
        return state
    logger.info(f"Retiring task {task_id}")
    return state.replace_task(replace(task, lifecycle=INACTIVE))


def reactivate_task(state: AppState, task_id: str) -> AppState:
    """Return a retired task to the active set.

    The next sync of its workstream fills the periods it missed, carrying the
    last plan written before retirement forward.
    """
    task = state.task(task_id)
    if task.is_active:
        return state
    logger.info(f"Reactivating task {task_id}")
    return state.replace_task(replace(task, lifecycle=ACTIVE))


def retire_milestone(state: AppState, milestone_id: str) -> AppState:
    """Retire a milestone and unlink every task that referenced it."""
    milestone = state.milestone(milestone_id)
    if not milestone.is_active:
        return state
    unlinked = [
        replace(task, milestone_id=None)
        for task in state.tasks
        if task.milestone_id == milestone_id
    ]
    logger.info(f"Retiring milestone {milestone_id}; unlinking {len(unlinked)} tasks")
    state = state.replace_milestone(replace(milestone, lifecycle=INACTIVE))
    return state.replace_tasks(unlinked) if unlinked else state


def reactivate_milestone(state: AppState, milestone_id: str) -> AppState:
    milestone = state.milestone(milestone_id)
    if milestone.is_active:
        return state
    logger.info(f"Reactivating milestone {milestone_id}")
    return state.replace_milestone(replace(milestone, lifecycle=ACTIVE))


def assign_milestone(state: AppState, task_id: str, milestone_id: Optional[str]) -> AppState:
    """Link a task to an active milestone of its own workstream, or unlink it."""
    task = state.task(task_id)
    if milestone_id is not None:
        milestone = state.milestone(milestone_id)
        if not milestone.is_active:
            raise LifecycleError(f"Milestone {milestone_id} is retired")
        if milestone.workstream_id != task.workstream_id:
            raise LifecycleError(
                f"Milestone {milestone_id} belongs to workstream {milestone.workstream_id}, "
                f"not {task.workstream_id}"
            )
    if task.milestone_id == milestone_id:
        return state
    return state.replace_task(replace(task, milestone_id=milestone_id))
