"""Closing workflow: readiness, the review gate and advancing a workstream.

Closing a period is irreversible. It is allowed only when every task taking
part in the current period has been reviewed, and it advances all active
tasks of the workstream together: the updated tasks are staged first and
published in a single state replacement.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .cadence_logging import log_period_closed
from .cycles import cycle_at, sync_task, sync_workstream, workstream_index
from .lifecycle import active_tasks
from .manage import add_task
from .models import AppState, Task
from .periods import DateLike, PeriodRange, current_index_and_range, period_range

logger = logging.getLogger("cadence.closing")


@dataclass(frozen=True, slots=True)
class Readiness:
    """Review status of a workstream's current period."""

    workstream_id: str
    index: int
    period: PeriodRange
    total: int
    prepared: int
    reviewed: int
    live_index: int

    @property
    def missing(self) -> int:
        return self.total - self.prepared

    @property
    def started(self) -> bool:
        """Whether the clock has reached the current period."""
        return self.index <= self.live_index

    @property
    def can_close(self) -> bool:
        return self.started and self.total > 0 and self.reviewed == self.total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workstream_id": self.workstream_id,
            "index": self.index,
            "period": self.period.to_dict(),
            "total": self.total,
            "prepared": self.prepared,
            "missing": self.missing,
            "reviewed": self.reviewed,
            "live_index": self.live_index,
            "started": self.started,
            "can_close": self.can_close,
        }


def current_index(state: AppState, workstream_id: str, today: DateLike) -> int:
    return workstream_index(state, workstream_id, today)


def participants(state: AppState, workstream_id: str, today: DateLike) -> List[Task]:
    """Active tasks taking part in the workstream's current period."""
    index = current_index(state, workstream_id, today)
    return [task for task in active_tasks(state, workstream_id) if task.first_index <= index]


def readiness(state: AppState, workstream_id: str, today: DateLike) -> Readiness:
    state = sync_workstream(state, workstream_id, today)
    workstream = state.workstream(workstream_id)
    index = current_index(state, workstream_id, today)
    prepared = reviewed = 0
    tasks = participants(state, workstream_id, today)
    for task in tasks:
        cycle = cycle_at(task, index)
        if cycle is None:
            continue
        if cycle.is_prepared:
            prepared += 1
        if cycle.reviewed:
            reviewed += 1
    return Readiness(
        workstream_id=workstream_id,
        index=index,
        period=period_range(workstream.first_cycle_start_date, workstream.cadence, index),
        total=len(tasks),
        prepared=prepared,
        reviewed=reviewed,
        live_index=current_index_and_range(workstream.first_cycle_start_date, workstream.cadence, today).index,
    )


def can_close(state: AppState, workstream_id: str, today: DateLike) -> bool:
    return readiness(state, workstream_id, today).can_close


def close_period(state: AppState, workstream_id: str, today: DateLike) -> AppState:
    """Close the current period of a workstream and open the next one.

    Returns the input state unchanged when the review gate is not satisfied
    or when the current period has not started yet, so the open cycle never
    runs more than one period ahead of the clock.
    """
    status = readiness(state, workstream_id, today)
    if not status.started:
        logger.info(
            f"Close of {workstream_id} period {status.index} rejected: "
            f"period starts {status.period.start.isoformat()}"
        )
        return state
    if not status.can_close:
        logger.info(
            f"Close of {workstream_id} period {status.index} rejected: "
            f"{status.reviewed}/{status.total} reviewed"
        )
        return state

    synced = sync_workstream(state, workstream_id, today)
    next_index = status.index + 1
    staged = [sync_task(synced, task, next_index) for task in active_tasks(synced, workstream_id)]
    closed = synced.replace_tasks(staged)

    logger.info(f"Closed period {status.index} of {workstream_id}; opened {next_index}")
    log_period_closed(workstream_id, status.index, len(staged))
    return closed


def capture_follow_up(
    state: AppState,
    workstream_id: str,
    name: str,
    owner: str,
    today: DateLike,
    *,
    milestone_id: Optional[str] = None,
    task_id: Optional[str] = None,
) -> Tuple[AppState, Task]:
    """Create a task that starts life in the next period of the workstream."""
    next_index = current_index(state, workstream_id, today) + 1
    state, task = add_task(
        state,
        workstream_id,
        name,
        owner,
        next_index,
        first_index=next_index,
        milestone_id=milestone_id,
        task_id=task_id,
    )
    logger.info(f"Captured follow-up {task.id} for period {next_index} of {workstream_id}")
    return state, task
