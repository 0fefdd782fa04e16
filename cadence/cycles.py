"""Cycle store: gap-free, carry-forward cycle histories per task.

Every structural change to a task's cycle list funnels through
``normalize_cycles`` so the carry-forward rule (a cycle's previous plan is
the prior cycle's next plan) holds after any mutation.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from .errors import CycleIndexError
from .models import CLOSED, OPEN, AppState, Cycle, Task
from .periods import DateLike, current_index_and_range, period_range

logger = logging.getLogger("cadence.cycles")

TEXT_FIELDS = ("actuals", "next_plan")
EDITABLE_FIELDS = frozenset(TEXT_FIELDS + ("owner", "reviewed"))


def normalize_cycles(cycles: Iterable[Cycle]) -> Tuple[Cycle, ...]:
    """Sort by index and re-derive every previous plan from its predecessor."""
    ordered = sorted(cycles, key=lambda cycle: cycle.index)
    normalized = []
    carried = ""
    for cycle in ordered:
        if cycle.previous_plan != carried:
            cycle = replace(cycle, previous_plan=carried)
        normalized.append(cycle)
        carried = cycle.next_plan
    return tuple(normalized)


def ensure_cycles_up_to(task: Task, cadence: str, anchor: DateLike, target_index: int) -> Tuple[Cycle, ...]:
    """Return the task's cycle list materialized through ``target_index``.

    Missing cycles from the task's first index up to the target are
    synthesized with dates from the period indexer and the task's current
    owner. Afterwards only ``target_index`` is open. A task whose first cycle
    lies after the target (a follow-up scheduled for the next period) is
    returned unchanged.
    """
    if target_index < 0:
        raise CycleIndexError(f"Target index must be >= 0, got {target_index}")
    if target_index < task.first_index:
        return task.cycles
    last_index = task.last_index
    if last_index is not None and target_index < last_index:
        raise CycleIndexError(
            f"Task {task.id} already holds cycle {last_index}; cannot rewind to {target_index}"
        )

    existing = {cycle.index: cycle for cycle in task.cycles}
    cycles = []
    for index in range(task.first_index, target_index + 1):
        cycle = existing.get(index)
        if cycle is None:
            period = period_range(anchor, cadence, index)
            cycle = Cycle(
                index=index,
                status=OPEN if index == target_index else CLOSED,
                start_date=period.start,
                end_date=period.end,
                owner=task.owner,
            )
            logger.debug(f"Synthesized cycle {index} for task {task.id}")
        status = OPEN if index == target_index else CLOSED
        if cycle.status != status:
            cycle = replace(cycle, status=status)
        cycles.append(cycle)

    return normalize_cycles(cycles)


def cycle_at(task: Task, index: int) -> Optional[Cycle]:
    for cycle in task.cycles:
        if cycle.index == index:
            return cycle
    return None


def current_cycle(task: Task) -> Optional[Cycle]:
    """The open cycle, else the latest one, else ``None``."""
    return task.open_cycle or (task.cycles[-1] if task.cycles else None)


def visible_cycle(task: Task, offset: int = 0) -> Optional[Cycle]:
    """Cycle ``offset`` periods back from the latest, clamped to the first."""
    if not task.cycles:
        return None
    position = max(len(task.cycles) - 1 - max(offset, 0), 0)
    return task.cycles[position]


def update_cycle(task: Task, cycle_index: int, patch: Mapping[str, Any]) -> Task:
    """Apply a partial update to the open cycle at ``cycle_index``.

    Closed or missing cycles are left alone. Changing the texts or the owner
    clears the review flag unless the patch sets it.
    """
    unknown = set(patch) - EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot edit cycle fields: {', '.join(sorted(unknown))}")

    target = cycle_at(task, cycle_index)
    if target is None or not target.is_open:
        logger.debug(f"Ignored edit of closed or missing cycle {cycle_index} on task {task.id}")
        return task

    changes: Dict[str, Any] = {}
    for name, value in patch.items():
        if name == "reviewed":
            value = bool(value)
        elif not isinstance(value, str):
            raise ValueError(f"Cycle field {name} must be text")
        if getattr(target, name) != value:
            changes[name] = value

    if not changes:
        return task
    if "reviewed" not in patch and set(changes) & {"actuals", "next_plan", "owner"}:
        changes["reviewed"] = False

    updated = replace(target, **changes)
    cycles = [updated if cycle.index == cycle_index else cycle for cycle in task.cycles]
    return replace(task, cycles=normalize_cycles(cycles))


def mark_reviewed(task: Task, reviewed: bool = True) -> Task:
    open_cycle = task.open_cycle
    if open_cycle is None:
        return task
    return update_cycle(task, open_cycle.index, {"reviewed": reviewed})


def _opened_index(task: Task) -> Optional[int]:
    # A follow-up holding only its first scheduled cycle has not started yet.
    if not task.cycles:
        return None
    if task.first_index == 0 or task.last_index > task.first_index:
        return task.last_index
    return None


def workstream_index(state: AppState, workstream_id: str, today: DateLike) -> int:
    """Index of the workstream's current period.

    The clock gives the live period; a close can open the next period before
    the clock reaches it, so the highest period already opened by an active
    task wins.
    """
    workstream = state.workstream(workstream_id)
    live = current_index_and_range(workstream.first_cycle_start_date, workstream.cadence, today).index
    opened = [
        _opened_index(task)
        for task in state.tasks
        if task.workstream_id == workstream_id and task.is_active
    ]
    return max([live] + [index for index in opened if index is not None])


def sync_task(state: AppState, task: Task, target_index: int) -> Task:
    """Materialize one task's cycles through ``target_index``."""
    workstream = state.workstream(task.workstream_id)
    cycles = ensure_cycles_up_to(task, workstream.cadence, workstream.first_cycle_start_date, target_index)
    if cycles == task.cycles:
        return task
    return replace(task, cycles=cycles)


def sync_workstream(state: AppState, workstream_id: str, today: DateLike) -> AppState:
    """Lazily materialize cycles for every active task of a workstream.

    Retired tasks keep their history untouched. Returns the same state
    object when nothing changed.
    """
    index = workstream_index(state, workstream_id, today)
    updated = []
    for task in state.tasks:
        if task.workstream_id != workstream_id or not task.is_active:
            continue
        synced = sync_task(state, task, index)
        if synced is not task:
            updated.append(synced)
    if not updated:
        return state
    logger.debug(f"Materialized cycles for {len(updated)} tasks in {workstream_id} up to {index}")
    return state.replace_tasks(updated)


def sync_all(state: AppState, today: DateLike) -> AppState:
    for workstream in state.workstreams:
        state = sync_workstream(state, workstream.id, today)
    return state
